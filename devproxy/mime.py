import os

MIME_TYPES = {
    '': 'application/octet-stream',
    'html': 'text/html',
    'js': 'text/javascript',
    'css': 'text/css',
    'jpg': 'image/jpeg',
    'png': 'image/png',
    'gif': 'image/gif',
    'svg': 'image/svg+xml'
}


def mime_type(extension: str) -> str:
    """
    Look up the content type for a file extension.

    The lookup is case-sensitive: 'JPG' is not 'jpg'. Unknown extensions
    get the default entry.

    Args:
        extension: Extension without the leading dot
    """
    return MIME_TYPES.get(extension, MIME_TYPES[''])


def mime_type_for_path(path: str) -> str:
    """Content type for a filesystem path, based on its last extension."""
    return mime_type(os.path.splitext(path)[1][1:])
