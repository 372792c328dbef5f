import os
import stat
import socket
import logging
from email.utils import formatdate
from typing import Optional

from .mime import mime_type_for_path
from .models import HTTPResponse, LocalStaticConfig, StaticFile

logger = logging.getLogger(__name__)


class StaticFileResolver:
    """Maps request paths onto files below a local root directory."""

    def __init__(self, config: LocalStaticConfig):
        """
        Initialize the resolver.

        Args:
            config: Local static configuration (prefix, root, index)
        """
        self._config = config
        self._root = os.path.abspath(config.root)

    @property
    def config(self) -> LocalStaticConfig:
        return self._config

    def resolve(self, request_path: str) -> Optional[StaticFile]:
        """
        Resolve a request path to a file on disk.

        Args:
            request_path: Request URL (path and optional query string)

        Returns:
            StaticFile to serve, or None when the local tier has no answer
            and the request should go to the remote server
        """
        prefix = self._config.prefix
        path = request_path.split('?', 1)[0]
        if path == '/':
            path = prefix + self._config.index

        position = path.find(prefix)
        if position < 0:
            return None

        relative = path[position + len(prefix):].lstrip('/')
        file_path = os.path.normpath(os.path.join(self._root, relative))
        if os.path.commonpath([self._root, file_path]) != self._root:
            logger.warning(f"Rejected path outside of {self._root}: {request_path}")
            return None

        try:
            info = os.stat(file_path)
        except PermissionError as e:
            logger.warning(f"Cannot access {file_path}: {e}")
            return None
        except (OSError, ValueError):
            return None

        if stat.S_ISDIR(info.st_mode):
            return None

        return StaticFile(
            path=file_path,
            mime_type=mime_type_for_path(file_path),
            size=info.st_size,
            mtime=info.st_mtime
        )

    def send(self, static_file: StaticFile, client_socket: socket.socket,
             head_only: bool = False) -> bool:
        """
        Write a resolved file to the client as a 200 response.

        Returns:
            False if the file could no longer be opened; nothing has been
            written to the client in that case
        """
        try:
            f = open(static_file.path, 'rb')
        except OSError as e:
            logger.warning(f"Cannot open {static_file.path}: {e}")
            return False

        with f:
            response = HTTPResponse(
                status_code=200,
                status_message="OK",
                headers=[
                    ('Content-Type', static_file.mime_type),
                    ('Content-Length', str(static_file.size)),
                    ('Last-Modified', formatdate(static_file.mtime, usegmt=True)),
                    ('Connection', 'close')
                ]
            )
            client_socket.sendall(response.head_bytes())
            if not head_only:
                client_socket.sendfile(f, count=static_file.size)
        return True
