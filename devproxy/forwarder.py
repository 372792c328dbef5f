import re
import socket
import logging
from typing import Dict, Tuple

import requests
from urllib3.exceptions import HTTPError as UpstreamStreamError

from .models import Headers, HTTPRequest, HTTPResponse, ServerAddress
from .stream import BUFFER_SIZE, end_chunks, write_chunk

logger = logging.getLogger(__name__)

# Dropped so the upstream sees its own natural values
EXCLUDED_REQUEST_HEADERS = frozenset(['host', 'origin', 'referer'])
STRIPPED_RESPONSE_HEADERS = frozenset(['access-control-allow-origin'])
HOP_BY_HOP_RESPONSE_HEADERS = frozenset(['connection', 'keep-alive'])

_COOKIE_DOMAIN_RE = re.compile(r';\s*domain=[^;]+', re.IGNORECASE)


def strip_cookie_domain(cookie: str) -> str:
    """Remove the Domain attribute from a Set-Cookie value."""
    return _COOKIE_DOMAIN_RE.sub('', cookie)


def build_outbound_headers(headers: Headers) -> Dict[str, str]:
    """
    Derive the upstream request headers from the inbound ones.

    Every header except Host, Origin and Referer is copied as is. Repeated
    headers are folded into one value, separated by '; ' for Cookie and
    ', ' for everything else.

    Args:
        headers: Inbound headers in arrival order

    Returns:
        Ordered mapping of outbound headers
    """
    outbound = {}
    names = {}
    for key, value in headers:
        lowered = key.lower()
        if lowered in EXCLUDED_REQUEST_HEADERS:
            continue
        if lowered in names:
            name = names[lowered]
            separator = '; ' if lowered == 'cookie' else ', '
            outbound[name] = f"{outbound[name]}{separator}{value}"
        else:
            names[lowered] = key
            outbound[key] = value
    return outbound


def rewrite_response_headers(headers: Headers) -> Headers:
    """
    Adjust upstream response headers for the client.

    Set-Cookie values lose their Domain attribute so the browser files the
    cookie under the proxy's host, and Access-Control-Allow-Origin is dropped.
    """
    rewritten = []
    for key, value in headers:
        lowered = key.lower()
        if lowered in STRIPPED_RESPONSE_HEADERS:
            continue
        if lowered == 'set-cookie':
            value = strip_cookie_domain(value)
        rewritten.append((key, value))
    return rewritten


def is_chunked(headers: Headers) -> bool:
    return any('chunked' in value.lower()
               for key, value in headers if key.lower() == 'transfer-encoding')


def frame_for_client(headers: Headers, protocol: str) -> Tuple[Headers, bool]:
    """
    Fit response framing headers to the single-request client connection.

    Connection and Keep-Alive are replaced by 'Connection: close'. An
    HTTP/1.0 client cannot read chunked bodies, so for it Transfer-Encoding
    is dropped and the end of the body is marked by closing the connection.

    Returns:
        Headers to send and whether the body must be written chunked
    """
    chunked = is_chunked(headers) and protocol != 'HTTP/1.0'
    framed = []
    for key, value in headers:
        lowered = key.lower()
        if lowered in HOP_BY_HOP_RESPONSE_HEADERS:
            continue
        if lowered == 'transfer-encoding' and not chunked:
            continue
        framed.append((key, value))
    framed.append(('Connection', 'close'))
    return framed, chunked


class Forwarder:
    """Relays a request to an upstream server and streams the answer back."""

    def __init__(self, timeout: float = 30):
        """
        Initialize the forwarder.

        Args:
            timeout: Upstream connect and read timeout in seconds
        """
        self._timeout = timeout

    def forward(self, target: ServerAddress, request: HTTPRequest,
                client_socket: socket.socket) -> None:
        """
        Forward a request to the target and relay its response to the client.

        Upstream failures are logged and end the exchange; the caller closes
        the client connection afterwards.
        """
        url = target.url_for(request.path)
        headers = build_outbound_headers(request.headers)

        try:
            with requests.Session() as session:
                # Only forwarded headers; no library defaults
                session.headers.clear()
                upstream = session.request(
                    request.method,
                    url,
                    headers=headers,
                    data=request.body,
                    stream=True,
                    allow_redirects=False,
                    timeout=self._timeout
                )
                with upstream:
                    self._relay(target, request, upstream, client_socket)
        except requests.RequestException as e:
            logger.error(f"Error forwarding request to {target}{request.path}: {e}")
        except (UpstreamStreamError, OSError) as e:
            logger.error(f"Relay from {target}{request.path} aborted: {e}")

    def _relay(self, target: ServerAddress, request: HTTPRequest,
               upstream: requests.Response, client_socket: socket.socket) -> None:
        """Write the upstream status, headers and body to the client."""
        headers, chunked = frame_for_client(
            rewrite_response_headers(list(upstream.raw.headers.items())),
            request.protocol
        )
        response = HTTPResponse(
            status_code=upstream.status_code,
            status_message=upstream.reason or '',
            headers=headers
        )
        client_socket.sendall(response.head_bytes())
        logger.info(f"{target}{request.path}")

        if request.method == 'HEAD':
            return

        for data in upstream.raw.stream(BUFFER_SIZE, decode_content=False):
            if chunked:
                write_chunk(client_socket, data)
            else:
                client_socket.sendall(data)
        if chunked:
            end_chunks(client_socket)
