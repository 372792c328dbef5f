import socket
import logging
from typing import BinaryIO, Optional, Tuple

from .forwarder import Forwarder
from .models import HTTPRequest, HTTPResponse, LocalMode, RouteConfig
from .router import Route, Router
from .static import StaticFileResolver
from .stream import MAX_LINE, ChunkedBody, FixedLengthBody

logger = logging.getLogger(__name__)

MAX_HEADER_BYTES = 64 * 1024


class BadRequest(ValueError):
    """The client sent something that is not a usable HTTP request."""


class RequestHandler:
    """Handles processing of individual HTTP requests."""

    def __init__(self, config: RouteConfig):
        """
        Initialize the request handler.

        Args:
            config: Configuration of the proxy instance this handler serves
        """
        self._config = config
        self._timeout = config.timeout
        self._router = Router(config)
        self._forwarder = Forwarder(timeout=config.timeout)
        self._resolver = None
        if config.local.mode is LocalMode.STATIC:
            self._resolver = StaticFileResolver(config.local)

    @property
    def config(self) -> RouteConfig:
        return self._config

    def handle_client(self, client_socket: socket.socket,
                      client_address: Tuple[str, int]) -> None:
        """
        Handle an individual client connection.

        Args:
            client_socket: Socket object for client connection
            client_address: Tuple of client's IP and port
        """
        client_socket.settimeout(self._timeout)
        rfile = client_socket.makefile('rb')

        try:
            try:
                request = self._read_request(rfile)
            except BadRequest as e:
                logger.warning(f"Bad request from {client_address}: {e}")
                response, body = HTTPResponse.create_error(400, "Bad Request")
                client_socket.sendall(response.head_bytes() + body)
                return

            if not request:
                return

            self._dispatch(request, client_socket)

        except Exception as e:
            logger.error(f"Error handling client {client_address}: {e}")
        finally:
            rfile.close()
            client_socket.close()

    def _read_request(self, rfile: BinaryIO) -> Optional[HTTPRequest]:
        """
        Read the request head and attach a streaming body reader.

        Returns:
            The request, or None if the client closed without sending one

        Raises:
            BadRequest: If the head or its framing headers are malformed
        """
        head = bytearray()
        while True:
            line = rfile.readline(MAX_LINE + 1)
            if not line:
                if head:
                    raise BadRequest("Connection closed inside request head")
                return None
            if len(line) > MAX_LINE or len(head) + len(line) > MAX_HEADER_BYTES:
                raise BadRequest("Request head too large")
            if line in (b'\r\n', b'\n'):
                # Blank lines before the request line are tolerated
                if not head:
                    continue
                break
            head.extend(line.rstrip(b'\r\n') + b'\r\n')

        request = HTTPRequest.from_raw_head(bytes(head))
        if not request:
            raise BadRequest("Malformed request line or header")

        request.body = self._body_reader(request, rfile)
        return request

    def _body_reader(self, request: HTTPRequest, rfile: BinaryIO):
        transfer_encoding = request.get_header('Transfer-Encoding')
        content_length = request.get_header('Content-Length')

        if transfer_encoding and 'chunked' in transfer_encoding.lower():
            if content_length is not None:
                raise BadRequest("Both Content-Length and chunked encoding present")
            return ChunkedBody(rfile)

        if content_length is None:
            return None
        try:
            length = int(content_length, 10)
        except ValueError:
            raise BadRequest(f"Invalid Content-Length: {content_length!r}")
        if length < 0:
            raise BadRequest(f"Invalid Content-Length: {content_length!r}")
        return FixedLengthBody(rfile, length) if length else None

    def _dispatch(self, request: HTTPRequest, client_socket: socket.socket) -> None:
        """Route the request and serve it locally or forward it."""
        route = self._router.route(request)

        if route is Route.STATIC:
            static_file = self._resolver.resolve(request.path)
            if static_file and self._resolver.send(
                    static_file, client_socket, head_only=request.method == 'HEAD'):
                logger.info(f"static: {request.path}")
                return
            # Local miss falls through to the remote server
            target = self._config.remote
        elif route is Route.LOCAL_PROXY:
            target = self._config.local.address
        else:
            target = self._config.remote

        self._forwarder.forward(target, request, client_socket)
