import socket
import threading
import logging

from .handler import RequestHandler
from .models import RouteConfig

logger = logging.getLogger(__name__)


class ProxyServer:
    """Listener for one proxy instance."""

    def __init__(self, config: RouteConfig):
        """
        Initialize the proxy server.

        Args:
            config: Route configuration of this instance; never mutated
        """
        self._config = config
        self._host = config.host
        self._port = config.port

        # Initialize server socket
        self._server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Initialize request handler
        self._handler = RequestHandler(config)

        self._running = False
        self._ready = threading.Event()

    @property
    def host(self) -> str:
        """Get the host address."""
        return self._host

    @property
    def port(self) -> int:
        """Get the port number, the bound one once listening."""
        return self._port

    @property
    def config(self) -> RouteConfig:
        return self._config

    @property
    def server_socket(self) -> socket.socket:
        """Get the server socket."""
        return self._server_socket

    def wait_ready(self, timeout: float = None) -> bool:
        """Block until the server is listening."""
        return self._ready.wait(timeout)

    def start(self) -> None:
        """Start the proxy server."""
        self._running = True
        try:
            self._server_socket.bind((self._host, self._port))
            self._server_socket.listen(128)
            self._port = self._server_socket.getsockname()[1]
            logger.info(f"Reverse proxy started on {self._host}:{self._port} -> {self._config.remote}")
            self._ready.set()

            while self._running:
                try:
                    client_socket, client_address = self._server_socket.accept()
                    if not self._running:
                        client_socket.close()
                        break

                    # Handle each client in a separate thread
                    thread = threading.Thread(
                        target=self._handler.handle_client,
                        args=(client_socket, client_address)
                    )
                    thread.daemon = True
                    thread.start()
                except Exception as e:
                    if self._running:  # Only log if we're still meant to be running
                        logger.error(f"Server error: {e}")

        finally:
            self._running = False
            self._server_socket.close()

    def shutdown(self) -> None:
        """Shutdown the proxy server gracefully."""
        self._running = False
        # Create a dummy connection to unblock accept()
        host = '127.0.0.1' if self._host in ('', '0.0.0.0') else self._host
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                s.connect((host, self._port))
        except OSError:
            pass
        self._server_socket.close()
