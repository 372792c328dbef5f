import os
import socket
import tempfile
import unittest
import sys
from unittest import mock

# Add the parent directory to the Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from devproxy.handler import RequestHandler
from devproxy.models import HTTPRequest, LocalStaticConfig, RouteConfig, ServerAddress
from devproxy.static import StaticFileResolver


class TestStaticFileResolver(unittest.TestCase):
    """Test cases for resolving requests to local files."""

    def setUp(self):
        """Create a public directory with a few files."""
        self.tmp = tempfile.TemporaryDirectory()
        self.root = os.path.join(self.tmp.name, "public")
        os.makedirs(os.path.join(self.root, "css"))
        self._write("app.js", b"console.log('app');\n")
        self._write("index.html", b"<html></html>")
        self._write(os.path.join("css", "site.css"), b"body{}")
        with open(os.path.join(self.tmp.name, "secret.txt"), "wb") as f:
            f.write(b"secret")

        self.resolver = StaticFileResolver(
            LocalStaticConfig(root=self.root, prefix="/mweb", index="/index.html")
        )

    def _write(self, name, data):
        with open(os.path.join(self.root, name), "wb") as f:
            f.write(data)

    def tearDown(self):
        self.tmp.cleanup()

    def test_static_hit(self):
        """Test a file under the prefix resolves with type and size."""
        # Act
        result = self.resolver.resolve("/mweb/app.js")

        # Assert
        self.assertIsNotNone(result)
        self.assertEqual(result.path, os.path.join(self.root, "app.js"))
        self.assertEqual(result.mime_type, "text/javascript")
        self.assertEqual(result.size, os.path.getsize(os.path.join(self.root, "app.js")))

    def test_query_string_ignored(self):
        result = self.resolver.resolve("/mweb/css/site.css?v=42")
        self.assertEqual(result.mime_type, "text/css")
        self.assertEqual(result.size, 6)

    def test_missing_file(self):
        self.assertIsNone(self.resolver.resolve("/mweb/missing.js"))

    def test_directory_is_not_served(self):
        self.assertIsNone(self.resolver.resolve("/mweb/css"))
        self.assertIsNone(self.resolver.resolve("/mweb"))

    def test_root_maps_to_index(self):
        """Test '/' is served as prefix plus index file."""
        self.assertEqual(self.resolver.resolve("/"), self.resolver.resolve("/mweb/index.html"))
        self.assertEqual(self.resolver.resolve("/").mime_type, "text/html")

    def test_path_without_prefix(self):
        self.assertIsNone(self.resolver.resolve("/other/app.js"))

    def test_prefix_found_mid_path(self):
        """Test the first occurrence of the prefix anchors the file path."""
        result = self.resolver.resolve("/v2/mweb/app.js")
        self.assertEqual(result.path, os.path.join(self.root, "app.js"))

    def test_traversal_rejected(self):
        """Test paths escaping the root are not served."""
        self.assertIsNone(self.resolver.resolve("/mweb/../secret.txt"))
        self.assertIsNone(self.resolver.resolve("/mweb/css/../../secret.txt"))

    def test_dot_segments_inside_root(self):
        result = self.resolver.resolve("/mweb/css/../app.js")
        self.assertEqual(result.path, os.path.join(self.root, "app.js"))

    def test_default_prefix(self):
        """Test prefix '/' maps the whole URL space onto the root."""
        # Arrange
        resolver = StaticFileResolver(LocalStaticConfig(root=self.root))

        # Act and Assert
        self.assertEqual(resolver.resolve("/css/site.css").size, 6)
        self.assertEqual(resolver.resolve("/").path, os.path.join(self.root, "index.html"))

    @unittest.skipIf(hasattr(os, "geteuid") and os.geteuid() == 0, "root ignores permissions")
    def test_permission_denied_is_not_found(self):
        """Test inaccessible files fall back like missing ones."""
        # Arrange
        locked = os.path.join(self.root, "locked")
        os.makedirs(locked)
        with open(os.path.join(locked, "a.js"), "wb") as f:
            f.write(b"x")
        os.chmod(locked, 0)

        try:
            # Act and Assert
            with self.assertLogs("devproxy.static", level="WARNING"):
                self.assertIsNone(self.resolver.resolve("/mweb/locked/a.js"))
        finally:
            os.chmod(locked, 0o755)

    def test_send_writes_headers_and_body(self):
        """Test a resolved file is written as a complete 200 response."""
        # Arrange
        static_file = self.resolver.resolve("/mweb/app.js")
        server_side, client_side = socket.socketpair()

        # Act
        with server_side, client_side:
            sent = self.resolver.send(static_file, server_side)
            server_side.shutdown(socket.SHUT_WR)
            data = b""
            while True:
                chunk = client_side.recv(4096)
                if not chunk:
                    break
                data += chunk

        # Assert
        head, body = data.split(b"\r\n\r\n", 1)
        self.assertTrue(sent)
        self.assertTrue(head.startswith(b"HTTP/1.1 200 OK"))
        self.assertIn(b"Content-Type: text/javascript", head)
        self.assertIn(b"Content-Length: %d" % static_file.size, head)
        self.assertIn(b"Last-Modified: ", head)
        self.assertEqual(body, b"console.log('app');\n")

    def test_send_after_file_removed(self):
        """Test nothing is written when the file vanished after resolving."""
        static_file = self.resolver.resolve("/mweb/app.js")
        os.remove(static_file.path)
        client_socket = mock.Mock()

        self.assertFalse(self.resolver.send(static_file, client_socket))
        client_socket.sendall.assert_not_called()


class TestStaticDispatch(unittest.TestCase):
    """Test cases for how the handler combines the router and the local tier."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        with open(os.path.join(self.tmp.name, "app.js"), "wb") as f:
            f.write(b"app")
        self.config = RouteConfig(
            port=0,
            remote=ServerAddress.parse("https://www.example.com"),
            local=LocalStaticConfig(root=self.tmp.name, prefix="/mweb")
        )
        self.handler = RequestHandler(self.config)
        self.client_socket = mock.Mock()

    def tearDown(self):
        self.tmp.cleanup()

    def _dispatch(self, method, path):
        request = HTTPRequest(method=method, path=path, protocol="HTTP/1.1")
        with mock.patch.object(self.handler._forwarder, "forward") as forward:
            self.handler._dispatch(request, self.client_socket)
        return request, forward

    def test_local_miss_forwards_original_request(self):
        """Test a missing file is forwarded to the remote with its path intact."""
        # Act
        request, forward = self._dispatch("GET", "/mweb/missing.js")

        # Assert
        forward.assert_called_once_with(self.config.remote, request, self.client_socket)
        self.assertEqual(request.path, "/mweb/missing.js")

    def test_local_hit_not_forwarded(self):
        _, forward = self._dispatch("GET", "/mweb/app.js")
        forward.assert_not_called()
        self.client_socket.sendfile.assert_called_once()

    def test_head_hit_sends_no_body(self):
        _, forward = self._dispatch("HEAD", "/mweb/app.js")
        forward.assert_not_called()
        self.client_socket.sendall.assert_called_once()
        self.client_socket.sendfile.assert_not_called()

    def test_post_never_touches_disk(self):
        with mock.patch.object(self.handler._resolver, "resolve") as resolve:
            _, forward = self._dispatch("POST", "/mweb/app.js")
        resolve.assert_not_called()
        forward.assert_called_once()

    def test_outside_prefix_never_touches_disk(self):
        """Test URLs without the prefix skip the resolver entirely."""
        with mock.patch.object(self.handler._resolver, "resolve") as resolve:
            _, forward = self._dispatch("GET", "/api/user.js")
        resolve.assert_not_called()
        forward.assert_called_once()


if __name__ == '__main__':
    unittest.main()
