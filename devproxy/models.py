import re
from enum import Enum
from typing import List, Optional, Tuple, Union
from dataclasses import dataclass, field

Headers = List[Tuple[str, str]]

_ADDRESS_RE = re.compile(r'^http(s?)://([^/:]+)(?::(\d+))?(/.*)?$')


class InvalidAddressFormat(ValueError):
    """Raised when an upstream address string cannot be parsed."""


class Scheme(Enum):
    HTTP = "http"
    HTTPS = "https"

    @property
    def default_port(self) -> int:
        return 443 if self is Scheme.HTTPS else 80


@dataclass(frozen=True)
class ServerAddress:
    """An upstream server: scheme, host, port and a path prefix."""
    scheme: Scheme
    host: str
    port: int
    path_prefix: str = ""

    @classmethod
    def parse(cls, address: str) -> 'ServerAddress':
        """
        Parse an address of the form http(s)://host[:port][/path].

        Args:
            address: Address string from the configuration

        Returns:
            Parsed ServerAddress

        Raises:
            InvalidAddressFormat: If the string does not match the expected form
        """
        match = _ADDRESS_RE.match(address) if isinstance(address, str) else None
        if not match:
            raise InvalidAddressFormat(f"Invalid server address: {address!r}")

        secure, host, port, path = match.groups()
        scheme = Scheme.HTTPS if secure else Scheme.HTTP
        port = int(port, 10) if port else scheme.default_port
        if not 1 <= port <= 65535:
            raise InvalidAddressFormat(f"Port out of range in address: {address!r}")

        # A lone trailing slash carries no prefix
        if not path or path == "/":
            path = ""

        return cls(scheme=scheme, host=host, port=port, path_prefix=path)

    @property
    def base_url(self) -> str:
        """Origin used to build outbound URLs, always with an explicit port."""
        return f"{self.scheme.value}://{self.host}:{self.port}"

    def url_for(self, request_url: str) -> str:
        """Outbound URL for an inbound request URL (path and query, untouched)."""
        return f"{self.base_url}{self.path_prefix}{request_url}"

    def __str__(self) -> str:
        port = "" if self.port == self.scheme.default_port else f":{self.port}"
        return f"{self.scheme.value}://{self.host}{port}{self.path_prefix}"


class LocalMode(Enum):
    STATIC = "static"
    PROXY = "proxy"


@dataclass(frozen=True)
class LocalStaticConfig:
    """Serve matching requests from a directory on disk."""
    root: str
    prefix: str = "/"
    index: str = "/index.html"

    mode = LocalMode.STATIC

    @property
    def has_custom_prefix(self) -> bool:
        return self.prefix != "/"


@dataclass(frozen=True)
class LocalProxyTarget:
    """Forward matching requests to another (usually local) server."""
    address: ServerAddress

    mode = LocalMode.PROXY


LocalConfig = Union[LocalStaticConfig, LocalProxyTarget]


@dataclass(frozen=True)
class RouteConfig:
    """One proxy instance: a listener, its remote origin and its local tier."""
    port: int
    remote: ServerAddress
    local: LocalConfig
    rule: Optional[re.Pattern] = None
    host: str = "0.0.0.0"
    timeout: float = 30


@dataclass(frozen=True)
class StaticFile:
    """A file on disk that can answer a request."""
    path: str
    mime_type: str
    size: int
    mtime: float


def _header_values(headers: Headers, name: str) -> List[str]:
    name = name.lower()
    return [value for key, value in headers if key.lower() == name]


@dataclass
class HTTPRequest:
    """Model representing an inbound HTTP request."""
    method: str
    path: str
    protocol: str
    headers: Headers = field(default_factory=list)
    body: Optional[object] = None

    @classmethod
    def from_raw_head(cls, head: bytes) -> Optional['HTTPRequest']:
        """Create HTTPRequest from the request line and header block."""
        try:
            lines = head.decode('iso-8859-1').split('\r\n')
            if not lines:
                return None

            # Parse request line
            method, path, protocol = lines[0].strip().split()
            if not protocol.startswith('HTTP/'):
                return None

            # Parse headers, keeping order and duplicates
            headers = []
            for line in lines[1:]:
                if not line:
                    break
                key, value = line.split(':', 1)
                headers.append((key.strip(), value.strip()))

            return cls(
                method=method,
                path=path,
                protocol=protocol,
                headers=headers
            )
        except ValueError:
            return None

    def get_header(self, name: str) -> Optional[str]:
        """First value of a header, looked up case-insensitively."""
        values = _header_values(self.headers, name)
        return values[0] if values else None


@dataclass
class HTTPResponse:
    """Status line and header block of a response written to a client."""
    status_code: int
    status_message: str
    headers: Headers = field(default_factory=list)

    def head_bytes(self) -> bytes:
        """Serialize the status line and headers, ending with the blank line."""
        lines = [f"HTTP/1.1 {self.status_code} {self.status_message}"]
        lines.extend(f"{key}: {value}" for key, value in self.headers)
        return ('\r\n'.join(lines) + '\r\n\r\n').encode('iso-8859-1', errors='replace')

    @classmethod
    def create_error(cls, status_code: int, message: str) -> Tuple['HTTPResponse', bytes]:
        """Create a plain-text error response and its body."""
        body = message.encode('utf-8')
        response = cls(
            status_code=status_code,
            status_message=message,
            headers=[
                ('Content-Type', 'text/plain'),
                ('Content-Length', str(len(body))),
                ('Connection', 'close')
            ]
        )
        return response, body
