"""
Incremental body handling for both directions of a proxied exchange.

Inbound bodies are exposed as objects that ``requests`` can send without
reading them into memory first; outbound bodies are written to the client
socket piece by piece.
"""

import socket
from typing import BinaryIO, Iterator

BUFFER_SIZE = 64 * 1024
MAX_LINE = 65536


class IncompleteBody(ConnectionError):
    """The client connection ended before the announced body was read."""


class FixedLengthBody:
    """A request body framed by Content-Length."""

    def __init__(self, rfile: BinaryIO, length: int):
        self._rfile = rfile
        self._length = length
        self._remaining = length

    def __len__(self) -> int:
        return self._length

    def read(self, amt: int = -1) -> bytes:
        if self._remaining <= 0:
            return b''
        if amt is None or amt < 0 or amt > self._remaining:
            amt = self._remaining
        data = self._rfile.read(amt)
        if not data:
            raise IncompleteBody(
                f"Client closed connection with {self._remaining} body bytes outstanding"
            )
        self._remaining -= len(data)
        return data

    def __iter__(self) -> Iterator[bytes]:
        while True:
            data = self.read(BUFFER_SIZE)
            if not data:
                break
            yield data


class ChunkedBody:
    """A request body sent with Transfer-Encoding: chunked, decoded on the fly."""

    def __init__(self, rfile: BinaryIO):
        self._rfile = rfile

    def _readline(self) -> bytes:
        line = self._rfile.readline(MAX_LINE + 1)
        if not line:
            raise IncompleteBody("Client closed connection inside a chunked body")
        if len(line) > MAX_LINE:
            raise ValueError("Chunk header line too long")
        return line

    def __iter__(self) -> Iterator[bytes]:
        while True:
            size_line = self._readline()
            # Chunk extensions are ignored
            size = int(size_line.split(b';', 1)[0].strip(), 16)
            if size == 0:
                # Trailer section runs until an empty line
                while self._readline() not in (b'\r\n', b'\n'):
                    pass
                return

            data = self._rfile.read(size)
            if len(data) < size:
                raise IncompleteBody("Client closed connection inside a chunk")
            self._readline()
            yield data


def write_chunk(sock: socket.socket, data: bytes) -> None:
    """Send one piece of a chunked body."""
    if data:
        sock.sendall(b'%x\r\n' % len(data) + data + b'\r\n')


def end_chunks(sock: socket.socket) -> None:
    """Send the terminating zero-length chunk."""
    sock.sendall(b'0\r\n\r\n')
