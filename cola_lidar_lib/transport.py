"""TCP transport layer for the LiDAR command port."""

import logging
import socket
from typing import Optional, Protocol

from cola_lidar_lib import protocol
from cola_lidar_lib.errors import TransportError, TransportTimeout

logger = logging.getLogger(__name__)


class SocketLike(Protocol):
    """Protocol for stream socket interface (allows test doubles)."""

    def sendall(self, data: bytes) -> None:
        """Send all bytes to the peer."""
        ...

    def recv(self, bufsize: int) -> bytes:
        """Receive up to bufsize bytes. Empty bytes means the peer closed."""
        ...

    def settimeout(self, value: Optional[float]) -> None:
        """Set the blocking timeout for subsequent operations."""
        ...

    def close(self) -> None:
        """Close the socket."""
        ...


class Transport:
    """Wrapper around a stream socket with byte-level read/write helpers.

    The transport does no framing: it hands back whatever chunk the socket
    produced and leaves telegram boundaries to the codec.
    """

    def __init__(
        self, sock: SocketLike, read_timeout_s: Optional[float] = protocol.READ_TIMEOUT
    ) -> None:
        """Initialize transport with a connected socket.

        Args:
            sock: Object implementing SocketLike protocol
                  (e.g., socket.socket or FakeLidar for testing)
            read_timeout_s: Timeout for each read. None blocks forever.
        """
        self._sock = sock
        self._open = True
        self._sock.settimeout(read_timeout_s)

    @classmethod
    def open(
        cls,
        host: str,
        port: int = protocol.DEFAULT_PORT,
        connect_timeout_s: float = protocol.CONNECT_TIMEOUT,
        read_timeout_s: Optional[float] = protocol.READ_TIMEOUT,
    ) -> "Transport":
        """Open a TCP connection to the device.

        Args:
            host: Device IP address or hostname
            port: Command port. Default 2112.
            connect_timeout_s: Timeout for the TCP handshake
            read_timeout_s: Timeout for each subsequent read. None blocks forever.

        Returns:
            Transport instance wrapping the connected socket

        Raises:
            TransportError: If the connection cannot be established
        """
        try:
            sock = socket.create_connection((host, port), timeout=connect_timeout_s)
        except OSError as e:
            raise TransportError(f"Failed to connect to {host}:{port}: {e}") from e

        logger.info(f"Connected to {host}:{port}, read timeout={read_timeout_s}s")
        return cls(sock, read_timeout_s=read_timeout_s)

    def close(self) -> None:
        """Close the connection."""
        if self._open:
            self._open = False
            try:
                self._sock.close()
            except OSError as e:
                logger.warning(f"Error while closing socket: {e}")
            logger.info("Closed connection")

    @property
    def is_open(self) -> bool:
        """Check if connection is currently open."""
        return self._open

    def write_bytes(self, data: bytes) -> None:
        """Write raw bytes to the device.

        Args:
            data: Complete encoded telegram

        Raises:
            TransportError: If the connection is closed or the write fails
        """
        if not self._open:
            raise TransportError("Connection is not open")

        try:
            self._sock.sendall(data)
            logger.debug(f"Sent {len(data)} bytes: {data!r}")
        except OSError as e:
            raise TransportError(f"Failed to write to device: {e}") from e

    def read_chunk(self, size: int = protocol.READ_CHUNK_SIZE) -> bytes:
        """Read whatever the device has sent, up to size bytes.

        Blocks until at least one byte arrives or the read timeout expires.

        Args:
            size: Max number of bytes to return

        Returns:
            Non-empty bytes chunk

        Raises:
            TransportTimeout: If nothing arrives within the read timeout
            TransportError: If the connection is closed or the read fails
        """
        if not self._open:
            raise TransportError("Connection is not open")

        try:
            data = self._sock.recv(size)
        except socket.timeout as e:
            raise TransportTimeout("Timed out waiting for data from device") from e
        except OSError as e:
            raise TransportError(f"Failed to read from device: {e}") from e

        if not data:
            raise TransportError("Connection closed by device")

        logger.debug(f"Received {len(data)} bytes: {data[:80]!r}")
        return data
