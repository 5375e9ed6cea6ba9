"""Custom exceptions for the CoLa-A LiDAR client library."""

from typing import Any, Optional


class LidarError(Exception):
    """Base exception for all LiDAR library errors."""

    pass


class TransportError(LidarError):
    """Raised when the TCP connection fails (closed by peer, write error, etc)."""

    pass


class TransportTimeout(TransportError):
    """Raised when the device does not send anything within the read timeout."""

    pass


class OperationCancelled(LidarError):
    """Raised when an exchange or ready poll is cancelled by the caller."""

    pass


class ProtocolViolation(LidarError):
    """Raised when buffered bytes cannot be decoded as any known telegram.

    Attributes:
        data: The undecodable buffer contents at the time of failure.
    """

    def __init__(self, message: str, data: bytes = b"") -> None:
        super().__init__(message)
        self.data = data


class DeviceRejected(LidarError):
    """Raised when an acknowledgement reports failure or not-allowed.

    Attributes:
        response: The decoded response that carried the refusal.
    """

    def __init__(self, message: str, response: Any = None) -> None:
        super().__init__(message)
        self.response = response


class UnexpectedResponse(LidarError):
    """Raised when a well-formed telegram answers a different request.

    Attributes:
        expected: Response type the caller was waiting for.
        response: The response that actually arrived.
    """

    def __init__(
        self, message: str, expected: Optional[type] = None, response: Any = None
    ) -> None:
        super().__init__(message)
        self.expected = expected
        self.response = response


class DeviceNotReady(LidarError):
    """Raised when the device stays busy past the configured restart budget."""

    pass


class SessionStateError(LidarError):
    """Raised when an operation is attempted in the wrong session state."""

    pass
