"""Data models for the CoLa-A LiDAR client library."""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union

from cola_lidar_lib import protocol


class SessionState(Enum):
    """Session controller lifecycle states."""

    CONFIGURING = "configuring"
    WAITING_FOR_READY = "waiting_for_ready"
    MEASURING = "measuring"
    FAILED = "failed"
    CLOSED = "closed"


class PollerState(Enum):
    """Ready poller states."""

    POLLING = "polling"
    READY = "ready"
    FATAL = "fatal"


# ============================================================================
# Enumerations carried on the wire (values are the wire tokens)
# ============================================================================


class Application(Enum):
    """Device applications that can be individually activated."""

    FIELD = protocol.APP_CODE_FIELD
    RANGING = protocol.APP_CODE_RANGING


class ApplicationActivation(Enum):
    ENABLED = protocol.ACTIVATION_ENABLED
    DISABLED = protocol.ACTIVATION_DISABLED


class DeviceState(Enum):
    """Operating state reported by SCdevicestate."""

    BUSY = 0
    READY = 1
    ERROR = 2


class SetAccessModeResult(Enum):
    ERROR = 0
    SUCCESS = 1


class StartMeasurementResult(Enum):
    SUCCESS = 0
    NOT_ALLOWED = 1


class StopMeasurementResult(Enum):
    SUCCESS = 0
    NOT_ALLOWED = 1


class RunResult(Enum):
    ERROR = 0
    SUCCESS = 1


# ============================================================================
# Outgoing Telegrams
# ============================================================================


@dataclass(frozen=True)
class DeviceStateQuery:
    """Ask for the current operating state (sRN SCdevicestate)."""


@dataclass(frozen=True)
class SetAccessMode:
    """Log in with the fixed authorized-client credential."""


@dataclass(frozen=True)
class StartMeasurement:
    """Switch on the laser and motor (LMCstartmeas)."""


@dataclass(frozen=True)
class StopMeasurement:
    """Switch off the laser and motor (LMCstopmeas)."""


@dataclass(frozen=True)
class SetApplicationActivation:
    """Enable or disable one device application.

    Attributes:
        application: Which application to configure.
        activation: Whether it should be enabled or disabled.
    """

    application: Application
    activation: ApplicationActivation


@dataclass(frozen=True)
class Run:
    """Leave configuration and apply the new settings."""


@dataclass(frozen=True)
class ScanDataQuery:
    """Request a single scan (sRN LMDscandata)."""


Request = Union[
    DeviceStateQuery,
    SetAccessMode,
    StartMeasurement,
    StopMeasurement,
    SetApplicationActivation,
    Run,
    ScanDataQuery,
]

# ============================================================================
# Incoming Responses
# ============================================================================


@dataclass(frozen=True)
class DeviceStateResponse:
    state: DeviceState


@dataclass(frozen=True)
class SetAccessModeResponse:
    result: SetAccessModeResult


@dataclass(frozen=True)
class StartMeasurementResponse:
    result: StartMeasurementResult


@dataclass(frozen=True)
class StopMeasurementResponse:
    result: StopMeasurementResult


@dataclass(frozen=True)
class ApplicationActivationAck:
    """Acknowledgement of SetActiveApplications (carries no payload)."""


@dataclass(frozen=True)
class RunResponse:
    result: RunResult


@dataclass(frozen=True)
class ScanData:
    """One scan worth of distance samples.

    Attributes:
        values: Raw distance values in the order the device sent them.
    """

    values: List[int] = field(default_factory=list)


Response = Union[
    DeviceStateResponse,
    SetAccessModeResponse,
    StartMeasurementResponse,
    StopMeasurementResponse,
    ApplicationActivationAck,
    RunResponse,
    ScanData,
]

# ============================================================================
# Configuration
# ============================================================================


def parse_address(address: Union[str, Tuple[str, int]]) -> Tuple[str, int]:
    """Normalize "host", "host:port" or (host, port) into a (host, port) pair.

    Args:
        address: Device address. Port defaults to protocol.DEFAULT_PORT.

    Returns:
        Tuple of (host, port)

    Raises:
        ValueError: If the host is empty or the port is not a valid number
    """
    if isinstance(address, tuple):
        host, port = address
    else:
        host, sep, port_str = address.strip().rpartition(":")
        if not sep:
            host, port_str = port_str, str(protocol.DEFAULT_PORT)
        try:
            port = int(port_str)
        except ValueError as e:
            raise ValueError(f"Invalid port in address {address!r}") from e

    if not host:
        raise ValueError(f"Missing host in address {address!r}")
    if not (0 < int(port) < 65536):
        raise ValueError(f"port must be 1-65535, got {port}")
    return host, int(port)


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip().lower() in ("", "none"):
        return None
    return float(value)


@dataclass
class LidarConfig:
    """Connection and bring-up parameters.

    Attributes:
        host: Device IP address or hostname.
        port: TCP port of the ASCII command interface.
        connect_timeout_s: Timeout for opening the TCP connection.
        read_timeout_s: Timeout for each transport read. None blocks forever.
        read_chunk_size: Max bytes requested per transport read.
        ready_poll_interval_s: Wait between device state queries while busy.
        ready_restart_threshold: Busy replies before measurement is restarted.
        max_restarts: Restart budget before giving up. None polls forever.
    """

    host: str = "192.168.0.1"
    port: int = protocol.DEFAULT_PORT
    connect_timeout_s: float = protocol.CONNECT_TIMEOUT
    read_timeout_s: Optional[float] = protocol.READ_TIMEOUT
    read_chunk_size: int = protocol.READ_CHUNK_SIZE
    ready_poll_interval_s: float = protocol.READY_POLL_INTERVAL_S
    ready_restart_threshold: int = protocol.READY_RESTART_THRESHOLD
    max_restarts: Optional[int] = None

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.host:
            raise ValueError("host must not be empty")

        if not (0 < self.port < 65536):
            raise ValueError(f"port must be 1-65535, got {self.port}")

        if self.connect_timeout_s <= 0:
            raise ValueError(f"connect_timeout_s must be positive, got {self.connect_timeout_s}")

        if self.read_timeout_s is not None and self.read_timeout_s <= 0:
            raise ValueError(f"read_timeout_s must be positive or None, got {self.read_timeout_s}")

        if self.read_chunk_size <= 0:
            raise ValueError(f"read_chunk_size must be positive, got {self.read_chunk_size}")

        if self.ready_poll_interval_s < 0:
            raise ValueError(
                f"ready_poll_interval_s must be >= 0, got {self.ready_poll_interval_s}"
            )

        if self.ready_restart_threshold < 1:
            raise ValueError(
                f"ready_restart_threshold must be >= 1, got {self.ready_restart_threshold}"
            )

        if self.max_restarts is not None and self.max_restarts < 0:
            raise ValueError(f"max_restarts must be >= 0 or None, got {self.max_restarts}")

    @property
    def address(self) -> Tuple[str, int]:
        return self.host, self.port

    @classmethod
    def from_env(cls, **overrides) -> "LidarConfig":
        """Build a config from LIDAR_* environment variables.

        Reads LIDAR_HOST, LIDAR_PORT, LIDAR_READ_TIMEOUT, LIDAR_POLL_INTERVAL
        and LIDAR_RESTART_THRESHOLD. Keyword arguments take precedence.
        """
        values = {
            "host": os.getenv("LIDAR_HOST", cls.host),
            "port": int(os.getenv("LIDAR_PORT", str(protocol.DEFAULT_PORT))),
            "read_timeout_s": _optional_float(
                os.getenv("LIDAR_READ_TIMEOUT", str(protocol.READ_TIMEOUT))
            ),
            "ready_poll_interval_s": float(
                os.getenv("LIDAR_POLL_INTERVAL", str(protocol.READY_POLL_INTERVAL_S))
            ),
            "ready_restart_threshold": int(
                os.getenv("LIDAR_RESTART_THRESHOLD", str(protocol.READY_RESTART_THRESHOLD))
            ),
        }
        values.update(overrides)
        return cls(**values)
