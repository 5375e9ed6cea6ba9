"""
cola_lidar_lib - Client for LiDAR scanners speaking the CoLa-A ASCII protocol.

Brings the scanner into ranging mode over TCP and retrieves scan data.
"""

from cola_lidar_lib.controller import SessionController
from cola_lidar_lib.errors import (
    DeviceNotReady,
    DeviceRejected,
    LidarError,
    OperationCancelled,
    ProtocolViolation,
    SessionStateError,
    TransportError,
    TransportTimeout,
    UnexpectedResponse,
)
from cola_lidar_lib.models import LidarConfig, SessionState
from cola_lidar_lib.poller import ReadyPoller
from cola_lidar_lib.session import LidarSession, connect

__version__ = "0.1.0"

__all__ = [
    "connect",
    "LidarSession",
    "SessionController",
    "ReadyPoller",
    "LidarConfig",
    "SessionState",
    "LidarError",
    "TransportError",
    "TransportTimeout",
    "ProtocolViolation",
    "DeviceRejected",
    "UnexpectedResponse",
    "DeviceNotReady",
    "OperationCancelled",
    "SessionStateError",
]
