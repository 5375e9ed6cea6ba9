"""Wire protocol constants for the CoLa-A (ASCII) telegram interface.

This module defines the exact byte sequences, tag texts and timing used to
configure the scanner and retrieve scan data over its TCP command port.
Every telegram in either direction is framed as STX <ascii body> ETX.
"""

from typing import Final

# ============================================================================
# Framing
# ============================================================================

STX: Final[bytes] = b"\x02"  # Start of telegram
ETX: Final[bytes] = b"\x03"  # End of telegram

# Bytes accepted as field whitespace when skipping scan-data tokens
WHITESPACE: Final[bytes] = b" \t"

# ============================================================================
# Outbound Commands (body text only - codec adds STX/ETX)
# ============================================================================

CMD_DEVICE_STATE: Final[str] = "sRN SCdevicestate"
CMD_SET_ACCESS_MODE: Final[str] = "sMN SetAccessMode"
CMD_START_MEASUREMENT: Final[str] = "sMN LMCstartmeas"
CMD_STOP_MEASUREMENT: Final[str] = "sMN LMCstopmeas"
CMD_SET_ACTIVE_APPLICATIONS: Final[str] = "sWN SetActiveApplications"
CMD_RUN: Final[str] = "sMN Run"
CMD_SCAN_DATA: Final[str] = "sRN LMDscandata"

# Access level 03 ("authorized client") with its fixed device password
ACCESS_MODE_LEVEL: Final[str] = "03"
ACCESS_MODE_PASSWORD: Final[str] = "F4724744"

# SetActiveApplications always configures exactly one application
ACTIVE_APPLICATIONS_COUNT: Final[str] = "1"

APP_CODE_FIELD: Final[str] = "FEVL"  # Field evaluation / monitoring
APP_CODE_RANGING: Final[str] = "RANG"  # Ranging

ACTIVATION_ENABLED: Final[str] = "1"
ACTIVATION_DISABLED: Final[str] = "0"


def make_set_access_mode_cmd() -> str:
    """Build access mode request body: sMN SetAccessMode 03 F4724744"""
    return f"{CMD_SET_ACCESS_MODE} {ACCESS_MODE_LEVEL} {ACCESS_MODE_PASSWORD}"


def make_set_active_applications_cmd(app_code: str, activation: str) -> str:
    """Build application activation body: sWN SetActiveApplications 1 <APP> <0|1>

    Args:
        app_code: Four letter application code (FEVL or RANG)
        activation: "1" to enable, "0" to disable

    Returns:
        Command body string (no STX/ETX - codec handles framing)
    """
    return f"{CMD_SET_ACTIVE_APPLICATIONS} {ACTIVE_APPLICATIONS_COUNT} {app_code} {activation}"


# ============================================================================
# Inbound Reply Prefixes (matched case-insensitively, anchored at STX)
# ============================================================================

REPLY_DEVICE_STATE: Final[bytes] = b"\x02sRA SCdevicestate "
REPLY_SET_ACCESS_MODE: Final[bytes] = b"\x02sAN SetAccessMode "
REPLY_START_MEASUREMENT: Final[bytes] = b"\x02sAN LMCstartmeas "
REPLY_STOP_MEASUREMENT: Final[bytes] = b"\x02sAN LMCstopmeas "
REPLY_SET_ACTIVE_APPLICATIONS: Final[bytes] = b"\x02sWA SetActiveApplications\x03"
REPLY_RUN: Final[bytes] = b"\x02sAN Run "
REPLY_SCAN_DATA: Final[bytes] = b"\x02sRA LMDscandata "

# ============================================================================
# Scan Data Layout
# ============================================================================

# Device/status header fields between the command tag and the channel marker
# (version, device number, serial, status, counters, frequencies...)
SCAN_HEADER_SKIPPED_FIELDS: Final[int] = 17

# Bytes accepted as the channel marker after the header. Narrow to b"1" to
# match the stricter grammar once device traffic confirms it.
SCAN_CHANNEL_MARKER_DIGITS: Final[bytes] = b"0123456789"

# Channel description fields between the marker and the sample count
# (content type, scale factor, offset, start angle, angular step)
SCAN_CHANNEL_SKIPPED_FIELDS: Final[int] = 5

HEX_DIGITS: Final[bytes] = b"0123456789abcdefABCDEF"

# ============================================================================
# Session Defaults
# ============================================================================

# TCP port of the ASCII command interface
DEFAULT_PORT: Final[int] = 2112

# Max bytes requested per transport read
READ_CHUNK_SIZE: Final[int] = 4096

# Timeout for establishing the TCP connection
CONNECT_TIMEOUT: Final[float] = 5.0

# Timeout for a single transport read (None blocks forever)
READ_TIMEOUT: Final[float] = 10.0

# Wait between two device state queries while the device is busy
READY_POLL_INTERVAL_S: Final[float] = 1.0

# Consecutive busy replies before measurement is stopped and restarted
READY_RESTART_THRESHOLD: Final[int] = 60
