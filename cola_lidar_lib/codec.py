"""Telegram encoder and incremental decoder.

Pure functions, no I/O. ``decode_response`` is run against the session's
accumulation buffer after every transport read and reports one of three
outcomes:

- ``Matched``: a complete telegram sits at the start of the buffer
- ``Incomplete``: the buffer is a valid prefix, more bytes are needed
- ``NoMatch``: no reply rule can ever match these bytes
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Sequence, Tuple, Type, Union

from cola_lidar_lib import protocol
from cola_lidar_lib.models import (
    ApplicationActivationAck,
    DeviceState,
    DeviceStateQuery,
    DeviceStateResponse,
    Request,
    Response,
    Run,
    RunResponse,
    RunResult,
    ScanData,
    ScanDataQuery,
    SetAccessMode,
    SetAccessModeResponse,
    SetAccessModeResult,
    SetApplicationActivation,
    StartMeasurement,
    StartMeasurementResponse,
    StartMeasurementResult,
    StopMeasurement,
    StopMeasurementResponse,
    StopMeasurementResult,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Matched:
    """A complete telegram was decoded.

    Attributes:
        response: Decoded reply.
        consumed: Number of buffer bytes the telegram occupied, ETX included.
    """

    response: Response
    consumed: int


@dataclass(frozen=True)
class Incomplete:
    """Buffer holds a valid telegram prefix; read more and retry."""


@dataclass(frozen=True)
class NoMatch:
    """Buffer contents can never become a known telegram."""

    reason: str


DecodeResult = Union[Matched, Incomplete, NoMatch]

# ============================================================================
# Encoding
# ============================================================================


def frame(body: str) -> bytes:
    """Wrap an ASCII telegram body in STX/ETX."""
    return protocol.STX + body.encode("ascii") + protocol.ETX


def encode_request(request: Request) -> bytes:
    """Encode an outgoing telegram to its exact wire bytes.

    Args:
        request: Any outgoing telegram model

    Returns:
        STX-framed command bytes

    Raises:
        TypeError: If request is not an outgoing telegram model
    """
    if isinstance(request, DeviceStateQuery):
        return frame(protocol.CMD_DEVICE_STATE)
    if isinstance(request, SetAccessMode):
        return frame(protocol.make_set_access_mode_cmd())
    if isinstance(request, StartMeasurement):
        return frame(protocol.CMD_START_MEASUREMENT)
    if isinstance(request, StopMeasurement):
        return frame(protocol.CMD_STOP_MEASUREMENT)
    if isinstance(request, SetApplicationActivation):
        return frame(
            protocol.make_set_active_applications_cmd(
                request.application.value, request.activation.value
            )
        )
    if isinstance(request, Run):
        return frame(protocol.CMD_RUN)
    if isinstance(request, ScanDataQuery):
        return frame(protocol.CMD_SCAN_DATA)
    raise TypeError(f"Not an outgoing telegram: {request!r}")


# Example header and trailer as sent by the device, used when building scan
# telegrams for simulation.
DEFAULT_SCAN_HEADER: Tuple[str, ...] = (
    "1", "1", "89A27F", "0", "0", "1A2B", "1A2F", "5E8B1B", "5E8D6B",
    "0", "0", "3E", "0", "0", "1388", "168", "0",
)
DEFAULT_SCAN_CHANNEL: Tuple[str, ...] = ("DIST1", "3F800000", "00000000", "FFF92230", "D05")
DEFAULT_SCAN_TRAILER: Tuple[str, ...] = ("0", "0", "0", "0", "0", "0")


def encode_scan_data(
    values: Iterable[int],
    header: Sequence[str] = DEFAULT_SCAN_HEADER,
    channel_marker: int = 1,
    channel: Sequence[str] = DEFAULT_SCAN_CHANNEL,
    trailer: Sequence[str] = DEFAULT_SCAN_TRAILER,
) -> bytes:
    """Build an inbound sRA LMDscandata telegram carrying the given samples.

    Values are written as uppercase hex without padding, preceded by their
    count in hex.
    """
    values = list(values)
    if len(header) != protocol.SCAN_HEADER_SKIPPED_FIELDS:
        raise ValueError(
            f"header must have {protocol.SCAN_HEADER_SKIPPED_FIELDS} fields, got {len(header)}"
        )
    if len(channel) != protocol.SCAN_CHANNEL_SKIPPED_FIELDS:
        raise ValueError(
            f"channel must have {protocol.SCAN_CHANNEL_SKIPPED_FIELDS} fields, got {len(channel)}"
        )
    if any(v < 0 for v in values):
        raise ValueError("scan values must be unsigned")

    fields = ["sRA", "LMDscandata", *header, str(channel_marker), *channel]
    fields.append(f"{len(values):X}")
    fields.extend(f"{v:X}" for v in values)
    fields.extend(trailer)
    return frame(" ".join(fields))


def encode_response(response: Response) -> bytes:
    """Encode a reply telegram the way the device sends it."""
    if isinstance(response, ScanData):
        return encode_scan_data(response.values)
    if isinstance(response, ApplicationActivationAck):
        return protocol.REPLY_SET_ACTIVE_APPLICATIONS
    for response_type, prefix, _ in _DIGIT_RULES:
        if isinstance(response, response_type):
            code = (response.state if isinstance(response, DeviceStateResponse)
                    else response.result).value
            return prefix + str(code).encode("ascii") + protocol.ETX
    raise TypeError(f"Not an incoming response: {response!r}")


# ============================================================================
# Decoding
# ============================================================================


class _NeedMoreData(Exception):
    pass


class _Mismatch(Exception):
    pass


_WHITESPACE_CLASS = re.escape(protocol.WHITESPACE)

_FIELD_RE = re.compile(rb"[^" + _WHITESPACE_CLASS + re.escape(protocol.ETX) + rb"]+")
_SEPARATOR_RE = re.compile(rb"[" + _WHITESPACE_CLASS + rb"]+")
_HEX_RE = re.compile(rb"[" + re.escape(protocol.HEX_DIGITS) + rb"]+")


class _Cursor:
    """Streaming read position over the buffer.

    Every method either consumes input, raises _NeedMoreData when the buffer
    ends before the element can be decided, or raises _Mismatch.
    """

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    def literal(self, text: bytes) -> None:
        available = self.data[self.pos : self.pos + len(text)]
        if available.lower() != text[: len(available)].lower():
            raise _Mismatch
        if len(available) < len(text):
            raise _NeedMoreData
        self.pos += len(text)

    def digit(self) -> int:
        if self.pos >= len(self.data):
            raise _NeedMoreData
        value = self.data[self.pos]
        if not 0x30 <= value <= 0x39:
            raise _Mismatch
        self.pos += 1
        return value - 0x30

    def one_of(self, allowed: bytes) -> None:
        """Consume a single byte from the allowed set."""
        if self.pos >= len(self.data):
            raise _NeedMoreData
        if self.data[self.pos] not in allowed:
            raise _Mismatch
        self.pos += 1

    def separator(self) -> None:
        if self.pos >= len(self.data):
            raise _NeedMoreData
        match = _SEPARATOR_RE.match(self.data, self.pos)
        if not match:
            raise _Mismatch
        self.pos = match.end()

    def field(self) -> bytes:
        """Consume one token and the whitespace that follows it."""
        return self._token(_FIELD_RE)

    def hex_field(self) -> int:
        return int(self._token(_HEX_RE), 16)

    def skip_to_end(self) -> None:
        """Consume everything up to and including the next ETX."""
        end = self.data.find(protocol.ETX, self.pos)
        if end < 0:
            raise _NeedMoreData
        self.pos = end + 1

    def _token(self, pattern: "re.Pattern[bytes]") -> bytes:
        if self.pos >= len(self.data):
            raise _NeedMoreData
        match = pattern.match(self.data, self.pos)
        if not match:
            raise _Mismatch
        if match.end() >= len(self.data):
            # Token may still continue in the next read
            raise _NeedMoreData
        self.pos = match.end()
        token = match.group(0)
        self.separator()
        return token


def _digit_rule(prefix: bytes, build: Callable[[int], Response]) -> Callable[[_Cursor], Response]:
    def rule(cursor: _Cursor) -> Response:
        cursor.literal(prefix)
        code = cursor.digit()
        try:
            response = build(code)
        except ValueError as e:
            raise _Mismatch from e
        cursor.literal(protocol.ETX)
        return response

    return rule


def _activation_ack_rule(cursor: _Cursor) -> Response:
    cursor.literal(protocol.REPLY_SET_ACTIVE_APPLICATIONS)
    return ApplicationActivationAck()


def _scan_data_rule(cursor: _Cursor) -> Response:
    cursor.literal(protocol.REPLY_SCAN_DATA)
    for _ in range(protocol.SCAN_HEADER_SKIPPED_FIELDS):
        cursor.field()

    # Channel marker. Unresolved: accepting any digit is unverified against real
    # device traffic, and the other known grammar required the literal "1" here.
    # The value is discarded.
    cursor.one_of(protocol.SCAN_CHANNEL_MARKER_DIGITS)
    cursor.separator()

    for _ in range(protocol.SCAN_CHANNEL_SKIPPED_FIELDS):
        cursor.field()

    count = cursor.hex_field()
    values = [cursor.hex_field() for _ in range(count)]

    # Trailing scaling/quality fields are ignored
    cursor.skip_to_end()
    return ScanData(values=values)


_DIGIT_RULES: List[Tuple[Type, bytes, Callable[[int], Response]]] = [
    (
        DeviceStateResponse,
        protocol.REPLY_DEVICE_STATE,
        lambda code: DeviceStateResponse(DeviceState(code)),
    ),
    (
        SetAccessModeResponse,
        protocol.REPLY_SET_ACCESS_MODE,
        lambda code: SetAccessModeResponse(SetAccessModeResult(code)),
    ),
    (
        StartMeasurementResponse,
        protocol.REPLY_START_MEASUREMENT,
        lambda code: StartMeasurementResponse(StartMeasurementResult(code)),
    ),
    (
        StopMeasurementResponse,
        protocol.REPLY_STOP_MEASUREMENT,
        lambda code: StopMeasurementResponse(StopMeasurementResult(code)),
    ),
    (
        RunResponse,
        protocol.REPLY_RUN,
        lambda code: RunResponse(RunResult(code)),
    ),
]

_DIGIT_RULE_BY_TYPE = {rt: _digit_rule(prefix, build) for rt, prefix, build in _DIGIT_RULES}

# Priority order, first match wins
_RULES: List[Callable[[_Cursor], Response]] = [
    _DIGIT_RULE_BY_TYPE[DeviceStateResponse],
    _DIGIT_RULE_BY_TYPE[SetAccessModeResponse],
    _DIGIT_RULE_BY_TYPE[StartMeasurementResponse],
    _DIGIT_RULE_BY_TYPE[StopMeasurementResponse],
    _activation_ack_rule,
    _DIGIT_RULE_BY_TYPE[RunResponse],
    _scan_data_rule,
]


def decode_response(buffer: Union[bytes, bytearray]) -> DecodeResult:
    """Try to decode one reply telegram from the start of buffer.

    Rules are tried in priority order. The first rule that either matches
    or needs more data decides the outcome.

    Args:
        buffer: Bytes received but not yet consumed

    Returns:
        Matched, Incomplete or NoMatch. On Matched the caller drops
        ``consumed`` bytes from the front of its buffer.
    """
    data = bytes(buffer)
    for rule in _RULES:
        cursor = _Cursor(data)
        try:
            response = rule(cursor)
        except _Mismatch:
            continue
        except _NeedMoreData:
            return Incomplete()
        return Matched(response=response, consumed=cursor.pos)

    return NoMatch(reason=f"no telegram rule matches {_preview(data)}")


def _preview(data: bytes, limit: int = 64) -> str:
    if len(data) <= limit:
        return repr(data)
    return f"{data[:limit]!r}... ({len(data)} bytes)"
