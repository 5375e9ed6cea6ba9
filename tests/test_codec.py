"""Tests for telegram encoding and incremental decoding."""

import pytest

from cola_lidar_lib import codec, protocol
from cola_lidar_lib.codec import Incomplete, Matched, NoMatch, decode_response, encode_request
from cola_lidar_lib.models import (
    Application,
    ApplicationActivation,
    ApplicationActivationAck,
    DeviceState,
    DeviceStateQuery,
    DeviceStateResponse,
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

HEADER = b"1 1 89A27F 0 0 1A2B 1A2F 5E8B1B 5E8D6B 0 0 3E 0 0 1388 168 0"
CHANNEL = b"DIST1 3F800000 00000000 FFF92230 D05"


def scan_telegram(payload: bytes, marker: bytes = b"1", tag: bytes = b"sRA LMDscandata") -> bytes:
    return b"\x02" + tag + b" " + HEADER + b" " + marker + b" " + CHANNEL + b" " + payload + b"\x03"


# ============================================================================
# Encoding
# ============================================================================


@pytest.mark.parametrize(
    "request_, expected",
    [
        (DeviceStateQuery(), b"\x02sRN SCdevicestate\x03"),
        (SetAccessMode(), b"\x02sMN SetAccessMode 03 F4724744\x03"),
        (StartMeasurement(), b"\x02sMN LMCstartmeas\x03"),
        (StopMeasurement(), b"\x02sMN LMCstopmeas\x03"),
        (
            SetApplicationActivation(Application.FIELD, ApplicationActivation.DISABLED),
            b"\x02sWN SetActiveApplications 1 FEVL 0\x03",
        ),
        (
            SetApplicationActivation(Application.RANGING, ApplicationActivation.ENABLED),
            b"\x02sWN SetActiveApplications 1 RANG 1\x03",
        ),
        (Run(), b"\x02sMN Run\x03"),
        (ScanDataQuery(), b"\x02sRN LMDscandata\x03"),
    ],
)
def test_encode_request_exact_bytes(request_, expected: bytes) -> None:
    """Test every outgoing telegram encodes to its documented wire bytes."""
    assert encode_request(request_) == expected


def test_encode_request_rejects_non_telegram() -> None:
    """Test that encoding an unknown object raises TypeError."""
    with pytest.raises(TypeError):
        encode_request("sRN SCdevicestate")  # type: ignore[arg-type]


# ============================================================================
# Acknowledgement Replies
# ============================================================================


@pytest.mark.parametrize(
    "telegram, expected",
    [
        (b"\x02sRA SCdevicestate 0\x03", DeviceStateResponse(DeviceState.BUSY)),
        (b"\x02sRA SCdevicestate 1\x03", DeviceStateResponse(DeviceState.READY)),
        (b"\x02sRA SCdevicestate 2\x03", DeviceStateResponse(DeviceState.ERROR)),
        (b"\x02sAN SetAccessMode 0\x03", SetAccessModeResponse(SetAccessModeResult.ERROR)),
        (b"\x02sAN SetAccessMode 1\x03", SetAccessModeResponse(SetAccessModeResult.SUCCESS)),
        (b"\x02sAN LMCstartmeas 0\x03", StartMeasurementResponse(StartMeasurementResult.SUCCESS)),
        (b"\x02sAN LMCstartmeas 1\x03", StartMeasurementResponse(StartMeasurementResult.NOT_ALLOWED)),
        (b"\x02sAN LMCstopmeas 0\x03", StopMeasurementResponse(StopMeasurementResult.SUCCESS)),
        (b"\x02sAN LMCstopmeas 1\x03", StopMeasurementResponse(StopMeasurementResult.NOT_ALLOWED)),
        (b"\x02sWA SetActiveApplications\x03", ApplicationActivationAck()),
        (b"\x02sAN Run 0\x03", RunResponse(RunResult.ERROR)),
        (b"\x02sAN Run 1\x03", RunResponse(RunResult.SUCCESS)),
    ],
)
def test_decode_acknowledgements(telegram: bytes, expected) -> None:
    """Test each reply rule maps its digit to the right result."""
    result = decode_response(telegram)
    assert result == Matched(response=expected, consumed=len(telegram))


def test_device_state_ready_consumes_whole_buffer() -> None:
    """Scenario: ready reply decodes and leaves nothing behind."""
    buffer = bytearray(b"\x02sRA SCdevicestate 1\x03")
    result = decode_response(buffer)

    assert isinstance(result, Matched)
    assert result.response == DeviceStateResponse(DeviceState.READY)
    del buffer[: result.consumed]
    assert buffer == b""


def test_device_state_split_across_reads() -> None:
    """Scenario: reply split after 'SCdev' is incomplete, then matches."""
    first, second = b"\x02sRA SCdev", b"icestate 1\x03"
    buffer = bytearray(first)

    assert decode_response(buffer) == Incomplete()
    assert bytes(buffer) == first

    buffer.extend(second)
    result = decode_response(buffer)
    assert isinstance(result, Matched)
    assert result.response == DeviceStateResponse(DeviceState.READY)
    del buffer[: result.consumed]
    assert buffer == b""


def test_empty_buffer_is_incomplete() -> None:
    assert decode_response(b"") == Incomplete()


# ============================================================================
# Scan Data
# ============================================================================


def test_scan_data_hex_payload() -> None:
    """Scenario: count 3 with values a, 14, 1e decodes to [10, 20, 30]."""
    telegram = scan_telegram(b"3 a 14 1e 0 0 0 0 0 0")
    result = decode_response(telegram)

    assert isinstance(result, Matched)
    assert result.response == ScanData(values=[10, 20, 30])
    assert result.consumed == len(telegram)


def test_scan_data_empty_payload() -> None:
    """Test a zero count yields an empty scan."""
    result = decode_response(scan_telegram(b"0 0 0 0 0 0 0"))
    assert isinstance(result, Matched)
    assert result.response == ScanData(values=[])


@pytest.mark.parametrize(
    "values",
    [
        [],
        [0],
        [10, 20, 30],
        [0xFFFF, 0, 1, 0x10000, 0xDEADBEEF],
        list(range(0, 3000, 7)),
    ],
)
def test_scan_data_round_trip(values) -> None:
    """Test encoded scan telegrams decode to the same values, in order."""
    telegram = codec.encode_scan_data(values)
    result = decode_response(telegram)

    assert isinstance(result, Matched)
    assert result.response.values == values
    assert result.consumed == len(telegram)


@pytest.mark.parametrize("marker", [b"0", b"1", b"4"])
def test_scan_data_channel_marker_digit_is_discarded(marker: bytes) -> None:
    """Test the field after the header accepts any single digit."""
    result = decode_response(scan_telegram(b"2 1 2 0 0", marker=marker))
    assert isinstance(result, Matched)
    assert result.response == ScanData(values=[1, 2])


def test_scan_data_non_digit_channel_marker_is_rejected() -> None:
    """Test a letter in the channel marker position matches no rule."""
    assert isinstance(decode_response(scan_telegram(b"2 1 2 0 0", marker=b"X")), NoMatch)


def test_scan_data_narrowed_marker_set_rejects_other_digits(monkeypatch) -> None:
    """Test the marker digit set is taken from protocol constants."""
    monkeypatch.setattr(protocol, "SCAN_CHANNEL_MARKER_DIGITS", b"1")

    assert isinstance(decode_response(scan_telegram(b"2 1 2 0 0", marker=b"4")), NoMatch)
    result = decode_response(scan_telegram(b"2 1 2 0 0", marker=b"1"))
    assert result == Matched(ScanData(values=[1, 2]), consumed=len(scan_telegram(b"2 1 2 0 0")))


def test_scan_data_trailing_fields_ignored() -> None:
    """Test arbitrary fields after the samples do not affect the result."""
    payload = b"2 64 C8 1 DIST2 40000000 00000000 FFF92230 D05 2 1F4 3E8 0 0 0 0 0"
    result = decode_response(scan_telegram(payload))
    assert isinstance(result, Matched)
    assert result.response == ScanData(values=[100, 200])


def test_scan_data_tolerates_repeated_whitespace() -> None:
    """Test fields separated by several spaces or tabs still decode."""
    telegram = (
        b"\x02sRA LMDscandata " + HEADER.replace(b" ", b"  ") + b"\t1 "
        + CHANNEL + b" 2  a\tb 0\x03"
    )
    result = decode_response(telegram)
    assert isinstance(result, Matched)
    assert result.response == ScanData(values=[10, 11])


def test_scan_data_short_header_is_rejected() -> None:
    """Test a telegram that ends before all header fields is not a scan."""
    result = decode_response(b"\x02sRA LMDscandata 1 1 89A27F 0 0\x03")
    assert isinstance(result, NoMatch)


def test_scan_data_non_hex_value_is_rejected() -> None:
    result = decode_response(scan_telegram(b"2 10 XYZ 0"))
    assert isinstance(result, NoMatch)


# ============================================================================
# Chunking, Case and Leftovers
# ============================================================================


CHUNK_CASES = [
    b"\x02sRA SCdevicestate 0\x03",
    b"\x02sAN SetAccessMode 1\x03",
    b"\x02sWA SetActiveApplications\x03",
    b"\x02sAN Run 1\x03",
    codec.encode_scan_data([1, 0x2A, 0xFFF, 7]),
]


@pytest.mark.parametrize("telegram", CHUNK_CASES)
def test_every_strict_prefix_is_incomplete(telegram: bytes) -> None:
    """Test decoding does not depend on where the stream was split."""
    whole = decode_response(telegram)
    assert isinstance(whole, Matched)

    for split in range(len(telegram)):
        assert decode_response(telegram[:split]) == Incomplete(), f"split at {split}"

    buffer = bytearray()
    for i in range(len(telegram)):
        buffer.append(telegram[i])
        result = decode_response(buffer)
        if i < len(telegram) - 1:
            assert result == Incomplete()
    assert result == whole


@pytest.mark.parametrize(
    "telegram, expected",
    [
        (b"\x02SRA scDEVICESTATE 1\x03", DeviceStateResponse(DeviceState.READY)),
        (b"\x02san setaccessmode 1\x03", SetAccessModeResponse(SetAccessModeResult.SUCCESS)),
        (b"\x02SAN LMCSTARTMEAS 0\x03", StartMeasurementResponse(StartMeasurementResult.SUCCESS)),
        (b"\x02san lmcStopMeas 1\x03", StopMeasurementResponse(StopMeasurementResult.NOT_ALLOWED)),
        (b"\x02swa setactiveapplications\x03", ApplicationActivationAck()),
        (b"\x02SAN RUN 1\x03", RunResponse(RunResult.SUCCESS)),
    ],
)
def test_tag_text_is_case_insensitive(telegram: bytes, expected) -> None:
    """Test varying letter case of tag text does not change the result."""
    result = decode_response(telegram)
    assert isinstance(result, Matched)
    assert result.response == expected


def test_scan_data_case_insensitive_tag_and_hex() -> None:
    lower = scan_telegram(b"3 a 14 1e 0", tag=b"sra lmdscandata")
    upper = scan_telegram(b"3 A 14 1E 0", tag=b"SRA LMDSCANDATA")
    assert decode_response(lower).response == ScanData(values=[10, 20, 30])
    assert decode_response(upper).response == ScanData(values=[10, 20, 30])


@pytest.mark.parametrize("leftover", [0, 1, 5, 12])
def test_leftover_bytes_are_preserved(leftover: int) -> None:
    """Test a complete telegram followed by a partial one consumes only the first."""
    first = b"\x02sAN LMCstartmeas 0\x03"
    second = codec.encode_scan_data([5, 6, 7])
    buffer = bytearray(first + second[:leftover])

    result = decode_response(buffer)
    assert isinstance(result, Matched)
    assert result.consumed == len(first)

    del buffer[: result.consumed]
    assert bytes(buffer) == second[:leftover]


def test_two_complete_telegrams_decode_one_at_a_time() -> None:
    buffer = bytearray(b"\x02sAN Run 1\x03\x02sRA SCdevicestate 0\x03")

    first = decode_response(buffer)
    assert first.response == RunResponse(RunResult.SUCCESS)
    del buffer[: first.consumed]

    second = decode_response(buffer)
    assert second.response == DeviceStateResponse(DeviceState.BUSY)
    assert second.consumed == len(buffer)


# ============================================================================
# Protocol Violations
# ============================================================================


@pytest.mark.parametrize(
    "data",
    [
        b"\x02sFA 1\x03",  # device error reply, not handled by the client
        b"garbage",
        b"\x03",
        b"\x02sRA SCdevicestate 7\x03",  # state code out of range
        b"\x02sAN Run 10\x03",  # two digits
        b"\x02sAN SetAccessMode x\x03",
        b"\x02sWA SetActiveApplications 1\x03",
    ],
)
def test_no_rule_matches(data: bytes) -> None:
    """Test bytes no rule can ever match are reported as NoMatch."""
    result = decode_response(data)
    assert isinstance(result, NoMatch)
    assert result.reason


def test_encode_response_matches_decoder() -> None:
    """Test the reply encoder used by the simulator agrees with the decoder."""
    for response in (
        DeviceStateResponse(DeviceState.BUSY),
        StopMeasurementResponse(StopMeasurementResult.NOT_ALLOWED),
        ApplicationActivationAck(),
        RunResponse(RunResult.ERROR),
        ScanData(values=[3, 2, 1]),
    ):
        telegram = codec.encode_response(response)
        assert decode_response(telegram) == Matched(response=response, consumed=len(telegram))
