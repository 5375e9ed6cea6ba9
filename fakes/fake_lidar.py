"""Fake socket that simulates a LiDAR scanner's CoLa-A command port.

The simulator answers each complete STX...ETX telegram written to it with
the reply the real device sends, and hands the reply bytes back through
recv() in configurable chunk sizes so that split telegrams can be tested.
"""

import logging
import socket
from typing import Callable, Dict, Iterable, List, Optional, Set, Union

from cola_lidar_lib import codec, protocol
from cola_lidar_lib.models import (
    ApplicationActivationAck,
    DeviceState,
    DeviceStateResponse,
    RunResponse,
    RunResult,
    ScanData,
    SetAccessModeResponse,
    SetAccessModeResult,
    StartMeasurementResponse,
    StartMeasurementResult,
    StopMeasurementResponse,
    StopMeasurementResult,
)

logger = logging.getLogger(__name__)

# Reply the device sends to a command it does not know (no client rule matches it)
UNKNOWN_COMMAND_REPLY = b"\x02sFA 1\x03"


class FakeLidar:
    """Deterministic simulator of the scanner's command port.

    Implements:
    - Access mode login with password check
    - Start/stop measurement, application activation and Run acks
    - Scripted device state sequence for the ready poll
    - Scan data replies built from ``scan_values``
    - Per-command rejection and raw reply overrides
    - Chunked delivery of reply bytes
    """

    def __init__(
        self,
        device_states: Iterable[DeviceState] = (),
        final_state: DeviceState = DeviceState.READY,
        scan_values: Union[List[int], Callable[[int], List[int]], None] = None,
        chunk_size: Optional[int] = None,
    ) -> None:
        """Initialize fake scanner.

        Args:
            device_states: States returned to successive SCdevicestate queries
            final_state: State returned once device_states is exhausted
            scan_values: Samples for each scan, or a callable taking the scan
                         index and returning samples
            chunk_size: Max bytes returned per recv() call. None returns all.
        """
        self._device_states = list(device_states)
        self.final_state = final_state
        self.scan_values = scan_values if scan_values is not None else [10, 20, 30]
        self.chunk_size = chunk_size

        # Commands named here get their negative ack (e.g. "SetAccessMode")
        self.rejections: Set[str] = set()

        # Raw reply bytes to send instead of the normal reply, keyed by command
        self.reply_overrides: Dict[str, bytes] = {}

        # Command bodies received, in order (STX/ETX stripped)
        self.received: List[str] = []

        self.measuring = False
        self.logged_in = False
        self.applications: Dict[str, bool] = {"FEVL": True, "RANG": False}
        self.scans_sent = 0

        self._input_buffer = bytearray()
        self._output_buffer = bytearray()

        # Port state
        self.is_open = True
        self.closed_by_peer = False
        self.timeout: Optional[float] = None

    # ========================================================================
    # SocketLike interface
    # ========================================================================

    def settimeout(self, value: Optional[float]) -> None:
        self.timeout = value

    def close(self) -> None:
        """Close the fake connection."""
        self.is_open = False
        logger.debug("FakeLidar closed")

    def sendall(self, data: bytes) -> None:
        """Receive a telegram from the host and queue the device reply."""
        if not self.is_open:
            raise OSError("Socket is closed")

        self._input_buffer.extend(data)
        logger.debug(f"FakeLidar received: {data!r}")
        self._process_input()

    def recv(self, bufsize: int) -> bytes:
        """Hand queued reply bytes to the host.

        Raises:
            socket.timeout: If nothing is queued (a real device would stay silent)
        """
        if not self.is_open:
            raise OSError("Socket is closed")

        if not self._output_buffer:
            if self.closed_by_peer:
                return b""
            raise socket.timeout("timed out")

        size = bufsize if self.chunk_size is None else min(bufsize, self.chunk_size)
        data = bytes(self._output_buffer[:size])
        del self._output_buffer[:size]
        return data

    # ========================================================================
    # Test helpers
    # ========================================================================

    def inject(self, data: bytes) -> None:
        """Queue raw bytes as if the device had sent them unprompted."""
        self._output_buffer.extend(data)

    def commands(self) -> List[str]:
        """Command names received, e.g. ["SetAccessMode", "LMCstartmeas", ...]."""
        return [body.split(" ")[1] for body in self.received]

    @property
    def pending_output(self) -> bytes:
        return bytes(self._output_buffer)

    # ========================================================================
    # Internal: Input Processing
    # ========================================================================

    def _process_input(self) -> None:
        """Handle every complete telegram in the input buffer."""
        while protocol.ETX in self._input_buffer:
            end = self._input_buffer.index(protocol.ETX)
            telegram = bytes(self._input_buffer[: end + 1])
            del self._input_buffer[: end + 1]

            if not telegram.startswith(protocol.STX):
                logger.warning(f"FakeLidar dropping unframed bytes: {telegram!r}")
                continue

            body = telegram[1:-1].decode("ascii")
            self.received.append(body)
            self._output_buffer.extend(self._reply_to(body))

    def _reply_to(self, body: str) -> bytes:
        fields = body.split(" ")
        if len(fields) < 2:
            return UNKNOWN_COMMAND_REPLY

        name = fields[1]
        if name in self.reply_overrides:
            return self.reply_overrides[name]

        rejected = name in self.rejections

        if body == protocol.CMD_DEVICE_STATE:
            return codec.encode_response(DeviceStateResponse(self._next_state()))

        if fields[:2] == protocol.CMD_SET_ACCESS_MODE.split(" "):
            ok = not rejected and body == protocol.make_set_access_mode_cmd()
            self.logged_in = ok
            result = SetAccessModeResult.SUCCESS if ok else SetAccessModeResult.ERROR
            return codec.encode_response(SetAccessModeResponse(result))

        if body == protocol.CMD_START_MEASUREMENT:
            if rejected:
                return codec.encode_response(
                    StartMeasurementResponse(StartMeasurementResult.NOT_ALLOWED)
                )
            self.measuring = True
            return codec.encode_response(StartMeasurementResponse(StartMeasurementResult.SUCCESS))

        if body == protocol.CMD_STOP_MEASUREMENT:
            if rejected:
                return codec.encode_response(
                    StopMeasurementResponse(StopMeasurementResult.NOT_ALLOWED)
                )
            self.measuring = False
            return codec.encode_response(StopMeasurementResponse(StopMeasurementResult.SUCCESS))

        if fields[:2] == protocol.CMD_SET_ACTIVE_APPLICATIONS.split(" ") and len(fields) == 5:
            self.applications[fields[3]] = fields[4] == protocol.ACTIVATION_ENABLED
            return codec.encode_response(ApplicationActivationAck())

        if body == protocol.CMD_RUN:
            result = RunResult.ERROR if rejected else RunResult.SUCCESS
            return codec.encode_response(RunResponse(result))

        if body == protocol.CMD_SCAN_DATA:
            values = (
                self.scan_values(self.scans_sent)
                if callable(self.scan_values)
                else self.scan_values
            )
            self.scans_sent += 1
            return codec.encode_response(ScanData(values=list(values)))

        return UNKNOWN_COMMAND_REPLY

    def _next_state(self) -> DeviceState:
        if self._device_states:
            return self._device_states.pop(0)
        return self.final_state
