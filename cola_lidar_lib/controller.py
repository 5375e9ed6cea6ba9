"""Session controller: one request, one reply, over one connection."""

import logging
import threading
from typing import List, Optional, Type, TypeVar

from cola_lidar_lib import codec, protocol
from cola_lidar_lib.errors import (
    DeviceRejected,
    LidarError,
    OperationCancelled,
    ProtocolViolation,
    SessionStateError,
    UnexpectedResponse,
)
from cola_lidar_lib.models import (
    Application,
    ApplicationActivation,
    ApplicationActivationAck,
    DeviceStateQuery,
    DeviceStateResponse,
    Request,
    Response,
    Run,
    RunResponse,
    RunResult,
    ScanData,
    ScanDataQuery,
    SessionState,
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
from cola_lidar_lib.transport import Transport

logger = logging.getLogger(__name__)

R = TypeVar("R")


class SessionController:
    """Owns the transport and the accumulation buffer of one device session.

    Every operation sends exactly one telegram and blocks until exactly one
    reply has been decoded. Any error other than a busy device state moves
    the controller to FAILED, after which it refuses further exchanges.
    """

    def __init__(
        self,
        transport: Transport,
        read_chunk_size: int = protocol.READ_CHUNK_SIZE,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """Initialize controller.

        Args:
            transport: Connected Transport instance, owned exclusively
            read_chunk_size: Max bytes requested per transport read
            cancel_event: Optional event; once set, pending and future
                          exchanges raise OperationCancelled
        """
        self._transport = transport
        self._read_chunk_size = read_chunk_size
        self._cancel_event = cancel_event or threading.Event()
        self._unparsed = bytearray()
        self._state = SessionState.CONFIGURING

        # Serializes exchanges; the protocol is strictly half-duplex
        self._exchange_lock = threading.Lock()

    # ========================================================================
    # Properties
    # ========================================================================

    @property
    def state(self) -> SessionState:
        """Current session state."""
        return self._state

    @state.setter
    def state(self, value: SessionState) -> None:
        if value != self._state:
            logger.debug(f"Session state {self._state.value} -> {value.value}")
        self._state = value

    @property
    def unparsed(self) -> bytes:
        """Bytes received but not yet consumed into a telegram."""
        return bytes(self._unparsed)

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel_event

    # ========================================================================
    # Exchange
    # ========================================================================

    def send_and_await(self, request: Request) -> Response:
        """Send one telegram and block until one reply is decoded.

        Args:
            request: Outgoing telegram

        Returns:
            The decoded reply (of any type)

        Raises:
            SessionStateError: If the session has failed or been closed
            OperationCancelled: If the cancel event is set
            TransportError: On read/write failure or read timeout
            ProtocolViolation: If received bytes match no reply rule
        """
        with self._exchange_lock:
            self._ensure_usable()
            try:
                self._check_cancelled()
                self._transport.write_bytes(codec.encode_request(request))
                return self._await_response()
            except LidarError:
                self.state = SessionState.FAILED
                raise

    def _await_response(self) -> Response:
        while True:
            # A reply may already be buffered from an earlier read
            result = codec.decode_response(self._unparsed)

            if isinstance(result, codec.Matched):
                del self._unparsed[: result.consumed]
                logger.debug(
                    f"Decoded {type(result.response).__name__}, "
                    f"{len(self._unparsed)} bytes left over"
                )
                return result.response

            if isinstance(result, codec.NoMatch):
                raise ProtocolViolation(result.reason, data=bytes(self._unparsed))

            self._check_cancelled()
            self._unparsed.extend(self._transport.read_chunk(self._read_chunk_size))

    def _check_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise OperationCancelled("Exchange cancelled")

    def _ensure_usable(self) -> None:
        """Raise if the session can no longer exchange telegrams."""
        if self._state in (SessionState.FAILED, SessionState.CLOSED):
            raise SessionStateError(
                f"Cannot exchange telegrams in state {self._state.value}"
            )
        if not self._transport.is_open:
            self.state = SessionState.FAILED
            raise SessionStateError("Cannot exchange telegrams on a closed transport")

    def _expect(self, request: Request, expected: Type[R]) -> R:
        """Exchange and require a reply of the given type."""
        response = self.send_and_await(request)
        if not isinstance(response, expected):
            self.state = SessionState.FAILED
            raise UnexpectedResponse(
                f"Expected {expected.__name__} in reply to {type(request).__name__}, "
                f"got {response!r}",
                expected=expected,
                response=response,
            )
        return response

    def _reject(self, message: str, response: Response) -> DeviceRejected:
        self.state = SessionState.FAILED
        return DeviceRejected(message, response=response)

    # ========================================================================
    # Bring-up Steps
    # ========================================================================

    def set_access_mode(self) -> None:
        """Log in as authorized client.

        Raises:
            DeviceRejected: If the device refuses the credential
        """
        logger.info("Setting access mode...")
        response = self._expect(SetAccessMode(), SetAccessModeResponse)
        if response.result != SetAccessModeResult.SUCCESS:
            raise self._reject("Device rejected access mode credential", response)

    def start_measurement(self) -> None:
        """Start laser and motor.

        Raises:
            DeviceRejected: If the device answers not allowed
        """
        logger.info("Starting measurement...")
        response = self._expect(StartMeasurement(), StartMeasurementResponse)
        if response.result != StartMeasurementResult.SUCCESS:
            raise self._reject("Device did not allow start of measurement", response)

    def stop_measurement(self) -> None:
        """Stop laser and motor.

        Raises:
            DeviceRejected: If the device answers not allowed
        """
        logger.info("Stopping measurement...")
        response = self._expect(StopMeasurement(), StopMeasurementResponse)
        if response.result != StopMeasurementResult.SUCCESS:
            raise self._reject("Device did not allow stop of measurement", response)

    def set_application_activation(
        self, application: Application, activation: ApplicationActivation
    ) -> None:
        """Enable or disable one device application.

        Raises:
            UnexpectedResponse: If the reply is not the activation ack
        """
        logger.info(f"Setting application {application.value} {activation.name.lower()}...")
        self._expect(SetApplicationActivation(application, activation), ApplicationActivationAck)

    def run(self) -> None:
        """Apply the configuration.

        Raises:
            DeviceRejected: If the device reports an error
        """
        logger.info("Running...")
        response = self._expect(Run(), RunResponse)
        if response.result != RunResult.SUCCESS:
            raise self._reject("Device reported error on Run", response)

    def query_device_state(self) -> DeviceStateResponse:
        """Ask for the operating state (no outcome check)."""
        return self._expect(DeviceStateQuery(), DeviceStateResponse)

    def configure(self) -> None:
        """Run bring-up steps up to (not including) the ready poll."""
        self.state = SessionState.CONFIGURING
        self.set_access_mode()
        self.start_measurement()
        self.set_application_activation(Application.FIELD, ApplicationActivation.DISABLED)
        self.set_application_activation(Application.RANGING, ApplicationActivation.ENABLED)
        self.run()
        self.state = SessionState.WAITING_FOR_READY

    # ========================================================================
    # Scan Data
    # ========================================================================

    def poll_scan(self) -> List[int]:
        """Request one scan and return its distance values.

        Raises:
            UnexpectedResponse: If the reply is not scan data
        """
        response = self._expect(ScanDataQuery(), ScanData)
        logger.debug(f"Scan with {len(response.values)} values")
        return response.values

    # ========================================================================
    # Teardown
    # ========================================================================

    def close(self) -> None:
        """Close the transport. Buffered bytes are discarded."""
        self._transport.close()
        self._unparsed.clear()
        self.state = SessionState.CLOSED
