"""Wait-for-ready loop with restart-on-stall recovery."""

import logging
from typing import Optional

from cola_lidar_lib import protocol
from cola_lidar_lib.controller import SessionController
from cola_lidar_lib.errors import DeviceNotReady, DeviceRejected, LidarError, OperationCancelled
from cola_lidar_lib.models import DeviceState, PollerState, SessionState

logger = logging.getLogger(__name__)


class ReadyPoller:
    """Polls SCdevicestate until the device reports ready.

    A busy reply counts as one failure. When ``restart_threshold`` failures
    accumulate, measurement is stopped and started again and the counter
    resets. An error state aborts immediately regardless of the counter.

    There is no overall timeout unless ``max_restarts`` is given.
    """

    def __init__(
        self,
        controller: SessionController,
        interval_s: float = protocol.READY_POLL_INTERVAL_S,
        restart_threshold: int = protocol.READY_RESTART_THRESHOLD,
        max_restarts: Optional[int] = None,
    ) -> None:
        """Initialize poller.

        Args:
            controller: Configured session controller
            interval_s: Wait between two state queries while busy
            restart_threshold: Busy replies before measurement is restarted
            max_restarts: Restarts allowed before DeviceNotReady is raised.
                          None retries forever.
        """
        if restart_threshold < 1:
            raise ValueError(f"restart_threshold must be >= 1, got {restart_threshold}")

        self._controller = controller
        self._interval_s = interval_s
        self._restart_threshold = restart_threshold
        self._max_restarts = max_restarts

        self._state = PollerState.POLLING
        self._failure_count = 0
        self._restarts = 0
        self._polls = 0

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def failure_count(self) -> int:
        """Busy replies since the last restart."""
        return self._failure_count

    @property
    def restarts(self) -> int:
        """Number of stop/start measurement pairs issued."""
        return self._restarts

    @property
    def polls(self) -> int:
        """Total number of device state queries sent."""
        return self._polls

    def wait_for_ready(self) -> None:
        """Block until the device reports ready.

        Raises:
            DeviceRejected: If the device reports an error state, or refuses
                            the stop/start restart
            DeviceNotReady: If max_restarts is exceeded
            OperationCancelled: If the controller's cancel event is set
            TransportError, ProtocolViolation, UnexpectedResponse: From the
                            underlying exchange
        """
        logger.info("Waiting for ready...")
        self._controller.state = SessionState.WAITING_FOR_READY
        try:
            while not self.poll_once():
                self._sleep()
        except LidarError:
            self._state = PollerState.FATAL
            raise

        logger.info(f"Device ready after {self._polls} polls, {self._restarts} restarts")

    def poll_once(self) -> bool:
        """Send one state query and apply the transition rule.

        Returns:
            True once the device is ready, False if still polling
        """
        response = self._controller.query_device_state()
        self._polls += 1

        if response.state == DeviceState.READY:
            self._state = PollerState.READY
            return True

        if response.state == DeviceState.ERROR:
            self._state = PollerState.FATAL
            self._controller.state = SessionState.FAILED
            raise DeviceRejected("Device reported error state while waiting for ready", response)

        self._failure_count += 1
        logger.debug(f"Device not ready ({response.state.name}), failure {self._failure_count}")

        if self._failure_count >= self._restart_threshold:
            self._restart_measurement()
        return False

    def _restart_measurement(self) -> None:
        if self._max_restarts is not None and self._restarts >= self._max_restarts:
            self._controller.state = SessionState.FAILED
            raise DeviceNotReady(
                f"Device not ready after {self._restarts} measurement restarts"
            )

        logger.warning(
            f"Device busy for {self._failure_count} polls, restarting measurement..."
        )
        self._failure_count = 0
        self._restarts += 1
        self._controller.stop_measurement()
        self._controller.start_measurement()

    def _sleep(self) -> None:
        # Event.wait doubles as a cancellable sleep
        if self._controller.cancel_event.wait(timeout=self._interval_s):
            self._controller.state = SessionState.FAILED
            raise OperationCancelled("Ready poll cancelled")
