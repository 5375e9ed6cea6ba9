"""Public entry point: connect to a scanner and poll scan data."""

import dataclasses
import logging
import threading
from typing import List, Optional, Tuple, Union

from cola_lidar_lib.controller import SessionController
from cola_lidar_lib.errors import LidarError, SessionStateError
from cola_lidar_lib.models import LidarConfig, SessionState, parse_address
from cola_lidar_lib.poller import ReadyPoller
from cola_lidar_lib.transport import SocketLike, Transport

logger = logging.getLogger(__name__)


class LidarSession:
    """A configured, measuring scanner session.

    Create with :func:`connect` or :meth:`LidarSession.connect`. The session
    owns its connection exclusively; use it from one thread at a time.
    """

    def __init__(self, controller: SessionController, config: LidarConfig) -> None:
        self._controller = controller
        self._config = config

    @classmethod
    def connect(
        cls,
        address: Union[str, Tuple[str, int], None] = None,
        config: Optional[LidarConfig] = None,
        sock: Optional[SocketLike] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> "LidarSession":
        """Connect, configure the device and wait until it is ready.

        Args:
            address: "host", "host:port" or (host, port). Overrides config host/port.
            config: Connection and bring-up parameters. Defaults to LidarConfig().
            sock: Pre-connected socket object (for testing). If provided,
                  address is only used for logging.
            cancel_event: Optional event that aborts bring-up and later exchanges

        Returns:
            LidarSession in MEASURING state

        Raises:
            LidarError: Any transport, protocol or device failure. The
                        connection is closed before the error propagates.
        """
        config = config or LidarConfig()
        if address is not None:
            host, port = parse_address(address)
            config = dataclasses.replace(config, host=host, port=port)

        if sock is not None:
            transport = Transport(sock, read_timeout_s=config.read_timeout_s)
        else:
            transport = Transport.open(
                config.host,
                config.port,
                connect_timeout_s=config.connect_timeout_s,
                read_timeout_s=config.read_timeout_s,
            )

        controller = SessionController(
            transport,
            read_chunk_size=config.read_chunk_size,
            cancel_event=cancel_event,
        )

        try:
            logger.info(f"Bringing up scanner at {config.host}:{config.port}...")
            controller.configure()
            ReadyPoller(
                controller,
                interval_s=config.ready_poll_interval_s,
                restart_threshold=config.ready_restart_threshold,
                max_restarts=config.max_restarts,
            ).wait_for_ready()
        except LidarError as e:
            logger.info(f"Bring-up failed: {e}")
            transport.close()
            raise

        controller.state = SessionState.MEASURING
        logger.info("Scanner ready, measuring")
        return cls(controller, config)

    @property
    def state(self) -> SessionState:
        return self._controller.state

    @property
    def config(self) -> LidarConfig:
        return self._config

    def poll_data(self) -> List[int]:
        """Retrieve one scan.

        Returns:
            Distance values in the order the device sent them

        Raises:
            SessionStateError: If the session is closed or has failed
            LidarError: Any transport, protocol or contract failure
        """
        if self._controller.state != SessionState.MEASURING:
            raise SessionStateError(
                f"Cannot poll data in state {self._controller.state.value}"
            )
        return self._controller.poll_scan()

    def close(self) -> None:
        """Close the connection. The device keeps measuring."""
        if self._controller.state != SessionState.CLOSED:
            self._controller.close()

    def __enter__(self) -> "LidarSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def connect(
    address: Union[str, Tuple[str, int]],
    config: Optional[LidarConfig] = None,
    cancel_event: Optional[threading.Event] = None,
) -> LidarSession:
    """Connect to the scanner at address and bring it into ranging mode."""
    return LidarSession.connect(address, config=config, cancel_event=cancel_event)
