"""
Session manager for Repeater Control.

Owns the broker connection lifecycle:
  DISCONNECTED -> CONNECTING -> CONNECTED <-> RECONNECTING

The initial connect and subscribe are not retried; their failures propagate.
After that, every connection loss is retried forever with a fixed delay.
Messages are dispatched one at a time in arrival order; a command finishes
(including its response publish) before the next message is read.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from typing import Any, Callable, Iterator, Optional, Protocol

from repeater_control.config import RepeaterConfig
from repeater_control.mqtt_client import ConnectError, InboundMessage

logger = logging.getLogger(__name__)

LWT_PAYLOAD = "ALIVE"
LWT_QOS = 1
RECONNECT_DELAY_S = 1.0


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class SessionClient(Protocol):
    def connect(self, will_topic: str, will_payload: str = ..., will_qos: int = ...) -> None: ...

    def reconnect(self) -> None: ...

    def subscribe(self, topic: str, qos: int) -> None: ...

    def messages(self, shutdown: Optional[Any] = None) -> Iterator[Optional[InboundMessage]]: ...

    def disconnect(self) -> None: ...


class MessageRouter(Protocol):
    def dispatch(self, payload: bytes | str) -> bool: ...


class SessionManager:
    def __init__(
        self,
        client: SessionClient,
        router: MessageRouter,
        config: RepeaterConfig,
        *,
        reconnect_delay_s: float = RECONNECT_DELAY_S,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._router = router
        self._config = config
        self.reconnect_delay_s = reconnect_delay_s
        self._sleep = sleep
        self._state = ConnectionState.DISCONNECTED
        self._shutdown = threading.Event()

    @property
    def state(self) -> ConnectionState:
        return self._state

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self._state:
            logger.debug("Session state %s -> %s", self._state.value, state.value)
        self._state = state

    def stop(self) -> None:
        """Request shutdown; run() returns after the message in progress."""
        self._shutdown.set()

    def _connect(self) -> None:
        self._set_state(ConnectionState.CONNECTING)
        cfg = self._config
        try:
            self._client.connect(cfg.lwt_topic, LWT_PAYLOAD, LWT_QOS)
            self._client.subscribe(cfg.command_topic, cfg.command_qos)
        except Exception:
            self._set_state(ConnectionState.DISCONNECTED)
            raise
        self._set_state(ConnectionState.CONNECTED)

    def _reconnect(self) -> int:
        """Retry until reconnected. Returns the number of attempts made."""
        self._set_state(ConnectionState.RECONNECTING)
        logger.warning("Lost connection. Attempting reconnect.")
        attempts = 0
        while True:
            attempts += 1
            try:
                self._client.reconnect()
            except ConnectError as exc:
                logger.error("Error reconnecting (attempt %d): %s", attempts, exc)
                self._sleep(self.reconnect_delay_s)
                if self._shutdown.is_set():
                    self._set_state(ConnectionState.DISCONNECTED)
                    return attempts
                continue
            break
        # Persistent session: the broker kept the subscription.
        self._set_state(ConnectionState.CONNECTED)
        logger.info("Reconnected after %d attempt(s)", attempts)
        return attempts

    def run(self) -> None:
        """
        Connect, subscribe and process commands until stop() is called.

        Raises:
            MQTTSessionError: initial connect/subscribe failed, or a response
            could not be published.
        """
        self._connect()
        logger.info(
            "Listening for commands on %s (qos=%s)",
            self._config.command_topic,
            self._config.command_qos,
        )

        for msg in self._client.messages(self._shutdown):
            if msg is None:
                self._reconnect()
                continue
            logger.info("Received on %s: %r", msg.topic, msg.payload[:200])
            self._router.dispatch(msg.payload)

        logger.info("Session stopping")
        self._client.disconnect()
        self._set_state(ConnectionState.DISCONNECTED)
