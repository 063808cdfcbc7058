"""
MQTT client for Repeater Control.

Wrapper over paho-mqtt: connect with a last will, subscribe, publish with
acknowledgement, and expose inbound messages as a lazy stream with an
end-of-stream marker on connection loss.

Network I/O (including keepalive pings) runs on paho's loop thread, so a
slow command on the session thread never starves the connection. paho's
own reconnect is disabled; the session decides when to reconnect. The
session is persistent (clean_session=False), so subscriptions survive a
reconnect.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional
from urllib.parse import urlsplit

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)

DEFAULT_KEEPALIVE_S = 30
# Granularity of ack waits and of shutdown checks in messages().
POLL_INTERVAL_S = 0.1

_SCHEMES: dict[str, tuple[int, bool, str]] = {
    # scheme -> (default port, tls, transport)
    "mqtt": (1883, False, "tcp"),
    "tcp": (1883, False, "tcp"),
    "mqtts": (8883, True, "tcp"),
    "ssl": (8883, True, "tcp"),
    "ws": (80, False, "websockets"),
    "wss": (443, True, "websockets"),
}


class MQTTSessionError(RuntimeError):
    """Broker interaction failed."""


class ConnectError(MQTTSessionError):
    """Connect or reconnect was refused or could not complete."""


class SubscribeError(MQTTSessionError):
    """Subscription was refused or could not complete."""


class PublishError(MQTTSessionError):
    """Publish could not be sent or acknowledged."""


@dataclass(frozen=True, slots=True)
class BrokerEndpoint:
    host: str
    port: int
    tls: bool = False
    transport: str = "tcp"
    path: str = ""


@dataclass(frozen=True, slots=True)
class InboundMessage:
    topic: str
    payload: bytes


def parse_broker_uri(uri: str) -> BrokerEndpoint:
    """
    Parse a broker URI such as mqtt://10.145.0.4:1883.

    A bare host[:port] is treated as tcp. Raises ValueError on unknown
    schemes or a missing host.
    """
    raw = (uri or "").strip()
    if "://" not in raw:
        raw = "tcp://" + raw
    parts = urlsplit(raw)
    scheme = parts.scheme.lower()
    if scheme not in _SCHEMES:
        raise ValueError(f"Unsupported broker URI scheme: {parts.scheme!r}")
    if not parts.hostname:
        raise ValueError(f"Broker URI has no host: {uri!r}")
    default_port, tls, transport = _SCHEMES[scheme]
    # .port raises ValueError itself for out-of-range values
    port = parts.port or default_port
    return BrokerEndpoint(
        host=parts.hostname,
        port=port,
        tls=tls,
        transport=transport,
        path=parts.path,
    )


class RepeaterMQTTClient:
    """
    Single broker connection, owned by SessionManager.

    paho callbacks run on the loop thread and only record state or queue
    inbound messages; the session thread consumes them through messages().
    """

    def __init__(
        self,
        uri: str,
        client_id: str,
        *,
        keepalive: int = DEFAULT_KEEPALIVE_S,
        poll_interval_s: float = POLL_INTERVAL_S,
        ack_timeout_s: float = 10.0,
    ) -> None:
        self.endpoint = parse_broker_uri(uri)
        self.client_id = client_id
        self.keepalive = keepalive
        self.poll_interval_s = poll_interval_s
        self.ack_timeout_s = ack_timeout_s

        # Raises ValueError for an empty client id with a persistent session.
        client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            clean_session=False,
            protocol=mqtt.MQTTv311,
            transport=self.endpoint.transport,
            reconnect_on_failure=False,
        )
        if self.endpoint.tls:
            client.tls_set()
        if self.endpoint.transport == "websockets":
            client.ws_set_options(path=self.endpoint.path or "/mqtt")

        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_subscribe = self._on_subscribe
        client.on_message = self._on_message
        self._client = client

        self._inbox: queue.Queue[Optional[InboundMessage]] = queue.Queue()
        self._cond = threading.Condition()
        self._connected = False
        self._lost = False  # set on disconnect, cleared when a (re)connect starts
        self._stream_open = False  # a loss owes the stream one None marker
        self._closing = False
        self._connack: Optional[Any] = None
        self._subacks: dict[int, list[Any]] = {}

    # -- paho callbacks (loop thread) ----------------------------------

    def _on_connect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        with self._cond:
            self._connack = reason_code
            self._connected = not reason_code.is_failure
            self._stream_open = self._connected
            self._cond.notify_all()
        if self._connected:
            logger.info("Connected to MQTT broker as %s", self.client_id)
        else:
            logger.error("MQTT connect refused: %s", reason_code)

    def _on_disconnect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        with self._cond:
            self._connected = False
            self._lost = True
            emit_marker = self._stream_open and not self._closing
            self._stream_open = False
            self._cond.notify_all()
        if emit_marker:
            logger.warning("Disconnected from MQTT broker: %s", reason_code)
            self._inbox.put(None)

    def _on_subscribe(self, client: mqtt.Client, userdata: Any, mid: int, reason_codes: list[Any], properties: Any) -> None:
        with self._cond:
            self._subacks[mid] = list(reason_codes)
            self._cond.notify_all()

    def _on_message(self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage) -> None:
        self._inbox.put(InboundMessage(topic=msg.topic, payload=bytes(msg.payload)))

    # -- helpers --------------------------------------------------------

    def _wait_for(self, done: Callable[[], bool], error_cls: type[MQTTSessionError], what: str) -> None:
        """Block until done(), the connection drops, or the ack timeout elapses."""
        deadline = time.monotonic() + self.ack_timeout_s
        with self._cond:
            while not done():
                if self._lost:
                    raise error_cls(f"Connection lost while waiting for {what}")
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise error_cls(f"Timed out waiting for {what}")
                self._cond.wait(min(remaining, self.poll_interval_s))

    def _begin_attempt(self) -> None:
        with self._cond:
            self._connack = None
            self._lost = False
            self._closing = False

    def _await_connack(self) -> None:
        self._wait_for(lambda: self._connack is not None, ConnectError, "CONNACK")
        if self._connack.is_failure:
            raise ConnectError(f"Connection refused: {self._connack}")

    # -- public API (session thread) ------------------------------------

    def connect(self, will_topic: str, will_payload: str = "ALIVE", will_qos: int = 1) -> None:
        """Register the last will, connect and start the loop thread. Raises ConnectError."""
        self._client.will_set(will_topic, payload=will_payload, qos=will_qos, retain=False)
        self._begin_attempt()
        try:
            self._client.connect(self.endpoint.host, self.endpoint.port, keepalive=self.keepalive)
        except (OSError, ValueError) as exc:
            raise ConnectError(
                f"Cannot connect to {self.endpoint.host}:{self.endpoint.port}: {exc}"
            ) from exc
        self._client.loop_start()
        self._await_connack()

    def reconnect(self) -> None:
        """Reconnect with the stored endpoint and last will. Raises ConnectError."""
        # The loop thread exits by itself after a loss; join it before reusing the socket.
        self._client.loop_stop()
        self._begin_attempt()
        try:
            self._client.reconnect()
        except (OSError, ValueError) as exc:
            raise ConnectError(f"Reconnect failed: {exc}") from exc
        self._client.loop_start()
        self._await_connack()

    def subscribe(self, topic: str, qos: int) -> None:
        """Subscribe and wait for SUBACK. Raises SubscribeError."""
        rc, mid = self._client.subscribe(topic, qos=qos)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            raise SubscribeError(f"Subscribe to {topic} failed: {mqtt.error_string(rc)}")
        self._wait_for(lambda: mid in self._subacks, SubscribeError, f"SUBACK for {topic}")
        with self._cond:
            granted = self._subacks.pop(mid)
        if any(getattr(code, "is_failure", False) for code in granted):
            raise SubscribeError(f"Subscribe to {topic} refused: {granted}")
        logger.info("Subscribed: %s (qos=%s)", topic, qos)

    def publish(self, topic: str, payload: Any, *, qos: int = 1, retain: bool = False) -> Any:
        """Publish and, for qos > 0, wait for the broker acknowledgement. Raises PublishError."""
        info = self._client.publish(topic, payload=payload, qos=qos, retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishError(f"Publish to {topic} failed: {mqtt.error_string(info.rc)}")
        if qos > 0:
            deadline = time.monotonic() + self.ack_timeout_s
            while not info.is_published():
                if self._lost:
                    raise PublishError(f"Connection lost while waiting for PUBACK on {topic}")
                if time.monotonic() >= deadline:
                    raise PublishError(f"Timed out waiting for PUBACK on {topic}")
                info.wait_for_publish(timeout=self.poll_interval_s)
        return info

    def messages(self, shutdown: Optional[Any] = None) -> Iterator[Optional[InboundMessage]]:
        """
        Yield inbound messages in arrival order, or None once per connection loss.

        The caller must reconnect after receiving None before pulling again.
        Returns when shutdown (an Event-like object) is set.
        """
        while shutdown is None or not shutdown.is_set():
            try:
                item = self._inbox.get(timeout=self.poll_interval_s)
            except queue.Empty:
                continue
            yield item

    def is_connected(self) -> bool:
        return self._connected

    def disconnect(self) -> None:
        with self._cond:
            self._closing = True
        try:
            self._client.disconnect()
        finally:
            self._client.loop_stop()
            self._connected = False
