"""
Command context for Repeater Control.

Gives the router a way to publish responses without touching the
connection state owned by the session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from repeater_control.config import RepeaterConfig

logger = logging.getLogger(__name__)

# Responses are published at-least-once.
RESPONSE_QOS = 1


class MqttPublisher(Protocol):
    """
    Minimal MQTT publisher interface for command context.

    This protocol defines the contract that the MQTT client must fulfill.
    """

    def publish(
        self, topic: str, payload: Any, *, qos: int = 1, retain: bool = False
    ) -> Any:
        """Publish a message and wait for it to be acknowledged."""
        ...


@dataclass
class CommandContext:
    """
    Command execution context for the router.

    Provides:
    - the publisher used for responses
    - the immutable process config (topics, qos)
    """

    mqtt: MqttPublisher
    config: RepeaterConfig

    def respond(self, text: str) -> Any:
        """
        Publish a plain-text response to the status topic.

        Raises:
            MQTTSessionError: if the publish fails; the session treats this as fatal.
        """
        topic = self.config.status_topic
        logger.debug("Publishing response to %s (%d bytes)", topic, len(text))
        return self.mqtt.publish(topic, text, qos=RESPONSE_QOS, retain=False)
