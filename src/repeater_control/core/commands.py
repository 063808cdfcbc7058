"""
Inbound command payloads.

Payload schema (JSON object):
  {"command_type": str, "command": str, "response_topic": str (optional)}
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Command:
    command_type: str
    command: str
    response_topic: Optional[str] = None

    @property
    def type_code(self) -> str:
        """Routing code: first character of command_type, or "" when empty."""
        return self.command_type[:1]


def parse_command(payload: bytes | str) -> Optional[Command]:
    """Decode a message payload into a Command. Returns None if it does not fit the schema."""
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = bytes(payload).decode("utf-8")
        except UnicodeDecodeError as exc:
            logger.debug("Command payload is not UTF-8: %s", exc)
            return None

    try:
        obj = json.loads(payload)
    except json.JSONDecodeError as exc:
        logger.debug("Command payload is not JSON: %s", exc)
        return None

    if not isinstance(obj, dict):
        return None

    command_type = obj.get("command_type")
    command = obj.get("command")
    response_topic = obj.get("response_topic")

    if not isinstance(command_type, str) or not isinstance(command, str):
        return None
    if response_topic is not None and not isinstance(response_topic, str):
        return None

    return Command(
        command_type=command_type,
        command=command,
        response_topic=response_topic,
    )
