"""
Command router for Repeater Control.

Commands: A (asterisk CLI command), U (uptime), C (repeater stats),
D (disconnect acknowledgement). Any other type code is answered with
INVALID_COMMAND_RESPONSE. Every routed command produces at most one
response on the status topic.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence, Union

from repeater_control.core.cmd_context import CommandContext
from repeater_control.core.commands import parse_command
from repeater_control.core.executor import execute

logger = logging.getLogger(__name__)

INVALID_COMMAND_RESPONSE = "Command type is not valid"

COMMAND_PLACEHOLDER = "{command}"


@dataclass(frozen=True, slots=True)
class Operation:
    """Host operation run for a type code. `{command}` in args is replaced by the command text."""

    program: str
    args: tuple[str, ...] = ()
    respond_on_failure: bool = False

    def argv(self, command: str) -> list[str]:
        return [self.program, *(a.replace(COMMAND_PLACEHOLDER, command) for a in self.args)]


@dataclass(frozen=True, slots=True)
class Reply:
    """Fixed response, nothing is executed."""

    text: str


DispatchEntry = Union[Operation, Reply]
Executor = Callable[[Sequence[str]], Optional[str]]

DEFAULT_DISPATCH: Mapping[str, DispatchEntry] = {
    "A": Operation("asterisk", ("-x", COMMAND_PLACEHOLDER)),
    "U": Operation("uptime"),
    "C": Operation("asterisk", ("-x", "rpt stats"), respond_on_failure=True),
    "D": Reply("Disconnect acknowledged"),
}


class CommandRouter:
    """
    Turns one message payload into at most one response publish.

    Malformed payloads are dropped without a response. Publish errors are
    not caught here; they end the session.
    """

    def __init__(
        self,
        ctx: CommandContext,
        dispatch: Optional[Mapping[str, DispatchEntry]] = None,
        executor: Executor = execute,
    ) -> None:
        self.ctx = ctx
        self.dispatch_table: dict[str, DispatchEntry] = dict(
            DEFAULT_DISPATCH if dispatch is None else dispatch
        )
        self._executor = executor

    def dispatch(self, payload: bytes | str) -> bool:
        """Route one payload. Returns True if a response was published."""
        cmd = parse_command(payload)
        if cmd is None:
            logger.warning("Dropping malformed command payload: %r", payload[:200])
            return False

        if cmd.response_topic:
            logger.debug(
                "response_topic %r ignored; responding on %s",
                cmd.response_topic,
                self.ctx.config.status_topic,
            )

        entry = self.dispatch_table.get(cmd.type_code)
        if entry is None:
            logger.info("Command not valid: command_type=%r", cmd.command_type)
            self.ctx.respond(INVALID_COMMAND_RESPONSE)
            return True

        if isinstance(entry, Reply):
            logger.info("Command %s: replying %r", cmd.type_code, entry.text)
            self.ctx.respond(entry.text)
            return True

        argv = entry.argv(cmd.command)
        logger.info("Command %s: running %s", cmd.type_code, argv)
        output = self._executor(argv)
        if output is None:
            if not entry.respond_on_failure:
                logger.warning("Command %s produced no result; no response sent", cmd.type_code)
                return False
            output = ""

        self.ctx.respond(output)
        return True
