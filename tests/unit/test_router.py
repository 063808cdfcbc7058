from __future__ import annotations

import json

import pytest

from repeater_control.core.cmd_context import CommandContext
from repeater_control.core.router import (
    DEFAULT_DISPATCH,
    INVALID_COMMAND_RESPONSE,
    CommandRouter,
    Operation,
    Reply,
)
from repeater_control.mqtt_client import PublishError


def _payload(command_type: str, command: str = "", **extra) -> str:
    return json.dumps({"command_type": command_type, "command": command, **extra})


@pytest.fixture
def router(repeater_config, publisher, fake_executor):
    ctx = CommandContext(mqtt=publisher, config=repeater_config)
    return CommandRouter(ctx, executor=fake_executor)


def test_asterisk_command_runs_with_command_text(router, publisher, fake_executor):
    fake_executor.outputs[("asterisk", "-x", "rpt fun 1234 *3")] = "Connected\n"

    assert router.dispatch(_payload("A", "rpt fun 1234 *3")) is True

    assert fake_executor.calls == [["asterisk", "-x", "rpt fun 1234 *3"]]
    assert publisher.published == [("status", "Connected\n", 1)]


def test_command_text_stays_a_single_argument(router, fake_executor):
    router.dispatch(_payload("A", "core show uptime; rm -rf /"))

    assert fake_executor.calls == [["asterisk", "-x", "core show uptime; rm -rf /"]]


def test_asterisk_failure_publishes_nothing(router, publisher, fake_executor):
    fake_executor.outputs[("asterisk", "-x", "x")] = None

    assert router.dispatch(_payload("A", "x")) is False

    assert len(fake_executor.calls) == 1
    assert publisher.published == []


def test_empty_output_is_still_published(router, publisher, fake_executor):
    fake_executor.outputs[("asterisk", "-x", "x")] = ""

    assert router.dispatch(_payload("A", "x")) is True
    assert publisher.published == [("status", "", 1)]


def test_uptime_ignores_command_text(router, publisher, fake_executor):
    fake_executor.outputs[("uptime",)] = " 12:00:00 up 3 days\n"

    router.dispatch(_payload("U", "ignored"))

    assert fake_executor.calls == [["uptime"]]
    assert publisher.published == [("status", " 12:00:00 up 3 days\n", 1)]


def test_stats_publishes_even_when_execution_fails(router, publisher, fake_executor):
    fake_executor.outputs[("asterisk", "-x", "rpt stats")] = None

    assert router.dispatch(_payload("C", "anything")) is True

    assert fake_executor.calls == [["asterisk", "-x", "rpt stats"]]
    assert publisher.published == [("status", "", 1)]


def test_disconnect_replies_without_execution(router, publisher, fake_executor):
    router.dispatch(_payload("D"))

    assert fake_executor.calls == []
    assert publisher.published == [("status", DEFAULT_DISPATCH["D"].text, 1)]


def test_only_first_character_routes(router, fake_executor):
    router.dispatch(_payload("Uptime please"))
    assert fake_executor.calls == [["uptime"]]


@pytest.mark.parametrize("command_type", ["Z", "", "u", " U", "?"])
def test_unknown_type_code_gets_not_valid_response(router, publisher, fake_executor, command_type):
    assert router.dispatch(_payload(command_type, "x")) is True

    assert fake_executor.calls == []
    assert publisher.published == [("status", INVALID_COMMAND_RESPONSE, 1)]


@pytest.mark.parametrize(
    "payload",
    ["not-json", b"\xff", "{}", '{"command_type": "U"}', "[1, 2]"],
)
def test_malformed_payload_is_dropped(router, publisher, fake_executor, payload):
    assert router.dispatch(payload) is False

    assert fake_executor.calls == []
    assert publisher.published == []


def test_response_topic_is_not_honoured(router, publisher):
    router.dispatch(_payload("D", response_topic="somewhere/else"))

    assert [topic for topic, _, _ in publisher.published] == ["status"]


def test_publish_error_propagates(router, publisher):
    publisher.error = PublishError("no connection")

    with pytest.raises(PublishError):
        router.dispatch(_payload("U"))


def test_custom_dispatch_table(repeater_config, publisher, fake_executor):
    table = {
        "T": Operation("tone", ("--freq", "{command}")),
        "P": Reply("pong"),
    }
    router = CommandRouter(CommandContext(mqtt=publisher, config=repeater_config), table, fake_executor)

    router.dispatch(_payload("T", "1750"))
    router.dispatch(_payload("P"))
    router.dispatch(_payload("U"))

    assert fake_executor.calls == [["tone", "--freq", "1750"]]
    assert publisher.published == [
        ("status", "tone --freq 1750", 1),
        ("status", "pong", 1),
        ("status", INVALID_COMMAND_RESPONSE, 1),
    ]


def test_operation_argv_substitutes_placeholder():
    op = Operation("asterisk", ("-x", "rpt cmd {command} now"))
    assert op.argv("1234") == ["asterisk", "-x", "rpt cmd 1234 now"]
    assert Operation("uptime").argv("x") == ["uptime"]
