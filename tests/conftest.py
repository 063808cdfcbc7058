"""
Pytest configuration and shared fixtures
"""
import os
import sys

import pytest
from unittest.mock import MagicMock

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from repeater_control.config import RepeaterConfig  # noqa: E402


class RecordingPublisher:
    """Publisher double that records (topic, payload, qos) and can be told to fail."""

    def __init__(self, log=None):
        self.published = []
        self.log = log if log is not None else []
        self.error = None

    def publish(self, topic, payload, *, qos=1, retain=False):
        if self.error is not None:
            raise self.error
        self.published.append((topic, payload, qos))
        self.log.append(("publish", topic, payload))
        return None


@pytest.fixture
def repeater_config():
    """Config used by the end-to-end scenarios"""
    return RepeaterConfig(
        host="mqtt://broker.test:1883",
        name="GB3TEST",
        topics=("ctl", "status", "lwt"),
        qos=(1,),
    )


@pytest.fixture
def fake_paho_client(monkeypatch):
    """
    Patch paho.mqtt.client.Client to return a controllable fake.
    """
    import paho.mqtt.client as mqtt

    fake = MagicMock()
    fake.connect.return_value = mqtt.MQTT_ERR_SUCCESS
    fake.ctor_calls = []

    def _ctor(*args, **kwargs):
        fake.ctor_calls.append((args, kwargs))
        return fake

    monkeypatch.setattr("paho.mqtt.client.Client", _ctor)
    return fake


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def fake_executor():
    """
    Executor double: maps argv tuples to output (None = could not run).
    Unknown argv returns an echo of the argv.
    """
    calls = []
    outputs = {}

    def _execute(argv):
        calls.append(list(argv))
        key = tuple(argv)
        if key in outputs:
            return outputs[key]
        return " ".join(argv)

    _execute.calls = calls
    _execute.outputs = outputs
    return _execute
