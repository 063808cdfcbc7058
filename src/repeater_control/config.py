"""
Repeater Control configuration.

Values come from a JSON file when one is present, otherwise from the
built-in defaults. A present file is used in full (no merge with defaults).

File path priority (highest first):
1) explicit path (CLI --config)
2) REPEATER_CONFIG environment variable
3) ./config.json

REPEATER_CONFIG may itself come from a standard env file:
- /etc/repeater-control/agent.env (system install)
- ~/.config/repeater-control/.env (user install)
- ./.env (project override)
Process environment variables always win.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

DEFAULT_CONFIG_FILE = "config.json"
CONFIG_PATH_ENV = "REPEATER_CONFIG"
SYSTEM_ENV_FILE = Path("/etc/repeater-control/agent.env")


class ConfigError(ValueError):
    """Raised when a configuration file is present but invalid."""


@dataclass(frozen=True, slots=True)
class RepeaterConfig:
    host: str
    name: str
    topics: tuple[str, ...]  # command, status, last will
    qos: tuple[int, ...]  # qos[0] is used for the command subscription

    @property
    def command_topic(self) -> str:
        return self.topics[0]

    @property
    def status_topic(self) -> str:
        return self.topics[1]

    @property
    def lwt_topic(self) -> str:
        return self.topics[2]

    @property
    def command_qos(self) -> int:
        return self.qos[0]


DEFAULT_CONFIG = RepeaterConfig(
    host="mqtt://10.145.0.4:1883",
    name="GB3VW",
    topics=(
        "repeater-control",
        "repeater-control/status",
        "repeater-control/lwt",
    ),
    qos=(1,),
)


def _env_paths() -> list[Path]:
    """Env files in load order; a variable set by an earlier file is kept."""
    xdg = Path(os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config")
    return [SYSTEM_ENV_FILE, xdg / "repeater-control" / ".env", Path(".env")]


def _load_env_files() -> None:
    for p in _env_paths():
        if p.is_file():
            load_dotenv(p, override=False)


def resolve_config_path(path: Optional[str | Path] = None) -> Path:
    if path:
        return Path(path)
    env_path = os.getenv(CONFIG_PATH_ENV, "").strip()
    if env_path:
        return Path(env_path)
    return Path(DEFAULT_CONFIG_FILE)


def _require_str(raw: dict[str, Any], key: str) -> str:
    if key not in raw:
        raise ConfigError(f"Missing required config key: {key}")
    value = raw[key]
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"Config key {key} must be a non-empty string")
    return value


def _require_topics(raw: dict[str, Any]) -> tuple[str, ...]:
    topics = raw.get("topics")
    if not isinstance(topics, list):
        raise ConfigError("Config key topics must be a list of strings")
    if len(topics) < 3:
        raise ConfigError(
            f"Config key topics needs command, status and last will topics (got {len(topics)})"
        )
    for t in topics:
        if not isinstance(t, str) or not t:
            raise ConfigError(f"Invalid topic in config: {t!r}")
    return tuple(topics)


def _require_qos(raw: dict[str, Any]) -> tuple[int, ...]:
    qos = raw.get("qos")
    if not isinstance(qos, list) or not qos:
        raise ConfigError("Config key qos must be a non-empty list of integers")
    for q in qos:
        # bool is an int subclass; reject it explicitly
        if isinstance(q, bool) or not isinstance(q, int) or not (0 <= q <= 2):
            raise ConfigError(f"Invalid qos in config: {q!r}")
    return tuple(qos)


def parse_config(raw: Any) -> RepeaterConfig:
    """Validate a decoded JSON document and build an immutable RepeaterConfig."""
    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a JSON object")
    return RepeaterConfig(
        host=_require_str(raw, "host"),
        name=_require_str(raw, "name"),
        topics=_require_topics(raw),
        qos=_require_qos(raw),
    )


def load_config(
    path: Optional[str | Path] = None, *, dotenv_enabled: bool = True
) -> RepeaterConfig:
    """
    Load config from the resolved JSON file, or return DEFAULT_CONFIG when
    no file exists.

    Raises ConfigError if the file exists but cannot be read or validated.
    """
    if dotenv_enabled:
        _load_env_files()

    cfg_path = resolve_config_path(path)
    if not cfg_path.is_file():
        return DEFAULT_CONFIG

    try:
        raw = json.loads(cfg_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Cannot read config file {cfg_path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in config file {cfg_path}: {exc}") from exc

    return parse_config(raw)
