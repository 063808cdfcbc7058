"""
Repeater Control entrypoint.

CLI:
  repeater-control run [--config PATH]   -> run the agent until SIGINT/SIGTERM or a fatal error
"""

from __future__ import annotations

import argparse
import logging
import signal
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
from typing import Optional

DIST_NAME = "repeater-control"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    """
    Single log level for every module.
    Uses REPEATER_LOG_LEVEL env, else INFO.
    """
    from repeater_control.core.log_config import apply_log_level_from_env

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    apply_log_level_from_env()


def get_version_string() -> str:
    try:
        return pkg_version(DIST_NAME)
    except PackageNotFoundError:
        # running from a source checkout
        return "0.0.0+dev"


def _install_signal_handlers(session) -> None:
    """SIGINT/SIGTERM stop the session between messages; the loop then disconnects cleanly."""

    def _stop_session(signum: int, _frame) -> None:
        logger.info("%s received; stopping after the current command", signal.Signals(signum).name)
        session.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _stop_session)


def _describe_config_source(config_path: Optional[str]) -> str:
    from repeater_control.config import resolve_config_path

    path: Path = resolve_config_path(config_path)
    if path.is_file():
        return str(path.resolve())
    return f"built-in defaults ({path} not found)"


def run_agent(config_path: Optional[str] = None) -> int:
    """
    Runtime mode: connect to the broker and process commands until shutdown.
    Returns process exit code.
    """
    from repeater_control.config import ConfigError, load_config
    from repeater_control.core.cmd_context import CommandContext
    from repeater_control.core.router import CommandRouter
    from repeater_control.mqtt_client import MQTTSessionError, RepeaterMQTTClient
    from repeater_control.session import SessionManager

    try:
        cfg = load_config(config_path)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1

    logger.info("============================================================")
    logger.info("Repeater Control %s", get_version_string())
    logger.info("Config: %s", _describe_config_source(config_path))
    logger.info("Repeater: %s via %s", cfg.name, cfg.host)
    logger.info("Topics: command=%s status=%s lwt=%s", cfg.command_topic, cfg.status_topic, cfg.lwt_topic)
    logger.info("============================================================")

    try:
        client = RepeaterMQTTClient(cfg.host, cfg.name)
    except (ValueError, OSError) as exc:
        logger.error("Error creating the client: %s", exc)
        return 1

    router = CommandRouter(CommandContext(mqtt=client, config=cfg))
    session = SessionManager(client, router, cfg)
    _install_signal_handlers(session)

    try:
        session.run()
    except MQTTSessionError as exc:
        logger.error("Session ended: %s", exc)
        return 1

    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog=DIST_NAME)
    p.add_argument("--version", action="version", version=get_version_string())

    sub = p.add_subparsers(dest="cmd", required=True)

    run_parser = sub.add_parser("run", help="Run the repeater control agent")
    run_parser.add_argument(
        "--config",
        type=str,
        metavar="PATH",
        help="Path to JSON config file (default: $REPEATER_CONFIG or ./config.json)",
    )

    return p


def main(argv: list[str] | None = None) -> None:
    _configure_logging()
    args = build_parser().parse_args(argv)

    if args.cmd == "run":
        raise SystemExit(run_agent(args.config))

    raise SystemExit(2)


if __name__ == "__main__":
    main()
