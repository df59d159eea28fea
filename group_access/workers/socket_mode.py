"""Run the bot over Slack Socket Mode with the health listener alongside."""

from __future__ import annotations

import logging
import threading

import uvicorn
from pydantic import ValidationError
from slack_bolt.adapter.socket_mode import SocketModeHandler

from group_access.core.config import AppSettings, get_settings
from group_access.core.logging import configure_logging
from group_access.main import create_app
from group_access.runtime import Runtime, build_bolt_app, build_runtime

LOGGER = logging.getLogger("group_access.workers.socket_mode")


def load_settings() -> AppSettings:
    """Load configuration; any missing or malformed value stops the process."""

    try:
        return get_settings()
    except ValidationError as exc:
        logging.basicConfig(level=logging.INFO)
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"]).upper()
            LOGGER.critical("invalid_configuration", extra={"field": field, "error": error["msg"]})
        raise SystemExit(1) from exc


def start_health_server(runtime: Runtime) -> threading.Thread:
    config = uvicorn.Config(
        create_app(runtime),
        host="0.0.0.0",
        port=runtime.settings.port,
        log_config=None,
    )
    server = uvicorn.Server(config)
    thread = threading.Thread(target=server.run, name="health-server", daemon=True)
    thread.start()
    LOGGER.info("health_server_started", extra={"port": runtime.settings.port})
    return thread


def main() -> None:
    settings = load_settings()
    configure_logging(settings)

    runtime = build_runtime(settings)
    runtime.start()
    start_health_server(runtime)

    app = build_bolt_app(settings, runtime.dispatcher)
    handler = SocketModeHandler(app, settings.slack_app_token)
    try:
        handler.start()
    except KeyboardInterrupt:  # pragma: no cover - interactive shutdown
        LOGGER.info("shutdown_requested")
    finally:
        runtime.stop()


if __name__ == "__main__":  # pragma: no cover
    main()
