"""Entry point for the report intake backend."""
from __future__ import annotations

import logging
from pathlib import Path

import uvicorn

from reportes.api import create_app
from reportes.logging_config import configure_logging
from settings import SettingsError, load_settings

logger = logging.getLogger(__name__)


def main() -> None:
    try:
        settings = load_settings()
    except SettingsError as exc:
        configure_logging()
        logger.error("Could not load settings: %s", exc)
        raise SystemExit(1) from exc

    log_path = configure_logging(log_dir=Path(settings.data_dir).expanduser())
    logger.info("Writing logs to %s", log_path)

    try:
        app = create_app(settings)
    except SettingsError as exc:
        logger.error("Backend %r is not usable: %s", settings.backend, exc)
        raise SystemExit(1) from exc

    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
