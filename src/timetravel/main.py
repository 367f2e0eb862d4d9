#!/usr/bin/env python3
"""Run the timetravel HTTP server."""

from __future__ import annotations

import logging

import uvicorn

from timetravel.config import Settings
from timetravel.runtime import TimeTravel

logger = logging.getLogger(__name__)


def main() -> None:
    """Minimal timetravel server."""
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("connecting to %s", settings.database_url.split("@")[-1])

    app = TimeTravel.create_app("timetravel", db_url=settings.database_url)

    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
