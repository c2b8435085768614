"""Logging setup shared by the API, integrations and Celery workers."""

from __future__ import annotations

import logging

from vibecode.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s | %(message)s"
ROOT_LOGGER = "vibecode"


def setup_logging(level: str | None = None) -> None:
    logging.basicConfig(format=LOG_FORMAT, level=(level or settings.LOG_LEVEL).upper())
    logging.getLogger(ROOT_LOGGER).setLevel((level or settings.LOG_LEVEL).upper())
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
