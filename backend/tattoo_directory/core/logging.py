"""Structured JSON logging for the directory API.

Every record carries the ``request_id`` of the request it was emitted under
(``-`` outside a request) plus the service name and environment, so log lines
from the cache, the resolver and the ingest steps can be joined per request.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Any

from loguru import logger

request_id_ctx_var: ContextVar[str] = ContextVar("request_id", default="-")

# Libraries that log per statement or per connection at INFO.
_NOISY_LOGGERS = ("sqlalchemy.engine", "aiomysql")


def _with_request_id(record: dict[str, Any]) -> None:
    record["extra"]["request_id"] = request_id_ctx_var.get()


def setup_logging(
    level: str = "INFO", *, service: str = "tattoo-directory", env: str = "dev"
) -> None:
    """Replace loguru's default sink with one serialized stdout sink."""

    logging.basicConfig(level=logging.INFO)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.remove()
    logger.configure(
        patcher=_with_request_id,
        extra={"service": service, "env": env},
    )
    logger.add(
        sys.stdout,
        level=level,
        serialize=True,
        enqueue=True,
        backtrace=False,
        diagnose=False,
    )
