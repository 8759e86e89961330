"""
Logging setup for the migration engine.

Every module logs through the shared loguru ``logger`` with structured keyword
context (``event_type=...``), which loguru keeps in ``record["extra"]``.
"""

import logging.handlers
import sys

from loguru import logger

from docmove.core.config import settings

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def setup_logging(config: dict | None = None) -> None:
    """
    Configure loguru sinks.

    Args:
        config: Logging configuration, defaults to ``settings.logging_config``.
    """
    config = config or settings.logging_config

    logger.remove()
    logger.configure(extra={"app_name": config["app_name"]})
    logger.add(
        sys.stderr,
        level=config["log_level"],
        format=TEXT_FORMAT,
        serialize=config["json_logs"],
        backtrace=False,
    )

    if config.get("enable_logstash") and config.get("syslog_host"):
        handler = logging.handlers.SysLogHandler(
            address=(config["syslog_host"], config["syslog_port"])
        )
        logger.add(handler, level=config["log_level"], serialize=True)


__all__ = ["logger", "setup_logging"]
