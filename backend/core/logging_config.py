"""Central logging configuration for the oracle backend."""

import logging


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
ALERT_LOGGER_NAME = "chainvoice.alerts"


def setup_logging(level: int = logging.INFO) -> None:
    """Configure the root logger once for consistent application logs."""
    if logging.getLogger().handlers:
        return
    logging.basicConfig(level=level, format=LOG_FORMAT)


def get_logger(name: str) -> logging.Logger:
    """Create or retrieve a module logger."""
    return logging.getLogger(name)


def get_alert_logger() -> logging.Logger:
    """Logger for operator-visible alerts; records are emitted at CRITICAL."""
    return logging.getLogger(ALERT_LOGGER_NAME)
