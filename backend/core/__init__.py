"""Core utilities for configuration, logging, storage and ledger access."""

from .config import AppSettings, load_settings
from .database_manager import DatabaseManager
from .ledger_client import LedgerClient
from .logging_config import get_alert_logger, get_logger, setup_logging

__all__ = [
    "AppSettings",
    "load_settings",
    "DatabaseManager",
    "LedgerClient",
    "get_alert_logger",
    "get_logger",
    "setup_logging",
]
