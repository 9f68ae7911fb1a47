"""Configuration loading utilities for YAML-based application settings."""

from dataclasses import dataclass
import json
import os
from pathlib import Path
from typing import Any, Optional

import yaml

from common.contract_abi import DEFAULT_LENDING_ABI

from .logging_config import get_logger


logger = get_logger(__name__)
_BASE_DIR = Path(__file__).resolve().parent.parent
_CONFIG_PATH = _BASE_DIR / "config.yml"


@dataclass(frozen=True)
class AppSettings:
    """Application settings loaded from YAML configuration file."""

    app_name: str
    debug: bool
    host: str
    port: int
    oracle_enabled: bool
    oracle_rpc_url: Optional[str]
    oracle_contract_address: Optional[str]
    oracle_contract_abi_json: str
    oracle_private_key: Optional[str]
    oracle_chain_id: int
    oracle_gas_limit: int
    oracle_gas_price_gwei: int
    oracle_poll_interval_sec: float
    oracle_request_timeout_sec: float
    oracle_confirmation_timeout_sec: float
    oracle_max_block_range: int
    oracle_start_block: Optional[int]
    oracle_resync_lookback_blocks: int
    oracle_submit_max_attempts: int
    oracle_backoff_base_sec: float
    oracle_backoff_max_sec: float
    oracle_shutdown_timeout_sec: float
    oracle_registry_error_policy: str
    oracle_reconcile_on_startup: bool
    database_url: str
    database_timeout_sec: float


def _to_bool(value: Any, default: bool = False) -> bool:
    """Convert value to bool with a default fallback."""
    try:
        if isinstance(value, bool):
            return value
        return value.strip().lower() in {"1", "true", "yes", "on"}
    except (AttributeError, ValueError):
        logger.warning("Invalid boolean value '%s'. Using default=%s", value, default)
        return default


def _to_int(value: Any, default: int) -> int:
    """Convert value to int with a default fallback."""
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid integer value '%s'. Using default=%s", value, default)
        return default


def _to_optional_int(value: Any) -> Optional[int]:
    """Convert value to int, keeping `None` for unset keys."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid integer value '%s'. Treating as unset.", value)
        return None


def _to_float(value: Any, default: float) -> float:
    """Convert value to float with a default fallback."""
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid float value '%s'. Using default=%s", value, default)
        return default


def _to_json_string(value: Any, default: str = "[]") -> str:
    """Convert value into JSON string for ABI compatibility."""
    try:
        if value is None:
            return default
        if isinstance(value, str):
            return value
        return json.dumps(value)
    except Exception:
        logger.exception("Failed to serialize value as JSON string.")
        return default


def _to_policy(value: Any) -> str:
    """Normalize the registry error policy, defaulting to fail-closed."""
    normalized = str(value or "reject").strip().lower()
    if normalized not in {"reject", "retry"}:
        logger.warning("Invalid registry_error_policy '%s'. Using default=reject", value)
        return "reject"
    return normalized


def _read_config(config_path: Path) -> dict:
    """Read and parse YAML configuration."""
    try:
        with config_path.open("r", encoding="utf-8") as config_file:
            config_data = yaml.safe_load(config_file) or {}
        logger.info("Configuration loaded from %s", config_path)
        return config_data
    except FileNotFoundError:
        logger.warning("Config file not found at %s. Falling back to defaults.", config_path)
        return {}
    except Exception:
        logger.exception("Failed to load config file from %s", config_path)
        return {}


def load_settings(config_path: Optional[Path] = None) -> AppSettings:
    """Load and validate application settings from `config.yml`.

    The signing key may be supplied through `ORACLE_PRIVATE_KEY` instead of
    the YAML file; the environment value wins when both are set.
    """
    config = _read_config(Path(config_path) if config_path else _CONFIG_PATH)
    app_cfg = config.get("app", {}) or {}
    oracle_cfg = config.get("oracle", {}) or {}
    database_cfg = config.get("database", {}) or {}

    return AppSettings(
        app_name=str(app_cfg.get("name", "ChainVoice Oracle")),
        debug=_to_bool(app_cfg.get("debug", False), False),
        host=str(app_cfg.get("host", "127.0.0.1")),
        port=_to_int(app_cfg.get("port", 3001), 3001),
        oracle_enabled=_to_bool(oracle_cfg.get("enabled", False), False),
        oracle_rpc_url=oracle_cfg.get("rpc_url"),
        oracle_contract_address=oracle_cfg.get("contract_address"),
        oracle_contract_abi_json=_to_json_string(
            oracle_cfg.get("contract_abi_json"),
            default=json.dumps(DEFAULT_LENDING_ABI),
        ),
        oracle_private_key=os.getenv("ORACLE_PRIVATE_KEY") or oracle_cfg.get("private_key"),
        oracle_chain_id=_to_int(oracle_cfg.get("chain_id", 31337), 31337),
        oracle_gas_limit=_to_int(oracle_cfg.get("gas_limit", 300000), 300000),
        oracle_gas_price_gwei=_to_int(oracle_cfg.get("gas_price_gwei", 2), 2),
        oracle_poll_interval_sec=_to_float(oracle_cfg.get("poll_interval_sec", 3), 3.0),
        oracle_request_timeout_sec=_to_float(oracle_cfg.get("request_timeout_sec", 10), 10.0),
        oracle_confirmation_timeout_sec=_to_float(oracle_cfg.get("confirmation_timeout_sec", 60), 60.0),
        oracle_max_block_range=max(1, _to_int(oracle_cfg.get("max_block_range", 1000), 1000)),
        oracle_start_block=_to_optional_int(oracle_cfg.get("start_block")),
        oracle_resync_lookback_blocks=max(0, _to_int(oracle_cfg.get("resync_lookback_blocks", 1000), 1000)),
        oracle_submit_max_attempts=max(1, _to_int(oracle_cfg.get("submit_max_attempts", 5), 5)),
        oracle_backoff_base_sec=_to_float(oracle_cfg.get("backoff_base_sec", 1.0), 1.0),
        oracle_backoff_max_sec=_to_float(oracle_cfg.get("backoff_max_sec", 30.0), 30.0),
        oracle_shutdown_timeout_sec=_to_float(oracle_cfg.get("shutdown_timeout_sec", 120), 120.0),
        oracle_registry_error_policy=_to_policy(oracle_cfg.get("registry_error_policy")),
        oracle_reconcile_on_startup=_to_bool(oracle_cfg.get("reconcile_on_startup", True), True),
        database_url=str(database_cfg.get("url", "sqlite:///chainvoice.db")),
        database_timeout_sec=_to_float(database_cfg.get("timeout_sec", 10), 10.0),
    )
