from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from sales_import.models.config_models import DatabaseConfig, ImportConfig

"""Config loader.

Responsibilities:
- Load YAML config (default ``config/import.yml``)
- Validate against the bundled JSON schema (``config_schema.json``)
- Apply defaults for every key that is left out
"""

__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "load_config",
]

DEFAULT_CONFIG_PATH = Path("config/import.yml")
SCHEMA_PATH = Path(__file__).with_name("config_schema.json")

_DEFAULTS = ImportConfig()


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing or unreadable, or the data violates it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping, got {type(data).__name__}")

    _validate_config_schema(data)

    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    return ImportConfig(
        batch_size=data.get("batch_size", _DEFAULTS.batch_size),
        batch_delay_seconds=float(data.get("batch_delay_seconds", _DEFAULTS.batch_delay_seconds)),
        batch_retries=data.get("batch_retries", _DEFAULTS.batch_retries),
        ledger_table=data.get("ledger_table", _DEFAULTS.ledger_table),
        dealer_table=data.get("dealer_table", _DEFAULTS.dealer_table),
        product_table=data.get("product_table", _DEFAULTS.product_table),
        error_log_dir=data.get("error_log_dir", _DEFAULTS.error_log_dir),
        database=db,
    )
