from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Config loader.

Responsibilities:
- Load YAML config (default ``config/formatter.yml``)
- Validate against the bundled ``config_schema.json``
- Apply defaults (max_rows_per_file=50, error_log_directory=./logs, table=processes)
"""

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "ConfigError",
    "DatabaseConfig",
    "StoreConfig",
    "FormatterConfig",
    "load_config",
]

DEFAULT_CONFIG_PATH = Path("config/formatter.yml")
SCHEMA_PATH = Path(__file__).with_name("config_schema.json")

DEFAULT_MAX_ROWS = 50
DEFAULT_TABLE = "processes"
DEFAULT_ERROR_LOG_DIR = "./logs"


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None

    @property
    def is_empty(self) -> bool:
        return not any([self.host, self.port, self.user, self.password, self.database, self.dsn])


@dataclass(frozen=True)
class StoreConfig:
    local_path: str
    table: str = DEFAULT_TABLE
    database: DatabaseConfig = field(default_factory=DatabaseConfig)


@dataclass(frozen=True)
class FormatterConfig:
    output_directory: str
    store: StoreConfig
    max_rows_per_file: int = DEFAULT_MAX_ROWS
    error_log_directory: str = DEFAULT_ERROR_LOG_DIR
    extra_common_words: tuple[str, ...] = ()


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against JSON schema.

    Raises:
        ConfigError: If the schema file is missing or not valid JSON, or if
            the config data violates the schema.
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


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> FormatterConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")

    _validate_config_schema(data)

    store_raw = data["store"]
    db_raw = store_raw.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    matching = data.get("matching") or {}
    return FormatterConfig(
        output_directory=data["output_directory"],
        store=StoreConfig(
            local_path=store_raw["local_path"],
            table=store_raw.get("table", DEFAULT_TABLE),
            database=db,
        ),
        max_rows_per_file=data.get("max_rows_per_file", DEFAULT_MAX_ROWS),
        error_log_directory=data.get("error_log_directory", DEFAULT_ERROR_LOG_DIR),
        extra_common_words=tuple(matching.get("extra_common_words") or ()),
    )
