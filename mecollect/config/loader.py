from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Config loader.

Responsibilities:
- Load the YAML config (default ``config/mecollect.yml``)
- Validate it against the JSON schema shipped next to this module
- Apply defaults for optional keys
"""

SCHEMA_PATH = Path(__file__).parent / "config_schema.json"
DEFAULT_CONFIG_PATH = Path("config/mecollect.yml")

DEFAULT_EXTRA_BLANK_ROWS = 20
DEFAULT_TEMPLATE_ROWS = 50


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback; environment variables take precedence."""
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class ExportSettings:
    output_directory: str = "."
    extra_blank_rows: int = DEFAULT_EXTRA_BLANK_ROWS  # 想定外の行追加用の空行数
    template_rows: int = DEFAULT_TEMPLATE_ROWS


@dataclass(frozen=True)
class AppConfig:
    catalog: str
    cache_directory: str = ".mecollect/cache"
    logs_directory: str = "logs"
    export: ExportSettings = ExportSettings()
    database: DatabaseConfig = DatabaseConfig()


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


def load_config(path: Path) -> AppConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")

    _validate_config_schema(data)

    export_raw = data.get("export") or {}
    db_raw = data.get("database") or {}
    export = ExportSettings(
        output_directory=export_raw.get("output_directory", "."),
        extra_blank_rows=export_raw.get("extra_blank_rows", DEFAULT_EXTRA_BLANK_ROWS),
        template_rows=export_raw.get("template_rows", DEFAULT_TEMPLATE_ROWS),
    )
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    # 相対パスは設定ファイルの位置ではなくカレントディレクトリ基準
    return AppConfig(
        catalog=data["catalog"],
        cache_directory=data.get("cache_directory", ".mecollect/cache"),
        logs_directory=data.get("logs_directory", "logs"),
        export=export,
        database=db,
    )
