from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import (
    DEFAULT_COLUMNS,
    DEFAULT_SECTION_MARKERS,
    DEFAULT_WEEKDAY_NAMES,
    ColumnSpec,
    DatabaseConfig,
    ImportConfig,
    Thresholds,
)

"""Config loader.

Responsibilities:
- Load YAML (default: config/import.yml)
- Validate against config_schema.json (jsonschema)
- Apply defaults for every omitted section
- Cross-field checks the schema cannot express (date/driver columns present,
  no duplicated field)
"""

__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "load_config",
    "build_config",
]

DEFAULT_CONFIG_PATH = Path("config/import.yml")
SCHEMA_PATH = Path(__file__).parent / "config_schema.json"

# パイプラインが必ず参照する列
_MANDATORY_FIELDS = ("date", "driver")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing / not valid JSON, or the config
            violates the schema (unknown keys, wrong types, ...).
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


def _build_columns(raw: list[dict[str, Any]] | None) -> tuple[ColumnSpec, ...]:
    if not raw:
        return DEFAULT_COLUMNS
    columns = tuple(
        ColumnSpec(
            field=c["field"],
            label=c["label"],
            synonyms=tuple(c["synonyms"]),
            required=bool(c.get("required", False)),
        )
        for c in raw
    )
    fields = [c.field for c in columns]
    duplicated = sorted({f for f in fields if fields.count(f) > 1})
    if duplicated:
        raise ConfigError(f"duplicated column fields: {duplicated}")
    missing = [f for f in _MANDATORY_FIELDS if f not in fields]
    if missing:
        raise ConfigError(f"columns must define: {missing}")
    return columns


def build_config(data: dict[str, Any]) -> ImportConfig:
    """Validate a parsed mapping and turn it into an ImportConfig."""
    _validate_config_schema(data)

    th_raw = data.get("thresholds") or {}
    defaults = Thresholds()
    thresholds = Thresholds(
        header_scan_rows=th_raw.get("header_scan_rows", defaults.header_scan_rows),
        min_header_matches=th_raw.get("min_header_matches", defaults.min_header_matches),
        max_blank_streak=th_raw.get("max_blank_streak", defaults.max_blank_streak),
    )

    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )

    markers = data.get("section_markers")
    weekdays = data.get("weekday_names")
    return ImportConfig(
        columns=_build_columns(data.get("columns")),
        thresholds=thresholds,
        section_markers=(
            tuple(m.strip().lower() for m in markers) if markers is not None else DEFAULT_SECTION_MARKERS
        ),
        weekday_names=(
            frozenset(w.strip().lower() for w in weekdays) if weekdays is not None else DEFAULT_WEEKDAY_NAMES
        ),
        skipped_log_directory=data.get("skipped_log_directory", "./logs"),
        database=db,
    )


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")
    return build_config(data)
