"""Configuration loader that parses and validates user-provided TOML."""

from __future__ import annotations

import math
import tomllib
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, List

from .datatypes import (
    AppConfig,
    FeedConfig,
    PipelineConfig,
    RulesConfig,
    StoreConfig,
    WhitelistEntry,
)


class ConfigError(ValueError):
    """Raised when the configuration file is malformed or fails validation."""


def _coerce_bool(value: Any, dotted_key: str) -> bool:
    """Return a bool, coercing simple 0/1 representations when necessary."""

    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"0", "1"}:
            return normalized == "1"
        if normalized in {"true", "false"}:
            return normalized == "true"
    raise ConfigError(f"{dotted_key} must be a boolean (use true/false).")


def _coerce_str_list(value: Any, dotted_key: str) -> List[str]:
    """Return a list of strings, accepting a comma-separated string as shorthand."""

    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        result: List[str] = []
        for item in value:
            if not isinstance(item, str):
                raise ConfigError(f"{dotted_key} must contain only strings")
            result.append(item)
        return result
    raise ConfigError(f"{dotted_key} must be a list of strings")


def _sanitize_section(raw: dict[str, Any], name: str, cls):
    """
    Coerce a raw TOML table into an instance of ``cls`` with cleaned booleans.

    Parameters:
        raw (dict[str, Any]): Raw TOML section data.
        name (str): Section name used when reporting validation errors.
        cls: Dataclass type used to construct the section object.

    Returns:
        Any: Instantiated dataclass populated with values from ``raw``.

    Raises:
        ConfigError: If the section is not a table or contains invalid keys or values.
    """
    if not isinstance(raw, dict):
        raise ConfigError(f"[{name}] must be a table")
    cleaned: Dict[str, Any] = {}
    cls_fields = {field.name: field for field in fields(cls)}
    bool_fields = {name for name, field in cls_fields.items() if field.type in (bool, "bool")}
    list_fields = {
        name for name, field in cls_fields.items() if str(field.type).startswith(("List[str]", "typing.List[str]"))
    }
    for key, value in raw.items():
        if key in bool_fields:
            cleaned[key] = _coerce_bool(value, f"{name}.{key}")
        elif key in list_fields:
            cleaned[key] = _coerce_str_list(value, f"{name}.{key}")
        else:
            cleaned[key] = value
    try:
        return cls(**cleaned)
    except TypeError as exc:
        raise ConfigError(f"Invalid keys in [{name}]: {exc}") from exc


def _normalize_float(value: Any, dotted_key: str) -> float:
    """Return ``value`` as a finite float, raising ConfigError otherwise."""

    if isinstance(value, bool):
        raise ConfigError(f"{dotted_key} must be a number")
    try:
        numeric = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{dotted_key} must be a number") from exc
    if not math.isfinite(numeric):
        raise ConfigError(f"{dotted_key} must be a finite number")
    return numeric


def _normalize_int(value: Any, dotted_key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{dotted_key} must be an integer")
    return int(value)


def _load_whitelist(raw: Any) -> List[WhitelistEntry]:
    """Build whitelist entries from the ``[[whitelist]]`` array of tables."""

    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError("[[whitelist]] must be an array of tables")
    entries: List[WhitelistEntry] = []
    for index, item in enumerate(raw):
        label = f"whitelist.{index}"
        entry = _sanitize_section(item, label, WhitelistEntry)
        if not isinstance(entry.title, str) or not entry.title.strip():
            raise ConfigError(f"{label}.title must be a non-empty string")
        entry.title = entry.title.strip()
        if not entry.id:
            entry.id = index + 1
        if entry.external_id is not None:
            entry.external_id = _normalize_int(entry.external_id, f"{label}.external_id")
        for key in ("keywords", "exclude_keywords", "quality", "preferred_group"):
            value = getattr(entry, key)
            if not isinstance(value, str):
                raise ConfigError(f"{label}.{key} must be a string")
        entries.append(entry)
    return entries


def _validate(app: AppConfig) -> None:
    rules = app.rules
    rules.relations_refresh_hours = _normalize_float(
        rules.relations_refresh_hours, "rules.relations_refresh_hours"
    )
    if rules.relations_refresh_hours <= 0:
        raise ConfigError("rules.relations_refresh_hours must be > 0")
    rules.overrides_refresh_hours = _normalize_float(
        rules.overrides_refresh_hours, "rules.overrides_refresh_hours"
    )
    if rules.overrides_refresh_hours <= 0:
        raise ConfigError("rules.overrides_refresh_hours must be > 0")
    if not str(rules.cache_dir).strip():
        raise ConfigError("rules.cache_dir must be set")

    feed = app.feed
    feed.retries = _normalize_int(feed.retries, "feed.retries")
    if feed.retries < 0:
        raise ConfigError("feed.retries must be >= 0")
    feed.backoff_seconds = _normalize_float(feed.backoff_seconds, "feed.backoff_seconds")
    if feed.backoff_seconds < 0:
        raise ConfigError("feed.backoff_seconds must be >= 0")
    feed.timeout_seconds = _normalize_float(feed.timeout_seconds, "feed.timeout_seconds")
    if feed.timeout_seconds <= 0:
        raise ConfigError("feed.timeout_seconds must be > 0")

    padding = _normalize_int(app.pipeline.episode_padding, "pipeline.episode_padding")
    if padding < 1 or padding > 4:
        raise ConfigError("pipeline.episode_padding must be between 1 and 4")

    if not str(app.store.path).strip():
        raise ConfigError("store.path must be set")


def load_config(path: str | Path | None) -> AppConfig:
    """
    Load and validate an application configuration from a TOML file.

    A ``None`` path yields the all-defaults configuration. Reads the file as UTF-8
    TOML (BOM is accepted), coerces every section into its dataclass and validates
    numeric ranges.

    Raises:
        ConfigError: If the file is not UTF-8, TOML parsing fails, or any validation rule is violated.
    """

    if path is None:
        return AppConfig()

    with open(path, "rb") as handle:
        raw_bytes = handle.read()
    if raw_bytes.startswith(b"\xef\xbb\xbf"):
        raw_bytes = raw_bytes[3:]
    try:
        raw = tomllib.loads(raw_bytes.decode("utf-8"))
    except UnicodeDecodeError as exc:
        raise ConfigError("Configuration file must be UTF-8 encoded") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse TOML: {exc}") from exc

    unknown = set(raw) - {"pipeline", "rules", "feed", "store", "whitelist"}
    if unknown:
        raise ConfigError(f"Unknown sections: {', '.join(sorted(unknown))}")

    app = AppConfig(
        pipeline=_sanitize_section(raw.get("pipeline", {}), "pipeline", PipelineConfig),
        rules=_sanitize_section(raw.get("rules", {}), "rules", RulesConfig),
        feed=_sanitize_section(raw.get("feed", {}), "feed", FeedConfig),
        store=_sanitize_section(raw.get("store", {}), "store", StoreConfig),
        whitelist=_load_whitelist(raw.get("whitelist")),
    )
    _validate(app)
    return app
