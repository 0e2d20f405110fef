from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConnectionConfig(BaseModel):
    """A named connection: the adapter it uses plus adapter options."""

    adapter: str

    model_config = ConfigDict(extra="allow")

    def options(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class OrmConfig(BaseModel):
    """Initialization configuration.

    ``adapters`` maps adapter names to an adapter instance, an adapter class
    or a ``"module:Class"`` import path. The names ``memory``, ``sqlite`` and
    ``pandas`` resolve to the bundled adapters when not listed explicitly.
    ``log_level``, when set, is applied to the ``populus`` logger by
    :meth:`populus.Orm.initialize`; handlers are left to the application
    (see :func:`populus.configure_logging`).
    """

    adapters: Dict[str, Any] = Field(default_factory=dict)
    connections: Dict[str, ConnectionConfig] = Field(default_factory=dict)
    max_keys_per_batch: int = Field(default=1000, ge=1)
    log_level: Optional[str] = None

    model_config = ConfigDict(extra="ignore", arbitrary_types_allowed=True)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return value


def _deep_update(target: Dict[str, Any], updates: Mapping[str, Any]) -> Dict[str, Any]:
    for key, value in updates.items():
        if isinstance(value, Mapping) and isinstance(target.get(key), dict):
            _deep_update(target[key], value)
        else:
            target[key] = value
    return target


def _load_toml(path: Path | None) -> Dict[str, Any]:
    if path is None or not path.exists():
        return {}
    with path.open("rb") as f:
        data = tomllib.load(f)
    # allow either a top-level document or a [populus] table
    return data.get("populus", data)


def _parse_env_file(path: Path) -> Dict[str, str]:
    if not path.exists():
        return {}
    result: Dict[str, str] = {}
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        result[key.strip()] = value.strip()
    return result


def _extract_prefixed(source: Mapping[str, str], *, prefix: str = "POPULUS_", delimiter: str = "__") -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for key, value in source.items():
        if not key.startswith(prefix):
            continue
        path = key.removeprefix(prefix).split(delimiter)
        target = data
        for part in path[:-1]:
            target = target.setdefault(part.lower(), {})
        target[path[-1].lower()] = value
    return data


def load_config(
    *,
    config_path: Path | None = None,
    env_file: Path | None = None,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> OrmConfig:
    """Build an :class:`OrmConfig` from layered sources.

    Precedence, lowest first: TOML file, ``env_file``, environment variables
    prefixed with ``POPULUS_`` (``__`` separates nesting levels, e.g.
    ``POPULUS_CONNECTIONS__DEFAULT__ADAPTER=memory``), then ``overrides``.
    """
    if config_path is not None and not config_path.exists():
        raise FileNotFoundError(f"Config file not found at {config_path}")

    merged: Dict[str, Any] = {}
    _deep_update(merged, _load_toml(config_path))
    if env_file is not None:
        _deep_update(merged, _extract_prefixed(_parse_env_file(env_file)))
    _deep_update(merged, _extract_prefixed(dict(os.environ if environ is None else environ)))
    if overrides:
        _deep_update(merged, overrides)
    return OrmConfig.model_validate(merged)


__all__ = ["ConnectionConfig", "OrmConfig", "load_config"]
