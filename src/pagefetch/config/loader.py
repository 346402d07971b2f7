"""Configuration loading for pagefetch."""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_CONFIG_PATH = Path("config/default.yaml")
LOCAL_CONFIG_PATH = Path("config/local.yaml")

# Environment variables that override the merged YAML, keyed to `fetch` settings.
ENV_OVERRIDES: dict[str, str] = {
    "PROXY": "proxy",
    "CHROME": "chrome_endpoint",
}

FETCHER_KINDS = {"base", "direct", "chrome", "browser"}


class LoggingSettings(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="forbid")

    path: Path | None = None
    level: str = Field(default="info")

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        if not isinstance(value, str):
            raise TypeError("Logging level must be a string.")
        normalized = value.strip().lower()
        if normalized not in {"debug", "info", "warn", "warning", "error", "critical"}:
            raise ValueError(f"Unsupported logging level: {value!r}")
        return normalized


class FetchSettings(BaseModel):
    """Fetcher defaults shared by both strategies."""

    model_config = ConfigDict(extra="forbid")

    fetcher: str = Field(default="Base")
    proxy: str | None = None
    chrome_endpoint: str = Field(default="http://127.0.0.1:9222")
    http_timeout: float = Field(default=30.0, gt=0.0)
    navigation_timeout: float = Field(default=5.0, gt=0.0)
    scroll_grace_period: float = Field(default=3.0, ge=0.0)
    scroll_script: Path | None = None
    protocol_timeout: float | None = Field(default=None, gt=0.0)

    @field_validator("fetcher", mode="before")
    @classmethod
    def _normalize_fetcher(cls, value: Any) -> str:
        if value is None:
            return "Base"
        if not isinstance(value, str):
            raise TypeError("Fetcher must be a string.")
        if value.strip().lower() not in FETCHER_KINDS:
            raise ValueError(f"Unsupported fetcher: {value!r}")
        return value.strip()

    @field_validator("proxy", mode="before")
    @classmethod
    def _validate_proxy(cls, value: Any) -> str | None:
        if value is None:
            return None
        if not isinstance(value, str):
            raise TypeError("Proxy must be a URL string.")
        candidate = value.strip()
        if not candidate:
            return None
        parts = urlsplit(candidate)
        if not parts.scheme or not parts.netloc:
            raise ValueError(f"Proxy is not a valid URL: {value!r}")
        return candidate

    @field_validator("chrome_endpoint", mode="before")
    @classmethod
    def _normalize_endpoint(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("chrome_endpoint must be a non-empty URL string.")
        candidate = value.strip().rstrip("/")
        if "://" not in candidate:
            candidate = f"http://{candidate}"
        return candidate


class ConfigModel(BaseModel):
    """Root configuration model."""

    model_config = ConfigDict(extra="forbid")

    version: int = 1
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    fetch: FetchSettings = Field(default_factory=FetchSettings)


@dataclass(slots=True)
class Config:
    """Validated configuration with convenience helpers."""

    model: ConfigModel
    raw: Mapping[str, Any] = field(repr=False)
    loaded_from: tuple[str, ...] = field(default_factory=tuple, repr=False)

    @property
    def logging(self) -> LoggingSettings:
        """Return logging settings."""

        return self.model.logging

    @property
    def fetch(self) -> FetchSettings:
        """Return fetcher settings."""

        return self.model.fetch

    def model_dump(self) -> Mapping[str, Any]:
        """Expose the parsed configuration as a mapping."""

        return self.model.model_dump(mode="json")


def load_config(path: Path | None = None, *, environ: Mapping[str, str] | None = None) -> Config:
    """Load configuration from defaults/local overrides, or from an explicit config document.

    `PROXY` and `CHROME` in the environment take precedence over YAML values.
    """

    merged: dict[str, Any] = {}
    loaded_from: list[str] = []

    if path is not None:
        override_path = _resolve_path(path)
        if override_path is None or not override_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        merged = _merge_dicts(merged, _read_yaml(override_path))
        loaded_from.append(str(override_path))
    else:
        default_candidate = _resolve_path(DEFAULT_CONFIG_PATH)
        packaged_default = _resolve_packaged_path(DEFAULT_CONFIG_PATH)
        if default_candidate and default_candidate.exists():
            merged = _merge_dicts(merged, _read_yaml(default_candidate))
            loaded_from.append(str(default_candidate))
        elif packaged_default and packaged_default.exists():
            merged = _merge_dicts(merged, _read_yaml(packaged_default))
            loaded_from.append(str(packaged_default))
        else:
            packaged_payload = _read_packaged_yaml("pagefetch.config", "default.yaml")
            if packaged_payload is not None:
                merged = _merge_dicts(merged, packaged_payload)
                loaded_from.append("pagefetch.config:default.yaml")

        local_candidate = _resolve_path(LOCAL_CONFIG_PATH)
        if local_candidate and local_candidate.exists():
            merged = _merge_dicts(merged, _read_yaml(local_candidate))
            loaded_from.append(str(local_candidate))

    if not merged:
        raise FileNotFoundError("No configuration data could be loaded.")

    env_overrides = _env_overrides(os.environ if environ is None else environ)
    if env_overrides:
        merged = _merge_dicts(merged, {"fetch": env_overrides})
        loaded_from.append("environment")

    try:
        model = ConfigModel.model_validate(merged)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc

    return Config(model=model, raw=merged, loaded_from=tuple(loaded_from))


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for variable, key in ENV_OVERRIDES.items():
        value = environ.get(variable)
        if value:
            overrides[key] = value
    return overrides


def _resolve_path(path: Path) -> Path | None:
    """Resolve configuration paths relative to the current working directory."""

    if path is None:
        return None
    return path if path.is_absolute() else Path.cwd() / path


def _resolve_packaged_path(path: Path) -> Path | None:
    """Resolve paths embedded in packaged binaries (e.g., PyInstaller)."""

    base = getattr(sys, "_MEIPASS", None)
    if not base:
        return None
    return Path(base) / path


def _read_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML file into a dictionary."""

    content = path.read_text(encoding="utf-8")
    data = yaml.safe_load(content) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must define a mapping at the top level.")
    return data


def _read_packaged_yaml(package: str, name: str) -> dict[str, Any] | None:
    """Read YAML embedded in a Python package via importlib.resources."""

    try:
        content = resources.files(package).joinpath(name).read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    data = yaml.safe_load(content) or {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Packaged configuration {package}:{name} must define a mapping at the top level."
        )
    return data


def _merge_dicts(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge two dictionaries, with override values taking precedence."""

    result: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dicts(result[key], value)
        else:
            result[key] = value
    return result
