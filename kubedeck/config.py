from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal
from urllib.parse import urlparse

import yaml
from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = ".kubedeck"
CONFIG_FILE_ENV = "KUBEDECK_CONFIG_FILE"
_DATA_DIR_RELATIVE_DEFAULTS: tuple[tuple[str, Path], ...] = (
    ("state_db_path", Path("state.db")),
    ("download_dir", Path("downloads")),
    ("log_dir", Path("logs")),
)
_PATH_FIELDS: tuple[str, ...] = (
    "data_dir",
    *(field_name for field_name, _ in _DATA_DIR_RELATIVE_DEFAULTS),
)
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = (
    "telemetry_enabled",
    "auto_refresh_enabled",
)


def _default_in_data_dir(relative_path: Path) -> Path:
    return Path(DEFAULT_DATA_DIR) / relative_path


def _data_dir_default_note(relative_path: Path) -> str:
    return f"Defaults to `${{KUBEDECK_DATA_DIR}}/{relative_path}` when not explicitly set."


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


def _parse_bool_with_default(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value == 1:
            return True
        if value == 0:
            return False
        return default
    if not isinstance(value, str):
        return default

    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


class AppSettings(BaseSettings):
    """
    Canonical runtime configuration.

    Every option is read from `KUBEDECK_*` environment variables (or `.env`),
    optionally seeded from a YAML file passed to `load_settings`.
    """

    model_config = SettingsConfigDict(
        env_prefix="KUBEDECK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Backend API.
    api_base_url: str = Field(
        default="http://localhost:8080/api",
        description="Base URL every gateway request path is resolved against.",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=600,
        description="Transport timeout ceiling; slower calls are classified as network errors.",
    )
    login_path: str = Field(
        default="/login",
        description="Login surface the session-expired side effect points at.",
    )

    # Local state.
    data_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR),
        description="Root directory for durable client state, downloads, and logs.",
    )
    state_db_path: Path = Field(
        default=_default_in_data_dir(Path("state.db")),
        description=f"SQLite file backing durable storage. {_data_dir_default_note(Path('state.db'))}",
    )
    download_dir: Path = Field(
        default=_default_in_data_dir(Path("downloads")),
        description=f"Target directory for file downloads. {_data_dir_default_note(Path('downloads'))}",
    )
    log_dir: Path = Field(
        default=_default_in_data_dir(Path("logs")),
        description=f"Directory for log files. {_data_dir_default_note(Path('logs'))}",
    )

    # Observability.
    log_level: str = Field(
        default="INFO",
        description="Console log level; the file handler always records DEBUG.",
    )
    telemetry_enabled: bool = Field(
        default=False,
        description="Emit sanitized telemetry events for gateway and store activity.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description="Telemetry destination: `none` or structured `log` output.",
    )

    # Store behaviour.
    default_namespace: str = Field(
        default="default",
        description="Namespace used when no active connection provides one.",
    )
    default_page_size: int = Field(
        default=20,
        ge=1,
        le=500,
        description="Initial page size for paginated resource lists.",
    )
    auto_refresh_enabled: bool = Field(
        default=True,
        description="Start the periodic refetch loop together with the store.",
    )
    refresh_interval_seconds: int = Field(
        default=30,
        ge=5,
        le=3600,
        description="Cadence of the automatic refetch loop.",
    )
    privileged_role: str = Field(
        default="admin",
        description="Role claim that passes every local role gate.",
    )

    @field_validator("api_base_url", mode="before")
    @classmethod
    def _normalize_api_base_url(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("KUBEDECK_API_BASE_URL must be a string.")
        normalized = value.strip().rstrip("/")
        parsed = urlparse(normalized)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError("KUBEDECK_API_BASE_URL must be an absolute http/https URL.")
        return normalized

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("KUBEDECK_TELEMETRY_SINK must be a string.")
        normalized = value.strip().lower()
        if normalized in {"none", "log"}:
            return normalized
        raise ValueError("KUBEDECK_TELEMETRY_SINK must be set to: none, log.")

    @field_validator("default_namespace", "privileged_role", "login_path", mode="before")
    @classmethod
    def _normalize_required_text(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("value must be a non-empty string.")
        return value.strip()

    @field_validator(*_PATH_FIELDS, mode="before")
    @classmethod
    def _normalize_paths(cls, value: Any) -> Any:
        if value is None:
            return None
        return _resolve_path(value)

    @field_validator(*_BOOLEAN_COERCION_FIELDS, mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any, info: ValidationInfo) -> bool:
        field_name = info.field_name
        assert field_name is not None
        default_value = cls.model_fields[field_name].default
        assert isinstance(default_value, bool)
        return _parse_bool_with_default(value, default=default_value)


def _apply_path_defaults(settings: AppSettings) -> AppSettings:
    updates: dict[str, Path] = {}
    for field_name, relative_default in _DATA_DIR_RELATIVE_DEFAULTS:
        if field_name in settings.model_fields_set:
            continue
        updates[field_name] = settings.data_dir / relative_default
    if not updates:
        return settings
    return settings.model_copy(update=updates)


def _resolve_path_fields(settings: AppSettings) -> AppSettings:
    resolved_updates = {
        field_name: _resolve_path(getattr(settings, field_name))
        for field_name in _PATH_FIELDS
    }
    return settings.model_copy(update=resolved_updates)


def _load_yaml_overrides(config_file: Path) -> dict[str, Any]:
    if not config_file.is_file():
        return {}
    try:
        data = yaml.safe_load(config_file.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in config file {config_file}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_file} must contain a mapping at the top level.")
    return {str(key): value for key, value in data.items()}


def load_settings(*, config_file: Path | None = None) -> AppSettings:
    if config_file is None:
        configured = os.environ.get(CONFIG_FILE_ENV, "").strip()
        if configured:
            config_file = Path(configured).expanduser()

    overrides = _load_yaml_overrides(config_file) if config_file is not None else {}
    # Explicit env vars still beat file values for the same option.
    for field_name in list(overrides):
        if f"KUBEDECK_{field_name.upper()}" in os.environ:
            overrides.pop(field_name)

    settings = AppSettings(**overrides)
    settings = _apply_path_defaults(settings)
    settings = _resolve_path_fields(settings)
    return settings
