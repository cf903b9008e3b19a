from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = ".libmedium"
DEFAULT_USER_AGENT = "libmedium/0.1"
_DATA_DIR_RELATIVE_DEFAULTS: tuple[tuple[str, Path], ...] = (("log_dir", Path("logs")),)
_PATH_FIELDS: tuple[str, ...] = (
    "data_dir",
    *(field_name for field_name, _ in _DATA_DIR_RELATIVE_DEFAULTS),
)
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = (
    "require_preview_image",
    "telemetry_enabled",
)
_URL_FIELDS: tuple[str, ...] = (
    "medium_graphql_url",
    "medium_asset_base_url",
    "gist_api_base_url",
)


def _default_in_data_dir(relative_path: Path) -> Path:
    return Path(DEFAULT_DATA_DIR) / relative_path


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
    Runtime configuration for the proxy.

    Every option is read from a `LIBMEDIUM_*` environment variable (or `.env`).
    """

    model_config = SettingsConfigDict(
        env_prefix="LIBMEDIUM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    data_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR),
        description="Root runtime directory; only logs are written here.",
    )
    log_dir: Path = Field(
        default=_default_in_data_dir(Path("logs")),
        description="Directory for JSON log files. Defaults to `${LIBMEDIUM_DATA_DIR}/logs`.",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level. File logs always capture DEBUG.",
    )

    # Upstream endpoints.
    medium_graphql_url: str = Field(
        default="https://medium.com/_/graphql",
        description="Medium GraphQL endpoint used for full and light post queries.",
    )
    medium_asset_base_url: str = Field(
        default="https://miro.medium.com",
        description="CDN origin proxied by /asset/medium/{name}.",
    )
    gist_api_base_url: str = Field(
        default="https://api.github.com",
        description="GitHub API origin used to resolve gist embeds.",
    )
    http_timeout_seconds: float = Field(
        default=15.0,
        description="Timeout applied to every upstream request. Timeouts fail the request.",
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="User-Agent header sent upstream.",
    )

    # Rendering.
    require_preview_image: bool = Field(
        default=False,
        description="Fail rendering with 502 when a post has no preview image.",
    )
    asset_cache_max_age_seconds: int = Field(
        default=60 * 60 * 24,
        description="max-age of the public, immutable Cache-Control sent with proxied assets.",
    )

    # Telemetry.
    telemetry_enabled: bool = Field(
        default=True,
        description="Emit structured telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description="Telemetry destination.",
    )

    @field_validator(*_URL_FIELDS, mode="before")
    @classmethod
    def _normalize_base_urls(cls, value: Any, info: ValidationInfo) -> str:
        env_name = f"LIBMEDIUM_{str(info.field_name).upper()}"
        if not isinstance(value, str):
            raise ValueError(f"{env_name} must be a string.")
        normalized = value.strip().rstrip("/")
        if not normalized.startswith(("http://", "https://")):
            raise ValueError(f"{env_name} must be an absolute http(s) URL.")
        return normalized

    @field_validator("user_agent", mode="before")
    @classmethod
    def _normalize_user_agent(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            return DEFAULT_USER_AGENT
        return value.strip()

    @field_validator("http_timeout_seconds")
    @classmethod
    def _clamp_timeout(cls, value: float) -> float:
        return max(1.0, value)

    @field_validator("asset_cache_max_age_seconds")
    @classmethod
    def _clamp_cache_age(cls, value: int) -> int:
        return max(0, value)

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


def load_settings() -> AppSettings:
    settings = AppSettings()
    settings = _apply_path_defaults(settings)
    return _resolve_path_fields(settings)
