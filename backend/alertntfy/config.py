"""Application configuration."""

import socket
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

import httpx
import yaml
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from alertntfy.domain.errors import ConfigError
from alertntfy.services.expressions import Expression, StringSelector, compile_expression, parse_selector
from alertntfy.services.templating import Template, compile_template
from alertntfy.utils.durations import parse_duration


class Settings(BaseSettings):
    """Environment-driven settings layered over the YAML config files."""

    configs: str = "config.yml"
    log_level: str | None = None
    http_addr: str | None = None
    ntfy_baseurl: str | None = None
    ntfy_topic: str | None = None
    ntfy_priority: str | None = None
    ntfy_timeout: str | None = None

    model_config = SettingsConfigDict(
        env_prefix="ALERTNTFY_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    def config_paths(self) -> list[Path]:
        return [Path(p.strip()) for p in self.configs.split(",") if p.strip()]

    def overrides(self) -> dict[str, Any]:
        """Config keys set through the environment, as a nested mapping."""

        values: dict[str, Any] = {}
        if self.log_level:
            values.setdefault("log", {})["level"] = self.log_level
        if self.http_addr:
            values.setdefault("http", {})["addr"] = self.http_addr
        if self.ntfy_baseurl:
            values.setdefault("ntfy", {})["baseurl"] = self.ntfy_baseurl
        if self.ntfy_timeout:
            values.setdefault("ntfy", {})["timeout"] = self.ntfy_timeout
        if self.ntfy_topic:
            values.setdefault("ntfy", {}).setdefault("notification", {})["topic"] = self.ntfy_topic
        if self.ntfy_priority:
            values.setdefault("ntfy", {}).setdefault("notification", {})["priority"] = self.ntfy_priority
        return values


@lru_cache
def get_settings() -> Settings:
    """Cached settings accessor."""

    return Settings()


def default_topic() -> str:
    """alertmanager-ntfy-<hostname>, reduced to characters valid in a literal topic."""

    hostname = socket.gethostname() or "error"
    cleaned = "".join(c if c.isascii() and (c.isalnum() or c in "-_") else "-" for c in hostname)
    return f"alertmanager-ntfy-{cleaned}"[:64]


def _expression(value: Any) -> Any:
    if isinstance(value, str):
        return compile_expression(value)
    return value


def _template(value: Any) -> Any:
    if isinstance(value, str):
        return compile_template(value)
    return value


def _selector(value: Any) -> Any:
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        return parse_selector(str(value))
    return value


def _duration(value: Any) -> Any:
    return parse_duration(value)


CompiledExpression = Annotated[Expression, BeforeValidator(_expression)]
CompiledTemplate = Annotated[Template, BeforeValidator(_template)]
Selector = Annotated[StringSelector, BeforeValidator(_selector)]
Seconds = Annotated[float, BeforeValidator(_duration)]


class _Config(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", arbitrary_types_allowed=True)


class BasicAuth(_Config):
    username: str = ""
    password: str = ""

    @property
    def valid(self) -> bool:
        """Both username and password are set."""

        return bool(self.username and self.password)


class NtfyAuth(BasicAuth):
    token: str | None = None


class HTTPConfig(_Config):
    addr: str = ":8000"
    auth: BasicAuth | None = None

    def host_port(self) -> tuple[str, int]:
        host, _, port = self.addr.rpartition(":")
        try:
            return host.strip("[]") or "0.0.0.0", int(port)
        except ValueError as exc:
            raise ConfigError(f"invalid http addr {self.addr!r}") from exc


class TagRule(_Config):
    tag: str
    condition: CompiledExpression | None = None


class ActionRule(_Config):
    action: str = "view"
    label: str
    url: CompiledTemplate
    condition: CompiledExpression | None = None


class TemplatesConfig(_Config):
    title: CompiledTemplate = Field(default="{{ labels.alertname }}", validate_default=True)
    description: CompiledTemplate = Field(default="{{ annotations.description }}", validate_default=True)
    headers: dict[str, CompiledTemplate] = Field(default_factory=dict)
    actions: list[ActionRule] = Field(default_factory=list)
    labels: CompiledTemplate | None = None


class NotificationConfig(_Config):
    topic: Selector = Field(default_factory=lambda: parse_selector(default_topic()))
    priority: Selector | None = Field(default="default", validate_default=True)
    tags: list[TagRule] = Field(default_factory=list)
    convert_labels_to_tags: bool = True
    templates: TemplatesConfig = Field(default_factory=TemplatesConfig)

    @field_validator("priority", mode="before")
    @classmethod
    def blank_priority_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class NtfyConfig(_Config):
    model_config = ConfigDict(populate_by_name=True)

    baseurl: str = "https://ntfy.sh"
    timeout: Seconds = 10.0
    auth: NtfyAuth | None = None
    async_: bool = Field(default=False, alias="async")
    notification: NotificationConfig = Field(default_factory=NotificationConfig)
    update_existing_notification: bool = False
    clear_resolved_notification: bool = False
    clear_delay: Seconds = 0.0
    delete_resolved_notification: bool = False

    @field_validator("baseurl")
    @classmethod
    def validate_baseurl(cls, value: str) -> str:
        try:
            url = httpx.URL(value)
        except httpx.InvalidURL as exc:
            raise ConfigError(f"invalid ntfy base url {value!r}: {exc}") from exc
        if url.scheme not in ("http", "https") or not url.host:
            raise ConfigError(f"invalid ntfy base url {value!r}: expected http(s)://host[/path]")
        return value


class LogConfig(_Config):
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigError(f"unknown log level {value!r}")
        return level


class AppConfig(_Config):
    http: HTTPConfig = Field(default_factory=HTTPConfig)
    ntfy: NtfyConfig = Field(default_factory=NtfyConfig)
    log: LogConfig = Field(default_factory=LogConfig)


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"failed to load config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    return data


def build_config(raw: dict[str, Any]) -> AppConfig:
    """Validate and compile a raw config mapping. All expressions and templates compile here."""

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc


def load_config(settings: Settings | None = None) -> AppConfig:
    """Merge the YAML files in order, then the environment overrides."""

    settings = settings or get_settings()
    raw: dict[str, Any] = {}
    for path in settings.config_paths():
        raw = _merge(raw, _read_yaml(path))
    raw = _merge(raw, settings.overrides())
    return build_config(raw)
