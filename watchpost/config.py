"""Application settings loaded from a YAML file, overridable by environment variables."""

from __future__ import annotations

import os
import re
from datetime import timedelta
from pathlib import Path
from typing import Annotated, Any

import yaml
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError
from pydantic_core import PydanticUseDefault
from pydantic_settings import BaseSettings, SettingsConfigDict

from watchpost.errors import ConfigError
from watchpost.transport import RetryPolicy

DEFAULT_CONFIG_FILE = Path("config.yaml")

_DURATION_PART = r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)"
_DURATION_RE = re.compile(f"(?:{_DURATION_PART})+")
_DURATION_PART_RE = re.compile(_DURATION_PART)
_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: str) -> timedelta:
    """Parse a duration such as ``"500ms"``, ``"5m"`` or ``"1h30m"``."""
    text = value.strip()
    if text == "0":
        return timedelta(0)
    if not _DURATION_RE.fullmatch(text):
        msg = f"invalid duration '{value}' (use a format like '5m', '1h', '24h')"
        raise ValueError(msg)
    seconds = sum(
        float(number) * _UNIT_SECONDS[unit] for number, unit in _DURATION_PART_RE.findall(text)
    )
    return timedelta(seconds=seconds)


def _coerce_duration(value: Any) -> Any:
    if isinstance(value, str):
        if not value.strip():
            raise PydanticUseDefault
        return parse_duration(value)
    return value


Duration = Annotated[timedelta, BeforeValidator(_coerce_duration)]
OptionalDuration = Annotated[timedelta | None, BeforeValidator(_coerce_duration)]
PositiveDuration = Annotated[
    timedelta, BeforeValidator(_coerce_duration), Field(gt=timedelta(0))
]


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


# -- Sections ------------------------------------------------------------------


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class SchedulerConfig(_Section):
    # Default polling interval for tasks that don't set their own.
    interval: PositiveDuration = timedelta(minutes=5)


class TelnyxConfig(_Section):
    interval: OptionalDuration = None
    api_url: str = ""
    api_key: str = ""
    threshold: float = 0.0
    notification_cooldown: Duration = timedelta(hours=6)

    @property
    def enabled(self) -> bool:
        return bool(self.api_url and self.api_key)

    def get_interval(self, global_default: timedelta) -> timedelta:
        return self.interval or global_default


class RepositoryConfig(_Section):
    owner: str
    repo: str
    authors: list[str] = Field(default_factory=list)

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"


class GitHubConfig(_Section):
    interval: OptionalDuration = None
    token: str = ""
    stale_days: int = 4
    notification_cooldown: Duration = timedelta(hours=24)
    repositories: list[RepositoryConfig] = Field(default_factory=list)

    @property
    def enabled(self) -> bool:
        return bool(self.repositories)

    def get_interval(self, global_default: timedelta) -> timedelta:
        return self.interval or global_default

    def get_stale_threshold(self) -> timedelta:
        """Age after which a PR counts as stale. Non-positive values mean 4 days."""
        days = self.stale_days if self.stale_days > 0 else 4
        return timedelta(days=days)


class TasksConfig(_Section):
    telnyx: TelnyxConfig = Field(default_factory=TelnyxConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)


class NotifierConfig(_Section):
    # Apprise API (https://github.com/caronc/apprise-api)
    apprise_api_url: str = ""
    apprise_service_url: str = ""

    # Telegram
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""

    # Channel used when more than one is configured
    default_channel: str = ""

    def get_service_urls(self) -> list[str]:
        """Parse the comma-separated Apprise service URLs."""
        if not self.apprise_service_url.strip():
            return []
        return [url.strip() for url in self.apprise_service_url.split(",") if url.strip()]

    @property
    def apprise_enabled(self) -> bool:
        return bool(self.apprise_api_url and self.get_service_urls())

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    def enabled_channels(self) -> list[str]:
        """Names of the channels this configuration turns on, in registration order."""
        channels = []
        if self.apprise_enabled:
            channels.append("apprise")
        if self.telegram_enabled:
            channels.append("telegram")
        return channels


class HTTPConfig(_Section):
    timeout: PositiveDuration = timedelta(seconds=30)
    connect_timeout: PositiveDuration = timedelta(seconds=10)
    # Budget for one logical call, retries included.
    call_timeout: PositiveDuration = timedelta(seconds=30)
    max_retries: int = Field(default=3, ge=0)
    initial_backoff: PositiveDuration = timedelta(milliseconds=500)
    max_backoff: PositiveDuration = timedelta(seconds=10)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            initial_backoff=self.initial_backoff.total_seconds(),
            max_backoff=self.max_backoff.total_seconds(),
            multiplier=self.backoff_multiplier,
        )


# -- Settings ------------------------------------------------------------------


class Settings(BaseSettings):
    """watchpost configuration.

    Values come from the YAML config file; ``WATCHPOST_*`` environment
    variables (``__`` separates nested keys) take precedence.
    """

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    tasks: TasksConfig = Field(default_factory=TasksConfig)
    notifier: NotifierConfig = Field(default_factory=NotifierConfig)
    http: HTTPConfig = Field(default_factory=HTTPConfig)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_prefix="WATCHPOST_",
        env_nested_delimiter="__",
        env_file=_env_file(),
        env_file_encoding="utf-8",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        # File values arrive as init kwargs; the environment overrides them.
        return (env_settings, dotenv_settings, init_settings, file_secret_settings)

    def check(self) -> None:
        """Validate cross-field requirements. Raises ConfigError."""
        notifier = self.notifier
        if notifier.apprise_api_url and not notifier.get_service_urls():
            msg = "notifier.apprise_service_url is required when apprise_api_url is set"
            raise ConfigError(msg)
        if not notifier.apprise_enabled and not notifier.telegram_enabled:
            msg = (
                "no notification channel configured: set notifier.apprise_api_url and "
                "notifier.apprise_service_url, or notifier.telegram_bot_token and "
                "notifier.telegram_chat_id"
            )
            raise ConfigError(msg)
        enabled = notifier.enabled_channels()
        if notifier.default_channel and notifier.default_channel not in enabled:
            msg = (
                f"notifier.default_channel '{notifier.default_channel}' is not a configured "
                f"channel (configured: {', '.join(enabled)})"
            )
            raise ConfigError(msg)

        telnyx = self.tasks.telnyx
        if telnyx.api_url and not telnyx.api_key:
            msg = "tasks.telnyx.api_key is required when api_url is set"
            raise ConfigError(msg)

        for i, repo in enumerate(self.tasks.github.repositories):
            if not repo.owner:
                msg = f"tasks.github.repositories[{i}].owner is required"
                raise ConfigError(msg)
            if not repo.repo:
                msg = f"tasks.github.repositories[{i}].repo is required"
                raise ConfigError(msg)


def load_settings(config_file: str | Path | None = None) -> Settings:
    """Read and validate settings from a YAML file. Raises ConfigError."""
    path = Path(config_file) if config_file else DEFAULT_CONFIG_FILE
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        msg = f"config file not found: {path} (use --config or create config.yaml)"
        raise ConfigError(msg) from exc
    except yaml.YAMLError as exc:
        msg = f"could not parse {path}: {exc}"
        raise ConfigError(msg) from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        msg = f"{path} must contain a mapping at the top level"
        raise ConfigError(msg)

    try:
        settings = Settings(**raw)
    except ValidationError as exc:
        msg = f"invalid configuration in {path}: {exc}"
        raise ConfigError(msg) from exc

    settings.check()
    return settings
