from pathlib import Path
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from mnemo.application.scheduler import FailurePolicy, SchedulerOptions
from mnemo.domain.constants import (
    DEFAULT_DAILY_GOAL,
    DEFAULT_HINT_DIFFICULTY,
    DEFAULT_INTERVAL_MODIFIER,
    DEFAULT_MAX_INTERVAL,
    DEFAULT_MIN_INTERVAL,
    DEFAULT_SESSION_IDLE_MINUTES,
    DEFAULT_SESSION_LIMIT,
    DEFAULT_TIMEZONE,
)


def config_files() -> list[Path]:
    return [
        Path.home() / ".config/mnemo/config.toml",
        Path.home() / ".mnemo.toml",
    ]


class AppConfig(BaseSettings):
    """
    Configuration model for mnemo.
    Supports loading from:
    1. Environment variables (MNEMO_*)
    2. Config file (~/.config/mnemo/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="MNEMO_",
        extra="ignore",
    )

    # Storage
    backend: Literal["sqlite", "memory"] = "sqlite"
    database_path: Path = Field(
        default_factory=lambda: Path.home() / ".config/mnemo/mnemo.db", validate_default=True
    )

    # Scheduling
    min_interval: int = Field(default=DEFAULT_MIN_INTERVAL, ge=1)
    max_interval: int = Field(default=DEFAULT_MAX_INTERVAL, ge=1)
    interval_modifier: float = Field(default=DEFAULT_INTERVAL_MODIFIER, gt=0)
    fuzzing: bool = True
    failure_policy: FailurePolicy = FailurePolicy.PENALIZE

    # Sessions
    session_limit: int = Field(default=DEFAULT_SESSION_LIMIT, ge=1)
    hint_difficulty: float = Field(default=DEFAULT_HINT_DIFFICULTY, ge=0.0, le=1.0)
    session_idle_minutes: int = Field(default=DEFAULT_SESSION_IDLE_MINUTES, ge=1)

    # Streaks
    timezone: str = DEFAULT_TIMEZONE
    daily_goal: int = Field(default=DEFAULT_DAILY_GOAL, ge=1)

    # Host defaults
    default_user: str = "local"
    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # Find the first existing file
        toml_file = None
        for f in config_files():
            if f.exists():
                toml_file = f
                break

        # Earlier sources win: CLI overrides, then env, then the TOML file.
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (
            init_settings,
            env_settings,
        )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @field_validator("database_path", mode="before")
    @classmethod
    def resolve_database_path(cls, v: Any) -> Path:
        return Path(v).expanduser().resolve()

    @model_validator(mode="after")
    def check_interval_bounds(self) -> "AppConfig":
        if self.min_interval > self.max_interval:
            raise ValueError(
                f"min_interval ({self.min_interval}) exceeds max_interval ({self.max_interval})"
            )
        return self

    def scheduler_options(self) -> SchedulerOptions:
        return SchedulerOptions(
            min_interval=self.min_interval,
            max_interval=self.max_interval,
            interval_modifier=self.interval_modifier,
            fuzzing=self.fuzzing,
            failure_policy=self.failure_policy,
        )


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/mnemo/config.toml (if exists)
    3. Environment variables (MNEMO_*)
    4. cli_overrides (passed from Typer), None values ignored
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
