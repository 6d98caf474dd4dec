"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import List

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.intervals import parse_time
from .domain.models import WorkingHoursPolicy


class BusinessConfig(BaseModel):
    """Who we are and which clock we live on."""
    name: str = "My Business"
    timezone: str = "Europe/Madrid"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA name."""
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value


class BookingConfig(BaseModel):
    """Settings for the client booking flow."""
    window_days: int = 14
    slot_step_minutes: int = 30
    min_advance_minutes: int = 0
    read_retries: int = 2
    retry_backoff_seconds: float = 0.2

    @field_validator("slot_step_minutes")
    @classmethod
    def validate_step(cls, value: int) -> int:
        if value not in (15, 30, 60):
            raise ValueError(f"slot_step_minutes must be 15, 30, or 60, got {value}")
        return value

    @field_validator("window_days")
    @classmethod
    def validate_window(cls, value: int) -> int:
        if not 1 <= value <= 366:
            raise ValueError(f"window_days must be between 1 and 366, got {value}")
        return value

    @field_validator("min_advance_minutes", "read_retries")
    @classmethod
    def validate_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("value must not be negative")
        return value


class WorkingHoursConfig(BaseModel):
    """Default working hours, used to seed a fresh database."""
    open_time: str = "11:00"
    close_time: str = "21:00"
    break_start: str | None = "14:00"
    break_end: str | None = "15:00"
    closed_weekdays: List[int] = Field(default_factory=lambda: [0])  # Sunday

    @field_validator("closed_weekdays")
    @classmethod
    def validate_closed_weekdays(cls, value: List[int]) -> List[int]:
        """Ensure weekdays are in valid range and deduplicated."""
        invalid_days = [day for day in value if day not in range(7)]
        if invalid_days:
            raise ValueError(f"closed_weekdays must be between 0 (Sunday) and 6, got {invalid_days}")
        return sorted(set(value))

    @model_validator(mode="after")
    def validate_policy(self) -> "WorkingHoursConfig":
        """Ensure the hours describe a valid policy."""
        self.to_policy()
        return self

    def to_policy(self) -> WorkingHoursPolicy:
        """Build the domain policy from the configured strings."""
        return WorkingHoursPolicy(
            open_time=parse_time(self.open_time),
            close_time=parse_time(self.close_time),
            break_start=parse_time(self.break_start) if self.break_start else None,
            break_end=parse_time(self.break_end) if self.break_end else None,
            closed_weekdays=frozenset(self.closed_weekdays),
        )


class AppConfig(BaseModel):
    """Application configuration."""
    business: BusinessConfig = Field(default_factory=BusinessConfig)
    booking: BookingConfig = Field(default_factory=BookingConfig)
    working_hours: WorkingHoursConfig = Field(default_factory=WorkingHoursConfig)
    database_path: Path = Path("slotbook.db")

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        config = cls(**data)
        if not config.database_path.is_absolute():
            config.database_path = config_path.parent / config.database_path
        return config


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
