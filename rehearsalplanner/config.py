"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import List, Literal, Sequence

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.clock import parse_end_time, parse_time_of_day
from .domain.models import DayWindow


class HoursConfig(BaseModel):
    """Bookable hours of the room."""
    open_time: str = "09:00"
    close_time: str = "24:00"
    granularity_minutes: int = 30

    @field_validator("open_time")
    @classmethod
    def validate_open_time(cls, value: str) -> str:
        """Ensure the opening time is a valid HH:MM."""
        parse_time_of_day(value)
        return value

    @field_validator("close_time")
    @classmethod
    def validate_close_time(cls, value: str) -> str:
        """Ensure the closing time is a valid HH:MM (24:00 allowed)."""
        parse_end_time(value)
        return value

    @field_validator("granularity_minutes")
    @classmethod
    def validate_granularity(cls, value: int) -> int:
        """Ensure the slot size divides the day."""
        if value <= 0 or 1440 % value:
            raise ValueError(f"granularity_minutes must divide 1440, got {value}")
        return value

    @model_validator(mode="after")
    def validate_window(self) -> "HoursConfig":
        """Ensure the configured window opens before it closes and sits on the grid."""
        self.to_day_window()
        return self

    def to_day_window(self) -> DayWindow:
        """Get the bookable hours as a domain ``DayWindow``."""
        return DayWindow(
            open_minute=parse_time_of_day(self.open_time),
            close_minute=parse_end_time(self.close_time),
            granularity=self.granularity_minutes,
        )


class StoreConfig(BaseModel):
    """Where reservations are kept."""
    backend: Literal["json", "rest"] = "json"
    path: Path = Path("reservations.json")
    url: str = ""
    api_key: str = ""
    table: str = "reservations"
    timeout_seconds: float = 10.0
    encode_midnight: bool = True  # write 24:00 as 23:59:59

    @model_validator(mode="after")
    def validate_rest_settings(self) -> "StoreConfig":
        """A hosted store needs its URL and key."""
        if self.backend == "rest" and not (self.url and self.api_key):
            raise ValueError("store.url and store.api_key are required for the rest backend")
        return self


class LimitsConfig(BaseModel):
    """Input limits for bookings made from the CLI."""
    max_owner_length: int = 8
    max_label_length: int = 16

    def check(self, owner: str, label: str) -> None:
        """
        Validate booking owner and label.

        Raises:
            ValueError: If either is empty or too long
        """
        if not owner.strip() or not label.strip():
            raise ValueError("Owner and label must not be empty.")
        if len(owner) > self.max_owner_length:
            raise ValueError(f"Owner may have at most {self.max_owner_length} characters.")
        if len(label) > self.max_label_length:
            raise ValueError(f"Label may have at most {self.max_label_length} characters.")


class Member(BaseModel):
    """Ensemble member configuration."""
    name: str  # Used as participant id
    parts: List[str] = Field(default_factory=list)  # Instruments / sessions


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "Asia/Seoul"
    hours: HoursConfig = Field(default_factory=HoursConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    members: List[Member] = Field(default_factory=list)
    write_attempts: int = 3

    @field_validator("write_attempts")
    @classmethod
    def validate_write_attempts(cls, value: int) -> int:
        """Ensure at least one write attempt is made."""
        if value < 1:
            raise ValueError("write_attempts must be at least 1")
        return value

    @field_validator("members")
    @classmethod
    def validate_members(cls, value: List[Member]) -> List[Member]:
        """Ensure member names are unique."""
        seen_names: set[str] = set()
        for member in value:
            name_key = member.name.lower()
            if name_key in seen_names:
                raise ValueError(f"Duplicate member name detected: {member.name}")
            seen_names.add(name_key)
        return value

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

        # Relative store paths are relative to the config file
        if config.store.backend == "json" and not config.store.path.is_absolute():
            config.store.path = config_path.parent / config.store.path

        return config

    def find_member(self, name: str) -> Member | None:
        """Find a member by name (case-insensitive)."""
        for member in self.members:
            if member.name.lower() == name.lower():
                return member
        return None

    def resolve_members(self, names: Sequence[str]) -> List[Member]:
        """
        Resolve member names, ensuring uniqueness.

        Raises:
            ValueError: If no names are given or any name is unknown
        """
        if not names:
            raise ValueError("No members provided.")

        resolved: List[Member] = []
        unknown: List[str] = []

        for name in names:
            member = self.find_member(name)
            if member is None:
                unknown.append(name)
                continue
            if member not in resolved:
                resolved.append(member)

        if unknown:
            missing = ", ".join(sorted(set(unknown)))
            raise ValueError(
                f"Unknown member(s): {missing}. "
                "Ensure they exist in the configuration."
            )

        return resolved


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
