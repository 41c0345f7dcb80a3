"""
Engine configuration for Skysale.

Defines pricing rules, auction timing, scheduler cadence and the weekly
auction calendar. Values can be overridden from a .env file, SKYSALE_*
environment variables or a JSON file.
"""

import json
import os
from dataclasses import dataclass, field, fields, replace
from datetime import timedelta
from pathlib import Path
from typing import List, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from skysale.core.errors import ConfigError

ENV_PREFIX = "SKYSALE_"


# =============================================================================
# Auction calendar
# =============================================================================


class ScheduleEntry(BaseModel):
    """One slot of the auction calendar."""

    model_config = ConfigDict(frozen=True)

    item_name: str = Field(min_length=1)
    target_week: int = Field(ge=1)
    starting_bid_cents: int = Field(gt=0)


# Deployed every 2 weeks from launch
AUCTION_SCHEDULE: List[ScheduleEntry] = [
    ScheduleEntry(item_name=name, target_week=week, starting_bid_cents=bid)
    for name, week, bid in [
        ("Earth", 2, 100_000),
        ("Sun", 4, 200_000),
        ("Moon", 6, 150_000),
        ("Mars", 8, 50_000),
        ("Jupiter", 10, 75_000),
        ("Venus", 12, 40_000),
        ("Saturn", 14, 60_000),
        ("Neptune", 16, 35_000),
        ("Uranus", 18, 30_000),
        ("Andromeda Galaxy", 20, 250_000),
        ("Milky Way", 22, 300_000),
        ("Orion Nebula", 24, 100_000),
        ("Crab Nebula", 26, 80_000),
        ("Ring Nebula", 28, 70_000),
        ("Horsehead Nebula", 30, 120_000),
        ("Eagle Nebula", 32, 90_000),
        ("Helix Nebula", 34, 85_000),
        ("Whirlpool Galaxy", 36, 150_000),
        ("Sombrero Galaxy", 38, 180_000),
        ("Triangulum Galaxy", 40, 200_000),
    ]
]


def load_schedule(path: Union[str, Path]) -> List[ScheduleEntry]:
    """
    Load an auction calendar from a JSON list of entries.

    Raises:
        ConfigError: if the file is unreadable or an entry is invalid
    """
    try:
        raw = json.loads(Path(path).read_text())
        entries = [ScheduleEntry.model_validate(e) for e in raw]
    except (OSError, ValueError, ValidationError) as e:
        raise ConfigError(f"Invalid auction schedule {path}: {e}") from e

    weeks = [e.target_week for e in entries]
    if len(weeks) != len(set(weeks)):
        raise ConfigError(f"Auction schedule {path} has more than one entry per week")
    return sorted(entries, key=lambda e: e.target_week)


# =============================================================================
# Engine config
# =============================================================================


@dataclass
class EngineConfig:
    """Engine-wide configuration parameters"""

    # Fixed-price sale
    base_price_per_point: str = "0.10"     # Dollars per score point
    phase_increase_percent: str = "7.5"    # Compounding step per phase
    price_batch_size: int = 500            # Rows per repricing write batch

    # Auction rules
    min_increment_rate: float = 0.05       # 5% of current bid...
    min_increment_floor_cents: int = 2500  # ...or $25, whichever is higher
    default_auction_days: int = 7
    extension_window: timedelta = timedelta(hours=1)   # Only auctions ending this soon
    recent_bid_window: timedelta = timedelta(minutes=5)
    extension_duration: timedelta = timedelta(hours=1)

    # Accounting
    creator_share: float = 0.70            # Remainder goes to the partner

    # Scheduler
    tick_interval: float = 60.0            # Seconds between tier/extension/finalize checks
    deployment_interval: float = 3600.0    # Seconds between deployment checks
    lease_ttl: float = 120.0               # Scheduler lease lifetime in seconds
    lease_name: str = "scheduler"

    # External calls
    mint_max_attempts: int = 3
    mint_backoff_base: float = 1.0         # Seconds, doubled per attempt

    # Paths
    db_path: Path = Path("data/skysale.db")
    log_dir: Path = Path("logs")

    schedule: List[ScheduleEntry] = field(default_factory=lambda: list(AUCTION_SCHEDULE))


class ConfigOverrides(BaseModel):
    """Validated subset of EngineConfig settable from env or file."""

    model_config = ConfigDict(extra="forbid")

    base_price_per_point: Optional[str] = Field(default=None, pattern=r"^\d+(\.\d+)?$")
    phase_increase_percent: Optional[str] = Field(default=None, pattern=r"^\d+(\.\d+)?$")
    price_batch_size: Optional[int] = Field(default=None, gt=0)
    min_increment_rate: Optional[float] = Field(default=None, ge=0, lt=1)
    min_increment_floor_cents: Optional[int] = Field(default=None, ge=0)
    default_auction_days: Optional[int] = Field(default=None, gt=0)
    extension_window_minutes: Optional[int] = Field(default=None, gt=0)
    recent_bid_window_minutes: Optional[int] = Field(default=None, gt=0)
    extension_duration_minutes: Optional[int] = Field(default=None, gt=0)
    creator_share: Optional[float] = Field(default=None, ge=0, le=1)
    tick_interval: Optional[float] = Field(default=None, gt=0)
    deployment_interval: Optional[float] = Field(default=None, gt=0)
    lease_ttl: Optional[float] = Field(default=None, gt=0)
    mint_max_attempts: Optional[int] = Field(default=None, ge=1)
    mint_backoff_base: Optional[float] = Field(default=None, ge=0)
    db_path: Optional[Path] = None
    log_dir: Optional[Path] = None
    schedule_file: Optional[Path] = None

    def apply(self, config: EngineConfig) -> EngineConfig:
        changes = {}
        config_fields = {f.name for f in fields(EngineConfig)}
        for key, value in self.model_dump(exclude_none=True).items():
            if key.endswith("_minutes"):
                changes[key[: -len("_minutes")]] = timedelta(minutes=value)
            elif key == "schedule_file":
                changes["schedule"] = load_schedule(value)
            elif key in config_fields:
                changes[key] = value
        return replace(config, **changes)


def _env_overrides() -> dict:
    names = ConfigOverrides.model_fields.keys()
    found = {}
    for name in names:
        value = os.environ.get(ENV_PREFIX + name.upper())
        if value is not None and value != "":
            found[name] = value
    return found


def load_config(
    config_path: Optional[str] = None,
    env_file: Optional[str] = None,
) -> EngineConfig:
    """
    Load configuration from defaults, .env / environment, then a JSON file.

    Args:
        config_path: Optional path to a JSON file of overrides
        env_file: Optional .env file; the default lookup is used if None

    Returns:
        EngineConfig instance

    Raises:
        ConfigError: on unknown keys or invalid values
    """
    load_dotenv(dotenv_path=env_file, override=False)

    raw = _env_overrides()
    if config_path:
        try:
            raw.update(json.loads(Path(config_path).read_text()))
        except (OSError, ValueError) as e:
            raise ConfigError(f"Cannot read config file {config_path}: {e}") from e

    try:
        overrides = ConfigOverrides.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    return overrides.apply(EngineConfig())
