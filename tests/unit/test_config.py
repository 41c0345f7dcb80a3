"""
Unit tests for configuration loading and the auction calendar.
"""

import json
import os
from datetime import timedelta
from decimal import Decimal

import pytest

from skysale.core.config import (
    AUCTION_SCHEDULE,
    EngineConfig,
    ScheduleEntry,
    load_config,
    load_schedule,
)
from skysale.core.errors import ConfigError


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No SKYSALE_* variables and no stray .env lookup."""
    for key in list(os.environ):
        if key.startswith("SKYSALE_"):
            monkeypatch.delenv(key)
    env_file = tmp_path / "empty.env"
    env_file.write_text("")
    return env_file


class TestDefaults:
    """Tests for built-in defaults."""

    def test_engine_defaults(self):
        config = EngineConfig()
        assert Decimal(config.base_price_per_point) == Decimal("0.10")
        assert Decimal(config.phase_increase_percent) == Decimal("7.5")
        assert config.min_increment_floor_cents == 2500
        assert config.extension_window == timedelta(hours=1)
        assert config.recent_bid_window == timedelta(minutes=5)
        assert config.creator_share == 0.70

    def test_default_schedule(self):
        """Twenty slots, every other week from week 2 to week 40."""
        assert len(AUCTION_SCHEDULE) == 20
        assert AUCTION_SCHEDULE[0].item_name == "Earth"
        assert AUCTION_SCHEDULE[0].target_week == 2
        assert AUCTION_SCHEDULE[-1].target_week == 40
        assert len({e.target_week for e in AUCTION_SCHEDULE}) == 20


class TestLoadConfig:
    """Tests for env and file overrides."""

    def test_no_overrides(self, clean_env):
        config = load_config(env_file=str(clean_env))
        assert config.tick_interval == 60.0

    def test_env_override(self, clean_env, monkeypatch):
        monkeypatch.setenv("SKYSALE_TICK_INTERVAL", "15")
        monkeypatch.setenv("SKYSALE_EXTENSION_WINDOW_MINUTES", "30")
        config = load_config(env_file=str(clean_env))
        assert config.tick_interval == 15.0
        assert config.extension_window == timedelta(minutes=30)

    def test_dotenv_file(self, clean_env, monkeypatch, tmp_path):
        """Values in a .env file are picked up."""
        # Registered so the variable loaded from the file is removed afterwards
        monkeypatch.setenv("SKYSALE_MINT_MAX_ATTEMPTS", "1")
        monkeypatch.delenv("SKYSALE_MINT_MAX_ATTEMPTS")

        env_file = tmp_path / ".env"
        env_file.write_text("SKYSALE_MINT_MAX_ATTEMPTS=5\n")
        config = load_config(env_file=str(env_file))
        assert config.mint_max_attempts == 5

    def test_json_file_override(self, clean_env, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"creator_share": 0.6, "default_auction_days": 3}))
        config = load_config(str(path), env_file=str(clean_env))
        assert config.creator_share == 0.6
        assert config.default_auction_days == 3

    def test_invalid_value_rejected(self, clean_env, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"creator_share": 1.5}))
        with pytest.raises(ConfigError):
            load_config(str(path), env_file=str(clean_env))

    def test_unknown_key_rejected(self, clean_env, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"no_such_setting": 1}))
        with pytest.raises(ConfigError):
            load_config(str(path), env_file=str(clean_env))

    def test_unreadable_file(self, clean_env, tmp_path):
        with pytest.raises(ConfigError):
            load_config(str(tmp_path / "missing.json"), env_file=str(clean_env))


class TestSchedule:
    """Tests for custom auction calendars."""

    def test_load_sorted(self, tmp_path):
        path = tmp_path / "schedule.json"
        path.write_text(json.dumps([
            {"item_name": "Pluto", "target_week": 5, "starting_bid_cents": 1000},
            {"item_name": "Ceres", "target_week": 3, "starting_bid_cents": 500},
        ]))
        entries = load_schedule(path)
        assert [e.item_name for e in entries] == ["Ceres", "Pluto"]

    def test_schedule_file_via_config(self, clean_env, tmp_path):
        schedule = tmp_path / "schedule.json"
        schedule.write_text(json.dumps([
            {"item_name": "Pluto", "target_week": 1, "starting_bid_cents": 1000},
        ]))
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"schedule_file": str(schedule)}))
        config = load_config(str(path), env_file=str(clean_env))
        assert config.schedule == [ScheduleEntry(item_name="Pluto", target_week=1, starting_bid_cents=1000)]

    def test_duplicate_week_rejected(self, tmp_path):
        path = tmp_path / "schedule.json"
        path.write_text(json.dumps([
            {"item_name": "A", "target_week": 2, "starting_bid_cents": 100},
            {"item_name": "B", "target_week": 2, "starting_bid_cents": 100},
        ]))
        with pytest.raises(ConfigError):
            load_schedule(path)

    def test_invalid_entry_rejected(self, tmp_path):
        path = tmp_path / "schedule.json"
        path.write_text(json.dumps([{"item_name": "", "target_week": 0, "starting_bid_cents": 100}]))
        with pytest.raises(ConfigError):
            load_schedule(path)
