"""Tests for the war bot environment configuration."""

import os
from dataclasses import FrozenInstanceError
from datetime import time
from unittest.mock import patch

import pytest

from war_bot.config import WarBotSettings, env_bool, env_clock, env_int, env_int_list

REQUIRED_ENV = {
    "DISCORD_TOKEN": "token",
    "WAR_TABLE_NAME": "wars",
    "WAR_CHANNEL_ID": "123",
}


class TestEnvHelpers:
    """Test the small environment parsing helpers."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("1", True), ("YES", True), (" on ", True), ("0", False), ("off", False)],
    )
    def test_env_bool_values(self, raw, expected):
        with patch.dict(os.environ, {"FLAG": raw}):
            assert env_bool("FLAG") is expected

    def test_env_bool_unknown_falls_back_to_default(self):
        with patch.dict(os.environ, {"FLAG": "maybe"}):
            assert env_bool("FLAG", default=True) is True

    def test_env_int_invalid_uses_default(self):
        with patch.dict(os.environ, {"NUM": "abc"}):
            assert env_int("NUM", default=4) == 4

    def test_env_int_list_skips_junk(self):
        with patch.dict(os.environ, {"IDS": "1, 2,,x,3"}):
            assert env_int_list("IDS") == (1, 2, 3)

    def test_env_clock(self):
        with patch.dict(os.environ, {"START": "18:30", "BAD": "late"}):
            assert env_clock("START", default=time(17)) == time(18, 30)
            assert env_clock("BAD", default=time(17)) == time(17)


class TestWarBotSettings:
    """Test loading settings from the environment."""

    def test_missing_required_vars(self):
        with patch.dict(os.environ, {"DISCORD_TOKEN": "token"}, clear=True):
            with pytest.raises(RuntimeError) as excinfo:
                WarBotSettings.load()

        assert "WAR_CHANNEL_ID" in str(excinfo.value)
        assert "WAR_TABLE_NAME" in str(excinfo.value)

    def test_channel_id_must_be_numeric(self):
        env = {**REQUIRED_ENV, "WAR_CHANNEL_ID": "general"}
        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(RuntimeError):
                WarBotSettings.load()

    def test_defaults(self):
        with patch.dict(os.environ, REQUIRED_ENV, clear=True):
            settings = WarBotSettings.load()

        assert settings.war_channel_id == 123
        assert settings.aws_region == "us-east-1"
        assert settings.timezone == "America/New_York"
        assert settings.admin_role_ids == ()
        assert settings.dm_notifications is True
        assert settings.first_war_id == 1

    def test_optional_values(self):
        env = {
            **REQUIRED_ENV,
            "AWS_REGION": "eu-west-1",
            "WAR_GUILD_ID": "9",
            "RESULTS_CHANNEL_ID": "44",
            "WAR_ADMIN_ROLE_IDS": "5,6",
            "WAR_TIMEZONE": "America/Chicago",
            "WIZARD_WINDOW_DAYS": "7",
            "EVENING_WINDOW_START": "19:00",
            "WAR_FIRST_ID": "250",
            "WAR_DM_NOTIFICATIONS": "false",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = WarBotSettings.load()

        assert settings.aws_region == "eu-west-1"
        assert settings.guild_id == 9
        assert settings.results_channel_id == 44
        assert settings.admin_role_ids == (5, 6)
        assert settings.timezone == "America/Chicago"
        assert settings.wizard_window_days == 7
        assert settings.evening_window_start == time(19, 0)
        assert settings.first_war_id == 250
        assert settings.dm_notifications is False

    def test_frozen(self):
        with patch.dict(os.environ, REQUIRED_ENV, clear=True):
            settings = WarBotSettings.load()

        with pytest.raises(FrozenInstanceError):
            settings.table_name = "other"
