"""
Tests for centralized configuration module.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from unittest import mock

import pytest

from comms_inbox.core.config import (
    InboxSettings,
    get_settings,
    is_debug_enabled,
    reset_settings,
)


class TestInboxSettings:
    """Test InboxSettings class."""

    def test_default_values(self):
        """Test that default values are correct."""
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = InboxSettings()

            assert settings.log_level == "WARNING"
            assert settings.debug is False
            assert settings.log_json is False
            assert settings.db_path_override is None
            assert settings.sweep_interval_seconds == 60.0
            assert settings.operation_timeout_seconds == 10.0
            assert settings.max_concurrency == 64

    def test_log_level_case_insensitive(self):
        with mock.patch.dict(os.environ, {"COMMS_LOG_LEVEL": "debug"}, clear=True):
            settings = InboxSettings()
            assert settings.log_level == "DEBUG"
            assert settings.log_level_int == logging.DEBUG

    def test_debug_legacy_flag(self):
        """Test legacy COMMS_DEBUG flag enables debug mode."""
        with mock.patch.dict(os.environ, {"COMMS_DEBUG": "1"}, clear=True):
            settings = InboxSettings()
            assert settings.effective_log_level == "DEBUG"

    def test_debug_legacy_does_not_override_explicit_level(self):
        env = {"COMMS_LOG_LEVEL": "ERROR", "COMMS_DEBUG": "1"}
        with mock.patch.dict(os.environ, env, clear=True):
            settings = InboxSettings()
            assert settings.effective_log_level == "ERROR"

    def test_engine_tuning_from_env(self):
        env = {
            "COMMS_SWEEP_INTERVAL_SECONDS": "30",
            "COMMS_OPERATION_TIMEOUT_SECONDS": "2.5",
            "COMMS_MAX_CONCURRENCY": "8",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            settings = InboxSettings()
            assert settings.sweep_interval_seconds == 30.0
            assert settings.operation_timeout_seconds == 2.5
            assert settings.max_concurrency == 8

    @pytest.mark.parametrize(
        "name", ["COMMS_SWEEP_INTERVAL_SECONDS", "COMMS_OPERATION_TIMEOUT_SECONDS", "COMMS_MAX_CONCURRENCY"]
    )
    def test_non_positive_values_rejected(self, name):
        with mock.patch.dict(os.environ, {name: "0"}, clear=True):
            with pytest.raises(Exception):  # Pydantic validation error
                InboxSettings()

    def test_invalid_log_level_rejected(self):
        with mock.patch.dict(os.environ, {"COMMS_LOG_LEVEL": "INVALID"}, clear=True):
            with pytest.raises(Exception):
                InboxSettings()

    def test_data_paths(self):
        """Test data path properties return instance-local paths."""
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = InboxSettings()
            assert settings.cache_dir == settings.instance_root / "cache"
            assert settings.db_path == settings.instance_root / "cache" / "inbox.db"

    def test_db_path_override(self):
        with mock.patch.dict(os.environ, {"COMMS_DB_PATH": "/data/inbox.db"}, clear=True):
            settings = InboxSettings()
            assert settings.db_path == Path("/data/inbox.db")

    def test_instance_root_override(self):
        with mock.patch.dict(os.environ, {"COMMS_INSTANCE_ROOT": "/custom/root"}, clear=True):
            settings = InboxSettings()
            assert settings.db_path == Path("/custom/root/cache/inbox.db")


class TestSettingsSingleton:
    """Test singleton accessor functions."""

    def test_get_settings_returns_same_instance(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            assert get_settings() is get_settings()

    def test_reset_settings_clears_cache(self):
        with mock.patch.dict(os.environ, {"COMMS_LOG_LEVEL": "DEBUG"}, clear=True):
            settings1 = get_settings()
            assert settings1.log_level == "DEBUG"

        reset_settings()

        with mock.patch.dict(os.environ, {"COMMS_LOG_LEVEL": "ERROR"}, clear=True):
            settings2 = get_settings()
            assert settings2.log_level == "ERROR"
            assert settings1 is not settings2

    def test_is_debug_enabled(self):
        with mock.patch.dict(os.environ, {"COMMS_LOG_LEVEL": "DEBUG"}, clear=True):
            reset_settings()
            assert is_debug_enabled() is True

        with mock.patch.dict(os.environ, {"COMMS_LOG_LEVEL": "WARNING"}, clear=True):
            reset_settings()
            assert is_debug_enabled() is False
