"""
Unit tests for configuration validation.
"""

import pytest

from src.core.config import Config


def test_unknown_default_window_falls_back_to_all_time(monkeypatch):
    monkeypatch.setattr(Config, "DEFAULT_WINDOW", "fortnight")

    Config.validate()

    assert Config.DEFAULT_WINDOW == "allTime"


def test_missing_db_path_rejected(monkeypatch):
    monkeypatch.setattr(Config, "DB_PATH", "")

    with pytest.raises(ValueError):
        Config.validate()
