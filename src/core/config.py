"""
Configuration management for the Marketplace Reconciliation Core.

This module handles loading and validating environment variables.
"""

import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

KNOWN_WINDOWS = ("today", "yesterday", "last7days", "last30days", "allTime")


def _float_env(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


class Config:
    """Configuration class with environment variables."""

    # Database
    DB_PATH: str = os.getenv("DB_PATH", "data/marketplace.db")

    # Change feed
    FEED_POLL_INTERVAL_SECONDS: float = _float_env("FEED_POLL_INTERVAL_SECONDS", 2.0)

    # Reporting
    DEFAULT_WINDOW: str = os.getenv("DEFAULT_WINDOW", "allTime")

    # Settlement
    SETTLEMENT_CREATED_BY: str = os.getenv("SETTLEMENT_CREATED_BY", "operator")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> None:
        """
        Validate that required configuration is present.

        Raises:
            ValueError: If required configuration is missing.
        """
        if not cls.DB_PATH:
            raise ValueError("DB_PATH must be configured")

        if cls.DEFAULT_WINDOW not in KNOWN_WINDOWS:
            print(
                f"WARNING: DEFAULT_WINDOW '{cls.DEFAULT_WINDOW}' is not one of "
                f"{', '.join(KNOWN_WINDOWS)} - falling back to allTime"
            )
            cls.DEFAULT_WINDOW = "allTime"
