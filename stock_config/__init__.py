"""
stock_config -- single public entrypoint for runtime settings.

Responsibility:
    ``get_active_settings()`` is the one place that reads the settings file
    location and the database URL override from the environment.  Everything
    else receives a ``StockSettings`` object (or plain values taken from it).

Environment:
    STOCK_SETTINGS_FILE   path of a YAML settings file (optional)
    STOCK_DATABASE_URL    overrides ``database_url`` from the file/defaults

Failure modes:
    - ``FileNotFoundError`` if STOCK_SETTINGS_FILE points nowhere.
    - ``ConfigurationError`` on invalid values.
"""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path

from stock_config.loader import load_settings, parse_settings
from stock_config.schema import (
    NotificationSettings,
    ReturnPolicySettings,
    SmtpSettings,
    StockSettings,
    SweepSettings,
)
from stock_kernel.logging_config import get_logger

logger = get_logger("config")

SETTINGS_FILE_ENV = "STOCK_SETTINGS_FILE"
DATABASE_URL_ENV = "STOCK_DATABASE_URL"


def get_active_settings(path: Path | None = None) -> StockSettings:
    """
    Resolve the settings in effect for this process.

    Args:
        path: Explicit settings file.  Falls back to STOCK_SETTINGS_FILE,
            then to built-in defaults.
    """
    path = path or os.environ.get(SETTINGS_FILE_ENV)
    settings = load_settings(Path(path)) if path else StockSettings()

    override = os.environ.get(DATABASE_URL_ENV)
    if override:
        settings = dataclasses.replace(settings, database_url=override)

    logger.info(
        "settings_loaded",
        extra={
            "source": str(path) if path else "defaults",
            "database_override": bool(override),
            "notification_channel": settings.notification.channel,
            "allowed_percentages": [str(p) for p in settings.returns.allowed_percentages],
        },
    )
    return settings


__all__ = [
    "NotificationSettings",
    "ReturnPolicySettings",
    "SmtpSettings",
    "StockSettings",
    "SweepSettings",
    "get_active_settings",
    "load_settings",
    "parse_settings",
]
