"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into ``stock_config.schema``
dataclasses, validating every value on the way.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Runtime callers go through
``stock_config.get_active_settings()``.

Invariants enforced
-------------------
* Every parse error raises ``ConfigurationError`` naming the offending key.
* Unknown top-level sections are rejected so typos do not silently fall
  back to defaults.
* Allowed return percentages lie in (0, 100].

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ConfigurationError``.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import (
    NotificationSettings,
    ReturnPolicySettings,
    SmtpSettings,
    StockSettings,
    SweepSettings,
)
from stock_kernel.exceptions import ConfigurationError

_TOP_LEVEL_KEYS = frozenset(
    {"database_url", "echo_sql", "log_level", "returns", "notification", "sweep"}
)
_CHANNELS = frozenset({"log", "smtp"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def _decimal(key: str, value: Any) -> Decimal:
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ConfigurationError(key, f"not a number: {value!r}") from exc


def _positive_int(key: str, value: Any, allow_zero: bool = False) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(key, f"expected an integer, got {value!r}")
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigurationError(key, f"must be {'>= 0' if allow_zero else '> 0'}, got {value}")
    return value


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(key, "must be a mapping")
    return section


def parse_returns(data: dict[str, Any]) -> ReturnPolicySettings:
    """Parse the ``returns`` section."""
    defaults = ReturnPolicySettings()
    raw_allowed = data.get("allowed_percentages", defaults.allowed_percentages)
    if not isinstance(raw_allowed, (list, tuple)) or not raw_allowed:
        raise ConfigurationError("returns.allowed_percentages", "must be a non-empty list")
    allowed = tuple(
        sorted({_decimal("returns.allowed_percentages", p) for p in raw_allowed})
    )
    for pct in allowed:
        if pct <= 0 or pct > 100:
            raise ConfigurationError(
                "returns.allowed_percentages", f"{pct} is outside (0, 100]"
            )

    return ReturnPolicySettings(
        allowed_percentages=allowed,
        archive_after_days=_positive_int(
            "returns.archive_after_days",
            data.get("archive_after_days", defaults.archive_after_days),
            allow_zero=True,
        ),
    )


def parse_smtp(data: dict[str, Any]) -> SmtpSettings:
    """Parse the ``notification.smtp`` section."""
    defaults = SmtpSettings()
    return SmtpSettings(
        host=str(data.get("host", defaults.host)),
        port=_positive_int("notification.smtp.port", data.get("port", defaults.port)),
        username=data.get("username"),
        password=data.get("password"),
        use_tls=bool(data.get("use_tls", defaults.use_tls)),
        sender=str(data.get("sender", defaults.sender)),
        timeout_seconds=float(data.get("timeout_seconds", defaults.timeout_seconds)),
    )


def parse_notification(data: dict[str, Any]) -> NotificationSettings:
    """Parse the ``notification`` section."""
    defaults = NotificationSettings()

    channel = str(data.get("channel", defaults.channel))
    if channel not in _CHANNELS:
        raise ConfigurationError(
            "notification.channel", f"{channel!r} is not one of {sorted(_CHANNELS)}"
        )

    recipients = data.get("recipients", list(defaults.recipients))
    if not isinstance(recipients, (list, tuple)):
        raise ConfigurationError("notification.recipients", "must be a list")

    backoff = data.get("backoff_seconds", list(defaults.backoff_seconds))
    if not isinstance(backoff, (list, tuple)):
        raise ConfigurationError("notification.backoff_seconds", "must be a list")
    backoff_values = tuple(float(b) for b in backoff)
    if any(b < 0 for b in backoff_values):
        raise ConfigurationError("notification.backoff_seconds", "delays cannot be negative")

    max_backoff = float(data.get("max_backoff_seconds", defaults.max_backoff_seconds))
    if max_backoff < 0:
        raise ConfigurationError("notification.max_backoff_seconds", "cannot be negative")

    return NotificationSettings(
        channel=channel,
        recipients=tuple(str(r) for r in recipients),
        max_attempts=_positive_int(
            "notification.max_attempts", data.get("max_attempts", defaults.max_attempts)
        ),
        backoff_seconds=backoff_values,
        max_backoff_seconds=max_backoff,
        background=bool(data.get("background", defaults.background)),
        currency_label=str(data.get("currency_label", defaults.currency_label)),
        smtp=parse_smtp(_section(data, "smtp")),
    )


def parse_sweep(data: dict[str, Any]) -> SweepSettings:
    """Parse the ``sweep`` section."""
    defaults = SweepSettings()
    return SweepSettings(
        enabled=bool(data.get("enabled", defaults.enabled)),
        interval_seconds=_positive_int(
            "sweep.interval_seconds", data.get("interval_seconds", defaults.interval_seconds)
        ),
        batch_limit=_positive_int(
            "sweep.batch_limit", data.get("batch_limit", defaults.batch_limit)
        ),
    )


def parse_settings(data: dict[str, Any]) -> StockSettings:
    """Parse a full settings document."""
    unknown = set(data) - _TOP_LEVEL_KEYS
    if unknown:
        raise ConfigurationError(sorted(unknown)[0], "unknown settings section")

    defaults = StockSettings()
    return StockSettings(
        database_url=str(data.get("database_url", defaults.database_url)),
        echo_sql=bool(data.get("echo_sql", defaults.echo_sql)),
        log_level=str(data.get("log_level", defaults.log_level)).upper(),
        returns=parse_returns(_section(data, "returns")),
        notification=parse_notification(_section(data, "notification")),
        sweep=parse_sweep(_section(data, "sweep")),
    )


def load_settings(path: Path) -> StockSettings:
    """Load and parse a YAML settings file."""
    return parse_settings(load_yaml_file(Path(path)))
