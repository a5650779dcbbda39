"""
Configuration Schema (``stock_config.schema``).

Responsibility
--------------
Frozen dataclasses describing every tunable of the stock system: database
connection, return policy, notification delivery and the maintenance sweep.
Defaults reproduce the behaviour of a shop with no settings file at all.

Architecture position
---------------------
**Config layer**.  Consumed by ``stock_services`` wiring; the kernel never
imports this module, it receives plain values (allowed percentages,
archive window, retry limits) through constructor arguments.

Invariants enforced
-------------------
* Every schema object is ``frozen=True`` -- settings are immutable once
  loaded.
* Money-like values (percentages) are ``Decimal``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class ReturnPolicySettings:
    """Rules applied by the return processor and history views."""

    allowed_percentages: tuple[Decimal, ...] = (Decimal("20"), Decimal("100"))
    archive_after_days: int = 30


@dataclass(frozen=True)
class SmtpSettings:
    """Outbound mail server for the SMTP notification channel."""

    host: str = "localhost"
    port: int = 587
    username: str | None = None
    password: str | None = None
    use_tls: bool = True
    sender: str = "returns@localhost"
    timeout_seconds: float = 10.0


@dataclass(frozen=True)
class NotificationSettings:
    """Delivery of return alerts."""

    channel: str = "log"  # "log" or "smtp"
    recipients: tuple[str, ...] = ()
    max_attempts: int = 3
    backoff_seconds: tuple[float, ...] = (1.0, 2.0)
    max_backoff_seconds: float = 10.0
    background: bool = True
    currency_label: str = "Rs."
    smtp: SmtpSettings = field(default_factory=SmtpSettings)


@dataclass(frozen=True)
class SweepSettings:
    """Optional periodic retry of unsent notifications."""

    enabled: bool = False
    interval_seconds: int = 300
    batch_limit: int = 50


@dataclass(frozen=True)
class StockSettings:
    """Root settings object."""

    database_url: str = "sqlite:///stock.db"
    echo_sql: bool = False
    log_level: str = "INFO"
    returns: ReturnPolicySettings = field(default_factory=ReturnPolicySettings)
    notification: NotificationSettings = field(default_factory=NotificationSettings)
    sweep: SweepSettings = field(default_factory=SweepSettings)
