"""Recipient resolution for return alerts."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from stock_kernel.domain.dtos import ReturnDetail


class RecipientDirectory(Protocol):
    """Who should hear about a processed return."""

    def recipients_for(self, detail: ReturnDetail) -> tuple[str, ...]:
        ...


class StaticRecipientDirectory:
    """Fixed address list, typically from ``NotificationSettings.recipients``.

    Blank entries are dropped and duplicates collapsed, first occurrence wins.
    """

    def __init__(self, recipients: Iterable[str] = ()):
        seen: dict[str, None] = {}
        for recipient in recipients:
            cleaned = recipient.strip()
            if cleaned:
                seen.setdefault(cleaned, None)
        self._recipients = tuple(seen)

    def recipients_for(self, detail: ReturnDetail) -> tuple[str, ...]:
        return self._recipients
