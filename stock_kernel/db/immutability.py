"""
ORM-Level Immutability Enforcement for return history.

===============================================================================
WHY THIS EXISTS
===============================================================================

A processed return is the only record of what stock was sent back, how old
it was and what it was worth at the time.  Undo relies on those snapshots to
rebuild batches with their true ages.  Editing a snapshot after the fact would
silently corrupt both the history and any later undo.

SQLAlchemy fires events before UPDATE/DELETE statements reach the database.
The listeners here check the rules below and raise ImmutabilityViolationError,
which aborts the flush and the surrounding transaction.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity      | Rule
------------|------------------------------------------------------------------
ReturnItem  | No UPDATE, no DELETE, ever.
Return      | No DELETE.  UPDATE only of:
            |   notification_sent  false -> true (latch)
            |   is_reversed        false -> true
            |   reversed_at        None -> value
            |   reversed_by        None -> value

===============================================================================
USAGE
===============================================================================

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()

===============================================================================
"""

from sqlalchemy import event, inspect

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# field -> value it may move away from (one-way transitions)
_RETURN_ONE_WAY_FIELDS: dict[str, object] = {
    "notification_sent": False,
    "is_reversed": False,
    "reversed_at": None,
    "reversed_by": None,
}


def _block(entity_type: str, entity_id: str, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_return_item_immutability(mapper, connection, target):
    """ReturnItem snapshots are immutable from insert."""
    _block(
        "ReturnItem",
        str(target.id),
        "UPDATE",
        "Return item snapshots cannot be modified",
    )


def _check_return_item_delete(mapper, connection, target):
    _block(
        "ReturnItem",
        str(target.id),
        "DELETE",
        "Return item snapshots cannot be deleted",
    )


def _check_return_immutability(mapper, connection, target):
    """
    Allow only the notification latch and the one-time reversal fields to
    change on a Return, and only in their forward direction.
    """
    insp = inspect(target)
    for attr in insp.mapper.column_attrs:
        hist = insp.attrs[attr.key].history
        if not hist.has_changes():
            continue

        if attr.key not in _RETURN_ONE_WAY_FIELDS:
            _block(
                "Return",
                str(target.id),
                "UPDATE",
                f"Cannot modify field '{attr.key}' on a processed return",
                field=attr.key,
            )

        old_values = hist.deleted or hist.unchanged
        if old_values and old_values[0] != _RETURN_ONE_WAY_FIELDS[attr.key]:
            _block(
                "Return",
                str(target.id),
                "UPDATE",
                f"Field '{attr.key}' is already set and cannot change again",
                field=attr.key,
            )


def _check_return_delete(mapper, connection, target):
    _block(
        "Return",
        str(target.id),
        "DELETE",
        "Processed returns cannot be deleted; use undo to reverse them",
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are not added twice.
    """
    from stock_kernel.models.returns import Return, ReturnItem

    for target, name, fn in _listeners(Return, ReturnItem):
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests.
    """
    from stock_kernel.models.returns import Return, ReturnItem

    for target, name, fn in _listeners(Return, ReturnItem):
        if event.contains(target, name, fn):
            event.remove(target, name, fn)


def _listeners(return_cls, item_cls):
    return (
        (return_cls, "before_update", _check_return_immutability),
        (return_cls, "before_delete", _check_return_delete),
        (item_cls, "before_update", _check_return_item_immutability),
        (item_cls, "before_delete", _check_return_item_delete),
    )
