"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the kernel (checkout flows, the return screen, background sweeps)
must react differently to different failures:

  - A validation failure is shown to the user with its specific reason.
  - A transactional failure is shown as a generic "try again" prompt, and the
    caller may resubmit the whole request.
  - A notification failure is never shown to the submitter at all.

Matching on message strings for that is fragile, so every error has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

Example:
    try:
        workflow.submit_return(request)
    except StaleSelectionError as e:
        show_error(f"Batch {e.batch_id} changed: {e.reason}")
    except TransactionAbortedError:
        show_error("Could not save the return, nothing was removed. Retry.")

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- BatchError
    |   +-- InvalidQuantityError
    |   +-- NegativeQuantityError
    |   +-- BatchNotFoundError
    |   +-- InsufficientStockError
    |
    +-- CatalogError
    |   +-- ProductNotFoundError
    |
    +-- ReturnError
    |   +-- NoBatchesSelectedError
    |   +-- StaleSelectionError
    |   +-- InvalidPercentageError
    |   +-- ReturnNotFoundError
    |   +-- ReturnAlreadyReversedError
    |
    +-- TransactionError
    |   +-- TransactionAbortedError
    |
    +-- NotificationError
    |   +-- NotificationUndeliverableError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Batch           | INVALID_QUANTITY            | Intake/deduct quantity not > 0
                | NEGATIVE_QUANTITY           | Adjustment would drive a batch below 0
                | BATCH_NOT_FOUND             | Batch id doesn't exist
                | INSUFFICIENT_STOCK          | Shortfall under the reject policy
----------------|-----------------------------|-----------------------------------------
Catalog         | PRODUCT_NOT_FOUND           | Product id doesn't exist (intake, undo)
----------------|-----------------------------|-----------------------------------------
Return          | NO_BATCHES_SELECTED         | Nothing tagged for return
                | STALE_SELECTION             | Unknown, duplicate or changed batch
                | INVALID_PERCENTAGE          | Percentage outside allowed set
                | RETURN_NOT_FOUND            | Return id doesn't exist
                | RETURN_ALREADY_REVERSED     | Undo requested twice
----------------|-----------------------------|-----------------------------------------
Transaction     | TRANSACTION_ABORTED         | Commit-time database failure, rolled back
----------------|-----------------------------|-----------------------------------------
Notification    | NOTIFICATION_UNDELIVERABLE  | Retries exhausted (non-fatal, never raised
                |                             | to the submitter)
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Editing a return snapshot
----------------|-----------------------------|-----------------------------------------
Configuration   | CONFIGURATION_ERROR         | Invalid settings file

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Validation errors are raised before any row is touched, so they are never
   retried automatically: resubmitting the same input fails the same way.

2. TransactionAbortedError wraps the underlying database error as __cause__.
   Everything in the unit of work has been rolled back when it is raised.

3. NotificationUndeliverableError is carried inside DispatchResult instead of
   being raised; a return is never considered failed because an alert was not
   delivered.

===============================================================================
"""


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Batch-related exceptions


class BatchError(StockKernelError):
    """Base exception for batch-related errors."""

    code: str = "BATCH_ERROR"


class InvalidQuantityError(BatchError):
    """Quantity must be strictly positive."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity, context: str = "quantity"):
        self.quantity = str(quantity)
        self.context = context
        super().__init__(f"Invalid {context}: {quantity} (must be > 0)")


class NegativeQuantityError(BatchError):
    """Adjustment would leave a batch with a negative quantity."""

    code: str = "NEGATIVE_QUANTITY"

    def __init__(self, batch_id: str, current: str, delta: str):
        self.batch_id = batch_id
        self.current = current
        self.delta = delta
        super().__init__(
            f"Adjusting batch {batch_id} by {delta} would leave "
            f"{current} + ({delta}) < 0"
        )


class BatchNotFoundError(BatchError):
    """Batch with given ID was not found."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


class InsufficientStockError(BatchError):
    """Requested amount exceeds available stock and shortfalls are rejected."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, requested: str, available: str):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )


# Catalog-related exceptions


class CatalogError(StockKernelError):
    """Base exception for product catalog lookups."""

    code: str = "CATALOG_ERROR"


class ProductNotFoundError(CatalogError):
    """Product with given ID was not found."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


# Return-related exceptions


class ReturnError(StockKernelError):
    """Base exception for return processing and history errors."""

    code: str = "RETURN_ERROR"


class NoBatchesSelectedError(ReturnError):
    """A return was submitted with no batch tagged for return."""

    code: str = "NO_BATCHES_SELECTED"

    def __init__(self, selection_count: int = 0):
        self.selection_count = selection_count
        super().__init__(
            "No batches selected for return "
            f"({selection_count} selection(s) submitted)"
        )


class StaleSelectionError(ReturnError):
    """
    A selected batch no longer matches what the caller saw.

    Raised for unknown batch ids, duplicates within one request, and
    batches whose product or quantity changed since the selection was made.
    """

    code: str = "STALE_SELECTION"

    def __init__(self, batch_id: str, reason: str):
        self.batch_id = batch_id
        self.reason = reason
        super().__init__(f"Stale selection for batch {batch_id}: {reason}")


class InvalidPercentageError(ReturnError):
    """Return percentage is not in the configured allowed set."""

    code: str = "INVALID_PERCENTAGE"

    def __init__(self, batch_id: str, percentage: str, allowed: tuple[str, ...]):
        self.batch_id = batch_id
        self.percentage = percentage
        self.allowed = allowed
        super().__init__(
            f"Invalid return percentage {percentage} for batch {batch_id}; "
            f"allowed: {', '.join(allowed)}"
        )


class ReturnNotFoundError(ReturnError):
    """Return with given ID was not found."""

    code: str = "RETURN_NOT_FOUND"

    def __init__(self, return_id: str):
        self.return_id = return_id
        super().__init__(f"Return not found: {return_id}")


class ReturnAlreadyReversedError(ReturnError):
    """Return has already been reversed by an earlier undo."""

    code: str = "RETURN_ALREADY_REVERSED"

    def __init__(self, return_id: str):
        self.return_id = return_id
        super().__init__(f"Return {return_id} has already been reversed")


# Transaction-related exceptions


class TransactionError(StockKernelError):
    """Base exception for unit-of-work failures."""

    code: str = "TRANSACTION_ERROR"


class TransactionAbortedError(TransactionError):
    """
    The unit of work failed at commit time and was fully rolled back.

    The original database error is chained as ``__cause__``.  Nothing was
    written, so the caller may resubmit the same request.
    """

    code: str = "TRANSACTION_ABORTED"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Transaction aborted during {operation}: {detail}")


# Notification-related exceptions


class NotificationError(StockKernelError):
    """Base exception for notification delivery."""

    code: str = "NOTIFICATION_ERROR"


class NotificationUndeliverableError(NotificationError):
    """All delivery attempts for a return notification failed (non-fatal)."""

    code: str = "NOTIFICATION_UNDELIVERABLE"

    def __init__(self, return_id: str, attempts: int, pending_recipients: tuple[str, ...]):
        self.return_id = return_id
        self.attempts = attempts
        self.pending_recipients = pending_recipients
        super().__init__(
            f"Notification for return {return_id} undeliverable after "
            f"{attempts} attempt(s)"
        )


# Immutability-related exceptions


class ImmutabilityError(StockKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    ReturnItem rows are frozen from insert.  Return rows are frozen except
    for the notification latch and the reversal fields.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Configuration


class ConfigurationError(StockKernelError):
    """Settings could not be parsed or failed validation."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration for '{key}': {reason}")
