"""
ORM-level immutability enforcement for ledger history.

SQLAlchemy fires mapper events before UPDATE/DELETE reach the database.
Listeners registered here reject edits that would rewrite money history:

Entity              | When immutable                   | Allowed changes
--------------------|----------------------------------|-------------------------------
BankTransaction     | ALWAYS (from creation)           | none; reversals append a row
PaymentAllocation   | ALWAYS (from creation)           | none
Payment             | After status = completed         | completed -> reversed, with
                    |                                  | reversed_at/_by_id/reason
Payment (reversed)  | ALWAYS                           | none
Payment             | Never deleted                    |

updated_at/updated_by_id/version are audit and locking metadata and may
always change.

Usage:

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id", "version"})

_REVERSAL_FIELDS = frozenset(
    {"status", "reversed_at", "reversed_by_id", "reversal_reason"}
)


def _blocked(entity_type: str, entity_id, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    changed = []
    for attr in inspect(target).attrs:
        if attr.key in _METADATA_FIELDS:
            continue
        if attr.history.has_changes():
            changed.append(attr.key)
    return changed


def _check_bank_transaction_update(mapper, connection, target):
    fields = _changed_fields(target)
    if fields:
        _blocked(
            "BankTransaction",
            target.id,
            "UPDATE",
            f"Bank transactions are append-only (attempted: {', '.join(fields)})",
        )


def _check_bank_transaction_delete(mapper, connection, target):
    _blocked("BankTransaction", target.id, "DELETE", "Bank transactions are append-only")


def _check_allocation_update(mapper, connection, target):
    fields = _changed_fields(target)
    if fields:
        _blocked(
            "PaymentAllocation",
            target.id,
            "UPDATE",
            f"Payment allocations cannot be edited (attempted: {', '.join(fields)})",
        )


def _check_allocation_delete(mapper, connection, target):
    _blocked("PaymentAllocation", target.id, "DELETE", "Payment allocations cannot be deleted")


def _check_payment_update(mapper, connection, target):
    """
    Allow only the completed -> reversed transition on a payment.

    Logic:
        1. status changing completed -> reversed: only reversal fields may change.
        2. status changing any other way: block.
        3. status unchanged: block every non-metadata change.
    """
    status_history = get_history(target, "status")
    fields = _changed_fields(target)
    if not fields:
        return

    if status_history.deleted:
        old_status = str(getattr(status_history.deleted[0], "value", status_history.deleted[0]))
        new_status = str(getattr(target.status, "value", target.status))
        if old_status == "completed" and new_status == "reversed":
            extra = [f for f in fields if f not in _REVERSAL_FIELDS]
            if extra:
                _blocked(
                    "Payment",
                    target.id,
                    "UPDATE",
                    f"Reversal may not modify {', '.join(extra)}",
                )
            return
        _blocked(
            "Payment",
            target.id,
            "UPDATE",
            f"Invalid status transition {old_status} -> {new_status}",
        )

    _blocked(
        "Payment",
        target.id,
        "UPDATE",
        f"Cannot modify field(s) {', '.join(fields)} on a {target.status} payment",
    )


def _check_payment_delete(mapper, connection, target):
    _blocked("Payment", target.id, "DELETE", "Payments are reversed, never deleted")


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call after models are imported, before any database operations.
    """
    from ledger_kernel.models.bank import BankTransaction
    from ledger_kernel.models.payment import Payment, PaymentAllocation

    event.listen(BankTransaction, "before_update", _check_bank_transaction_update)
    event.listen(BankTransaction, "before_delete", _check_bank_transaction_delete)

    event.listen(PaymentAllocation, "before_update", _check_allocation_update)
    event.listen(PaymentAllocation, "before_delete", _check_allocation_delete)

    event.listen(Payment, "before_update", _check_payment_update)
    event.listen(Payment, "before_delete", _check_payment_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to clean up committed rows.
    """
    from ledger_kernel.models.bank import BankTransaction
    from ledger_kernel.models.payment import Payment, PaymentAllocation

    _safe_remove_listener(BankTransaction, "before_update", _check_bank_transaction_update)
    _safe_remove_listener(BankTransaction, "before_delete", _check_bank_transaction_delete)
    _safe_remove_listener(PaymentAllocation, "before_update", _check_allocation_update)
    _safe_remove_listener(PaymentAllocation, "before_delete", _check_allocation_delete)
    _safe_remove_listener(Payment, "before_update", _check_payment_update)
    _safe_remove_listener(Payment, "before_delete", _check_payment_delete)
