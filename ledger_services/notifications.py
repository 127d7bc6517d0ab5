"""
ledger_services.notifications -- Post-commit payment notifications.

Collaborators (e-mail, push, webhooks) subclass NotificationDispatcher.
Dispatch happens after the ledger write has committed and is
fire-and-forget: a failing dispatcher is logged and never undoes the write.
"""

from __future__ import annotations

from ledger_kernel.domain.context import RequestContext
from ledger_kernel.domain.dtos import PaymentResult
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class NotificationDispatcher:
    """Receiver of committed payment events.  Methods default to no-ops."""

    def payment_recorded(self, ctx: RequestContext, result: PaymentResult) -> None:
        pass

    def payment_reversed(self, ctx: RequestContext, result: PaymentResult) -> None:
        pass


class RecordingDispatcher(NotificationDispatcher):
    """Keeps every event in memory; handy for collaborators' smoke checks."""

    def __init__(self) -> None:
        self.events: list[tuple[str, PaymentResult]] = []

    def payment_recorded(self, ctx: RequestContext, result: PaymentResult) -> None:
        self.events.append(("payment_recorded", result))

    def payment_reversed(self, ctx: RequestContext, result: PaymentResult) -> None:
        self.events.append(("payment_reversed", result))


def dispatch_safely(
    dispatcher: NotificationDispatcher | None,
    event: str,
    ctx: RequestContext,
    result: PaymentResult,
) -> bool:
    """
    Deliver ``event`` to ``dispatcher``.

    Returns True when delivered.  Exceptions from the dispatcher are logged
    with their traceback and swallowed, since the ledger write is already
    committed.
    """
    if dispatcher is None:
        return False
    try:
        getattr(dispatcher, event)(ctx, result)
    except Exception:
        logger.warning(
            "notification_dispatch_failed",
            exc_info=True,
            extra={"event": event, "payment_id": str(result.payment_id)},
        )
        return False
    return True
