"""Explicit request context passed into every ledger call."""

from dataclasses import dataclass
from uuid import UUID

from ledger_kernel.logging_config import LogContext


@dataclass(frozen=True)
class RequestContext:
    """
    Identity of the caller, supplied by the collaborator's session layer.

    The core trusts this value and never reads ambient state to find the
    current company or user.
    """

    company_id: UUID
    user_id: UUID
    correlation_id: str | None = None

    def log_scope(self, **fields):
        """Bind this context (plus extra fields) to LogContext for a block."""
        return LogContext.bind(
            company_id=self.company_id,
            user_id=self.user_id,
            correlation_id=self.correlation_id,
            **fields,
        )
