"""
LedgerStore -- persistence access and row locking for the write unit.

Responsibility:
    Loads Party, Invoice, Payment and BankAccount rows scoped to a company
    and acquires the exclusive update locks the Ledger Writer needs for
    one payment write unit.

Architecture position:
    Kernel > Services -- imperative shell.  Used only by LedgerWriter.

Invariants enforced:
    - Locks cover exactly {bank account, party, target invoices} and are
      taken in that order, invoices sorted by id, so two write units can
      never wait on each other in opposite order.
    - Locked rows are refreshed from the database (populate_existing), so
      re-checks see committed state rather than the session's cached copy.
    - Waiting is bounded: PostgreSQL gets ``SET LOCAL lock_timeout``;
      SQLite waits at most its busy timeout.

Failure modes:
    - LedgerWriteConflictError on lock timeout, database lock errors or
      stale optimistic versions at flush.
    - PartyNotFoundError / InvoiceNotFoundError / PaymentNotFoundError /
      BankAccountNotFoundError when a row is missing from the company.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger_kernel.db.engine import is_postgres
from ledger_kernel.db.types import enum_value, round_money
from ledger_kernel.domain.dtos import InvoiceInfo
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import (
    BankAccountNotFoundError,
    InvoiceNotFoundError,
    LedgerWriteConflictError,
    PartyNotFoundError,
    PaymentNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.bank import BankAccount
from ledger_kernel.models.invoice import Invoice, InvoiceStatus
from ledger_kernel.models.party import Party
from ledger_kernel.models.payment import Payment
from ledger_kernel.services.base import BaseService

logger = get_logger("services.ledger_store")


def invoice_info_from_model(invoice: Invoice, currency: str) -> InvoiceInfo:
    """Convert an Invoice row to the engine-facing snapshot."""
    places = Money.zero(currency).currency.decimal_places
    return InvoiceInfo(
        invoice_id=invoice.id,
        company_id=invoice.company_id,
        party_id=invoice.party_id,
        document_type=enum_value(invoice.document_type),
        document_number=invoice.document_number,
        document_date=invoice.document_date,
        due_date=invoice.due_date,
        total_amount=Money.of(round_money(invoice.total_amount, places), currency),
        paid_amount=Money.of(round_money(invoice.paid_amount, places), currency),
        payment_status=enum_value(invoice.payment_status),
        status=enum_value(invoice.status),
    )


@dataclass
class LockedRows:
    """Rows held under exclusive lock for the rest of the transaction."""

    party: Party
    invoices: dict[UUID, Invoice]
    bank_account: BankAccount | None


class LedgerStore(BaseService):
    """
    Company-scoped loaders and the write-unit lock.

    Non-goals:
        - Does not commit; the caller's transaction scope owns the locks.
    """

    def __init__(self, session: Session, lock_timeout_ms: int = 2000):
        super().__init__(session)
        self._lock_timeout_ms = lock_timeout_ms

    # ------------------------------------------------------------------
    # Loaders (no locks)
    # ------------------------------------------------------------------

    def get_party(self, company_id: UUID, party_id: UUID) -> Party:
        party = self.session.get(Party, party_id)
        if party is None or party.company_id != company_id:
            raise PartyNotFoundError(str(party_id))
        return party

    def get_invoice(self, company_id: UUID, invoice_id: UUID) -> Invoice:
        invoice = self.session.get(Invoice, invoice_id)
        if invoice is None or invoice.company_id != company_id:
            raise InvoiceNotFoundError(str(invoice_id))
        return invoice

    def get_payment(self, company_id: UUID, payment_id: UUID) -> Payment:
        payment = self.session.get(Payment, payment_id)
        if payment is None or payment.company_id != company_id:
            raise PaymentNotFoundError(str(payment_id))
        return payment

    def get_bank_account(
        self,
        company_id: UUID,
        bank_account_id: UUID,
        active_only: bool = True,
    ) -> BankAccount:
        account = self.session.get(BankAccount, bank_account_id)
        if account is None or account.company_id != company_id:
            raise BankAccountNotFoundError(str(bank_account_id))
        if active_only and not account.is_active:
            raise BankAccountNotFoundError(str(bank_account_id))
        return account

    def open_invoices(
        self,
        company_id: UUID,
        party_id: UUID,
        document_type: str,
    ) -> list[Invoice]:
        """
        Active invoices of one type with pending_amount > 0, oldest-due-first.

        Documents without a due date sort by document date; ties go to the
        earlier document date, then the document number.
        """
        stmt = (
            select(Invoice)
            .where(
                Invoice.company_id == company_id,
                Invoice.party_id == party_id,
                Invoice.document_type == enum_value(document_type),
                Invoice.status == InvoiceStatus.ACTIVE.value,
                Invoice.pending_amount > 0,
            )
            .order_by(
                func.coalesce(Invoice.due_date, Invoice.document_date),
                Invoice.document_date,
                Invoice.document_number,
            )
        )
        return list(self.session.execute(stmt).scalars())

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def _apply_lock_timeout(self) -> None:
        if is_postgres(self.session):
            # SET cannot take bind parameters
            self.session.execute(
                text(f"SET LOCAL lock_timeout = '{int(self._lock_timeout_ms)}ms'")
            )

    def _locked(self, stmt, entity_type: str, entity_id: str):
        try:
            return self.session.execute(
                stmt.with_for_update().execution_options(populate_existing=True)
            )
        except OperationalError as exc:
            logger.warning(
                "ledger_lock_timeout",
                extra={"entity_type": entity_type, "entity_id": entity_id},
            )
            raise LedgerWriteConflictError(
                entity_type, entity_id, "could not acquire row lock in time"
            ) from exc

    def lock_payment(self, company_id: UUID, payment_id: UUID) -> Payment:
        """Lock a payment row for reversal."""
        self._apply_lock_timeout()
        payment = self._locked(
            select(Payment).where(Payment.id == payment_id),
            "Payment",
            str(payment_id),
        ).scalar_one_or_none()
        if payment is None or payment.company_id != company_id:
            raise PaymentNotFoundError(str(payment_id))
        return payment

    def lock_for_update(
        self,
        company_id: UUID,
        party_id: UUID,
        invoice_ids: Iterable[UUID] = (),
        bank_account_id: UUID | None = None,
    ) -> LockedRows:
        """
        Lock the row set of one write unit.

        Preconditions:
            Called inside the caller's transaction; the locks are released
            on commit or rollback.

        Raises:
            LedgerWriteConflictError: lock not acquired within the timeout.
            PartyNotFoundError / InvoiceNotFoundError / BankAccountNotFoundError.
        """
        self._apply_lock_timeout()

        bank_account = None
        if bank_account_id is not None:
            bank_account = self._locked(
                select(BankAccount).where(BankAccount.id == bank_account_id),
                "BankAccount",
                str(bank_account_id),
            ).scalar_one_or_none()
            if bank_account is None or bank_account.company_id != company_id:
                raise BankAccountNotFoundError(str(bank_account_id))

        party = self._locked(
            select(Party).where(Party.id == party_id),
            "Party",
            str(party_id),
        ).scalar_one_or_none()
        if party is None or party.company_id != company_id:
            raise PartyNotFoundError(str(party_id))

        wanted = sorted(set(invoice_ids), key=str)
        invoices: dict[UUID, Invoice] = {}
        if wanted:
            rows = self._locked(
                select(Invoice).where(Invoice.id.in_(wanted)).order_by(Invoice.id),
                "Invoice",
                ",".join(str(i) for i in wanted),
            ).scalars().all()
            invoices = {row.id: row for row in rows}
            for invoice_id in wanted:
                found = invoices.get(invoice_id)
                if found is None or found.company_id != company_id:
                    raise InvoiceNotFoundError(str(invoice_id))

        logger.debug(
            "ledger_rows_locked",
            extra={
                "party_id": str(party_id),
                "invoice_count": len(invoices),
                "bank_account_id": str(bank_account_id) if bank_account_id else None,
            },
        )
        return LockedRows(party=party, invoices=invoices, bank_account=bank_account)

    def flush(self, entity_type: str = "Payment", entity_id: str = "") -> None:
        """
        Flush pending changes, mapping concurrency failures to
        LedgerWriteConflictError.
        """
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "ledger_stale_write",
                extra={"entity_type": entity_type, "entity_id": entity_id},
            )
            raise LedgerWriteConflictError(
                entity_type, entity_id, "row was modified by another transaction"
            ) from exc
        except OperationalError as exc:
            raise LedgerWriteConflictError(
                entity_type, entity_id, "database lock contention during write"
            ) from exc
