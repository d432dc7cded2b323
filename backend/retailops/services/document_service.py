# Overview: Allocation of human-readable order and purchase-order numbers.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..models import DocumentSequence, Outlet
from retailops.time_utils import Clock
from .concurrency import RetryableConflict
from .unit_of_work import TransactionScope


DOCUMENT_POS_ORDER = "POS_ORDER"
DOCUMENT_PURCHASE_ORDER = "PURCHASE_ORDER"


class DocumentNumberGenerator:
    """
    Per-outlet, per-day monotonic document numbers.

    Format: [{prefix}-]{outlet.code}-{YYYYMMDD}-{NNNN}
      e.g. "MAIN-20261019-0001", "PO-MAIN-20261019-0007"

    The counter row is bumped with a single UPDATE inside the caller's
    transaction, so two concurrent orders can never receive the same number;
    the unique constraint on order_number backs this up.
    """

    def __init__(self, clock: Clock, *, pad: int = 4):
        self._clock = clock
        self._pad = pad

    def next_number(
        self,
        tx: TransactionScope,
        *,
        outlet: Outlet,
        document_type: str,
        prefix: str | None = None,
    ) -> str:
        period = self._clock.now().strftime("%Y%m%d")
        number = self._allocate(tx, outlet.id, document_type, period)
        parts = [prefix] if prefix else []
        parts.extend([outlet.code or "POS", period, str(number).zfill(self._pad)])
        return "-".join(parts)

    def _allocate(self, tx: TransactionScope, outlet_id: int, document_type: str, period: str) -> int:
        session = tx.session
        stmt = (
            update(DocumentSequence)
            .where(
                DocumentSequence.outlet_id == outlet_id,
                DocumentSequence.document_type == document_type,
                DocumentSequence.period == period,
            )
            .values(next_number=DocumentSequence.next_number + 1)
            .execution_options(synchronize_session=False)
        )

        result = session.execute(stmt)
        if result.rowcount:
            current = (
                session.query(DocumentSequence.next_number)
                .filter_by(outlet_id=outlet_id, document_type=document_type, period=period)
                .scalar()
            )
            return current - 1

        seq = DocumentSequence(
            outlet_id=outlet_id,
            document_type=document_type,
            period=period,
            next_number=2,
        )
        session.add(seq)
        try:
            session.flush()
        except IntegrityError as exc:
            # Another transaction created today's counter first; start over
            raise RetryableConflict("document sequence created concurrently") from exc
        return 1
