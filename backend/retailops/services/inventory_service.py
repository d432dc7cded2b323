# Overview: Inventory ledger; the only writer of Inventory rows and StockMovement history.

"""
RetailOps Inventory Invariants (authoritative)

Inventory model:
- Inventory holds the current quantity_on_hand per (product, warehouse).
- StockMovement is the append-only history. quantity is always the unsigned
  magnitude; from_warehouse_id / to_warehouse_id give the direction.
- For every (product, warehouse): SUM(signed movement deltas) == quantity_on_hand.

Business invariants:
- quantity_on_hand may never go negative. Violations are rejected before
  commit, never clamped.
- Every quantity change is paired with exactly one movement in the same
  transaction (a TRANSFER is one movement touching two rows).
- Inventory rows are created lazily at 0 on first inbound movement and are
  never deleted.

Concurrency:
- Decrements are a single conditional UPDATE
  (quantity_on_hand = quantity_on_hand - :n WHERE quantity_on_hand >= :n);
  a zero rowcount is the rejection signal. No read-modify-write.
- Increments are an atomic quantity_on_hand + :n UPDATE.
- A lost lazy-create race surfaces as RetryableConflict and the whole unit
  of work is retried.

Composition:
- adjust() and transfer() own their transaction.
- increase() and decrease() run inside the caller's TransactionScope
  (purchase receiving, sale completion) and never commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError

from ..config import ServiceSettings
from ..errors import (
    InsufficientStockError,
    InvalidInventoryStateError,
    InvalidRequestError,
    NotFoundError,
)
from ..models import Inventory, Product, StockMovement, Warehouse
from ..models.inventory import (
    MOVEMENT_ADJUSTMENT_IN,
    MOVEMENT_ADJUSTMENT_OUT,
    MOVEMENT_PURCHASE,
    MOVEMENT_SALE,
    MOVEMENT_TRANSFER,
    MOVEMENT_TYPES,
)
from ..time_utils import Clock
from ..validation import (
    coerce_datetime,
    coerce_decimal,
    coerce_int,
    coerce_text,
    quantize_quantity,
    to_decimal_str,
)
from .concurrency import RetryableConflict, run_with_retry
from .job_service import JobSink, LoggingJobSink, enqueue_audit_log_job
from .pagination import paginate
from .tenant_service import require_outlet, require_product, require_warehouse
from .unit_of_work import TransactionScope, UnitOfWork


logger = logging.getLogger(__name__)


DIRECTION_IN = "IN"
DIRECTION_OUT = "OUT"

_DIRECTION_ALIASES = {
    "IN": DIRECTION_IN,
    MOVEMENT_ADJUSTMENT_IN: DIRECTION_IN,
    "OUT": DIRECTION_OUT,
    MOVEMENT_ADJUSTMENT_OUT: DIRECTION_OUT,
}


@dataclass(frozen=True)
class ReconcileResult:
    product_id: int
    warehouse_id: int
    quantity_on_hand: Decimal
    ledger_quantity: Decimal

    @property
    def consistent(self) -> bool:
        return self.quantity_on_hand == self.ledger_quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "quantity_on_hand": to_decimal_str(self.quantity_on_hand),
            "ledger_quantity": to_decimal_str(self.ledger_quantity),
            "consistent": self.consistent,
        }


def normalize_direction(direction) -> str:
    key = str(direction or "").strip().upper()
    if key not in _DIRECTION_ALIASES:
        raise InvalidRequestError(
            "direction must be IN or OUT",
            details={"direction": direction},
        )
    return _DIRECTION_ALIASES[key]


def _positive_quantity(quantity) -> Decimal:
    return quantize_quantity(coerce_decimal(quantity, "quantity", positive=True))


class InventoryLedger:
    def __init__(
        self,
        uow: UnitOfWork,
        business_id: int,
        *,
        clock: Clock | None = None,
        jobs: JobSink | None = None,
        settings: ServiceSettings | None = None,
    ):
        self._uow = uow
        self._business_id = business_id
        self._clock = clock or Clock()
        self._jobs = jobs or LoggingJobSink()
        self._settings = settings or ServiceSettings()

    def _retry(self, func):
        return run_with_retry(
            func,
            attempts=self._settings.retry_attempts,
            backoff_base=self._settings.retry_backoff_base,
        )

    # ------------------------------------------------------------------
    # Tenant lookups
    # ------------------------------------------------------------------

    def get_product(self, session, product_id: int) -> Product:
        return require_product(session, self._business_id, product_id)

    def get_warehouse(self, session, warehouse_id: int) -> Warehouse:
        return require_warehouse(session, self._business_id, warehouse_id)

    def check_outlet(self, session, outlet_id: int | None) -> None:
        if outlet_id is not None:
            require_outlet(session, self._business_id, outlet_id)

    # ------------------------------------------------------------------
    # Row primitives (always inside a scope)
    # ------------------------------------------------------------------

    @staticmethod
    def _find_row(session, product_id: int, warehouse_id: int) -> Inventory | None:
        return session.query(Inventory).filter_by(product_id=product_id, warehouse_id=warehouse_id).first()

    def _get_or_create_row(self, tx: TransactionScope, product_id: int, warehouse_id: int) -> Inventory:
        row = self._find_row(tx.session, product_id, warehouse_id)
        if row is not None:
            return row

        row = Inventory(
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity_on_hand=Decimal("0"),
            minimum_stock=Decimal("0"),
        )
        tx.session.add(row)
        try:
            tx.flush()
        except IntegrityError as exc:
            # Concurrent first movement created the row; start the unit of work over
            raise RetryableConflict("inventory row created concurrently") from exc
        return row

    @staticmethod
    def _reload(session, product_id: int, warehouse_id: int) -> Inventory:
        return (
            session.query(Inventory)
            .populate_existing()
            .filter_by(product_id=product_id, warehouse_id=warehouse_id)
            .one()
        )

    def _increment(self, tx: TransactionScope, product_id: int, warehouse_id: int, quantity: Decimal) -> Inventory:
        tx.session.execute(
            update(Inventory)
            .where(Inventory.product_id == product_id, Inventory.warehouse_id == warehouse_id)
            .values(quantity_on_hand=_rounded(Inventory.quantity_on_hand + quantity))
            .execution_options(synchronize_session=False)
        )
        return self._reload(tx.session, product_id, warehouse_id)

    def _try_decrement(self, tx: TransactionScope, product_id: int, warehouse_id: int, quantity: Decimal) -> bool:
        result = tx.session.execute(
            update(Inventory)
            .where(
                Inventory.product_id == product_id,
                Inventory.warehouse_id == warehouse_id,
                _rounded(Inventory.quantity_on_hand) >= quantity,
            )
            .values(quantity_on_hand=_rounded(Inventory.quantity_on_hand - quantity))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _record(
        self,
        tx: TransactionScope,
        *,
        movement_type: str,
        product_id: int,
        quantity: Decimal,
        user_id: int,
        from_warehouse_id: int | None = None,
        to_warehouse_id: int | None = None,
        outlet_id: int | None = None,
        reference: str | None = None,
        notes: str | None = None,
    ) -> StockMovement:
        movement = StockMovement(
            product_id=product_id,
            from_warehouse_id=from_warehouse_id,
            to_warehouse_id=to_warehouse_id,
            outlet_id=outlet_id,
            type=movement_type,
            quantity=quantity,
            reference=reference,
            notes=coerce_text(notes, "notes", max_length=255),
            created_by_user_id=user_id,
            created_at=self._clock.now(),
        )
        tx.session.add(movement)
        tx.flush()
        return movement

    # ------------------------------------------------------------------
    # Composable mutators (caller owns the transaction)
    # ------------------------------------------------------------------

    def increase(
        self,
        tx: TransactionScope,
        *,
        product_id: int,
        warehouse_id: int,
        quantity,
        user_id: int,
        outlet_id: int | None = None,
        reference: str | None = None,
        notes: str | None = None,
    ) -> Inventory:
        """Inbound stock (purchase receipt). Creates the row at 0 if needed."""
        qty = _positive_quantity(quantity)
        self._get_or_create_row(tx, product_id, warehouse_id)
        row = self._increment(tx, product_id, warehouse_id, qty)
        self._record(
            tx,
            movement_type=MOVEMENT_PURCHASE,
            product_id=product_id,
            quantity=qty,
            user_id=user_id,
            to_warehouse_id=warehouse_id,
            outlet_id=outlet_id,
            reference=reference,
            notes=notes,
        )
        return row

    def decrease(
        self,
        tx: TransactionScope,
        *,
        product_id: int,
        warehouse_id: int,
        quantity,
        user_id: int,
        outlet_id: int | None = None,
        reference: str | None = None,
        notes: str | None = None,
    ) -> Inventory:
        """
        Outbound stock (sale completion).

        A product with no inventory row in the warehouse has zero stock, so the
        decrement is rejected with InsufficientStock like any other shortfall.
        """
        qty = _positive_quantity(quantity)
        row = self._find_row(tx.session, product_id, warehouse_id)
        if row is None or not self._try_decrement(tx, product_id, warehouse_id, qty):
            available = self._reload(tx.session, product_id, warehouse_id).quantity_on_hand if row else Decimal("0")
            raise InsufficientStockError(
                f"Insufficient stock for product {product_id} in warehouse {warehouse_id}",
                details={
                    "product_id": product_id,
                    "warehouse_id": warehouse_id,
                    "requested": to_decimal_str(qty),
                    "available": to_decimal_str(available),
                },
            )
        self._record(
            tx,
            movement_type=MOVEMENT_SALE,
            product_id=product_id,
            quantity=qty,
            user_id=user_id,
            from_warehouse_id=warehouse_id,
            outlet_id=outlet_id,
            reference=reference,
            notes=notes,
        )
        return self._reload(tx.session, product_id, warehouse_id)

    # ------------------------------------------------------------------
    # Standalone use cases
    # ------------------------------------------------------------------

    def adjust(
        self,
        *,
        product_id,
        warehouse_id,
        quantity,
        direction,
        user_id: int,
        notes: str | None = None,
        outlet_id=None,
    ) -> Inventory:
        """
        Manual stock correction.

        IN adds to on-hand (creating the row at 0 if absent); OUT removes and
        fails with InvalidInventoryState when on-hand would go negative.
        """
        direction = normalize_direction(direction)
        qty = _positive_quantity(quantity)
        product_id = coerce_int(product_id, "product_id")
        warehouse_id = coerce_int(warehouse_id, "warehouse_id")
        outlet_id = coerce_int(outlet_id, "outlet_id", required=False)

        def _op():
            with self._uow.begin() as tx:
                self.get_product(tx.session, product_id)
                self.get_warehouse(tx.session, warehouse_id)
                self.check_outlet(tx.session, outlet_id)
                row = self._get_or_create_row(tx, product_id, warehouse_id)

                if direction == DIRECTION_IN:
                    row = self._increment(tx, product_id, warehouse_id, qty)
                    self._record(
                        tx,
                        movement_type=MOVEMENT_ADJUSTMENT_IN,
                        product_id=product_id,
                        quantity=qty,
                        user_id=user_id,
                        to_warehouse_id=warehouse_id,
                        outlet_id=outlet_id,
                        notes=notes,
                    )
                else:
                    if not self._try_decrement(tx, product_id, warehouse_id, qty):
                        raise InvalidInventoryStateError(
                            "Adjustment would make quantity on hand negative",
                            details={
                                "product_id": product_id,
                                "warehouse_id": warehouse_id,
                                "quantity_on_hand": to_decimal_str(row.quantity_on_hand),
                                "requested": to_decimal_str(qty),
                            },
                        )
                    row = self._reload(tx.session, product_id, warehouse_id)
                    self._record(
                        tx,
                        movement_type=MOVEMENT_ADJUSTMENT_OUT,
                        product_id=product_id,
                        quantity=qty,
                        user_id=user_id,
                        from_warehouse_id=warehouse_id,
                        outlet_id=outlet_id,
                        notes=notes,
                    )
                new_quantity = row.quantity_on_hand
            return row, new_quantity

        row, new_quantity = self._retry(_op)

        logger.info(
            "Inventory adjusted product_id=%s warehouse_id=%s direction=%s qty=%s on_hand=%s",
            product_id, warehouse_id, direction, qty, new_quantity,
        )
        enqueue_audit_log_job(
            self._jobs,
            event_type="INVENTORY_ADJUSTED",
            business_id=self._business_id,
            user_id=user_id,
            outlet_id=outlet_id,
            entity_type="inventory",
            entity_id=row.id,
            payload={
                "product_id": product_id,
                "warehouse_id": warehouse_id,
                "direction": direction,
                "quantity": to_decimal_str(qty),
                "quantity_on_hand": to_decimal_str(new_quantity),
                "notes": notes,
            },
        )
        return row

    def transfer(
        self,
        *,
        product_id,
        from_warehouse_id,
        to_warehouse_id,
        quantity,
        user_id: int,
        outlet_id=None,
        notes: str | None = None,
    ) -> dict:
        """Move stock between two warehouses; total on-hand is conserved."""
        product_id = coerce_int(product_id, "product_id")
        from_warehouse_id = coerce_int(from_warehouse_id, "from_warehouse_id")
        to_warehouse_id = coerce_int(to_warehouse_id, "to_warehouse_id")
        outlet_id = coerce_int(outlet_id, "outlet_id", required=False)
        if from_warehouse_id == to_warehouse_id:
            raise InvalidRequestError("Source and destination warehouse must differ")
        qty = _positive_quantity(quantity)

        def _op():
            with self._uow.begin() as tx:
                self.get_product(tx.session, product_id)
                self.get_warehouse(tx.session, from_warehouse_id)
                self.get_warehouse(tx.session, to_warehouse_id)
                self.check_outlet(tx.session, outlet_id)

                source = self._find_row(tx.session, product_id, from_warehouse_id)
                if source is None:
                    raise NotFoundError(
                        f"No inventory for product {product_id} in warehouse {from_warehouse_id}"
                    )
                if not self._try_decrement(tx, product_id, from_warehouse_id, qty):
                    raise InsufficientStockError(
                        "Insufficient stock in source warehouse",
                        details={
                            "product_id": product_id,
                            "warehouse_id": from_warehouse_id,
                            "requested": to_decimal_str(qty),
                            "available": to_decimal_str(source.quantity_on_hand),
                        },
                    )
                source = self._reload(tx.session, product_id, from_warehouse_id)

                self._get_or_create_row(tx, product_id, to_warehouse_id)
                destination = self._increment(tx, product_id, to_warehouse_id, qty)

                movement = self._record(
                    tx,
                    movement_type=MOVEMENT_TRANSFER,
                    product_id=product_id,
                    quantity=qty,
                    user_id=user_id,
                    from_warehouse_id=from_warehouse_id,
                    to_warehouse_id=to_warehouse_id,
                    outlet_id=outlet_id,
                    notes=notes,
                )
                movement_id = movement.id
            return source, destination, movement_id

        source, destination, movement_id = self._retry(_op)

        logger.info(
            "Inventory transferred product_id=%s from=%s to=%s qty=%s",
            product_id, from_warehouse_id, to_warehouse_id, qty,
        )
        enqueue_audit_log_job(
            self._jobs,
            event_type="INVENTORY_TRANSFERRED",
            business_id=self._business_id,
            user_id=user_id,
            outlet_id=outlet_id,
            entity_type="stock_movement",
            entity_id=movement_id,
            payload={
                "product_id": product_id,
                "from_warehouse_id": from_warehouse_id,
                "to_warehouse_id": to_warehouse_id,
                "quantity": to_decimal_str(qty),
                "notes": notes,
            },
        )
        return {"source": source, "destination": destination}

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    def get_inventory(self, filters: dict | None = None, page=None, limit=None) -> dict:
        filters = filters or {}
        query = (
            self._uow.session.query(Inventory)
            .join(Product, Inventory.product_id == Product.id)
            .join(Warehouse, Inventory.warehouse_id == Warehouse.id)
            .filter(Product.business_id == self._business_id)
        )

        product_id = coerce_int(filters.get("product_id"), "product_id", required=False)
        if product_id is not None:
            query = query.filter(Inventory.product_id == product_id)
        warehouse_id = coerce_int(filters.get("warehouse_id"), "warehouse_id", required=False)
        if warehouse_id is not None:
            query = query.filter(Inventory.warehouse_id == warehouse_id)
        outlet_id = coerce_int(filters.get("outlet_id"), "outlet_id", required=False)
        if outlet_id is not None:
            query = query.filter(Warehouse.outlet_id == outlet_id)
        if _truthy(filters.get("low_stock")):
            query = query.filter(Inventory.quantity_on_hand <= Inventory.minimum_stock)

        query = query.order_by(Product.name.asc(), Inventory.id.asc())
        return paginate(query, page, limit, self._settings, key="inventories")

    def get_stock_movements(self, filters: dict | None = None, page=None, limit=None) -> dict:
        filters = filters or {}
        query = (
            self._uow.session.query(StockMovement)
            .join(Product, StockMovement.product_id == Product.id)
            .filter(Product.business_id == self._business_id)
        )

        product_id = coerce_int(filters.get("product_id"), "product_id", required=False)
        if product_id is not None:
            query = query.filter(StockMovement.product_id == product_id)
        warehouse_id = coerce_int(filters.get("warehouse_id"), "warehouse_id", required=False)
        if warehouse_id is not None:
            query = query.filter(or_(
                StockMovement.from_warehouse_id == warehouse_id,
                StockMovement.to_warehouse_id == warehouse_id,
            ))
        outlet_id = coerce_int(filters.get("outlet_id"), "outlet_id", required=False)
        if outlet_id is not None:
            query = query.filter(StockMovement.outlet_id == outlet_id)

        movement_type = filters.get("type")
        if movement_type:
            movement_type = str(movement_type).upper()
            if movement_type not in MOVEMENT_TYPES:
                raise InvalidRequestError(
                    f"type must be one of {', '.join(sorted(MOVEMENT_TYPES))}",
                )
            query = query.filter(StockMovement.type == movement_type)

        start_date = coerce_datetime(filters.get("start_date"), "start_date")
        if start_date is not None:
            query = query.filter(StockMovement.created_at >= start_date)
        end_date = coerce_datetime(filters.get("end_date"), "end_date")
        if end_date is not None:
            query = query.filter(StockMovement.created_at <= end_date)

        query = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        return paginate(query, page, limit, self._settings, key="movements")

    def get_quantity_on_hand(self, product_id: int, warehouse_id: int) -> Decimal:
        session = self._uow.session
        self.get_product(session, product_id)
        row = self._find_row(session, product_id, warehouse_id)
        return row.quantity_on_hand if row is not None else Decimal("0")

    def reconcile(self, product_id: int, warehouse_id: int) -> ReconcileResult:
        """Compare the stored on-hand quantity with the sum of its movements."""
        product_id = coerce_int(product_id, "product_id")
        warehouse_id = coerce_int(warehouse_id, "warehouse_id")
        session = self._uow.session
        self.get_product(session, product_id)
        self.get_warehouse(session, warehouse_id)

        inbound = session.query(func.coalesce(func.sum(StockMovement.quantity), 0)).filter(
            StockMovement.product_id == product_id,
            StockMovement.to_warehouse_id == warehouse_id,
        ).scalar()
        outbound = session.query(func.coalesce(func.sum(StockMovement.quantity), 0)).filter(
            StockMovement.product_id == product_id,
            StockMovement.from_warehouse_id == warehouse_id,
        ).scalar()

        row = self._find_row(session, product_id, warehouse_id)
        on_hand = row.quantity_on_hand if row is not None else Decimal("0")
        ledger = Decimal(str(inbound or 0)) - Decimal(str(outbound or 0))

        return ReconcileResult(
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity_on_hand=quantize_quantity(on_hand),
            ledger_quantity=quantize_quantity(ledger),
        )


def _truthy(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


def _rounded(expression):
    # SQLite stores Numeric as REAL; keep on-hand arithmetic at the column's scale
    column_type = Inventory.__table__.c.quantity_on_hand.type
    return func.round(expression, column_type.scale, type_=column_type)
