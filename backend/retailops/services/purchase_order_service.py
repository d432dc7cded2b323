# Overview: Purchase-order lifecycle; supplier orders received into warehouse stock.

"""
Purchase Order Service

LIFECYCLE:
1. DRAFT: Created; header (supplier, warehouse, expected date, notes) editable
2. PARTIALLY_RECEIVED: At least one receipt, some quantity still outstanding
3. RECEIVED: Every item has quantity_received >= quantity_ordered (terminal)
4. CANCELLED: Cancelled from DRAFT or PARTIALLY_RECEIVED (terminal)

DESIGN:
- Items are fixed at creation. update() touches header fields only.
- Each receipt increments quantity_received and calls InventoryLedger.increase
  in the same transaction, with reference = the PO number.
- Status after a receipt is computed from received vs ordered quantities.
- Cancelling never reverses stock that was already received.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from ..config import ServiceSettings
from ..errors import InvalidOrderStateError, InvalidRequestError, NotFoundError
from ..models import Outlet, PurchaseOrder, PurchaseOrderItem
from ..time_utils import Clock
from ..validation import (
    coerce_datetime,
    coerce_decimal,
    coerce_int,
    coerce_text,
    quantize_money,
    quantize_quantity,
    reject_unknown_fields,
    to_decimal_str,
)
from .concurrency import lock_for_update, run_with_retry
from .document_service import DOCUMENT_PURCHASE_ORDER, DocumentNumberGenerator
from .inventory_service import InventoryLedger
from .job_service import JobSink, LoggingJobSink, enqueue_audit_log_job
from .pagination import paginate
from .tenant_service import require_outlet, require_product, require_supplier, require_warehouse
from .unit_of_work import UnitOfWork


logger = logging.getLogger(__name__)


STATUS_DRAFT = "DRAFT"
STATUS_PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
STATUS_RECEIVED = "RECEIVED"
STATUS_CANCELLED = "CANCELLED"
PO_STATUSES = {STATUS_DRAFT, STATUS_PARTIALLY_RECEIVED, STATUS_RECEIVED, STATUS_CANCELLED}

# Statuses that accept no further receipts or cancellation
TERMINAL_STATUSES = {STATUS_RECEIVED, STATUS_CANCELLED}

UPDATABLE_FIELDS = {"supplier_id", "warehouse_id", "expected_date", "notes"}

PO_NUMBER_PREFIX = "PO"


def compute_receipt_status(items) -> str:
    if all(item.quantity_received >= item.quantity_ordered for item in items):
        return STATUS_RECEIVED
    return STATUS_PARTIALLY_RECEIVED


class PurchaseOrderLifecycle:
    def __init__(
        self,
        uow: UnitOfWork,
        business_id: int,
        *,
        inventory: InventoryLedger,
        documents: DocumentNumberGenerator | None = None,
        clock: Clock | None = None,
        jobs: JobSink | None = None,
        settings: ServiceSettings | None = None,
    ):
        self._uow = uow
        self._business_id = business_id
        self._inventory = inventory
        self._clock = clock or Clock()
        self._documents = documents or DocumentNumberGenerator(self._clock)
        self._jobs = jobs or LoggingJobSink()
        self._settings = settings or ServiceSettings()

    def _retry(self, func):
        return run_with_retry(
            func,
            attempts=self._settings.retry_attempts,
            backoff_base=self._settings.retry_backoff_base,
        )

    def _po_query(self, session):
        return (
            session.query(PurchaseOrder)
            .join(Outlet, PurchaseOrder.outlet_id == Outlet.id)
            .filter(Outlet.business_id == self._business_id)
        )

    def _lock_po(self, session, po_id: int) -> PurchaseOrder:
        po = lock_for_update(self._po_query(session).filter(PurchaseOrder.id == po_id)).first()
        if po is None:
            raise NotFoundError(f"Purchase order {po_id} not found")
        return po

    def _check_warehouse(self, session, warehouse_id: int, outlet_id: int):
        warehouse = require_warehouse(session, self._business_id, warehouse_id)
        if warehouse.outlet_id != outlet_id:
            raise InvalidRequestError(
                "Warehouse does not belong to outlet",
                details={"outlet_id": outlet_id, "warehouse_id": warehouse_id},
            )
        return warehouse

    # ------------------------------------------------------------------
    # Create / update
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_items(items) -> list[dict]:
        if not isinstance(items, list) or not items:
            raise InvalidRequestError("Purchase order must contain at least one item")

        parsed = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                raise InvalidRequestError(f"items[{index}] must be an object")
            quantity = quantize_quantity(
                coerce_decimal(item.get("quantity_ordered"), "quantity_ordered", positive=True)
            )
            unit_cost = quantize_money(coerce_decimal(item.get("unit_cost"), "unit_cost", non_negative=True))
            parsed.append({
                "product_id": coerce_int(item.get("product_id"), "product_id"),
                "quantity_ordered": quantity,
                "unit_cost": unit_cost,
                "line_total": quantize_money(quantity * unit_cost),
            })
        return parsed

    def create(
        self,
        *,
        supplier_id,
        warehouse_id,
        outlet_id,
        items,
        user_id: int,
        expected_date=None,
        notes: str | None = None,
    ) -> PurchaseOrder:
        """
        Create a DRAFT purchase order.

        Raises:
            NotFoundError: supplier, warehouse, outlet or a product is not in this business
            InvalidRequestError: no items, quantity_ordered <= 0 or unit_cost < 0
        """
        supplier_id = coerce_int(supplier_id, "supplier_id")
        warehouse_id = coerce_int(warehouse_id, "warehouse_id")
        outlet_id = coerce_int(outlet_id, "outlet_id")
        expected_date = coerce_datetime(expected_date, "expected_date")
        notes = coerce_text(notes, "notes")
        lines = self._parse_items(items)

        def _op():
            with self._uow.begin() as tx:
                session = tx.session
                require_supplier(session, self._business_id, supplier_id)
                outlet = require_outlet(session, self._business_id, outlet_id)
                self._check_warehouse(session, warehouse_id, outlet_id)
                for line in lines:
                    require_product(session, self._business_id, line["product_id"])

                order_number = self._documents.next_number(
                    tx,
                    outlet=outlet,
                    document_type=DOCUMENT_PURCHASE_ORDER,
                    prefix=PO_NUMBER_PREFIX,
                )
                po = PurchaseOrder(
                    order_number=order_number,
                    supplier_id=supplier_id,
                    warehouse_id=warehouse_id,
                    outlet_id=outlet_id,
                    status=STATUS_DRAFT,
                    order_date=self._clock.now(),
                    expected_date=expected_date,
                    total_amount=sum((line["line_total"] for line in lines), quantize_money(Decimal("0"))),
                    notes=notes,
                    created_by_user_id=user_id,
                )
                po.items = [
                    PurchaseOrderItem(
                        product_id=line["product_id"],
                        quantity_ordered=line["quantity_ordered"],
                        quantity_received=Decimal("0"),
                        unit_cost=line["unit_cost"],
                        line_total=line["line_total"],
                    )
                    for line in lines
                ]
                session.add(po)
                tx.flush()
            return po

        po = self._retry(_op)
        logger.info(
            "Purchase order created id=%s number=%s supplier_id=%s total=%s",
            po.id, po.order_number, po.supplier_id, po.total_amount,
        )
        return po

    def update(self, po_id, patch: dict) -> PurchaseOrder:
        """Edit header fields of a DRAFT purchase order. Items cannot be changed."""
        po_id = coerce_int(po_id, "purchase_order_id")
        patch = patch or {}
        reject_unknown_fields(patch, UPDATABLE_FIELDS)

        def _op():
            with self._uow.begin() as tx:
                session = tx.session
                po = self._lock_po(session, po_id)
                if po.status != STATUS_DRAFT:
                    raise InvalidOrderStateError(
                        f"Cannot update purchase order with status {po.status}",
                        details={"purchase_order_id": po.id, "status": po.status},
                    )

                if "supplier_id" in patch:
                    supplier_id = coerce_int(patch["supplier_id"], "supplier_id")
                    require_supplier(session, self._business_id, supplier_id)
                    po.supplier_id = supplier_id
                if "warehouse_id" in patch:
                    warehouse_id = coerce_int(patch["warehouse_id"], "warehouse_id")
                    self._check_warehouse(session, warehouse_id, po.outlet_id)
                    po.warehouse_id = warehouse_id
                if "expected_date" in patch:
                    po.expected_date = coerce_datetime(patch["expected_date"], "expected_date")
                if "notes" in patch:
                    po.notes = coerce_text(patch["notes"], "notes")
                tx.flush()
            return po

        po = self._retry(_op)
        logger.info("Purchase order updated id=%s fields=%s", po.id, ",".join(sorted(patch)))
        return po

    # ------------------------------------------------------------------
    # Receive / cancel
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_receipts(received_items) -> list[tuple[int, Decimal]]:
        if not isinstance(received_items, list) or not received_items:
            raise InvalidRequestError("received_items must contain at least one item")

        parsed = []
        for index, entry in enumerate(received_items):
            if not isinstance(entry, dict):
                raise InvalidRequestError(f"received_items[{index}] must be an object")
            parsed.append((
                coerce_int(entry.get("item_id"), "item_id"),
                quantize_quantity(coerce_decimal(entry.get("quantity"), "quantity", positive=True)),
            ))
        return parsed

    def receive(self, po_id, received_items, *, user_id: int) -> PurchaseOrder:
        """
        Receive stock against a purchase order.

        Args:
            po_id: Purchase order id
            received_items: [{item_id, quantity}], quantity > 0
            user_id: Receiving user

        Returns:
            The PurchaseOrder, PARTIALLY_RECEIVED or RECEIVED

        Raises:
            NotFoundError: PO or one of its items does not exist
            InvalidOrderStateError: PO is RECEIVED or CANCELLED
            InvalidRequestError: empty list or non-positive quantity
        """
        po_id = coerce_int(po_id, "purchase_order_id")
        receipts = self._parse_receipts(received_items)

        def _op():
            with self._uow.begin() as tx:
                po = self._lock_po(tx.session, po_id)
                if po.status in TERMINAL_STATUSES:
                    raise InvalidOrderStateError(
                        f"Cannot receive purchase order with status {po.status}",
                        details={"purchase_order_id": po.id, "status": po.status},
                    )

                items_by_id = {item.id: item for item in po.items}
                received = []
                for item_id, quantity in receipts:
                    item = items_by_id.get(item_id)
                    if item is None:
                        raise NotFoundError(
                            f"Purchase order item {item_id} not found",
                            details={"purchase_order_id": po.id, "item_id": item_id},
                        )
                    item.quantity_received = quantize_quantity(item.quantity_received + quantity)
                    self._inventory.increase(
                        tx,
                        product_id=item.product_id,
                        warehouse_id=po.warehouse_id,
                        quantity=quantity,
                        user_id=user_id,
                        outlet_id=po.outlet_id,
                        reference=po.order_number,
                    )
                    received.append({
                        "item_id": item.id,
                        "product_id": item.product_id,
                        "quantity": to_decimal_str(quantity),
                    })

                po.status = compute_receipt_status(po.items)
                po.received_by_user_id = user_id
                po.received_at = self._clock.now()
                tx.flush()
                summary = {
                    "order_number": po.order_number,
                    "outlet_id": po.outlet_id,
                    "status": po.status,
                    "items": received,
                }
            return po, summary

        po, summary = self._retry(_op)
        logger.info(
            "Purchase order received id=%s number=%s status=%s lines=%d",
            po.id, summary["order_number"], summary["status"], len(summary["items"]),
        )
        enqueue_audit_log_job(
            self._jobs,
            event_type="PURCHASE_ORDER_RECEIVED",
            business_id=self._business_id,
            user_id=user_id,
            outlet_id=summary["outlet_id"],
            entity_type="purchase_order",
            entity_id=po.id,
            payload=summary,
        )
        return po

    def cancel(self, po_id, *, user_id: int) -> PurchaseOrder:
        po_id = coerce_int(po_id, "purchase_order_id")

        def _op():
            with self._uow.begin() as tx:
                po = self._lock_po(tx.session, po_id)
                if po.status in TERMINAL_STATUSES:
                    raise InvalidOrderStateError(
                        f"Cannot cancel purchase order with status {po.status}",
                        details={"purchase_order_id": po.id, "status": po.status},
                    )
                previous_status = po.status
                po.status = STATUS_CANCELLED
                po.cancelled_by_user_id = user_id
                po.cancelled_at = self._clock.now()
                tx.flush()
                summary = {
                    "order_number": po.order_number,
                    "outlet_id": po.outlet_id,
                    "previous_status": previous_status,
                }
            return po, summary

        po, summary = self._retry(_op)
        logger.info("Purchase order cancelled id=%s", po.id)
        enqueue_audit_log_job(
            self._jobs,
            event_type="PURCHASE_ORDER_CANCELLED",
            business_id=self._business_id,
            user_id=user_id,
            outlet_id=summary["outlet_id"],
            entity_type="purchase_order",
            entity_id=po.id,
            payload=summary,
        )
        return po

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_purchase_order(self, po_id) -> PurchaseOrder:
        po_id = coerce_int(po_id, "purchase_order_id")
        po = self._po_query(self._uow.session).filter(PurchaseOrder.id == po_id).first()
        if po is None:
            raise NotFoundError(f"Purchase order {po_id} not found")
        return po

    def list_purchase_orders(self, filters: dict | None = None, page=None, limit=None) -> dict:
        filters = filters or {}
        query = self._po_query(self._uow.session)

        for key in ("supplier_id", "warehouse_id", "outlet_id"):
            value = coerce_int(filters.get(key), key, required=False)
            if value is not None:
                query = query.filter(getattr(PurchaseOrder, key) == value)

        status = filters.get("status")
        if status:
            status = str(status).upper()
            if status not in PO_STATUSES:
                raise InvalidRequestError(f"status must be one of {', '.join(sorted(PO_STATUSES))}")
            query = query.filter(PurchaseOrder.status == status)

        query = query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
        return paginate(query, page, limit, self._settings, key="purchase_orders")
