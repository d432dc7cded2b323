# Overview: POS order lifecycle; pricing at creation, payments, stock decrement at completion.

"""
Sales Service - POS order lifecycle

LIFECYCLE:
    OPEN --complete--> COMPLETED   (requires payment_status PAID)
    OPEN --cancel----> CANCELLED   (no inventory effect; nothing was reserved)

WHY stock moves at completion only: an OPEN order is a quote the customer can
still walk away from. Completion decrements every line inside the same
transaction that flips the status, so either the whole sale lands or none
of it does.

Money:
- Line prices are resolved once at creation and frozen on PosOrderItem.
- tax = (unit_price * qty - discount) * tax_rate / 100
- line_total = unit_price * qty - discount + tax
- Every monetary result is rounded to cents, half-up.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func

from ..config import ServiceSettings
from ..errors import (
    InvalidOrderStateError,
    InvalidRequestError,
    NotFoundError,
    PaymentIncompleteError,
)
from ..models import Outlet, Payment, PosOrder, PosOrderItem
from ..time_utils import Clock
from ..validation import (
    coerce_datetime,
    coerce_decimal,
    coerce_int,
    coerce_text,
    quantize_money,
    quantize_quantity,
    to_decimal_str,
)
from .concurrency import lock_for_update, run_with_retry
from .document_service import DOCUMENT_POS_ORDER, DocumentNumberGenerator
from .inventory_service import InventoryLedger
from .job_service import (
    JobSink,
    LoggingJobSink,
    enqueue_audit_log_job,
    enqueue_email_notification_job,
)
from .pagination import paginate
from .pricing_service import PriceResolver
from .tenant_service import require_customer, require_outlet, require_warehouse
from .unit_of_work import UnitOfWork


logger = logging.getLogger(__name__)


ORDER_OPEN = "OPEN"
ORDER_COMPLETED = "COMPLETED"
ORDER_CANCELLED = "CANCELLED"
ORDER_STATUSES = {ORDER_OPEN, ORDER_COMPLETED, ORDER_CANCELLED}

PAYMENT_UNPAID = "UNPAID"
PAYMENT_PARTIAL = "PARTIAL"
PAYMENT_PAID = "PAID"
PAYMENT_STATUSES = {PAYMENT_UNPAID, PAYMENT_PARTIAL, PAYMENT_PAID}

PAYMENT_METHODS = {"CASH", "CARD", "E_WALLET", "BANK_TRANSFER"}

ZERO = Decimal("0")


def compute_payment_status(paid: Decimal, total: Decimal) -> str:
    if paid >= total:
        return PAYMENT_PAID
    if paid > 0:
        return PAYMENT_PARTIAL
    return PAYMENT_UNPAID


def compute_line(unit_price: Decimal, quantity: Decimal, discount: Decimal, tax_rate: Decimal | None) -> dict:
    """Money for one order line, rounded to cents."""
    gross = Decimal(unit_price) * quantity
    taxable = gross - discount
    tax = quantize_money(taxable * Decimal(tax_rate) / 100) if tax_rate else quantize_money(ZERO)
    return {
        "gross": quantize_money(gross),
        "discount": quantize_money(discount),
        "tax": tax,
        "line_total": quantize_money(taxable + tax),
    }


class OrderLifecycle:
    def __init__(
        self,
        uow: UnitOfWork,
        business_id: int,
        *,
        pricing: PriceResolver,
        inventory: InventoryLedger,
        documents: DocumentNumberGenerator | None = None,
        clock: Clock | None = None,
        jobs: JobSink | None = None,
        settings: ServiceSettings | None = None,
    ):
        self._uow = uow
        self._business_id = business_id
        self._pricing = pricing
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

    def _order_query(self, session):
        # Orders are scoped to the tenant through their outlet
        return (
            session.query(PosOrder)
            .join(Outlet, PosOrder.outlet_id == Outlet.id)
            .filter(Outlet.business_id == self._business_id)
        )

    def _lock_order(self, session, order_id: int) -> PosOrder:
        order = lock_for_update(self._order_query(session).filter(PosOrder.id == order_id)).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    @staticmethod
    def _require_open(order: PosOrder, action: str) -> None:
        if order.status != ORDER_OPEN:
            raise InvalidOrderStateError(
                f"Cannot {action} order with status {order.status}",
                details={"order_id": order.id, "status": order.status},
            )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def _parse_items(self, items) -> list[dict]:
        if not isinstance(items, list) or not items:
            raise InvalidRequestError("Order must contain at least one item")

        parsed = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                raise InvalidRequestError(f"items[{index}] must be an object")
            discount = coerce_decimal(item.get("discount_amount"), "discount_amount", required=False) or ZERO
            parsed.append({
                "product_id": coerce_int(item.get("product_id"), "product_id"),
                "quantity": quantize_quantity(coerce_decimal(item.get("quantity"), "quantity", positive=True)),
                "discount_amount": max(discount, ZERO),
            })
        return parsed

    def create(
        self,
        *,
        outlet_id,
        warehouse_id,
        items,
        user_id: int,
        register_id=None,
        customer_id=None,
        notes: str | None = None,
    ) -> PosOrder:
        outlet_id = coerce_int(outlet_id, "outlet_id")
        warehouse_id = coerce_int(warehouse_id, "warehouse_id")
        register_id = coerce_int(register_id, "register_id", required=False)
        customer_id = coerce_int(customer_id, "customer_id", required=False)
        notes = coerce_text(notes, "notes")
        lines = self._parse_items(items)

        def _op():
            with self._uow.begin() as tx:
                session = tx.session
                outlet = require_outlet(session, self._business_id, outlet_id)
                warehouse = require_warehouse(session, self._business_id, warehouse_id)
                if warehouse.outlet_id != outlet.id:
                    raise InvalidRequestError(
                        "Warehouse does not belong to outlet",
                        details={"outlet_id": outlet_id, "warehouse_id": warehouse_id},
                    )
                if customer_id is not None:
                    require_customer(session, self._business_id, customer_id)

                subtotal = total_discount = total_tax = total = quantize_money(ZERO)
                order_items = []
                for line_number, line in enumerate(lines, start=1):
                    quote = self._pricing.resolve_price(line["product_id"], outlet_id, customer_id, tx=tx)
                    if line["discount_amount"] > quote.effective_price * line["quantity"]:
                        raise InvalidRequestError(
                            "discount_amount exceeds the line amount",
                            details={"line_number": line_number, "product_id": line["product_id"]},
                        )
                    money = compute_line(quote.effective_price, line["quantity"], line["discount_amount"], quote.tax_rate)

                    subtotal += money["gross"]
                    total_discount += money["discount"]
                    total_tax += money["tax"]
                    total += money["line_total"]

                    order_items.append(PosOrderItem(
                        line_number=line_number,
                        product_id=line["product_id"],
                        quantity=line["quantity"],
                        unit_price=quantize_money(quote.effective_price),
                        discount_amount=money["discount"],
                        tax_amount=money["tax"],
                        line_total=money["line_total"],
                        effective_price_tier_id=quote.price_tier_id,
                    ))

                order_number = self._documents.next_number(
                    tx, outlet=outlet, document_type=DOCUMENT_POS_ORDER,
                )
                order = PosOrder(
                    order_number=order_number,
                    outlet_id=outlet_id,
                    warehouse_id=warehouse_id,
                    register_id=register_id,
                    customer_id=customer_id,
                    cashier_user_id=user_id,
                    status=ORDER_OPEN,
                    payment_status=PAYMENT_UNPAID,
                    subtotal_amount=subtotal,
                    total_discount_amount=total_discount,
                    total_tax_amount=total_tax,
                    total_amount=total,
                    notes=notes,
                    created_at=self._clock.now(),
                )
                order.items = order_items
                session.add(order)
                tx.flush()
            return order

        order = self._retry(_op)
        logger.info(
            "POS order created id=%s number=%s outlet_id=%s total=%s",
            order.id, order.order_number, order.outlet_id, order.total_amount,
        )
        return order

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def add_payment(
        self,
        order_id,
        *,
        method,
        amount,
        reference: str | None = None,
        paid_at=None,
    ) -> dict:
        """
        Record one payment and recompute payment_status from the full sum.

        The order row is locked so two concurrent payments both count.
        """
        order_id = coerce_int(order_id, "order_id")
        method = str(method or "").strip().upper()
        if method not in PAYMENT_METHODS:
            raise InvalidRequestError(
                f"method must be one of {', '.join(sorted(PAYMENT_METHODS))}",
                details={"method": method},
            )
        amount = quantize_money(coerce_decimal(amount, "amount", positive=True))
        if amount <= 0:
            raise InvalidRequestError("amount must be positive")
        reference = coerce_text(reference, "reference", max_length=128)
        paid_at = coerce_datetime(paid_at, "paid_at")

        def _op():
            with self._uow.begin() as tx:
                session = tx.session
                order = self._lock_order(session, order_id)
                self._require_open(order, "add payment to")

                payment = Payment(
                    pos_order_id=order.id,
                    method=method,
                    amount=amount,
                    reference=reference,
                    paid_at=paid_at or self._clock.now(),
                )
                session.add(payment)
                tx.flush()

                paid = session.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
                    Payment.pos_order_id == order.id
                ).scalar()
                order.payment_status = compute_payment_status(
                    quantize_money(Decimal(str(paid))), order.total_amount,
                )
                tx.flush()
            return payment, order

        payment, order = self._retry(_op)
        logger.info(
            "Payment recorded id=%s order_id=%s method=%s amount=%s payment_status=%s",
            payment.id, order.id, method, amount, order.payment_status,
        )
        return {"payment": payment, "order": order}

    # ------------------------------------------------------------------
    # Complete / cancel
    # ------------------------------------------------------------------

    def complete(self, order_id, *, user_id: int) -> PosOrder:
        order_id = coerce_int(order_id, "order_id")

        def _op():
            with self._uow.begin() as tx:
                order = self._lock_order(tx.session, order_id)
                self._require_open(order, "complete")
                if order.payment_status != PAYMENT_PAID:
                    raise PaymentIncompleteError(
                        "Order must be fully paid before completion",
                        details={"order_id": order.id, "payment_status": order.payment_status},
                    )

                order.status = ORDER_COMPLETED
                order.closed_at = self._clock.now()
                order.closed_by_user_id = user_id

                for item in order.items:
                    self._inventory.decrease(
                        tx,
                        product_id=item.product_id,
                        warehouse_id=order.warehouse_id,
                        quantity=item.quantity,
                        user_id=user_id,
                        outlet_id=order.outlet_id,
                        reference=order.order_number,
                    )
                tx.flush()

                receipt = self._receipt_data(order)
            return order, receipt

        order, receipt = self._retry(_op)
        logger.info("POS order completed id=%s number=%s", order.id, receipt["order_number"])

        enqueue_audit_log_job(
            self._jobs,
            event_type="POS_ORDER_COMPLETED",
            business_id=self._business_id,
            user_id=user_id,
            outlet_id=receipt["outlet_id"],
            entity_type="pos_order",
            entity_id=order.id,
            payload={
                "order_number": receipt["order_number"],
                "total_amount": receipt["total_amount"],
                "item_count": len(receipt["items"]),
            },
        )
        if receipt["customer_email"]:
            enqueue_email_notification_job(
                self._jobs,
                to_email=receipt["customer_email"],
                subject=f"Receipt for order {receipt['order_number']}",
                template_name="order_receipt",
                template_data=receipt,
                related_entity_type="pos_order",
                related_entity_id=order.id,
            )
        return order

    @staticmethod
    def _receipt_data(order: PosOrder) -> dict:
        customer = order.customer
        return {
            "order_number": order.order_number,
            "outlet_id": order.outlet_id,
            "customer_name": customer.name if customer else None,
            "customer_email": customer.email if customer else None,
            "subtotal_amount": to_decimal_str(order.subtotal_amount),
            "total_discount_amount": to_decimal_str(order.total_discount_amount),
            "total_tax_amount": to_decimal_str(order.total_tax_amount),
            "total_amount": to_decimal_str(order.total_amount),
            "items": [
                {
                    "product_id": item.product_id,
                    "product_name": item.product.name if item.product else None,
                    "quantity": to_decimal_str(item.quantity),
                    "unit_price": to_decimal_str(item.unit_price),
                    "line_total": to_decimal_str(item.line_total),
                }
                for item in order.items
            ],
        }

    def cancel(self, order_id, *, user_id: int) -> PosOrder:
        order_id = coerce_int(order_id, "order_id")

        def _op():
            with self._uow.begin() as tx:
                order = self._lock_order(tx.session, order_id)
                self._require_open(order, "cancel")
                order.status = ORDER_CANCELLED
                order.closed_at = self._clock.now()
                order.closed_by_user_id = user_id
                tx.flush()
                summary = (order.order_number, order.outlet_id)
            return order, summary

        order, (order_number, outlet_id) = self._retry(_op)
        logger.info("POS order cancelled id=%s number=%s", order.id, order_number)
        enqueue_audit_log_job(
            self._jobs,
            event_type="POS_ORDER_CANCELLED",
            business_id=self._business_id,
            user_id=user_id,
            outlet_id=outlet_id,
            entity_type="pos_order",
            entity_id=order.id,
            payload={"order_number": order_number},
        )
        return order

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_order(self, order_id) -> PosOrder:
        order_id = coerce_int(order_id, "order_id")
        order = self._order_query(self._uow.session).filter(PosOrder.id == order_id).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def list_orders(self, filters: dict | None = None, page=None, limit=None) -> dict:
        filters = filters or {}
        query = self._order_query(self._uow.session)

        for key in ("outlet_id", "customer_id", "cashier_user_id"):
            value = coerce_int(filters.get(key), key, required=False)
            if value is not None:
                query = query.filter(getattr(PosOrder, key) == value)

        status = filters.get("status")
        if status:
            status = str(status).upper()
            if status not in ORDER_STATUSES:
                raise InvalidRequestError(f"status must be one of {', '.join(sorted(ORDER_STATUSES))}")
            query = query.filter(PosOrder.status == status)

        payment_status = filters.get("payment_status")
        if payment_status:
            payment_status = str(payment_status).upper()
            if payment_status not in PAYMENT_STATUSES:
                raise InvalidRequestError(
                    f"payment_status must be one of {', '.join(sorted(PAYMENT_STATUSES))}"
                )
            query = query.filter(PosOrder.payment_status == payment_status)

        start_date = coerce_datetime(filters.get("start_date"), "start_date")
        if start_date is not None:
            query = query.filter(PosOrder.created_at >= start_date)
        end_date = coerce_datetime(filters.get("end_date"), "end_date")
        if end_date is not None:
            query = query.filter(PosOrder.created_at <= end_date)

        query = query.order_by(PosOrder.created_at.desc(), PosOrder.id.desc())
        return paginate(query, page, limit, self._settings, key="orders")
