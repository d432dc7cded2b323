from __future__ import annotations

from ..extensions import db
from retailops.time_utils import to_utc_z
from retailops.validation import to_decimal_str


class PosOrder(db.Model):
    """
    Point-of-sale order.

    LIFECYCLE (status):
    - OPEN -> COMPLETED (fully paid; stock decremented in the same transaction)
    - OPEN -> CANCELLED (no stock effect; nothing was reserved)
    COMPLETED and CANCELLED are terminal.

    payment_status (UNPAID, PARTIAL, PAID) is derived from the sum of all
    payments every time one is added.

    IMMUTABLE: monetary totals are computed once at creation.
    """
    __tablename__ = "pos_orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_pos_orders_order_number"),
        db.Index("ix_pos_orders_outlet_status_created", "outlet_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(64), nullable=False)

    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    register_id = db.Column(db.Integer, nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    cashier_user_id = db.Column(db.Integer, nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="UNPAID", index=True)

    subtotal_amount = db.Column(db.Numeric(14, 2), nullable=False)
    total_discount_amount = db.Column(db.Numeric(14, 2), nullable=False)
    total_tax_amount = db.Column(db.Numeric(14, 2), nullable=False)
    total_amount = db.Column(db.Numeric(14, 2), nullable=False)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by_user_id = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    outlet = db.relationship("Outlet")
    warehouse = db.relationship("Warehouse")
    customer = db.relationship("Customer")
    items = db.relationship(
        "PosOrderItem",
        back_populates="order",
        order_by="PosOrderItem.line_number",
        lazy=True,
    )
    payments = db.relationship(
        "Payment",
        back_populates="order",
        order_by="Payment.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PosOrder id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "outlet_id": self.outlet_id,
            "warehouse_id": self.warehouse_id,
            "register_id": self.register_id,
            "customer_id": self.customer_id,
            "cashier_user_id": self.cashier_user_id,
            "status": self.status,
            "payment_status": self.payment_status,
            "subtotal_amount": to_decimal_str(self.subtotal_amount),
            "total_discount_amount": to_decimal_str(self.total_discount_amount),
            "total_tax_amount": to_decimal_str(self.total_tax_amount),
            "total_amount": to_decimal_str(self.total_amount),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "closed_by_user_id": self.closed_by_user_id,
            "version_id": self.version_id,
        }
        if include_lines:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class PosOrderItem(db.Model):
    """
    Order line with prices frozen at creation.

    WHY frozen: later tier/base price changes must not rewrite history.
    effective_price_tier_id records which tier produced unit_price.
    """
    __tablename__ = "pos_order_items"
    __table_args__ = (
        db.UniqueConstraint("pos_order_id", "line_number", name="uq_pos_order_items_order_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    pos_order_id = db.Column(db.Integer, db.ForeignKey("pos_orders.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    unit_price = db.Column(db.Numeric(14, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    line_total = db.Column(db.Numeric(14, 2), nullable=False)

    effective_price_tier_id = db.Column(db.Integer, db.ForeignKey("price_tiers.id"), nullable=True)

    order = db.relationship("PosOrder", back_populates="items")
    product = db.relationship("Product")
    effective_price_tier = db.relationship("PriceTier")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pos_order_id": self.pos_order_id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "quantity": to_decimal_str(self.quantity),
            "unit_price": to_decimal_str(self.unit_price),
            "discount_amount": to_decimal_str(self.discount_amount),
            "tax_amount": to_decimal_str(self.tax_amount),
            "line_total": to_decimal_str(self.line_total),
            "effective_price_tier_id": self.effective_price_tier_id,
        }


class Payment(db.Model):
    """
    Payment against a POS order.

    DESIGN: many payments per order (split tender). Never edited; the order's
    payment_status is recomputed from the full set after every insert.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_payments_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    pos_order_id = db.Column(db.Integer, db.ForeignKey("pos_orders.id"), nullable=False, index=True)

    # CASH, CARD, E_WALLET, BANK_TRANSFER
    method = db.Column(db.String(32), nullable=False, index=True)
    amount = db.Column(db.Numeric(14, 2), nullable=False)

    # Card auth code, transfer reference, etc.
    reference = db.Column(db.String(128), nullable=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("PosOrder", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pos_order_id": self.pos_order_id,
            "method": self.method,
            "amount": to_decimal_str(self.amount),
            "reference": self.reference,
            "paid_at": to_utc_z(self.paid_at),
            "created_at": to_utc_z(self.created_at),
        }
