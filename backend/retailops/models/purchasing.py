from __future__ import annotations

from ..extensions import db
from retailops.time_utils import to_utc_z
from retailops.validation import to_decimal_str


class PurchaseOrder(db.Model):
    """
    Purchase order from a supplier into one warehouse.

    LIFECYCLE:
    1. DRAFT: Created; header editable, items fixed
    2. PARTIALLY_RECEIVED: Some, but not all, ordered quantity received
    3. RECEIVED: Every item received in full (terminal)
    4. CANCELLED: Cancelled (terminal). Stock already received stays on hand.

    Status after a receipt is computed from received vs ordered quantities.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_purchase_orders_order_number"),
        db.Index("ix_purchase_orders_outlet_status", "outlet_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(64), nullable=False)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)

    status = db.Column(db.String(24), nullable=False, default="DRAFT", index=True)

    order_date = db.Column(db.DateTime(timezone=True), nullable=False)
    expected_date = db.Column(db.DateTime(timezone=True), nullable=True)

    total_amount = db.Column(db.Numeric(14, 2), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=False, index=True)
    received_by_user_id = db.Column(db.Integer, nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier")
    warehouse = db.relationship("Warehouse")
    outlet = db.relationship("Outlet")
    items = db.relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        order_by="PurchaseOrderItem.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "supplier_id": self.supplier_id,
            "warehouse_id": self.warehouse_id,
            "outlet_id": self.outlet_id,
            "status": self.status,
            "order_date": to_utc_z(self.order_date),
            "expected_date": to_utc_z(self.expected_date) if self.expected_date else None,
            "total_amount": to_decimal_str(self.total_amount),
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "received_by_user_id": self.received_by_user_id,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "received_at": to_utc_z(self.received_at) if self.received_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "version_id": self.version_id,
        }
        if include_lines:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseOrderItem(db.Model):
    """PO line. quantity_received only ever increases."""
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.CheckConstraint("quantity_received >= 0", name="ck_po_items_received_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity_ordered = db.Column(db.Numeric(14, 3), nullable=False)
    quantity_received = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    unit_cost = db.Column(db.Numeric(14, 2), nullable=False)
    line_total = db.Column(db.Numeric(14, 2), nullable=False)

    purchase_order = db.relationship("PurchaseOrder", back_populates="items")
    product = db.relationship("Product")

    @property
    def quantity_outstanding(self):
        remaining = self.quantity_ordered - self.quantity_received
        return remaining if remaining > 0 else 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "quantity_ordered": to_decimal_str(self.quantity_ordered),
            "quantity_received": to_decimal_str(self.quantity_received),
            "quantity_outstanding": to_decimal_str(self.quantity_outstanding),
            "unit_cost": to_decimal_str(self.unit_cost),
            "line_total": to_decimal_str(self.line_total),
        }
