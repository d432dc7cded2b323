from __future__ import annotations

from ..extensions import db
from retailops.time_utils import to_utc_z
from retailops.validation import to_decimal_str


MOVEMENT_ADJUSTMENT_IN = "ADJUSTMENT_IN"
MOVEMENT_ADJUSTMENT_OUT = "ADJUSTMENT_OUT"
MOVEMENT_TRANSFER = "TRANSFER"
MOVEMENT_SALE = "SALE"
MOVEMENT_PURCHASE = "PURCHASE"

MOVEMENT_TYPES = {
    MOVEMENT_ADJUSTMENT_IN,
    MOVEMENT_ADJUSTMENT_OUT,
    MOVEMENT_TRANSFER,
    MOVEMENT_SALE,
    MOVEMENT_PURCHASE,
}


class Inventory(db.Model):
    """
    Current on-hand quantity for one product in one warehouse.

    INVARIANTS:
    - Exactly one row per (product_id, warehouse_id), created lazily at 0
    - quantity_on_hand >= 0 (service check + DB CHECK constraint)
    - Mutated only by InventoryLedger, always together with a StockMovement
    - Never deleted while movements reference the pair
    """
    __tablename__ = "inventories"
    __table_args__ = (
        db.UniqueConstraint("product_id", "warehouse_id", name="uq_inventories_product_warehouse"),
        db.CheckConstraint("quantity_on_hand >= 0", name="ck_inventories_non_negative"),
        db.Index("ix_inventories_warehouse", "warehouse_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False)

    quantity_on_hand = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    minimum_stock = db.Column(db.Numeric(14, 3), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")
    warehouse = db.relationship("Warehouse")

    def __repr__(self) -> str:
        return (
            f"<Inventory product_id={self.product_id} warehouse_id={self.warehouse_id} "
            f"qty={self.quantity_on_hand}>"
        )

    @property
    def is_low_stock(self) -> bool:
        return self.quantity_on_hand <= self.minimum_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "quantity_on_hand": to_decimal_str(self.quantity_on_hand),
            "minimum_stock": to_decimal_str(self.minimum_stock),
            "is_low_stock": self.is_low_stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only stock fact.

    quantity is always the unsigned magnitude. Direction comes from the
    populated warehouse field:
    - to_warehouse_id   -> stock entered that warehouse (ADJUSTMENT_IN, PURCHASE, TRANSFER)
    - from_warehouse_id -> stock left that warehouse (ADJUSTMENT_OUT, SALE, TRANSFER)

    IMMUTABLE: never updated or deleted. For any (product, warehouse) the sum of
    signed_delta() over its movements equals Inventory.quantity_on_hand.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_positive"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_reference", "reference"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    from_warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True, index=True)
    to_warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True, index=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True, index=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    quantity = db.Column(db.Numeric(14, 3), nullable=False)

    # Order / PO number that caused the movement
    reference = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product")
    from_warehouse = db.relationship("Warehouse", foreign_keys=[from_warehouse_id])
    to_warehouse = db.relationship("Warehouse", foreign_keys=[to_warehouse_id])

    def signed_delta(self, warehouse_id: int):
        if self.to_warehouse_id == warehouse_id:
            return self.quantity
        if self.from_warehouse_id == warehouse_id:
            return -self.quantity
        return 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "from_warehouse_id": self.from_warehouse_id,
            "to_warehouse_id": self.to_warehouse_id,
            "outlet_id": self.outlet_id,
            "type": self.type,
            "quantity": to_decimal_str(self.quantity),
            "reference": self.reference,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
