from __future__ import annotations

from ..extensions import db
from retailops.time_utils import to_utc_z
from retailops.validation import to_decimal_str


class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: Products are scoped to a business; SKU is unique within it.

    PRICING:
    - base_price is the fallback when no tier price applies
    - tax_rate is a percentage (e.g. 11.00), NULL means untaxed
    - cost_price is informational (quotes, margin reports)
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("business_id", "sku", name="uq_products_business_sku"),
        db.Index("ix_products_business_name", "business_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    base_price = db.Column(db.Numeric(14, 2), nullable=False)
    cost_price = db.Column(db.Numeric(14, 2), nullable=True)
    tax_rate = db.Column(db.Numeric(5, 2), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    business = db.relationship("Business", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} business_id={self.business_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "sku": self.sku,
            "name": self.name,
            "base_price": to_decimal_str(self.base_price),
            "cost_price": to_decimal_str(self.cost_price),
            "tax_rate": to_decimal_str(self.tax_rate),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PriceTier(db.Model):
    """
    Named price level (e.g. RETAIL, WHOLESALE, MEMBER).

    INVARIANT: at most one tier per business has is_default = True.
    Enforced by the pricing service, which clears other defaults in the same
    transaction that sets a new one.
    """
    __tablename__ = "price_tiers"
    __table_args__ = (
        db.UniqueConstraint("business_id", "code", name="uq_price_tiers_business_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    code = db.Column(db.String(32), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "code": self.code}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "code": self.code,
            "description": self.description,
            "is_default": self.is_default,
            "created_at": to_utc_z(self.created_at),
        }


class ProductPriceTier(db.Model):
    """
    Price of a product within a tier.

    outlet_id NULL  -> tier-global price
    outlet_id set   -> outlet override, wins over the global price
    """
    __tablename__ = "product_price_tiers"
    __table_args__ = (
        db.UniqueConstraint("product_id", "price_tier_id", "outlet_id", name="uq_product_price_tier_outlet"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    price_tier_id = db.Column(db.Integer, db.ForeignKey("price_tiers.id"), nullable=False, index=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True, index=True)
    price = db.Column(db.Numeric(14, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("tier_prices", lazy=True))
    price_tier = db.relationship("PriceTier")
    outlet = db.relationship("Outlet")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "price_tier_id": self.price_tier_id,
            "price_tier": self.price_tier.to_summary() if self.price_tier else None,
            "outlet_id": self.outlet_id,
            "price": to_decimal_str(self.price),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
