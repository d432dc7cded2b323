# Overview: Effective price resolution and price-tier management.

"""
Pricing Service

Tier selection (first match wins):
1. Customer's own price tier           -> tier_source "customer"
2. Outlet's default price tier         -> tier_source "outlet"
3. Business-wide default tier          -> tier_source "default"
4. No tier                             -> tier_source "base"

Price selection within the chosen tier (first match wins):
1. ProductPriceTier for this outlet    -> price_source "outlet_tier_price"
2. ProductPriceTier with outlet NULL   -> price_source "global_tier_price"
3. Product.base_price                  -> price_source "base_price"

resolve_price() is a pure read. Order creation calls it once per line and
freezes the result into PosOrderItem.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..config import ServiceSettings
from ..errors import NotFoundError, InvalidRequestError
from ..models import Customer, Outlet, PriceTier, ProductPriceTier
from ..validation import (
    coerce_bool,
    coerce_decimal,
    coerce_int,
    coerce_text,
    reject_unknown_fields,
    require_fields,
    to_decimal_str,
)
from .concurrency import lock_for_update, run_with_retry
from .tenant_service import require_outlet, require_product
from .unit_of_work import TransactionScope, UnitOfWork


logger = logging.getLogger(__name__)


TIER_SOURCE_CUSTOMER = "customer"
TIER_SOURCE_OUTLET = "outlet"
TIER_SOURCE_DEFAULT = "default"
TIER_SOURCE_BASE = "base"

PRICE_SOURCE_OUTLET_TIER = "outlet_tier_price"
PRICE_SOURCE_GLOBAL_TIER = "global_tier_price"
PRICE_SOURCE_BASE = "base_price"

PRICE_TIER_WRITABLE_FIELDS = {"name", "code", "description", "is_default"}


@dataclass(frozen=True)
class PriceQuote:
    product_id: int
    product_name: str
    effective_price: Decimal
    base_price: Decimal
    cost_price: Decimal | None
    tax_rate: Decimal | None
    price_tier: dict | None
    tier_source: str
    price_source: str
    price_tier_id: int | None = field(default=None)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "effective_price": to_decimal_str(self.effective_price),
            "base_price": to_decimal_str(self.base_price),
            "cost_price": to_decimal_str(self.cost_price),
            "tax_rate": to_decimal_str(self.tax_rate),
            "price_tier": self.price_tier,
            "tier_source": self.tier_source,
            "price_source": self.price_source,
        }


class PriceResolver:
    def __init__(self, uow: UnitOfWork, business_id: int, settings: ServiceSettings | None = None):
        self._uow = uow
        self._business_id = business_id
        self._settings = settings or ServiceSettings()

    def _retry(self, func):
        return run_with_retry(
            func,
            attempts=self._settings.retry_attempts,
            backoff_base=self._settings.retry_backoff_base,
        )

    def _session(self, tx: TransactionScope | None):
        return tx.session if tx is not None else self._uow.session

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_price(
        self,
        product_id: int,
        outlet_id: int | None,
        customer_id: int | None = None,
        *,
        tx: TransactionScope | None = None,
    ) -> PriceQuote:
        product_id = coerce_int(product_id, "product_id")
        outlet_id = coerce_int(outlet_id, "outlet_id", required=False)
        customer_id = coerce_int(customer_id, "customer_id", required=False)
        session = self._session(tx)

        product = require_product(session, self._business_id, product_id)

        tier, tier_source = self._select_tier(session, outlet_id, customer_id)

        effective_price = product.base_price
        price_source = PRICE_SOURCE_BASE

        if tier is not None:
            tier_price = None
            if outlet_id:
                tier_price = session.query(ProductPriceTier).filter_by(
                    product_id=product.id,
                    price_tier_id=tier.id,
                    outlet_id=outlet_id,
                ).first()
                if tier_price is not None:
                    price_source = PRICE_SOURCE_OUTLET_TIER

            if tier_price is None:
                tier_price = session.query(ProductPriceTier).filter(
                    ProductPriceTier.product_id == product.id,
                    ProductPriceTier.price_tier_id == tier.id,
                    ProductPriceTier.outlet_id.is_(None),
                ).first()
                if tier_price is not None:
                    price_source = PRICE_SOURCE_GLOBAL_TIER

            if tier_price is not None:
                effective_price = tier_price.price

        return PriceQuote(
            product_id=product.id,
            product_name=product.name,
            effective_price=Decimal(effective_price),
            base_price=Decimal(product.base_price),
            cost_price=product.cost_price,
            tax_rate=product.tax_rate,
            price_tier=tier.to_summary() if tier is not None else None,
            tier_source=tier_source,
            price_source=price_source,
            price_tier_id=tier.id if tier is not None else None,
        )

    def _select_tier(self, session, outlet_id, customer_id) -> tuple[PriceTier | None, str]:
        # Unknown or foreign customers/outlets simply don't contribute a tier
        if customer_id:
            customer = session.query(Customer).filter_by(id=customer_id, business_id=self._business_id).first()
            if customer is not None and customer.price_tier is not None:
                return customer.price_tier, TIER_SOURCE_CUSTOMER

        if outlet_id:
            outlet = session.query(Outlet).filter_by(id=outlet_id, business_id=self._business_id).first()
            if outlet is not None and outlet.default_price_tier is not None:
                return outlet.default_price_tier, TIER_SOURCE_OUTLET

        default_tier = session.query(PriceTier).filter_by(
            business_id=self._business_id,
            is_default=True,
        ).order_by(PriceTier.id).first()
        if default_tier is not None:
            return default_tier, TIER_SOURCE_DEFAULT

        return None, TIER_SOURCE_BASE

    def get_price_quote(self, items: list[dict], outlet_id: int | None, customer_id: int | None = None) -> list[PriceQuote]:
        if not isinstance(items, list) or not items:
            raise InvalidRequestError("items must contain at least one product")
        if not all(isinstance(item, dict) for item in items):
            raise InvalidRequestError("items must be objects with a product_id")
        return [
            self.resolve_price(coerce_int(item.get("product_id"), "product_id"), outlet_id, customer_id)
            for item in items
        ]

    # ------------------------------------------------------------------
    # Tier management
    # ------------------------------------------------------------------

    def list_price_tiers(self) -> list[PriceTier]:
        return (
            self._uow.session.query(PriceTier)
            .filter_by(business_id=self._business_id)
            .order_by(PriceTier.name.asc())
            .all()
        )

    def _clear_other_defaults(self, tx: TransactionScope, keep_id: int | None) -> None:
        query = tx.session.query(PriceTier).filter(
            PriceTier.business_id == self._business_id,
            PriceTier.is_default.is_(True),
        )
        if keep_id is not None:
            query = query.filter(PriceTier.id != keep_id)
        for tier in lock_for_update(query).all():
            tier.is_default = False

    def _ensure_code_free(self, tx: TransactionScope, code: str, tier_id: int | None) -> None:
        query = tx.session.query(PriceTier.id).filter(
            PriceTier.business_id == self._business_id,
            PriceTier.code == code,
        )
        if tier_id is not None:
            query = query.filter(PriceTier.id != tier_id)
        if query.first() is not None:
            raise InvalidRequestError(f"Price tier code {code} already exists", details={"code": code})

    @staticmethod
    def _flush_tier(tx: TransactionScope, code: str) -> None:
        try:
            tx.flush()
        except IntegrityError as exc:
            # Concurrent writer took the code between the check and the flush
            raise InvalidRequestError(f"Price tier code {code} already exists", details={"code": code}) from exc

    def create_price_tier(self, data: dict) -> PriceTier:
        reject_unknown_fields(data, PRICE_TIER_WRITABLE_FIELDS)
        require_fields(data, ["name", "code"])

        is_default = coerce_bool(data.get("is_default"), "is_default")
        code = _tier_code(data["code"])

        def _op():
            with self._uow.begin() as tx:
                self._ensure_code_free(tx, code, tier_id=None)
                if is_default:
                    self._clear_other_defaults(tx, keep_id=None)

                tier = PriceTier(
                    business_id=self._business_id,
                    name=coerce_text(data["name"], "name", max_length=128),
                    code=code,
                    description=coerce_text(data.get("description"), "description", max_length=255),
                    is_default=is_default,
                )
                tx.session.add(tier)
                self._flush_tier(tx, code)
            logger.info("Price tier created id=%s code=%s default=%s", tier.id, tier.code, tier.is_default)
            return tier

        return self._retry(_op)

    def update_price_tier(self, tier_id: int, data: dict) -> PriceTier:
        reject_unknown_fields(data, PRICE_TIER_WRITABLE_FIELDS)
        is_default = coerce_bool(data.get("is_default"), "is_default") if "is_default" in data else None
        code = _tier_code(data["code"]) if "code" in data else None

        def _op():
            with self._uow.begin() as tx:
                tier = lock_for_update(
                    tx.session.query(PriceTier).filter_by(id=tier_id, business_id=self._business_id)
                ).first()
                if tier is None:
                    raise NotFoundError(f"Price tier {tier_id} not found")

                if is_default:
                    self._clear_other_defaults(tx, keep_id=tier.id)
                    tier.is_default = True
                elif is_default is not None:
                    tier.is_default = False

                if "name" in data:
                    tier.name = coerce_text(data["name"], "name", max_length=128)
                if code is not None and code != tier.code:
                    self._ensure_code_free(tx, code, tier_id=tier.id)
                    tier.code = code
                if "description" in data:
                    tier.description = coerce_text(data["description"], "description", max_length=255)
                self._flush_tier(tx, tier.code)
            logger.info("Price tier updated id=%s default=%s", tier.id, tier.is_default)
            return tier

        return self._retry(_op)

    # ------------------------------------------------------------------
    # Product tier prices
    # ------------------------------------------------------------------

    def get_product_prices(self, product_id: int) -> list[ProductPriceTier]:
        session = self._uow.session
        require_product(session, self._business_id, product_id)
        return (
            session.query(ProductPriceTier)
            .filter_by(product_id=product_id)
            .order_by(ProductPriceTier.created_at.desc(), ProductPriceTier.id.desc())
            .all()
        )

    def set_product_price(self, data: dict) -> ProductPriceTier:
        """Upsert the price of a product in a tier, optionally for one outlet."""
        require_fields(data, ["product_id", "price_tier_id", "price"])
        product_id = coerce_int(data["product_id"], "product_id")
        price_tier_id = coerce_int(data["price_tier_id"], "price_tier_id")
        outlet_id = coerce_int(data.get("outlet_id"), "outlet_id", required=False)
        price = coerce_decimal(data["price"], "price", non_negative=True)

        def _op():
            with self._uow.begin() as tx:
                session = tx.session
                require_product(session, self._business_id, product_id)
                if session.query(PriceTier).filter_by(id=price_tier_id, business_id=self._business_id).first() is None:
                    raise NotFoundError(f"Price tier {price_tier_id} not found")
                if outlet_id is not None:
                    require_outlet(session, self._business_id, outlet_id)

                query = session.query(ProductPriceTier).filter(
                    ProductPriceTier.product_id == product_id,
                    ProductPriceTier.price_tier_id == price_tier_id,
                )
                if outlet_id is None:
                    query = query.filter(ProductPriceTier.outlet_id.is_(None))
                else:
                    query = query.filter(ProductPriceTier.outlet_id == outlet_id)

                row = lock_for_update(query).first()
                if row is None:
                    row = ProductPriceTier(
                        product_id=product_id,
                        price_tier_id=price_tier_id,
                        outlet_id=outlet_id,
                        price=price,
                    )
                    session.add(row)
                else:
                    row.price = price
                tx.flush()
            logger.info(
                "Product price set product_id=%s tier_id=%s outlet_id=%s price=%s",
                product_id, price_tier_id, outlet_id, price,
            )
            return row

        return self._retry(_op)


def _tier_code(value) -> str:
    code = coerce_text(value, "code", max_length=32)
    if code is None:
        raise InvalidRequestError("code is required")
    return code.upper()
