# Overview: Pytest coverage for price-tier selection and effective price resolution.

"""
Pricing Tests

Tier selection order: customer tier, outlet default tier, business default
tier, none. Within a tier: outlet price, global price, base price.
"""

from decimal import Decimal

import pytest

from retailops.errors import InvalidRequestError, NotFoundError
from retailops.models import PriceTier


def set_price(services, product, tier, price, outlet=None):
    return services.pricing.set_product_price({
        "product_id": product.id,
        "price_tier_id": tier.id,
        "outlet_id": outlet.id if outlet is not None else None,
        "price": price,
    })


class TestResolvePrice:
    def test_base_price_without_any_tier(self, services, outlet_a, product_x):
        quote = services.pricing.resolve_price(product_x.id, outlet_a.id)

        assert quote.effective_price == Decimal("100.00")
        assert quote.base_price == Decimal("100.00")
        assert quote.tax_rate == Decimal("10.00")
        assert quote.tier_source == "base"
        assert quote.price_source == "base_price"
        assert quote.price_tier is None

    def test_customer_tier_outlet_override(self, services, db_session, outlet_a, product_x, customer_a, wholesale_tier):
        """Customer tier + outlet-specific row wins over everything else."""
        customer_a.price_tier_id = wholesale_tier.id
        db_session.commit()
        set_price(services, product_x, wholesale_tier, "90.00")
        set_price(services, product_x, wholesale_tier, "80.00", outlet=outlet_a)

        quote = services.pricing.resolve_price(product_x.id, outlet_a.id, customer_a.id)

        assert quote.effective_price == Decimal("80.00")
        assert quote.tier_source == "customer"
        assert quote.price_source == "outlet_tier_price"
        assert quote.price_tier["code"] == "WHOLESALE"

    def test_global_tier_price_when_no_outlet_row(
        self, services, db_session, outlet_a, outlet_a2, product_x, customer_a, wholesale_tier
    ):
        customer_a.price_tier_id = wholesale_tier.id
        db_session.commit()
        set_price(services, product_x, wholesale_tier, "90.00")
        set_price(services, product_x, wholesale_tier, "80.00", outlet=outlet_a)

        quote = services.pricing.resolve_price(product_x.id, outlet_a2.id, customer_a.id)

        assert quote.effective_price == Decimal("90.00")
        assert quote.price_source == "global_tier_price"

    def test_tier_without_price_rows_falls_back_to_base(
        self, services, db_session, outlet_a, product_y, customer_a, wholesale_tier
    ):
        customer_a.price_tier_id = wholesale_tier.id
        db_session.commit()

        quote = services.pricing.resolve_price(product_y.id, outlet_a.id, customer_a.id)

        assert quote.effective_price == Decimal("50.00")
        assert quote.tier_source == "customer"
        assert quote.price_source == "base_price"

    def test_outlet_default_tier(self, services, db_session, outlet_a, product_x, wholesale_tier):
        outlet_a.default_price_tier_id = wholesale_tier.id
        db_session.commit()
        set_price(services, product_x, wholesale_tier, "85.00")

        quote = services.pricing.resolve_price(product_x.id, outlet_a.id)

        assert quote.tier_source == "outlet"
        assert quote.effective_price == Decimal("85.00")

    def test_business_default_tier(self, services, outlet_a, product_x):
        tier = services.pricing.create_price_tier({"name": "Member", "code": "member", "is_default": True})
        set_price(services, product_x, tier, "95.00")

        quote = services.pricing.resolve_price(product_x.id, outlet_a.id)

        assert quote.tier_source == "default"
        assert quote.price_source == "global_tier_price"
        assert quote.effective_price == Decimal("95.00")
        assert quote.price_tier_id == tier.id

    def test_customer_tier_beats_outlet_tier(
        self, services, db_session, outlet_a, product_x, customer_a, wholesale_tier
    ):
        member = services.pricing.create_price_tier({"name": "Member", "code": "MEMBER"})
        outlet_a.default_price_tier_id = member.id
        customer_a.price_tier_id = wholesale_tier.id
        db_session.commit()
        set_price(services, product_x, member, "97.00")
        set_price(services, product_x, wholesale_tier, "70.00")

        quote = services.pricing.resolve_price(product_x.id, outlet_a.id, customer_a.id)

        assert quote.tier_source == "customer"
        assert quote.effective_price == Decimal("70.00")

    def test_unknown_customer_is_ignored(self, services, outlet_a, product_x):
        quote = services.pricing.resolve_price(product_x.id, outlet_a.id, 99999)

        assert quote.tier_source == "base"
        assert quote.effective_price == Decimal("100.00")

    def test_accepts_string_ids(self, services, outlet_a, product_x):
        quote = services.pricing.resolve_price(str(product_x.id), str(outlet_a.id), "")

        assert quote.product_id == product_x.id

    def test_missing_product(self, services, outlet_a):
        with pytest.raises(NotFoundError):
            services.pricing.resolve_price(99999, outlet_a.id)

    def test_foreign_product_is_not_found(self, services, outlet_a, product_b):
        with pytest.raises(NotFoundError):
            services.pricing.resolve_price(product_b.id, outlet_a.id)

    def test_quote_serializes_money_as_strings(self, services, outlet_a, product_x):
        data = services.pricing.resolve_price(product_x.id, outlet_a.id).to_dict()

        assert data["effective_price"] == "100.00"
        assert data["cost_price"] == "60.00"
        assert data["tier_source"] == "base"


class TestPriceQuote:
    def test_quotes_every_item(self, services, outlet_a, product_x, product_y):
        quotes = services.pricing.get_price_quote(
            [{"product_id": product_x.id}, {"product_id": product_y.id}],
            outlet_a.id,
        )

        assert [q.product_id for q in quotes] == [product_x.id, product_y.id]
        assert [q.effective_price for q in quotes] == [Decimal("100.00"), Decimal("50.00")]

    def test_empty_items_rejected(self, services, outlet_a):
        with pytest.raises(InvalidRequestError):
            services.pricing.get_price_quote([], outlet_a.id)

    def test_non_object_items_rejected(self, services, outlet_a, product_x):
        with pytest.raises(InvalidRequestError):
            services.pricing.get_price_quote([product_x.id], outlet_a.id)


class TestPriceTiers:
    def test_new_default_clears_previous_default(self, services, db_session, business_a):
        retail = services.pricing.create_price_tier({"name": "Retail", "code": "RETAIL", "is_default": True})
        member = services.pricing.create_price_tier({"name": "Member", "code": "MEMBER", "is_default": True})

        defaults = db_session.query(PriceTier).filter_by(business_id=business_a.id, is_default=True).all()
        assert [t.id for t in defaults] == [member.id]
        db_session.refresh(retail)
        assert retail.is_default is False

    def test_update_to_default_clears_others(self, services, db_session, business_a):
        retail = services.pricing.create_price_tier({"name": "Retail", "code": "RETAIL", "is_default": True})
        member = services.pricing.create_price_tier({"name": "Member", "code": "MEMBER"})

        services.pricing.update_price_tier(member.id, {"is_default": True, "description": "Loyalty members"})

        defaults = db_session.query(PriceTier).filter_by(business_id=business_a.id, is_default=True).all()
        assert [t.id for t in defaults] == [member.id]
        assert member.description == "Loyalty members"
        db_session.refresh(retail)
        assert retail.is_default is False

    def test_default_is_per_business(self, services, services_b, db_session, business_a, business_b):
        services.pricing.create_price_tier({"name": "Retail", "code": "RETAIL", "is_default": True})
        services_b.pricing.create_price_tier({"name": "Retail", "code": "RETAIL", "is_default": True})

        assert db_session.query(PriceTier).filter_by(is_default=True).count() == 2

    def test_code_is_uppercased(self, services):
        tier = services.pricing.create_price_tier({"name": "Staff", "code": "staff"})

        assert tier.code == "STAFF"

    def test_unknown_fields_rejected(self, services):
        with pytest.raises(InvalidRequestError):
            services.pricing.create_price_tier({"name": "Staff", "code": "STAFF", "business_id": 2})

    def test_update_foreign_tier_is_not_found(self, services, services_b):
        tier = services_b.pricing.create_price_tier({"name": "Retail", "code": "RETAIL"})

        with pytest.raises(NotFoundError):
            services.pricing.update_price_tier(tier.id, {"name": "Hijacked"})

    def test_duplicate_code_rejected(self, services, db_session, business_a):
        services.pricing.create_price_tier({"name": "Duplicate", "code": "DUP"})

        with pytest.raises(InvalidRequestError) as exc_info:
            services.pricing.create_price_tier({"name": "Another", "code": "dup"})

        assert exc_info.value.details == {"code": "DUP"}
        assert db_session.query(PriceTier).filter_by(business_id=business_a.id).count() == 1

    def test_update_to_taken_code_rejected(self, services):
        services.pricing.create_price_tier({"name": "Retail", "code": "RETAIL"})
        member = services.pricing.create_price_tier({"name": "Member", "code": "MEMBER"})

        with pytest.raises(InvalidRequestError):
            services.pricing.update_price_tier(member.id, {"code": "retail"})

        assert services.pricing.update_price_tier(member.id, {"code": "member", "name": "Members"}).name == "Members"

    @pytest.mark.parametrize("flag,expected", [("false", False), ("0", False), (False, False), ("true", True), (1, True)])
    def test_is_default_is_parsed_strictly(self, services, flag, expected):
        tier = services.pricing.create_price_tier({"name": "Flagged", "code": "FLAG", "is_default": flag})

        assert tier.is_default is expected

    def test_string_false_keeps_existing_default(self, services, db_session, business_a):
        retail = services.pricing.create_price_tier({"name": "Retail", "code": "RETAIL", "is_default": True})
        member = services.pricing.create_price_tier({"name": "Member", "code": "MEMBER"})

        services.pricing.update_price_tier(member.id, {"is_default": "false"})

        defaults = db_session.query(PriceTier).filter_by(business_id=business_a.id, is_default=True).all()
        assert [t.id for t in defaults] == [retail.id]

    @pytest.mark.parametrize("flag", ["maybe", "yes", 2, []])
    def test_is_default_rejects_non_booleans(self, services, flag):
        with pytest.raises(InvalidRequestError):
            services.pricing.create_price_tier({"name": "Flagged", "code": "FLAG", "is_default": flag})

    def test_list_is_tenant_scoped(self, services, services_b):
        services.pricing.create_price_tier({"name": "Retail", "code": "RETAIL"})
        services_b.pricing.create_price_tier({"name": "Outlet", "code": "OUTLET"})

        assert [t.code for t in services.pricing.list_price_tiers()] == ["RETAIL"]


class TestProductPrices:
    def test_set_price_upserts(self, services, product_x, wholesale_tier):
        first = set_price(services, product_x, wholesale_tier, "90.00")
        second = set_price(services, product_x, wholesale_tier, "88.50")

        assert first.id == second.id
        prices = services.pricing.get_product_prices(product_x.id)
        assert len(prices) == 1
        assert prices[0].price == Decimal("88.50")

    def test_outlet_price_is_separate_row(self, services, outlet_a, product_x, wholesale_tier):
        set_price(services, product_x, wholesale_tier, "90.00")
        set_price(services, product_x, wholesale_tier, "80.00", outlet=outlet_a)

        prices = services.pricing.get_product_prices(product_x.id)
        assert sorted(p.outlet_id is None for p in prices) == [False, True]

    def test_negative_price_rejected(self, services, product_x, wholesale_tier):
        with pytest.raises(InvalidRequestError):
            set_price(services, product_x, wholesale_tier, "-1")

    def test_zero_price_allowed(self, services, product_x, wholesale_tier):
        row = set_price(services, product_x, wholesale_tier, "0")

        assert row.price == Decimal("0.00")

    def test_foreign_outlet_rejected(self, services, product_x, wholesale_tier, outlet_b):
        with pytest.raises(NotFoundError):
            set_price(services, product_x, wholesale_tier, "10.00", outlet=outlet_b)

    def test_foreign_product_prices_not_visible(self, services, product_b):
        with pytest.raises(NotFoundError):
            services.pricing.get_product_prices(product_b.id)
