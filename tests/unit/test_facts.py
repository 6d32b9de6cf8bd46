"""
Unit Tests - Fact Building
"""
from datetime import date
from decimal import Decimal

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import select, update

from sales_warehouse.database.models import (
    Customer,
    DimCustomer,
    FactSales,
    Order,
    OrderDetail,
    Product,
)
from sales_warehouse.ingestion import ORDER_DETAIL_STRATEGY, ORDER_STRATEGY, BatchLoader
from sales_warehouse.warehouse import DimensionResolver, FactBuilder, FactCandidate, validate_candidate


def candidate(customer_id=1, product_id=1, date_id=20240105, order_id=100, quantity=2,
              unit_price="29.99", total="59.98", discount="0", final=None) -> FactCandidate:
    total_amount = Decimal(total)
    discount_amount = Decimal(discount)
    return FactCandidate(
        customer_id=customer_id,
        product_id=product_id,
        date_id=date_id,
        order_id=order_id,
        quantity=quantity,
        unit_price=Decimal(unit_price),
        total_amount=total_amount,
        discount_amount=discount_amount,
        final_amount=Decimal(final) if final is not None else total_amount - discount_amount,
        order_status="Delivered",
    )


@pytest.fixture
async def dimensions(session_factory):
    """Customers 1-2, product 1 only, and January 2024"""
    resolver = DimensionResolver(session_factory)
    await resolver.load_customers([
        Customer(customer_id=1, first_name="John", last_name="Doe", email="john@example.com"),
        Customer(customer_id=2, first_name="Jane", last_name="Smith", email="jane@example.com"),
    ])
    await resolver.load_products([
        Product(product_id=1, product_name="Mouse", category="Electronics", price=Decimal("29.99"), stock=10),
    ])
    await resolver.load_dates(date(2024, 1, 1), date(2024, 1, 31))
    return resolver


async def fact_rows(session_factory):
    async with session_factory() as session:
        return list((await session.scalars(select(FactSales).order_by(FactSales.fact_sales_id))).all())


class TestCandidateValidation:
    """Tests for the amount invariants"""

    def test_valid_candidate(self):
        assert validate_candidate(candidate()) == []

    def test_rounding_tolerance(self):
        # 3 x 33.3333 = 99.9999, within a cent of 100.00
        assert validate_candidate(candidate(quantity=3, unit_price="33.3333", total="100.00")) == []

    def test_total_must_match_quantity_times_price(self):
        errors = validate_candidate(candidate(quantity=2, unit_price="10.00", total="25.00"))
        assert errors == ["FactSales order 100 product 1: TotalAmount must match Quantity times UnitPrice"]

    def test_final_must_equal_total_minus_discount(self):
        errors = validate_candidate(candidate(discount="5.00", final="59.98"))
        assert errors == ["FactSales order 100 product 1: FinalAmount must equal TotalAmount minus DiscountAmount"]

    def test_positive_values(self):
        errors = validate_candidate(candidate(quantity=0, unit_price="0", total="0"))
        assert "FactSales order 100 product 1: Quantity must be greater than 0" in errors
        assert "FactSales order 100 product 1: UnitPrice must be greater than 0" in errors
        assert "FactSales order 100 product 1: TotalAmount must be greater than 0" in errors


class TestFactBuilder:
    """Tests for clean-then-load fact building"""

    async def test_load_resolves_surrogate_keys(self, session_factory, dimensions):
        result = await FactBuilder(session_factory).load([candidate(customer_id=2, date_id=20240115)])

        assert result.inserted == 1
        assert result.invalid_count == 0

        async with session_factory() as session:
            jane_key = await session.scalar(select(DimCustomer.customer_key).where(DimCustomer.customer_id == 2))
        fact = (await fact_rows(session_factory))[0]
        assert fact.customer_key == jane_key
        assert fact.date_key == 20240115
        assert fact.is_active is True
        assert fact.created_at is not None

    async def test_missing_product_dropped(self, session_factory, dimensions):
        before = REGISTRY.get_sample_value(
            "sales_warehouse_fact_candidates_unresolved_total", {"dimension": "product"}
        ) or 0.0

        result = await FactBuilder(session_factory).load([candidate(), candidate(product_id=2, order_id=101)])

        assert result.inserted == 1
        assert result.invalid_count == 1
        assert result.unresolved[0].missing == "product"
        assert result.unresolved[0].product_id == 2
        assert [f.order_id for f in await fact_rows(session_factory)] == [100]
        after = REGISTRY.get_sample_value(
            "sales_warehouse_fact_candidates_unresolved_total", {"dimension": "product"}
        )
        assert after == before + 1

    async def test_missing_customer_and_date_dropped(self, session_factory, dimensions):
        result = await FactBuilder(session_factory).load([
            candidate(customer_id=99),
            candidate(date_id=20250105),
            candidate(date_id=20241341),
        ])

        assert result.inserted == 0
        assert [u.missing for u in result.unresolved] == ["customer", "date", "date"]

    async def test_inactive_dimension_not_used(self, session_factory, dimensions):
        async with session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(DimCustomer).where(DimCustomer.customer_id == 1).values(is_active=False)
                )

        result = await FactBuilder(session_factory).load([candidate(customer_id=1)])

        assert result.inserted == 0
        assert result.invalid_count == 1

    async def test_invalid_amounts_excluded(self, session_factory, dimensions):
        result = await FactBuilder(session_factory).load([
            candidate(),
            candidate(order_id=101, quantity=2, unit_price="10.00", total="25.00"),
        ])

        assert result.inserted == 1
        assert result.rejected == 1
        assert len(result.errors) == 1

    async def test_every_fact_satisfies_invariants(self, session_factory, dimensions):
        await FactBuilder(session_factory).load([
            candidate(order_id=100),
            candidate(order_id=101, quantity=3, unit_price="33.3333", total="100.00"),
            candidate(order_id=102, discount="5.00", total="59.98"),
        ])

        facts = await fact_rows(session_factory)
        assert len(facts) == 3
        for fact in facts:
            assert fact.final_amount == fact.total_amount - fact.discount_amount
            assert abs(fact.total_amount - fact.quantity * fact.unit_price) <= Decimal("0.01")

    async def test_full_refresh(self, session_factory, dimensions):
        builder = FactBuilder(session_factory)
        await builder.load([candidate(order_id=100), candidate(order_id=101)])

        result = await builder.load([candidate(order_id=200)])

        assert result.inserted == 1
        assert [f.order_id for f in await fact_rows(session_factory)] == [200]

    async def test_load_with_validation_all_or_nothing(self, session_factory, dimensions):
        builder = FactBuilder(session_factory)
        await builder.load([candidate(order_id=100)])

        result = await builder.load_with_validation([
            candidate(order_id=300),
            candidate(order_id=301, final="1.00"),
        ])

        assert result.inserted == 0
        assert len(result.errors) == 1
        # The clean still happened
        assert await fact_rows(session_factory) == []

    async def test_load_with_validation_success(self, session_factory, dimensions):
        result = await FactBuilder(session_factory).load_with_validation([candidate(), candidate(order_id=101)])
        assert result.inserted == 2

    async def test_clean_fact_table_on_sqlite_deletes(self, session_factory, dimensions):
        builder = FactBuilder(session_factory)
        await builder.load([candidate()])

        assert await builder.clean_fact_table() == "delete"
        assert await fact_rows(session_factory) == []

    async def test_build_candidates_from_orders(self, session_factory):
        loader = BatchLoader(session_factory)
        await loader.upsert(
            [Order(order_id=100, customer_id=1, order_date=date(2024, 1, 5), status="Delivered")],
            ORDER_STRATEGY,
        )
        await loader.upsert(
            [
                OrderDetail(order_id=100, product_id=1, quantity=2, total_price=Decimal("59.98")),
                OrderDetail(order_id=100, product_id=2, quantity=3, total_price=Decimal("100.00")),
            ],
            ORDER_DETAIL_STRATEGY,
        )

        candidates = await FactBuilder(session_factory).build_candidates_from_orders()

        assert len(candidates) == 2
        first, second = candidates
        assert (first.customer_id, first.product_id, first.date_id) == (1, 1, 20240105)
        assert first.unit_price == Decimal("29.9900")
        assert first.final_amount == first.total_amount
        assert first.discount_amount == Decimal("0")
        assert first.order_status == "Delivered"
        assert second.unit_price == Decimal("33.3333333333")
        assert validate_candidate(second) == []

    async def test_high_quantity_line_loads(self, session_factory, dimensions):
        loader = BatchLoader(session_factory)
        await loader.upsert(
            [Order(order_id=1, customer_id=1, order_date=date(2024, 1, 5), status="Delivered")],
            ORDER_STRATEGY,
        )
        await loader.upsert(
            [OrderDetail(order_id=1, product_id=1, quantity=1000, total_price=Decimal("3.33"))],
            ORDER_DETAIL_STRATEGY,
        )
        builder = FactBuilder(session_factory)

        candidates = await builder.build_candidates_from_orders()
        result = await builder.load(candidates)

        assert validate_candidate(candidates[0]) == []
        assert result.inserted == 1
        assert result.errors == []
        fact = (await fact_rows(session_factory))[0]
        assert abs(fact.total_amount - fact.quantity * fact.unit_price) <= Decimal("0.01")
