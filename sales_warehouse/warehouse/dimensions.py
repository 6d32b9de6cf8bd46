"""
Dimension Resolver

Maintains the customer, product and date dimensions.

Customer and product dimensions are built from operational rows: strings
are trimmed, e-mail is lower-cased, and the row is upserted by natural id.
An existing dimension row keeps its surrogate key and gets its mutable
fields overwritten; a new natural id gets a new surrogate key. The whole
batch is validated first and rejected without writing if any row fails.

The date dimension is generated, one row per calendar day, keyed by the
deterministic YYYYMMDD date key.
"""

import calendar
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sales_warehouse.database.models import Customer, DimCustomer, DimDate, DimProduct, Product
from sales_warehouse.ingestion.batch_loader import DEFAULT_CHUNK_SIZE, BatchLoader
from sales_warehouse.ingestion.strategies import (
    DIM_CUSTOMER_STRATEGY,
    DIM_DATE_STRATEGY,
    DIM_PRODUCT_STRATEGY,
    UpsertStrategy,
)
from sales_warehouse.metrics import VALIDATION_MESSAGES

logger = structlog.get_logger(__name__)

START_AFTER_END_MESSAGE = "Start date cannot be greater than end date"


# =============================================================================
# DATE DIMENSION
# =============================================================================

def date_key(value: date) -> int:
    """YYYYMMDD as an integer; strictly increasing with the date"""
    return value.year * 10000 + value.month * 100 + value.day


def parse_date_key(value: int) -> Optional[date]:
    """Inverse of date_key; None unless ``value`` is a valid 8-digit date"""
    if not 10000101 <= value <= 99991231:
        return None
    try:
        return date(value // 10000, value // 100 % 100, value % 100)
    except ValueError:
        return None


def build_date_row(value: date) -> DimDate:
    quarter = (value.month - 1) // 3 + 1
    return DimDate(
        date_key=date_key(value),
        full_date=value,
        year=value.year,
        quarter=quarter,
        month=value.month,
        month_name=calendar.month_name[value.month],
        # ISO 8601: first week has four days, weeks start on Monday
        week_of_year=value.isocalendar()[1],
        day_of_year=value.timetuple().tm_yday,
        day_of_month=value.day,
        day_of_week=value.isoweekday() % 7,
        day_name=calendar.day_name[value.weekday()],
        is_weekend=value.weekday() >= 5,
        # No holiday calendar is maintained
        is_holiday=False,
        fiscal_year=f"FY{value.year}",
        fiscal_quarter=quarter,
        fiscal_month=value.month,
    )


def build_date_rows(start: date, end: date) -> Tuple[List[DimDate], List[str]]:
    """
    One row per day from ``start`` to ``end`` inclusive.

    Returns:
        (rows, errors). A reversed range yields no rows and one message.
    """
    if start > end:
        return [], [START_AFTER_END_MESSAGE]
    days = (end - start).days + 1
    return [build_date_row(date.fromordinal(start.toordinal() + offset)) for offset in range(days)], []


def shift_years(value: date, years: int) -> date:
    """Same day ``years`` later (or earlier); Feb 29 falls back to Feb 28"""
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        return value.replace(year=value.year + years, day=28)


def default_date_range(today: date, years_back: int = 2, years_ahead: int = 1) -> Tuple[date, date]:
    return shift_years(today, -years_back), shift_years(today, years_ahead)


# =============================================================================
# CUSTOMER / PRODUCT DIMENSIONS
# =============================================================================

def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def to_dim_customer(customer: Customer) -> DimCustomer:
    email = _clean(customer.email)
    country = _clean(customer.country)
    return DimCustomer(
        customer_id=customer.customer_id,
        first_name=_clean(customer.first_name),
        last_name=_clean(customer.last_name),
        email=email.lower() if email else None,
        phone=_clean(customer.phone),
        city=_clean(customer.city),
        country=country,
        region=country,
        is_active=True,
    )


def to_dim_product(product: Product) -> DimProduct:
    return DimProduct(
        product_id=product.product_id,
        product_name=_clean(product.product_name),
        category=_clean(product.category),
        price=product.price,
        stock=product.stock,
        is_active=True,
    )


def validate_dim_customers(rows: Sequence[DimCustomer]) -> List[str]:
    errors = []
    for row in rows:
        prefix = f"DimCustomer {row.customer_id}"
        if not row.first_name:
            errors.append(f"{prefix}: FirstName is required")
        if not row.last_name:
            errors.append(f"{prefix}: LastName is required")
        if not row.email:
            errors.append(f"{prefix}: Email is required")
    return errors


def validate_dim_products(rows: Sequence[DimProduct]) -> List[str]:
    errors = []
    for row in rows:
        prefix = f"DimProduct {row.product_id}"
        if not row.product_name:
            errors.append(f"{prefix}: ProductName is required")
        if row.price is None or row.price <= 0:
            errors.append(f"{prefix}: Price must be greater than 0")
        if row.stock is None or row.stock < 0:
            errors.append(f"{prefix}: Stock must be greater than or equal to 0")
    return errors


@dataclass
class DimensionLoadResult:
    """Outcome of loading one dimension"""
    dimension: str
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def is_success(self) -> bool:
        return not self.errors


class DimensionResolver:
    """
    Example:
        resolver = DimensionResolver(session_factory)
        await resolver.load_customers(customers)
        await resolver.load_dates(date(2024, 1, 1), date(2024, 12, 31))
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.session_factory = session_factory
        self.loader = BatchLoader(session_factory, chunk_size=chunk_size)

    async def _load(
        self,
        strategy: UpsertStrategy,
        rows: Sequence,
        validator: Optional[Callable[[Sequence], List[str]]] = None,
    ) -> DimensionLoadResult:
        start = time.time()
        result = DimensionLoadResult(dimension=strategy.entity)

        if validator is not None:
            errors = validator(rows)
            if errors:
                result.errors = errors
                result.duration_seconds = time.time() - start
                VALIDATION_MESSAGES.labels(entity=strategy.entity).inc(len(errors))
                logger.warning(
                    "Dimension batch rejected",
                    dimension=strategy.entity,
                    rows=len(rows),
                    messages=len(errors),
                )
                return result

        upserted = await self.loader.upsert(rows, strategy)
        result.processed = upserted.affected
        result.inserted = upserted.inserted
        result.updated = upserted.updated
        result.duration_seconds = time.time() - start
        return result

    async def load_customers(self, customers: Sequence[Customer]) -> DimensionLoadResult:
        rows = [to_dim_customer(customer) for customer in customers]
        return await self._load(DIM_CUSTOMER_STRATEGY, rows, validate_dim_customers)

    async def load_products(self, products: Sequence[Product]) -> DimensionLoadResult:
        rows = [to_dim_product(product) for product in products]
        return await self._load(DIM_PRODUCT_STRATEGY, rows, validate_dim_products)

    async def load_dates(self, start: date, end: date) -> DimensionLoadResult:
        rows, errors = build_date_rows(start, end)
        if errors:
            VALIDATION_MESSAGES.labels(entity=DIM_DATE_STRATEGY.entity).inc(len(errors))
            logger.warning("Date dimension range rejected", start=str(start), end=str(end))
            return DimensionLoadResult(dimension=DIM_DATE_STRATEGY.entity, errors=errors)
        return await self._load(DIM_DATE_STRATEGY, rows)

    async def _read_operational(self, model) -> list:
        async with self.session_factory() as session:
            return list((await session.scalars(select(model))).all())

    async def load_customers_from_operational(self) -> DimensionLoadResult:
        """Rebuild the customer dimension from the operational customers table"""
        return await self.load_customers(await self._read_operational(Customer))

    async def load_products_from_operational(self) -> DimensionLoadResult:
        """Rebuild the product dimension from the operational products table"""
        return await self.load_products(await self._read_operational(Product))
