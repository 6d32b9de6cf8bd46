"""
Fact Builder

Rebuilds the sales fact table from fact candidates in one unit of work:

1. Clean the fact table (TRUNCATE where possible, DELETE otherwise)
2. Resolve each candidate's customer, product and date to dimension
   surrogate keys; candidates with a missing dimension are dropped and counted
3. Check the amount invariants of each candidate; violators are dropped and
   reported
4. Bulk insert the remaining rows

The fact table only ever holds the output of the most recent load.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence

import structlog
from sqlalchemy import delete, insert, select, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sales_warehouse.database.models import (
    Base,
    DimCustomer,
    DimDate,
    DimProduct,
    FactSales,
    Order,
    OrderDetail,
)
from sales_warehouse.errors import DimensionUnresolved, LoadFailure
from sales_warehouse.metrics import FACT_CANDIDATES_UNRESOLVED, FACTS_LOADED, VALIDATION_MESSAGES
from sales_warehouse.warehouse.dimensions import parse_date_key

logger = structlog.get_logger(__name__)

AMOUNT_TOLERANCE = Decimal("0.01")
# Keeps |total - quantity * unit_price| within AMOUNT_TOLERANCE up to 10^8 units
UNIT_PRICE_PRECISION = Decimal("1E-10")


@dataclass(frozen=True)
class FactCandidate:
    """One order line, referencing its dimensions by natural id"""
    customer_id: int
    product_id: int
    date_id: int  # yyyyMMdd
    order_id: int
    quantity: int
    unit_price: Decimal
    total_amount: Decimal
    final_amount: Decimal
    discount_amount: Decimal = Decimal("0")
    order_status: Optional[str] = None


@dataclass
class FactLoadResult:
    inserted: int = 0
    unresolved: List[DimensionUnresolved] = field(default_factory=list)
    rejected: int = 0
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def invalid_count(self) -> int:
        """Candidates that did not become fact rows"""
        return len(self.unresolved) + self.rejected


def validate_candidate(candidate: FactCandidate) -> List[str]:
    """Amount invariants every persisted fact row satisfies"""
    prefix = f"FactSales order {candidate.order_id} product {candidate.product_id}"
    errors = []

    if candidate.quantity <= 0:
        errors.append(f"{prefix}: Quantity must be greater than 0")
    if candidate.unit_price <= 0:
        errors.append(f"{prefix}: UnitPrice must be greater than 0")
    if candidate.total_amount <= 0:
        errors.append(f"{prefix}: TotalAmount must be greater than 0")
    if candidate.discount_amount < 0:
        errors.append(f"{prefix}: DiscountAmount must not be negative")
    if candidate.final_amount != candidate.total_amount - candidate.discount_amount:
        errors.append(f"{prefix}: FinalAmount must equal TotalAmount minus DiscountAmount")
    if abs(candidate.total_amount - candidate.quantity * candidate.unit_price) > AMOUNT_TOLERANCE:
        errors.append(f"{prefix}: TotalAmount must match Quantity times UnitPrice")

    return errors


def _is_referenced(table) -> bool:
    """True when another mapped table has a foreign key onto ``table``"""
    for other in Base.metadata.tables.values():
        for fk in other.foreign_keys:
            if fk.column.table is table:
                return True
    return False


class FactBuilder:
    """
    Example:
        builder = FactBuilder(session_factory)
        candidates = await builder.build_candidates_from_orders()
        result = await builder.load(candidates)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    # -------------------------------------------------------------------------
    # Cleaning
    # -------------------------------------------------------------------------

    async def _clean(self, session: AsyncSession) -> str:
        table = FactSales.__table__
        dialect = session.bind.dialect.name

        if dialect != "sqlite" and not _is_referenced(table):
            try:
                async with session.begin_nested():
                    await session.execute(text(f"TRUNCATE TABLE {table.name}"))
                logger.info("Fact table truncated", table=table.name)
                return "truncate"
            except DBAPIError as e:
                logger.info("Truncate not possible, deleting rows", table=table.name, reason=str(e))

        result = await session.execute(delete(FactSales))
        logger.info("Fact table cleared", table=table.name, rows_deleted=result.rowcount)
        return "delete"

    async def clean_fact_table(self) -> str:
        """Clear the fact table in its own transaction; returns the method used"""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    return await self._clean(session)
        except Exception as e:
            raise LoadFailure("FactSales", str(e)) from e

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    async def _resolve(self, session: AsyncSession, candidate: FactCandidate) -> dict:
        """Surrogate keys of the candidate's dimensions; raises DimensionUnresolved on a miss"""
        customer_key = await session.scalar(
            select(DimCustomer.customer_key).where(
                DimCustomer.customer_id == candidate.customer_id,
                DimCustomer.is_active.is_(True),
            )
        )
        if customer_key is None:
            raise DimensionUnresolved(candidate.customer_id, candidate.product_id, candidate.date_id, "customer")

        product_key = await session.scalar(
            select(DimProduct.product_key).where(
                DimProduct.product_id == candidate.product_id,
                DimProduct.is_active.is_(True),
            )
        )
        if product_key is None:
            raise DimensionUnresolved(candidate.customer_id, candidate.product_id, candidate.date_id, "product")

        full_date = parse_date_key(candidate.date_id)
        date_key = None
        if full_date is not None:
            date_key = await session.scalar(select(DimDate.date_key).where(DimDate.full_date == full_date))
        if date_key is None:
            raise DimensionUnresolved(candidate.customer_id, candidate.product_id, candidate.date_id, "date")

        return {"customer_key": customer_key, "product_key": product_key, "date_key": date_key}

    async def _build_rows(
        self,
        session: AsyncSession,
        candidates: Sequence[FactCandidate],
        result: FactLoadResult,
    ) -> List[dict]:
        now = datetime.utcnow()
        rows = []

        for candidate in candidates:
            try:
                keys = await self._resolve(session, candidate)
            except DimensionUnresolved as unresolved:
                result.unresolved.append(unresolved)
                FACT_CANDIDATES_UNRESOLVED.labels(dimension=unresolved.missing).inc()
                logger.warning(
                    "Fact candidate dropped",
                    order_id=candidate.order_id,
                    customer_id=candidate.customer_id,
                    product_id=candidate.product_id,
                    date_id=candidate.date_id,
                    missing=unresolved.missing,
                )
                continue

            errors = validate_candidate(candidate)
            if errors:
                result.rejected += 1
                result.errors.extend(errors)
                continue

            rows.append({
                **keys,
                "order_id": candidate.order_id,
                "quantity": candidate.quantity,
                "unit_price": candidate.unit_price,
                "total_amount": candidate.total_amount,
                "discount_amount": candidate.discount_amount,
                "final_amount": candidate.final_amount,
                "order_status": candidate.order_status,
                "created_at": now,
                "modified_at": now,
                "is_active": True,
            })

        return rows

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def _run(self, candidates: Sequence[FactCandidate], validate_all_first: bool) -> FactLoadResult:
        start = time.time()
        result = FactLoadResult()

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await self._clean(session)

                    if validate_all_first:
                        errors = [message for candidate in candidates for message in validate_candidate(candidate)]
                        if errors:
                            # The clean is kept; nothing is inserted
                            result.errors = errors
                            result.duration_seconds = time.time() - start
                            VALIDATION_MESSAGES.labels(entity="FactSales").inc(len(errors))
                            logger.warning("Fact batch rejected", candidates=len(candidates), messages=len(errors))
                            FACTS_LOADED.set(0)
                            return result

                    rows = await self._build_rows(session, candidates, result)
                    if rows:
                        await session.execute(insert(FactSales), rows)
        except Exception as e:
            logger.error("Fact load rolled back", candidates=len(candidates), error=str(e))
            raise LoadFailure("FactSales", str(e), rows_attempted=len(candidates)) from e

        result.inserted = len(rows)
        result.duration_seconds = time.time() - start

        if result.errors:
            VALIDATION_MESSAGES.labels(entity="FactSales").inc(len(result.errors))
        FACTS_LOADED.set(result.inserted)

        logger.info(
            "Fact load completed",
            candidates=len(candidates),
            inserted=result.inserted,
            unresolved=len(result.unresolved),
            rejected=result.rejected,
            duration_seconds=round(result.duration_seconds, 3),
        )
        return result

    async def load(self, candidates: Sequence[FactCandidate]) -> FactLoadResult:
        """
        Clean the fact table and insert every candidate that resolves and
        passes validation.

        Raises:
            LoadFailure: The unit of work failed and was rolled back,
                including the clean.
        """
        return await self._run(candidates, validate_all_first=False)

    async def load_with_validation(self, candidates: Sequence[FactCandidate]) -> FactLoadResult:
        """
        Clean, then validate every candidate before anything is inserted.

        If any candidate fails validation nothing is inserted and
        ``inserted`` is 0; the fact table stays cleaned.
        """
        return await self._run(candidates, validate_all_first=True)

    # -------------------------------------------------------------------------
    # Candidates
    # -------------------------------------------------------------------------

    async def build_candidates_from_orders(self) -> List[FactCandidate]:
        """One candidate per operational order line"""
        stmt = (
            select(Order, OrderDetail)
            .join(OrderDetail, OrderDetail.order_id == Order.order_id)
            .order_by(Order.order_id, OrderDetail.product_id)
        )

        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).all()

        candidates = []
        for order, detail in rows:
            total = Decimal(detail.total_price)
            candidates.append(
                FactCandidate(
                    customer_id=order.customer_id,
                    product_id=detail.product_id,
                    date_id=int(order.order_date.strftime("%Y%m%d")),
                    order_id=order.order_id,
                    quantity=detail.quantity,
                    unit_price=(total / detail.quantity).quantize(UNIT_PRICE_PRECISION),
                    total_amount=total,
                    discount_amount=Decimal("0"),
                    final_amount=total,
                    order_status=order.status,
                )
            )

        logger.info("Fact candidates built", candidates=len(candidates))
        return candidates
