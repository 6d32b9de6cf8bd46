"""
Warehouse ETL Orchestrator

Runs one complete load in fixed order:

    customers -> products -> orders -> order details
    -> customer, product and date dimensions -> sales facts

Every stage is isolated: an exception inside a stage is recorded in the run
summary and the next stage still runs. Validation messages of a stage are
recorded the same way, so a run is successful only when its error list is
empty.
"""

import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from operator import attrgetter
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Type

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sales_warehouse.config.settings import EntitySourceSettings, Settings, get_settings
from sales_warehouse.extraction.factory import ExtractorFactory
from sales_warehouse.extraction.records import (
    CustomerRecord,
    OrderDetailRecord,
    OrderRecord,
    ProductRecord,
    RawRecord,
)
from sales_warehouse.ingestion.batch_loader import BatchLoader
from sales_warehouse.ingestion.staging import StagingWriter
from sales_warehouse.ingestion.strategies import (
    CUSTOMER_STRATEGY,
    ORDER_DETAIL_STRATEGY,
    ORDER_STRATEGY,
    PRODUCT_STRATEGY,
    UpsertStrategy,
)
from sales_warehouse.metrics import STAGE_DURATION, VALIDATION_MESSAGES
from sales_warehouse.transformation.transformers import (
    CUSTOMER_TRANSFORMER,
    ORDER_DETAIL_TRANSFORMER,
    ORDER_TRANSFORMER,
    PRODUCT_TRANSFORMER,
    EntityTransformer,
)
from sales_warehouse.warehouse.dimensions import DimensionResolver, default_date_range
from sales_warehouse.warehouse.facts import FactBuilder

logger = structlog.get_logger(__name__)


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class EntityStageResult:
    """Outcome of one operational entity stage"""
    entity: str
    processed_count: int = 0
    inserted_count: int = 0
    updated_count: int = 0
    validation_errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    staged_path: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return not self.validation_errors


@dataclass
class EtlRunResult:
    """Summary of one complete run"""
    customers_processed: int = 0
    products_processed: int = 0
    orders_processed: int = 0
    order_details_processed: int = 0
    dim_customers_processed: int = 0
    dim_products_processed: int = 0
    dim_dates_processed: int = 0
    facts_loaded: int = 0
    facts_invalid: int = 0
    errors: List[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def is_success(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["is_success"] = self.is_success
        return data


# =============================================================================
# STAGES
# =============================================================================

@dataclass(frozen=True)
class EntityStage:
    """How one operational entity type flows from source to table"""
    name: str
    label: str
    record_type: Type[RawRecord]
    transformer: EntityTransformer
    strategy: UpsertStrategy
    sources: Callable[[Settings], EntitySourceSettings]
    result_field: str


CUSTOMERS_STAGE = EntityStage(
    name="customers",
    label="Customer",
    record_type=CustomerRecord,
    transformer=CUSTOMER_TRANSFORMER,
    strategy=CUSTOMER_STRATEGY,
    sources=attrgetter("customers"),
    result_field="customers_processed",
)

PRODUCTS_STAGE = EntityStage(
    name="products",
    label="Product",
    record_type=ProductRecord,
    transformer=PRODUCT_TRANSFORMER,
    strategy=PRODUCT_STRATEGY,
    sources=attrgetter("products"),
    result_field="products_processed",
)

ORDERS_STAGE = EntityStage(
    name="orders",
    label="Order",
    record_type=OrderRecord,
    transformer=ORDER_TRANSFORMER,
    strategy=ORDER_STRATEGY,
    sources=attrgetter("orders"),
    result_field="orders_processed",
)

ORDER_DETAILS_STAGE = EntityStage(
    name="order_details",
    label="OrderDetail",
    record_type=OrderDetailRecord,
    transformer=ORDER_DETAIL_TRANSFORMER,
    strategy=ORDER_DETAIL_STRATEGY,
    sources=attrgetter("order_details"),
    result_field="order_details_processed",
)

ENTITY_STAGES = (CUSTOMERS_STAGE, PRODUCTS_STAGE, ORDERS_STAGE, ORDER_DETAILS_STAGE)


class EtlOrchestrator:
    """
    Run every stage of the warehouse load against one database.

    Example:
        orchestrator = EtlOrchestrator(session_factory, settings)
        result = await orchestrator.run()
        if not result.is_success:
            print(result.errors)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
        extractor_factory: Optional[ExtractorFactory] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.settings = settings or get_settings()
        self.session_factory = session_factory
        self.extractor_factory = extractor_factory or ExtractorFactory(self.settings)
        self.clock = clock

        chunk_size = self.settings.etl.chunk_size
        self.loader = BatchLoader(session_factory, chunk_size=chunk_size)
        self.dimensions = DimensionResolver(session_factory, chunk_size=chunk_size)
        self.facts = FactBuilder(session_factory)
        self.staging = StagingWriter(self.settings.etl.staging_directory) if self.settings.etl.enable_staging else None

    # -------------------------------------------------------------------------
    # Operational entities
    # -------------------------------------------------------------------------

    async def process_records(self, stage: EntityStage, records: Sequence[RawRecord]) -> EntityStageResult:
        """Transform, stage and upsert already extracted records"""
        start = time.time()

        transformed = stage.transformer.transform(records)
        if transformed.errors:
            VALIDATION_MESSAGES.labels(entity=stage.label).inc(len(transformed.errors))

        staged_path: Optional[Path] = None
        if self.staging is not None:
            staged_path = await self.staging.write(stage.name, transformed.valid)

        upserted = await self.loader.upsert(transformed.valid, stage.strategy)

        result = EntityStageResult(
            entity=stage.label,
            processed_count=len(transformed.valid),
            inserted_count=upserted.inserted,
            updated_count=upserted.updated,
            validation_errors=transformed.errors,
            duration_seconds=time.time() - start,
            staged_path=str(staged_path) if staged_path else None,
        )

        logger.info(
            "Entity stage completed",
            entity=stage.label,
            processed=result.processed_count,
            inserted=result.inserted_count,
            updated=result.updated_count,
            validation_errors=len(result.validation_errors),
        )
        return result

    async def process_entity(self, stage: EntityStage) -> EntityStageResult:
        """Extract from every enabled source, then process"""
        records = await self.extractor_factory.extract_all(stage.record_type, stage.sources(self.settings))
        return await self.process_records(stage, records)

    async def process_customers(self, records: Sequence[CustomerRecord]) -> EntityStageResult:
        return await self.process_records(CUSTOMERS_STAGE, records)

    async def process_products(self, records: Sequence[ProductRecord]) -> EntityStageResult:
        return await self.process_records(PRODUCTS_STAGE, records)

    async def process_orders(self, records: Sequence[OrderRecord]) -> EntityStageResult:
        return await self.process_records(ORDERS_STAGE, records)

    async def process_order_details(self, records: Sequence[OrderDetailRecord]) -> EntityStageResult:
        return await self.process_records(ORDER_DETAILS_STAGE, records)

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    async def _guarded(
        self,
        stage: str,
        failure_label: str,
        action: Callable[[], Awaitable[Any]],
        result: EtlRunResult,
    ) -> Any:
        """
        Run one stage. Exceptions are recorded on ``result`` and swallowed;
        cancellation is not an Exception and propagates.
        """
        start = time.time()
        status = "cancelled"
        try:
            outcome = await action()
            status = "success"
            return outcome
        except Exception as e:
            status = "failed"
            result.errors.append(f"{failure_label} processing failed: {e}")
            logger.error("Stage failed", stage=stage, error=str(e), exc_info=True)
            return None
        finally:
            STAGE_DURATION.labels(stage=stage, status=status).observe(time.time() - start)

    async def _run_stages(self, result: EtlRunResult) -> None:
        for stage in ENTITY_STAGES:
            stage_result = await self._guarded(stage.name, stage.label, lambda: self.process_entity(stage), result)
            if stage_result is not None:
                setattr(result, stage.result_field, stage_result.processed_count)
                result.errors.extend(stage_result.validation_errors)

        dim_customers = await self._guarded(
            "dim_customers", "Customer dimension", self.dimensions.load_customers_from_operational, result
        )
        if dim_customers is not None:
            result.dim_customers_processed = dim_customers.processed
            result.errors.extend(dim_customers.errors)

        dim_products = await self._guarded(
            "dim_products", "Product dimension", self.dimensions.load_products_from_operational, result
        )
        if dim_products is not None:
            result.dim_products_processed = dim_products.processed
            result.errors.extend(dim_products.errors)

        start, end = default_date_range(
            self.clock().date(),
            years_back=self.settings.etl.date_years_back,
            years_ahead=self.settings.etl.date_years_ahead,
        )
        dim_dates = await self._guarded(
            "dim_dates", "Date dimension", lambda: self.dimensions.load_dates(start, end), result
        )
        if dim_dates is not None:
            result.dim_dates_processed = dim_dates.processed
            result.errors.extend(dim_dates.errors)

        facts = await self._guarded("facts", "Fact", self._load_facts, result)
        if facts is not None:
            result.facts_loaded = facts.inserted
            result.facts_invalid = facts.invalid_count
            result.errors.extend(facts.errors)

    async def _load_facts(self):
        candidates = await self.facts.build_candidates_from_orders()
        return await self.facts.load(candidates)

    async def run(self) -> EtlRunResult:
        """
        Run all stages.

        Returns:
            EtlRunResult: Always produced when the stages ran; stage failures
            are in ``errors``.

        Raises:
            Exception: Anything thrown outside the per-stage wrappers, after
                it has been added to the run's error list.
        """
        start = time.time()
        result = EtlRunResult()
        logger.info("Starting warehouse ETL run", environment=self.settings.app_env)

        try:
            await self._run_stages(result)
            result.elapsed_seconds = time.time() - start
        except Exception as e:
            result.elapsed_seconds = time.time() - start
            result.errors.append(f"ETL process failed: {e}")
            logger.error("Warehouse ETL run failed", error=str(e), exc_info=True)
            raise

        log = logger.info if result.is_success else logger.warning
        log(
            "Warehouse ETL run completed",
            success=result.is_success,
            errors=len(result.errors),
            facts_loaded=result.facts_loaded,
            facts_invalid=result.facts_invalid,
            elapsed_seconds=round(result.elapsed_seconds, 3),
        )
        return result
