"""
Upsert Strategies

One strategy per persisted entity type, chosen by the caller when the load
is set up. A strategy knows how to compute an entity's natural key, how to
find the stored row for a key, and which fields an update overwrites.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Generic, Optional, Tuple, Type, TypeVar

from sqlalchemy import Select, select

from sales_warehouse.database.models import (
    Customer,
    DimCustomer,
    DimDate,
    DimProduct,
    Order,
    OrderDetail,
    Product,
)

ModelT = TypeVar("ModelT")


def key_of(*attributes: str) -> Callable[[Any], Tuple]:
    """Natural key extractor returning a tuple of the named attributes"""
    def extract(entity: Any) -> Tuple:
        return tuple(getattr(entity, name) for name in attributes)
    return extract


def stamp_modified(entity: Any) -> None:
    entity.modified_at = datetime.utcnow()


@dataclass(frozen=True)
class UpsertStrategy(Generic[ModelT]):
    """
    Insert-or-update behaviour for one model.

    Attributes:
        entity: Name used in logs, metrics and errors
        model: ORM class that is written
        key_columns: Natural key columns, matched in order against key_fn output
        key_fn: Extract the natural key tuple from an entity
        mutable_fields: Fields copied from the incoming entity on update
        on_update: Hook run on the stored row after an update is applied
    """
    entity: str
    model: Type[ModelT]
    key_columns: Tuple[str, ...]
    key_fn: Callable[[Any], Tuple]
    mutable_fields: Tuple[str, ...]
    on_update: Optional[Callable[[Any], None]] = None

    def lookup_statement(self, key: Tuple) -> Select:
        criteria = [getattr(self.model, column) == value for column, value in zip(self.key_columns, key)]
        return select(self.model).where(*criteria)

    def apply_update(self, existing: ModelT, incoming: ModelT) -> None:
        """Overwrite the stored row's mutable fields; its identity is kept"""
        for name in self.mutable_fields:
            setattr(existing, name, getattr(incoming, name))
        if self.on_update is not None:
            self.on_update(existing)


# =============================================================================
# OPERATIONAL TABLES
# =============================================================================

CUSTOMER_STRATEGY = UpsertStrategy(
    entity="Customer",
    model=Customer,
    key_columns=("customer_id",),
    key_fn=key_of("customer_id"),
    mutable_fields=("first_name", "last_name", "email", "phone", "city", "country"),
)

PRODUCT_STRATEGY = UpsertStrategy(
    entity="Product",
    model=Product,
    key_columns=("product_id",),
    key_fn=key_of("product_id"),
    mutable_fields=("product_name", "category", "price", "stock"),
)

ORDER_STRATEGY = UpsertStrategy(
    entity="Order",
    model=Order,
    key_columns=("order_id",),
    key_fn=key_of("order_id"),
    mutable_fields=("customer_id", "order_date", "status"),
)

ORDER_DETAIL_STRATEGY = UpsertStrategy(
    entity="OrderDetail",
    model=OrderDetail,
    key_columns=("order_id", "product_id"),
    key_fn=key_of("order_id", "product_id"),
    mutable_fields=("quantity", "total_price"),
)


# =============================================================================
# DIMENSION TABLES
# =============================================================================

DIM_CUSTOMER_STRATEGY = UpsertStrategy(
    entity="DimCustomer",
    model=DimCustomer,
    key_columns=("customer_id",),
    key_fn=key_of("customer_id"),
    mutable_fields=(
        "first_name",
        "last_name",
        "email",
        "phone",
        "city",
        "country",
        "region",
        "is_active",
    ),
    on_update=stamp_modified,
)

DIM_PRODUCT_STRATEGY = UpsertStrategy(
    entity="DimProduct",
    model=DimProduct,
    key_columns=("product_id",),
    key_fn=key_of("product_id"),
    mutable_fields=("product_name", "category", "price", "stock", "is_active"),
    on_update=stamp_modified,
)

DIM_DATE_STRATEGY = UpsertStrategy(
    entity="DimDate",
    model=DimDate,
    key_columns=("date_key",),
    key_fn=key_of("date_key"),
    mutable_fields=(
        "full_date",
        "year",
        "quarter",
        "month",
        "month_name",
        "week_of_year",
        "day_of_year",
        "day_of_month",
        "day_of_week",
        "day_name",
        "is_weekend",
        "is_holiday",
        "fiscal_year",
        "fiscal_quarter",
        "fiscal_month",
    ),
)
