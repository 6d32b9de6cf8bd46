"""
Entity Transformers

Turn raw source records into operational entities. Each transform function
takes one raw record and returns the entity (or None) together with the
validation messages for that row:

    "<Entity> <id>: <Field> <rule>"

Rows failing any rule are dropped; every failing rule of a row is reported.
A batch never fails as a whole, even when no row is valid.
"""

import time
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

import structlog

from sales_warehouse.database.models import Customer, Order, OrderDetail, Product
from sales_warehouse.extraction.records import (
    CustomerRecord,
    OrderDetailRecord,
    OrderRecord,
    ProductRecord,
    RawRecord,
)

logger = structlog.get_logger(__name__)

EntityT = TypeVar("EntityT")

DEFAULT_CATEGORY = "Unknown"

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%Y%m%d",
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %I:%M:%S %p",
    "%d.%m.%Y",
)


# =============================================================================
# VALUE PARSING
# =============================================================================

def parse_int(value: Optional[str]) -> Optional[int]:
    """Whole number, tolerating a zero fraction ("12.0"); None if unparseable"""
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        pass
    number = parse_decimal(value)
    if number is None or number != number.to_integral_value():
        return None
    return int(number)


def parse_decimal(value: Optional[str]) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        number = Decimal(value)
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def parse_date(value: Optional[str]) -> Optional[date]:
    """Calendar date from ISO text or one of the common day formats"""
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def _label(value: Optional[str]) -> str:
    return value if value is not None else "(none)"


# =============================================================================
# PER-ENTITY TRANSFORMS
# =============================================================================

def transform_customer(record: CustomerRecord) -> Tuple[Optional[Customer], List[str]]:
    prefix = f"Customer {_label(record.customer_id)}"
    errors = []

    customer_id = parse_int(record.customer_id)
    if customer_id is None or customer_id <= 0:
        errors.append(f"{prefix}: CustomerId must be greater than 0")
    if not record.first_name:
        errors.append(f"{prefix}: FirstName is required")
    if not record.last_name:
        errors.append(f"{prefix}: LastName is required")
    if record.email and "@" not in record.email:
        errors.append(f"{prefix}: Email must contain '@'")

    if errors:
        return None, errors

    return Customer(
        customer_id=customer_id,
        first_name=record.first_name,
        last_name=record.last_name,
        email=record.email,
        phone=record.phone,
        city=record.city,
        country=record.country,
    ), errors


def transform_product(record: ProductRecord) -> Tuple[Optional[Product], List[str]]:
    prefix = f"Product {_label(record.product_id)}"
    errors = []

    product_id = parse_int(record.product_id)
    if product_id is None or product_id <= 0:
        errors.append(f"{prefix}: ProductId must be greater than 0")
    if not record.product_name:
        errors.append(f"{prefix}: ProductName is required")

    price = parse_decimal(record.price)
    if price is None or price <= 0:
        errors.append(f"{prefix}: Price must be greater than 0")

    # Absent stock counts as none on hand
    stock = parse_int(record.stock) if record.stock is not None else 0
    if stock is None or stock < 0:
        errors.append(f"{prefix}: Stock must be greater than or equal to 0")

    if errors:
        return None, errors

    return Product(
        product_id=product_id,
        product_name=record.product_name,
        category=record.category or DEFAULT_CATEGORY,
        price=price,
        stock=stock,
    ), errors


def transform_order(record: OrderRecord) -> Tuple[Optional[Order], List[str]]:
    prefix = f"Order {_label(record.order_id)}"
    errors = []

    order_id = parse_int(record.order_id)
    if order_id is None or order_id <= 0:
        errors.append(f"{prefix}: OrderId must be greater than 0")

    customer_id = parse_int(record.customer_id)
    if customer_id is None or customer_id <= 0:
        errors.append(f"{prefix}: CustomerId must be greater than 0")

    order_date = parse_date(record.order_date)
    if order_date is None:
        errors.append(f"{prefix}: OrderDate must be a valid date")

    if not record.status:
        errors.append(f"{prefix}: Status is required")

    if errors:
        return None, errors

    return Order(
        order_id=order_id,
        customer_id=customer_id,
        order_date=order_date,
        status=record.status,
    ), errors


def transform_order_detail(record: OrderDetailRecord) -> Tuple[Optional[OrderDetail], List[str]]:
    prefix = f"OrderDetail {_label(record.order_id)}-{_label(record.product_id)}"
    errors = []

    order_id = parse_int(record.order_id)
    if order_id is None or order_id <= 0:
        errors.append(f"{prefix}: OrderId must be greater than 0")

    product_id = parse_int(record.product_id)
    if product_id is None or product_id <= 0:
        errors.append(f"{prefix}: ProductId must be greater than 0")

    quantity = parse_int(record.quantity)
    if quantity is None or quantity <= 0:
        errors.append(f"{prefix}: Quantity must be greater than 0")

    total_price = parse_decimal(record.total_price)
    if total_price is None or total_price <= 0:
        errors.append(f"{prefix}: TotalPrice must be greater than 0")

    if errors:
        return None, errors

    return OrderDetail(
        order_id=order_id,
        product_id=product_id,
        quantity=quantity,
        total_price=total_price,
    ), errors


# =============================================================================
# BATCH TRANSFORMER
# =============================================================================

@dataclass
class TransformResult(Generic[EntityT]):
    """Valid entities of a batch plus the messages of the rejected rows"""
    entity: str
    input_rows: int
    valid: List[EntityT] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def rejected(self) -> int:
        return self.input_rows - len(self.valid)


class EntityTransformer(Generic[EntityT]):
    """
    Apply one transform function to a batch of raw records.

    Example:
        result = CUSTOMER_TRANSFORMER.transform(records)
        result.valid, result.errors
    """

    def __init__(self, entity: str, transform_fn: Callable[[Any], Tuple[Optional[EntityT], List[str]]]):
        self.entity = entity
        self.transform_fn = transform_fn

    def transform(self, records: Sequence[RawRecord]) -> TransformResult[EntityT]:
        start = time.time()
        result: TransformResult[EntityT] = TransformResult(entity=self.entity, input_rows=len(records))

        for record in records:
            entity, errors = self.transform_fn(record)
            if errors:
                result.errors.extend(errors)
            elif entity is not None:
                result.valid.append(entity)

        result.duration_seconds = time.time() - start

        if result.errors:
            logger.warning(
                "Rows rejected by validation",
                entity=self.entity,
                rejected=result.rejected,
                messages=len(result.errors),
            )
        logger.info(
            "Transformation completed",
            entity=self.entity,
            input_rows=result.input_rows,
            valid_rows=len(result.valid),
        )
        return result


CUSTOMER_TRANSFORMER: EntityTransformer[Customer] = EntityTransformer("Customer", transform_customer)
PRODUCT_TRANSFORMER: EntityTransformer[Product] = EntityTransformer("Product", transform_product)
ORDER_TRANSFORMER: EntityTransformer[Order] = EntityTransformer("Order", transform_order)
ORDER_DETAIL_TRANSFORMER: EntityTransformer[OrderDetail] = EntityTransformer(
    "OrderDetail", transform_order_detail
)
