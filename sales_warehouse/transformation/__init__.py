"""
Transformation Module
"""
from .transformers import (
    CUSTOMER_TRANSFORMER,
    ORDER_DETAIL_TRANSFORMER,
    ORDER_TRANSFORMER,
    PRODUCT_TRANSFORMER,
    EntityTransformer,
    TransformResult,
    parse_date,
    parse_decimal,
    parse_int,
    transform_customer,
    transform_order,
    transform_order_detail,
    transform_product,
)

__all__ = [
    "EntityTransformer",
    "TransformResult",
    "CUSTOMER_TRANSFORMER",
    "PRODUCT_TRANSFORMER",
    "ORDER_TRANSFORMER",
    "ORDER_DETAIL_TRANSFORMER",
    "transform_customer",
    "transform_product",
    "transform_order",
    "transform_order_detail",
    "parse_int",
    "parse_decimal",
    "parse_date",
]
