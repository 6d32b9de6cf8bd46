"""
Warehouse Module - Dimensions and Facts
"""
from .dimensions import (
    DimensionLoadResult,
    DimensionResolver,
    build_date_row,
    build_date_rows,
    date_key,
    default_date_range,
    parse_date_key,
    shift_years,
    to_dim_customer,
    to_dim_product,
    validate_dim_customers,
    validate_dim_products,
)
from .facts import FactBuilder, FactCandidate, FactLoadResult, validate_candidate

__all__ = [
    "DimensionResolver",
    "DimensionLoadResult",
    "build_date_row",
    "build_date_rows",
    "date_key",
    "parse_date_key",
    "default_date_range",
    "shift_years",
    "to_dim_customer",
    "to_dim_product",
    "validate_dim_customers",
    "validate_dim_products",
    "FactBuilder",
    "FactCandidate",
    "FactLoadResult",
    "validate_candidate",
]
