"""
Ingestion Module
"""
from .batch_loader import BatchLoader, UpsertResult, chunked, deduplicate
from .staging import StagingWriter, entity_to_row
from .strategies import (
    CUSTOMER_STRATEGY,
    DIM_CUSTOMER_STRATEGY,
    DIM_DATE_STRATEGY,
    DIM_PRODUCT_STRATEGY,
    ORDER_DETAIL_STRATEGY,
    ORDER_STRATEGY,
    PRODUCT_STRATEGY,
    UpsertStrategy,
    key_of,
)

__all__ = [
    "BatchLoader",
    "UpsertResult",
    "UpsertStrategy",
    "StagingWriter",
    "chunked",
    "deduplicate",
    "entity_to_row",
    "key_of",
    "CUSTOMER_STRATEGY",
    "PRODUCT_STRATEGY",
    "ORDER_STRATEGY",
    "ORDER_DETAIL_STRATEGY",
    "DIM_CUSTOMER_STRATEGY",
    "DIM_PRODUCT_STRATEGY",
    "DIM_DATE_STRATEGY",
]
