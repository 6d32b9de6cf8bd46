"""
Extraction Module
"""
from .extractors import ApiExtractor, CsvExtractor, QueryExtractor
from .factory import ExtractorFactory
from .records import (
    CustomerRecord,
    OrderDetailRecord,
    OrderRecord,
    ProductRecord,
    RawRecord,
    normalize_field_name,
)

__all__ = [
    "ApiExtractor",
    "CsvExtractor",
    "QueryExtractor",
    "ExtractorFactory",
    "RawRecord",
    "CustomerRecord",
    "ProductRecord",
    "OrderRecord",
    "OrderDetailRecord",
    "normalize_field_name",
]
