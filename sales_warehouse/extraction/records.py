"""
Raw Source Records

Lenient, string-typed models for rows as they arrive from a delimited file,
a relational query or an HTTP API. Field names are matched case- and
separator-insensitively, so ``OrderID``, ``order_id`` and ``orderId`` all
land on ``order_id``. Parsing and validation happen in the transformers.
"""

import re
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

_SEPARATORS = re.compile(r"[\s_\-]")


def normalize_field_name(name: str) -> str:
    """``Order ID`` / ``order_id`` / ``OrderId`` -> ``orderid``"""
    return _SEPARATORS.sub("", name).lower()


class RawRecord(BaseModel):
    """Base class for raw source records"""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    entity_name: ClassVar[str] = "Record"
    # Extra source names accepted per field, beyond the field name itself
    source_names: ClassVar[Dict[str, Tuple[str, ...]]] = {}

    @field_validator("*", mode="before")
    @classmethod
    def _to_text(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        if not isinstance(value, str):
            value = str(value)
        value = value.strip()
        return value or None

    @classmethod
    def field_lookup(cls) -> Dict[str, str]:
        lookup: Dict[str, str] = {}
        for field_name in cls.model_fields:
            lookup[normalize_field_name(field_name)] = field_name
            for extra in cls.source_names.get(field_name, ()):
                lookup[normalize_field_name(extra)] = field_name
        return lookup

    @classmethod
    def from_source(cls, row: Mapping[str, Any]):
        """
        Build a record from any mapping of source field name to value.

        Unknown keys are ignored, missing fields stay None. When two keys
        map onto the same field the first one wins.
        """
        lookup = cls.field_lookup()
        values: Dict[str, Any] = {}
        for key, value in row.items():
            field_name = lookup.get(normalize_field_name(str(key)))
            if field_name is not None and field_name not in values:
                values[field_name] = value
        return cls.model_validate(values)


class CustomerRecord(RawRecord):
    entity_name: ClassVar[str] = "Customer"

    customer_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None


class ProductRecord(RawRecord):
    entity_name: ClassVar[str] = "Product"
    source_names: ClassVar[Dict[str, Tuple[str, ...]]] = {
        "product_name": ("name",),
        "price": ("unit_price",),
    }

    product_id: Optional[str] = None
    product_name: Optional[str] = None
    category: Optional[str] = None
    price: Optional[str] = None
    stock: Optional[str] = None


class OrderRecord(RawRecord):
    entity_name: ClassVar[str] = "Order"

    order_id: Optional[str] = None
    customer_id: Optional[str] = None
    order_date: Optional[str] = None
    status: Optional[str] = None


class OrderDetailRecord(RawRecord):
    entity_name: ClassVar[str] = "OrderDetail"

    order_id: Optional[str] = None
    product_id: Optional[str] = None
    quantity: Optional[str] = None
    total_price: Optional[str] = None
