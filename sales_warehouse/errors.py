"""
Error taxonomy for the warehouse load path.

Per-record validation problems are reported as message strings on the
stage results, not raised. Everything here is raised and either handled by
the orchestrator's stage wrapper or propagated to the caller.
"""

from typing import Optional


class WarehouseError(Exception):
    """Base class for all warehouse load errors"""


class ExtractionError(WarehouseError):
    """A source could not be read"""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")


class SourceNotFound(ExtractionError):
    """The configured source does not exist (e.g. missing file)"""


class SourceUnavailable(ExtractionError):
    """The source exists but could not be read (connection, status, payload)"""


class LoadFailure(WarehouseError):
    """A transactional write failed and was rolled back"""

    def __init__(self, entity: str, message: str, rows_attempted: Optional[int] = None):
        self.entity = entity
        self.rows_attempted = rows_attempted
        super().__init__(f"Load of {entity} failed: {message}")


class DimensionUnresolved(WarehouseError):
    """
    A fact candidate referenced a customer, product or date with no matching
    dimension row. Recorded and counted by the fact builder, never raised
    out of it.
    """

    def __init__(self, customer_id: int, product_id: int, date_id: int, missing: str):
        self.customer_id = customer_id
        self.product_id = product_id
        self.date_id = date_id
        self.missing = missing
        super().__init__(
            f"Fact candidate customer={customer_id} product={product_id} "
            f"date={date_id}: {missing} dimension not found"
        )
