"""
Source Extractors

Three one-shot readers producing raw records of a single type:

- CsvExtractor: header-driven delimited file, read with Polars
- QueryExtractor: read statement against a relational source (async SQLAlchemy)
- ApiExtractor: HTTP GET returning a JSON array (requests)

Extractors do no validation. A missing file raises SourceNotFound, any
connection, status or payload problem raises SourceUnavailable.

Example:
    extractor = CsvExtractor(CustomerRecord, "data/raw/customers.csv")
    records = await extractor.extract()
"""

import asyncio
import time
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, Type, TypeVar, Union

import polars as pl
import requests
import structlog
from sqlalchemy import text
from sqlalchemy.engine import Row
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from sales_warehouse.errors import SourceNotFound, SourceUnavailable
from sales_warehouse.extraction.records import RawRecord

logger = structlog.get_logger(__name__)

RecordT = TypeVar("RecordT", bound=RawRecord)


class CsvExtractor(Generic[RecordT]):
    """Read a delimited file with a header row"""

    kind = "csv"

    def __init__(
        self,
        record_type: Type[RecordT],
        path: Union[str, Path],
        delimiter: str = ",",
        encoding: str = "utf8",
    ):
        self.record_type = record_type
        self.path = Path(path)
        self.delimiter = delimiter
        self.encoding = encoding

    @property
    def source(self) -> str:
        return f"csv:{self.path}"

    def _read(self) -> pl.DataFrame:
        try:
            # Every column as text; typing belongs to the transformers
            df = pl.read_csv(
                self.path,
                separator=self.delimiter,
                encoding=self.encoding,
                infer_schema_length=0,
                truncate_ragged_lines=True,
            )
        except pl.exceptions.NoDataError:
            return pl.DataFrame()

        if df.width == 0:
            return df

        df = df.with_columns(pl.all().str.strip_chars())

        # Blank lines come through as rows with nothing in them
        return df.filter(~pl.all_horizontal(pl.all().is_null() | (pl.all() == "")))

    async def extract(self) -> List[RecordT]:
        if not self.path.exists():
            raise SourceNotFound(self.source, "file does not exist")

        start = time.time()
        logger.info("Extracting from file", path=str(self.path), record_type=self.record_type.entity_name)

        try:
            df = await asyncio.to_thread(self._read)
        except (OSError, pl.exceptions.ComputeError) as e:
            raise SourceUnavailable(self.source, str(e)) from e

        records = [self.record_type.from_source(row) for row in df.iter_rows(named=True)]

        logger.info(
            "File extraction completed",
            path=str(self.path),
            records=len(records),
            duration_seconds=round(time.time() - start, 3),
        )
        return records


class QueryExtractor(Generic[RecordT]):
    """
    Run a read statement against a relational source.

    ``mapper`` turns one result row into a record; by default the row's
    column names are matched onto the record fields. Pass ``engine`` to
    reuse an existing engine, otherwise one is created from ``url`` and
    disposed after the read.
    """

    kind = "database"

    def __init__(
        self,
        record_type: Type[RecordT],
        query: str,
        url: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        mapper: Optional[Callable[[Row], RecordT]] = None,
        timeout_seconds: float = 120,
        engine: Optional[AsyncEngine] = None,
    ):
        if url is None and engine is None:
            raise ValueError("QueryExtractor needs a connection url or an engine")
        self.record_type = record_type
        self.query = query
        self.url = url
        self.params = params or {}
        self.mapper = mapper or self._map_by_name
        self.timeout_seconds = timeout_seconds
        self.engine = engine

    @property
    def source(self) -> str:
        return "database:" + (self.url.split("@")[-1] if self.url else str(self.engine.url))

    def _map_by_name(self, row: Row) -> RecordT:
        return self.record_type.from_source(row._mapping)

    async def extract(self) -> List[RecordT]:
        start = time.time()
        logger.info("Extracting from database", source=self.source, record_type=self.record_type.entity_name)

        engine = self.engine or create_async_engine(self.url, poolclass=NullPool)
        try:
            async with engine.connect() as conn:
                result = await asyncio.wait_for(
                    conn.execute(text(self.query), self.params),
                    timeout=self.timeout_seconds,
                )
                rows = result.fetchall()
        except asyncio.TimeoutError as e:
            raise SourceUnavailable(self.source, f"query timed out after {self.timeout_seconds}s") from e
        except (DBAPIError, OSError) as e:
            raise SourceUnavailable(self.source, str(e)) from e
        finally:
            if self.engine is None:
                await engine.dispose()

        records = [self.mapper(row) for row in rows]

        logger.info(
            "Database extraction completed",
            source=self.source,
            records=len(records),
            duration_seconds=round(time.time() - start, 3),
        )
        return records


class ApiExtractor(Generic[RecordT]):
    """
    GET a JSON array from a named API client.

    The blocking HTTP call runs in a worker thread so the event loop (and
    cancellation) stays responsive.
    """

    kind = "api"

    def __init__(
        self,
        record_type: Type[RecordT],
        base_url: str,
        endpoint: str,
        timeout_seconds: float = 30,
        session: Optional[requests.Session] = None,
    ):
        self.record_type = record_type
        self.base_url = base_url
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        self.session = session

    @property
    def url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.endpoint.lstrip('/')}"

    @property
    def source(self) -> str:
        return f"api:{self.url}"

    def _fetch(self) -> Any:
        try:
            # Module-level requests.get when no session is shared
            resp = (self.session or requests).get(
                self.url,
                headers={"Accept": "application/json"},
                timeout=self.timeout_seconds,
            )
            resp.raise_for_status()
            return resp.json()
        except requests.HTTPError as e:
            raise SourceUnavailable(self.source, f"status {e.response.status_code}") from e
        except requests.RequestException as e:
            raise SourceUnavailable(self.source, str(e)) from e
        except ValueError as e:
            raise SourceUnavailable(self.source, f"malformed JSON payload: {e}") from e

    async def extract(self) -> List[RecordT]:
        start = time.time()
        logger.info("Extracting from API", url=self.url, record_type=self.record_type.entity_name)

        payload = await asyncio.to_thread(self._fetch)

        if not isinstance(payload, list):
            raise SourceUnavailable(self.source, "expected a JSON array")

        records: List[RecordT] = []
        for item in payload:
            if not isinstance(item, Mapping):
                raise SourceUnavailable(self.source, "expected an array of JSON objects")
            records.append(self.record_type.from_source(item))

        logger.info(
            "API extraction completed",
            url=self.url,
            records=len(records),
            duration_seconds=round(time.time() - start, 3),
        )
        return records
