"""
Staging Writer

Writes the validated entities of a stage to the staging zone as Parquet
before they are loaded, one file per stage and run:

    <staging_directory>/<artifact>-<yyyyMMddHHmmss>.parquet
"""

import asyncio
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import polars as pl
import structlog
from sqlalchemy import inspect

logger = structlog.get_logger(__name__)


def _primitive(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def entity_to_row(entity: Any) -> Dict[str, Any]:
    """Column values of an ORM entity as Parquet-friendly primitives"""
    mapper = inspect(type(entity))
    return {attr.key: _primitive(getattr(entity, attr.key)) for attr in mapper.column_attrs}


class StagingWriter:
    """
    Example:
        writer = StagingWriter("data/staging")
        path = await writer.write("customers", customers)
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _write(self, artifact: str, rows: List[Dict[str, Any]]) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        path = self.directory / f"{artifact}-{timestamp}.parquet"
        pl.DataFrame(rows, infer_schema_length=None).write_parquet(path)
        return path

    async def write(self, artifact: str, entities: Sequence[Any]) -> Optional[Path]:
        """Write ``entities``; nothing is written for an empty batch"""
        if not entities:
            logger.info("Nothing to stage", artifact=artifact)
            return None

        rows = [entity_to_row(entity) for entity in entities]
        path = await asyncio.to_thread(self._write, artifact, rows)

        logger.info("Staged entities", artifact=artifact, rows=len(rows), path=str(path))
        return path
