"""
Batch Loader

Transactional insert-or-update of entities keyed by natural key.

- Deduplicates the input by natural key (first occurrence wins)
- Splits the input into fixed-size chunks
- Runs every chunk inside one transaction; nothing is visible until all
  chunks succeed, and any failure rolls the whole call back
- Flushes and clears the session identity map after each chunk to keep
  memory bounded on large inputs
"""

import time
from dataclasses import dataclass
from typing import Any, Iterator, List, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sales_warehouse.errors import LoadFailure
from sales_warehouse.ingestion.strategies import UpsertStrategy
from sales_warehouse.metrics import ROWS_UPSERTED

logger = structlog.get_logger(__name__)

DEFAULT_CHUNK_SIZE = 1000


@dataclass
class UpsertResult:
    """Rows written by one upsert call"""
    entity: str
    inserted: int = 0
    updated: int = 0
    duplicates_dropped: int = 0
    duration_seconds: float = 0.0

    @property
    def affected(self) -> int:
        return self.inserted + self.updated


def deduplicate(entities: Sequence[Any], strategy: UpsertStrategy) -> List[Any]:
    """Keep the first entity seen for every natural key"""
    seen = set()
    unique = []
    for entity in entities:
        key = strategy.key_fn(entity)
        if key in seen:
            continue
        seen.add(key)
        unique.append(entity)
    return unique


def chunked(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class BatchLoader:
    """
    Upsert entities through a strategy in one unit of work.

    Example:
        loader = BatchLoader(session_factory, chunk_size=1000)
        result = await loader.upsert(customers, CUSTOMER_STRATEGY)
        print(result.inserted, result.updated)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.session_factory = session_factory
        self.chunk_size = chunk_size

    async def upsert(self, entities: Sequence[Any], strategy: UpsertStrategy) -> UpsertResult:
        """
        Insert new and update existing rows for ``entities``.

        Raises:
            LoadFailure: The write failed; the transaction was rolled back.
                The underlying exception is chained as ``__cause__``.
        """
        start = time.time()
        unique = deduplicate(entities, strategy)
        result = UpsertResult(entity=strategy.entity, duplicates_dropped=len(entities) - len(unique))

        if result.duplicates_dropped:
            logger.info(
                "Dropped duplicate natural keys",
                entity=strategy.entity,
                duplicates=result.duplicates_dropped,
            )

        if not unique:
            return result

        inserted = updated = 0
        try:
            async with self.session_factory() as session:
                # Commits on success, rolls back on any exception or cancellation
                async with session.begin():
                    for index, chunk in enumerate(chunked(unique, self.chunk_size)):
                        chunk_inserted, chunk_updated = await self._upsert_chunk(session, chunk, strategy)
                        inserted += chunk_inserted
                        updated += chunk_updated
                        logger.debug(
                            "Chunk upserted",
                            entity=strategy.entity,
                            chunk=index,
                            rows=len(chunk),
                            inserted=chunk_inserted,
                            updated=chunk_updated,
                        )
        except Exception as e:
            logger.error(
                "Upsert rolled back",
                entity=strategy.entity,
                rows=len(unique),
                error=str(e),
            )
            raise LoadFailure(strategy.entity, str(e), rows_attempted=len(unique)) from e

        result.inserted = inserted
        result.updated = updated
        result.duration_seconds = time.time() - start

        ROWS_UPSERTED.labels(entity=strategy.entity, operation="insert").inc(inserted)
        ROWS_UPSERTED.labels(entity=strategy.entity, operation="update").inc(updated)

        logger.info(
            "Upsert completed",
            entity=strategy.entity,
            inserted=inserted,
            updated=updated,
            duration_seconds=round(result.duration_seconds, 3),
        )
        return result

    async def _upsert_chunk(
        self,
        session: AsyncSession,
        chunk: Sequence[Any],
        strategy: UpsertStrategy,
    ) -> tuple:
        inserted = updated = 0

        for entity in chunk:
            existing = await session.scalar(strategy.lookup_statement(strategy.key_fn(entity)))
            if existing is None:
                session.add(entity)
                inserted += 1
            else:
                strategy.apply_update(existing, entity)
                updated += 1

        await session.flush()
        session.expunge_all()
        return inserted, updated
