"""
Extractor Factory

Builds the enabled extractors for one entity type from settings. Variant
selection is purely configuration driven.
"""

from typing import List, Optional, Type

import structlog

from sales_warehouse.config.settings import EntitySourceSettings, Settings, get_settings
from sales_warehouse.extraction.extractors import ApiExtractor, CsvExtractor, QueryExtractor
from sales_warehouse.extraction.records import RawRecord

logger = structlog.get_logger(__name__)


class ExtractorFactory:
    """
    Example:
        factory = ExtractorFactory(settings)
        records = await factory.extract_all(CustomerRecord, settings.customers)
    """

    def __init__(self, settings: Optional[Settings] = None, session=None):
        self.settings = settings or get_settings()
        # Optional requests.Session shared by API extractors
        self.session = session

    def create(self, record_type: Type[RawRecord], sources: EntitySourceSettings) -> list:
        """Return one extractor per enabled and fully configured source"""
        extractors = []
        entity = record_type.entity_name

        if sources.enable_csv:
            if sources.csv_path:
                extractors.append(CsvExtractor(record_type, sources.csv_path))
            else:
                logger.warning("File source enabled without a path", entity=entity)

        if sources.enable_database:
            url = self.settings.source_database.url
            if url and sources.database_query:
                extractors.append(
                    QueryExtractor(
                        record_type,
                        sources.database_query,
                        url=url,
                        timeout_seconds=self.settings.source_database.timeout_seconds,
                    )
                )
            else:
                logger.warning("Database source enabled without a url or query", entity=entity)

        if sources.enable_api:
            base_url = self.settings.api.base_url(sources.api_client)
            if base_url and sources.api_endpoint:
                extractors.append(
                    ApiExtractor(
                        record_type,
                        base_url,
                        sources.api_endpoint,
                        timeout_seconds=self.settings.api.timeout_seconds,
                        session=self.session,
                    )
                )
            else:
                logger.warning(
                    "API source enabled without a known client or endpoint",
                    entity=entity,
                    client=sources.api_client,
                )

        return extractors

    async def extract_all(self, record_type: Type[RawRecord], sources: EntitySourceSettings) -> List[RawRecord]:
        """Run every enabled extractor in turn and concatenate the results"""
        extractors = self.create(record_type, sources)
        if not extractors:
            logger.warning("No source enabled", entity=record_type.entity_name)
            return []

        records: List[RawRecord] = []
        for extractor in extractors:
            records.extend(await extractor.extract())
        return records
