"""
Unit Tests - Extraction
"""
import json
from datetime import date
from decimal import Decimal

import pytest
import requests

from sales_warehouse.config.settings import ApiSettings, CustomerSourceSettings, Settings
from sales_warehouse.database.models import Customer
from sales_warehouse.errors import SourceNotFound, SourceUnavailable
from sales_warehouse.extraction import (
    ApiExtractor,
    CsvExtractor,
    CustomerRecord,
    ExtractorFactory,
    OrderRecord,
    ProductRecord,
    QueryExtractor,
    normalize_field_name,
)


def make_response(status_code: int, body) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = body if isinstance(body, bytes) else json.dumps(body).encode()
    response.url = "http://api.test/customers"
    return response


class FakeSession:
    """Stands in for requests.Session; records requested URLs"""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.urls = []

    def get(self, url, **kwargs):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.response


class TestRawRecords:
    """Tests for the lenient source record models"""

    def test_normalize_field_name(self):
        assert normalize_field_name("OrderID") == "orderid"
        assert normalize_field_name("order_id") == "orderid"
        assert normalize_field_name("Order Id") == "orderid"
        assert normalize_field_name("order-id") == "orderid"

    def test_from_source_matches_any_casing(self):
        record = OrderRecord.from_source({
            "OrderID": "10",
            "customer_id": 3,
            "orderDate": "2024-01-05",
            "STATUS": " Shipped ",
        })

        assert record.order_id == "10"
        assert record.customer_id == "3"
        assert record.order_date == "2024-01-05"
        assert record.status == "Shipped"

    def test_blank_values_become_none(self):
        record = CustomerRecord.from_source({"CustomerId": "1", "FirstName": "   ", "LastName": ""})

        assert record.first_name is None
        assert record.last_name is None
        assert record.email is None

    def test_unknown_keys_ignored(self):
        record = CustomerRecord.from_source({"CustomerId": "1", "Loyalty": "gold"})
        assert record.customer_id == "1"
        assert not hasattr(record, "loyalty")

    def test_non_text_values_rendered(self):
        record = OrderRecord.from_source({"OrderDate": date(2024, 2, 29)})
        product = ProductRecord.from_source({"Price": Decimal("10.50")})

        assert record.order_date == "2024-02-29"
        assert product.price == "10.50"

    def test_extra_source_names(self):
        record = ProductRecord.from_source({"Name": "Mouse", "UnitPrice": "9.99"})
        assert record.product_name == "Mouse"
        assert record.price == "9.99"

    def test_first_matching_key_wins(self):
        record = CustomerRecord.from_source({"CustomerId": "1", "customer_id": "2"})
        assert record.customer_id == "1"


class TestCsvExtractor:
    """Tests for the delimited file extractor"""

    async def test_extract_by_header(self, write_csv):
        path = write_csv(
            "customers.csv",
            "CustomerID,FirstName,LastName,Email,Segment\n"
            " 1 , John ,Doe,john@example.com,vip\n"
            "2,Jane,Smith,,new\n",
        )

        records = await CsvExtractor(CustomerRecord, path).extract()

        assert len(records) == 2
        assert records[0].customer_id == "1"
        assert records[0].first_name == "John"
        assert records[1].email is None
        # Fields missing from the header stay at their default
        assert records[0].city is None

    async def test_blank_lines_ignored(self, write_csv):
        path = write_csv("orders.csv", "OrderID,CustomerID,OrderDate,Status\n1,2,2024-01-01,New\n,,,\n\n3,4,2024-01-02,New\n")

        records = await CsvExtractor(OrderRecord, path).extract()

        assert [r.order_id for r in records] == ["1", "3"]

    async def test_extra_trailing_field_tolerated(self, write_csv):
        path = write_csv("orders.csv", "OrderID,CustomerID,OrderDate,Status\n1,1,2024-01-05,New,extra\n2,1,2024-01-06,New\n")

        records = await CsvExtractor(OrderRecord, path).extract()

        assert [(r.order_id, r.status) for r in records] == [("1", "New"), ("2", "New")]

    async def test_missing_file(self, tmp_path):
        extractor = CsvExtractor(CustomerRecord, tmp_path / "missing.csv")

        with pytest.raises(SourceNotFound):
            await extractor.extract()

    async def test_empty_file(self, write_csv):
        path = write_csv("empty.csv", "")
        assert await CsvExtractor(CustomerRecord, path).extract() == []

    async def test_custom_delimiter(self, write_csv):
        path = write_csv("products.csv", "ProductId;ProductName;Price\n7;Lamp;12.50\n")

        records = await CsvExtractor(ProductRecord, path, delimiter=";").extract()

        assert records[0].product_id == "7"
        assert records[0].price == "12.50"


class TestQueryExtractor:
    """Tests for the relational source extractor"""

    async def test_extract_with_default_mapping(self, engine, session_factory):
        async with session_factory() as session:
            async with session.begin():
                session.add(Customer(customer_id=1, first_name="John", last_name="Doe", email="j@x.com"))
                session.add(Customer(customer_id=2, first_name="Jane", last_name="Roe", email="r@x.com"))

        extractor = QueryExtractor(
            CustomerRecord,
            "SELECT customer_id AS CustomerId, first_name AS FirstName, last_name AS LastName "
            "FROM customers WHERE customer_id >= :min_id ORDER BY customer_id",
            params={"min_id": 1},
            engine=engine,
        )

        records = await extractor.extract()

        assert [r.customer_id for r in records] == ["1", "2"]
        assert records[1].last_name == "Roe"

    async def test_extract_with_mapper(self, engine, session_factory):
        async with session_factory() as session:
            async with session.begin():
                session.add(Customer(customer_id=5, first_name="Ann", last_name="Lee"))

        extractor = QueryExtractor(
            CustomerRecord,
            "SELECT customer_id, first_name FROM customers",
            mapper=lambda row: CustomerRecord(customer_id=str(row[0]), first_name=row[1].upper()),
            engine=engine,
        )

        records = await extractor.extract()

        assert records[0].first_name == "ANN"

    async def test_unreachable_source(self, tmp_path):
        url = f"sqlite+aiosqlite:///{tmp_path}/no/such/dir/source.db"
        extractor = QueryExtractor(CustomerRecord, "SELECT 1", url=url)

        with pytest.raises(SourceUnavailable):
            await extractor.extract()

    async def test_bad_statement(self, engine):
        extractor = QueryExtractor(CustomerRecord, "SELECT * FROM no_such_table", engine=engine)

        with pytest.raises(SourceUnavailable):
            await extractor.extract()

    def test_needs_url_or_engine(self):
        with pytest.raises(ValueError):
            QueryExtractor(CustomerRecord, "SELECT 1")


class TestApiExtractor:
    """Tests for the HTTP API extractor"""

    async def test_extract_json_array(self):
        session = FakeSession(make_response(200, [
            {"customerId": 1, "firstName": "John", "LASTNAME": "Doe"},
            {"CustomerID": 2, "first_name": "Jane"},
        ]))
        extractor = ApiExtractor(CustomerRecord, "http://api.test/", "/customers", session=session)

        records = await extractor.extract()

        assert session.urls == ["http://api.test/customers"]
        assert [r.customer_id for r in records] == ["1", "2"]
        assert records[0].last_name == "Doe"

    async def test_non_success_status(self):
        extractor = ApiExtractor(
            CustomerRecord, "http://api.test", "customers", session=FakeSession(make_response(503, []))
        )

        with pytest.raises(SourceUnavailable, match="503"):
            await extractor.extract()

    async def test_malformed_payload(self):
        extractor = ApiExtractor(
            CustomerRecord, "http://api.test", "customers", session=FakeSession(make_response(200, b"{not json"))
        )

        with pytest.raises(SourceUnavailable):
            await extractor.extract()

    async def test_payload_must_be_array(self):
        extractor = ApiExtractor(
            CustomerRecord, "http://api.test", "customers", session=FakeSession(make_response(200, {"id": 1}))
        )

        with pytest.raises(SourceUnavailable, match="array"):
            await extractor.extract()

    async def test_connection_error(self):
        session = FakeSession(error=requests.ConnectionError("refused"))
        extractor = ApiExtractor(CustomerRecord, "http://api.test", "customers", session=session)

        with pytest.raises(SourceUnavailable):
            await extractor.extract()

    async def test_without_session_uses_requests_get(self, monkeypatch):
        calls = FakeSession(make_response(200, [{"CustomerID": 1}]))
        monkeypatch.setattr(requests, "get", calls.get)
        extractor = ApiExtractor(CustomerRecord, "http://api.test", "customers")

        records = await extractor.extract()

        assert extractor.session is None
        assert calls.urls == ["http://api.test/customers"]
        assert [r.customer_id for r in records] == ["1"]


class TestExtractorFactory:
    """Tests for configuration-driven extractor selection"""

    def test_only_enabled_sources(self):
        settings = Settings(_env_file=None, api=ApiSettings(clients={"Sales-API": "http://api.test"}))
        sources = CustomerSourceSettings(
            csv_path="customers.csv",
            enable_api=True,
            api_client="sales-api",
            api_endpoint="customers",
        )

        extractors = ExtractorFactory(settings).create(CustomerRecord, sources)

        assert [e.kind for e in extractors] == ["csv", "api"]
        assert extractors[1].url == "http://api.test/customers"

    def test_incomplete_sources_skipped(self):
        settings = Settings(_env_file=None)
        sources = CustomerSourceSettings(
            enable_csv=False,
            enable_database=True,
            enable_api=True,
            api_client="unknown",
            api_endpoint="customers",
        )

        assert ExtractorFactory(settings).create(CustomerRecord, sources) == []

    async def test_extract_all_concatenates(self, write_csv):
        path = write_csv("customers.csv", "CustomerID,FirstName\n1,John\n")
        settings = Settings(_env_file=None, api=ApiSettings(clients={"sales-api": "http://api.test"}))
        sources = CustomerSourceSettings(
            csv_path=str(path),
            enable_api=True,
            api_endpoint="customers",
        )
        session = FakeSession(make_response(200, [{"CustomerID": 2, "FirstName": "Jane"}]))

        records = await ExtractorFactory(settings, session=session).extract_all(CustomerRecord, sources)

        assert [r.customer_id for r in records] == ["1", "2"]

    async def test_no_enabled_source(self):
        settings = Settings(_env_file=None)
        sources = CustomerSourceSettings(enable_csv=False)

        assert await ExtractorFactory(settings).extract_all(CustomerRecord, sources) == []
