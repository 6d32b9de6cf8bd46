"""
Test Suite Configuration
"""
from pathlib import Path
from typing import AsyncGenerator, Callable, Dict

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from sales_warehouse.config.settings import (
    CustomerSourceSettings,
    EtlSettings,
    OrderDetailSourceSettings,
    OrderSourceSettings,
    ProductSourceSettings,
    Settings,
)
from sales_warehouse.database.connection import create_session_factory
from sales_warehouse.database.models import Base

CUSTOMERS_CSV = """CustomerID,FirstName,LastName,Email,Phone,City,Country
1,John,Doe,John.Doe@Example.com,555-0100,Seattle,USA
2,Jane,Smith,jane@example.com,555-0101,London,UK
3,Bob,,bob@example.com,555-0102,Toronto,Canada
"""

PRODUCTS_CSV = """ProductID,ProductName,Category,Price,Stock
1,Wireless Mouse,Electronics,29.99,100
2,USB Keyboard,Electronics,49.99,50
"""

ORDERS_CSV = """OrderID,CustomerID,OrderDate,Status
100,1,2024-01-05,Delivered
101,2,2024-01-06,Shipped
"""

ORDER_DETAILS_CSV = """OrderID,ProductID,Quantity,TotalPrice
100,1,2,59.98
100,2,1,49.99
101,2,3,149.97
"""


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory warehouse database shared by every session of a test"""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def write_csv(tmp_path) -> Callable[[str, str], Path]:
    """Write a CSV file under the test's temp directory"""
    def write(name: str, content: str) -> Path:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path
    return write


@pytest.fixture
def sample_sources(write_csv) -> Dict[str, Path]:
    return {
        "customers": write_csv("customers.csv", CUSTOMERS_CSV),
        "products": write_csv("products.csv", PRODUCTS_CSV),
        "orders": write_csv("orders.csv", ORDERS_CSV),
        "order_details": write_csv("order_details.csv", ORDER_DETAILS_CSV),
    }


@pytest.fixture
def test_settings(tmp_path, sample_sources) -> Settings:
    """Settings reading the sample CSV files, with no .env involved"""
    return Settings(
        _env_file=None,
        app_env="testing",
        customers=CustomerSourceSettings(csv_path=str(sample_sources["customers"])),
        products=ProductSourceSettings(csv_path=str(sample_sources["products"])),
        orders=OrderSourceSettings(csv_path=str(sample_sources["orders"])),
        order_details=OrderDetailSourceSettings(csv_path=str(sample_sources["order_details"])),
        etl=EtlSettings(
            chunk_size=2,
            staging_directory=str(tmp_path / "staging"),
            date_years_back=1,
            date_years_ahead=0,
        ),
    )
