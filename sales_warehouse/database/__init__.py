"""
Database Module
"""
from .connection import (
    close_database,
    create_session_factory,
    get_engine,
    get_session_factory,
    init_database,
)
from .models import (
    Base,
    Customer,
    DimCustomer,
    DimDate,
    DimProduct,
    FactSales,
    Order,
    OrderDetail,
    Product,
)

__all__ = [
    "init_database",
    "close_database",
    "create_session_factory",
    "get_engine",
    "get_session_factory",
    "Base",
    "Customer",
    "Product",
    "Order",
    "OrderDetail",
    "DimCustomer",
    "DimProduct",
    "DimDate",
    "FactSales",
]
