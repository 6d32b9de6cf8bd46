"""
Database Models - Operational Tables and Star Schema

Operational Tables (natural-key identity, source of truth):
- Customer, Product, Order, OrderDetail

Dimension Tables (surrogate-key identity, natural id as lookup field):
- DimCustomer, DimProduct
- DimDate (surrogate key is the deterministic YYYYMMDD date key)

Fact Tables (derived, fully refreshed on every run):
- FactSales

Fact rows hold plain surrogate-key integers; there are no ORM relationships
between facts and dimensions.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# OPERATIONAL TABLES
# =============================================================================

class Customer(Base):
    """Customer as known to the operational system"""
    __tablename__ = "customers"

    customer_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    city: Mapped[Optional[str]] = mapped_column(String(100))
    country: Mapped[Optional[str]] = mapped_column(String(100))


class Product(Base):
    """Product catalogue entry"""
    __tablename__ = "products"

    product_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Order(Base):
    """Order header"""
    __tablename__ = "orders"

    order_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    customer_id: Mapped[int] = mapped_column(Integer, nullable=False)
    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)

    __table_args__ = (
        Index("ix_orders_customer", "customer_id"),
        Index("ix_orders_date", "order_date"),
    )


class OrderDetail(Base):
    """Order line, keyed by (order_id, product_id)"""
    __tablename__ = "order_details"

    order_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    product_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    __table_args__ = (
        Index("ix_order_details_product", "product_id"),
    )


# =============================================================================
# DIMENSION TABLES
# =============================================================================

class DimDate(Base):
    """
    Date Dimension Table

    Calendar dimension keyed by YYYYMMDD. The key is computable from any
    date without a lookup.
    """
    __tablename__ = "dim_date"

    date_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    full_date: Mapped[date] = mapped_column(Date, unique=True, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    quarter: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    month_name: Mapped[str] = mapped_column(String(20), nullable=False)
    week_of_year: Mapped[int] = mapped_column(Integer, nullable=False)
    day_of_year: Mapped[int] = mapped_column(Integer, nullable=False)
    day_of_month: Mapped[int] = mapped_column(Integer, nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 0=Sunday
    day_name: Mapped[str] = mapped_column(String(20), nullable=False)
    is_weekend: Mapped[bool] = mapped_column(Boolean, default=False)
    is_holiday: Mapped[bool] = mapped_column(Boolean, default=False)
    fiscal_year: Mapped[str] = mapped_column(String(10), nullable=False)
    fiscal_quarter: Mapped[int] = mapped_column(Integer, nullable=False)
    fiscal_month: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        Index("ix_dim_date_year_month", "year", "month"),
        Index("ix_dim_date_year_quarter", "year", "quarter"),
    )


class DimCustomer(Base):
    """
    Customer Dimension Table

    Surrogate key is assigned on first sight of a customer id and preserved
    on every later update.
    """
    __tablename__ = "dim_customers"

    customer_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    city: Mapped[Optional[str]] = mapped_column(String(100))
    country: Mapped[Optional[str]] = mapped_column(String(100))
    region: Mapped[Optional[str]] = mapped_column(String(100))

    # Audit
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    modified_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        Index("ix_dim_customers_customer_id", "customer_id"),
        Index("ix_dim_customers_country_city", "country", "city"),
        Index("ix_dim_customers_active", "is_active"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class DimProduct(Base):
    """
    Product Dimension Table

    Surrogate key is assigned on first sight of a product id and preserved
    on every later update.
    """
    __tablename__ = "dim_products"

    product_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)

    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    stock: Mapped[int] = mapped_column(Integer, default=0)

    # Audit
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    modified_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        Index("ix_dim_products_product_id", "product_id"),
        Index("ix_dim_products_category", "category"),
        Index("ix_dim_products_active", "is_active"),
    )


# =============================================================================
# FACT TABLES
# =============================================================================

class FactSales(Base):
    """
    Sales Fact Table

    Grain: one row per order line. Replaced in full on every run.
    """
    __tablename__ = "fact_sales"

    fact_sales_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Dimension surrogate keys
    customer_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_customers.customer_key"), nullable=False
    )
    product_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_products.product_key"), nullable=False
    )
    date_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_date.date_key"), nullable=False
    )
    order_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Measures
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(28, 10), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    final_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    order_status: Mapped[Optional[str]] = mapped_column(String(50))

    # Audit
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    modified_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        Index("ix_fact_sales_customer", "customer_key"),
        Index("ix_fact_sales_product", "product_key"),
        Index("ix_fact_sales_date", "date_key"),
        Index("ix_fact_sales_order", "order_id"),
    )
