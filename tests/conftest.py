"""
Test Suite Configuration
"""
from datetime import date

import pytest
import polars as pl

from cart_insights.analytics import InsightsService
from cart_insights.config import Settings
from cart_insights.ingestion import SourceStore, SourceTables, source_tables_from_frames
from cart_insights.storage import FactStore


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
    )


@pytest.fixture
def sample_customers_df() -> pl.DataFrame:
    """Customers 1-3 have orders, customer 4 has none"""
    return pl.DataFrame({
        "customer_id": [1, 2, 3, 4],
        "customer_name": ["Leanna Buckland", "Jerry Kinnear", "Tilly Gwinnett", "Hallie Benstead"],
        "gender": ["Male", "Female", "Female", "Male"],
        "age": [30, 55, 72, 25],
        "state": ["Victoria", "Queensland", "Queensland", "Tasmania"],
        "country": ["Australia", "Australia", "Australia", "Australia"],
    })


@pytest.fixture
def sample_orders_df() -> pl.DataFrame:
    """Order 13 references the unknown customer 99"""
    return pl.DataFrame({
        "order_id": [10, 11, 12, 13],
        "customer_id": [1, 2, 3, 99],
        "payment": ["Cash", "PayPal", "Credit Card", "Cash"],
        "order_date": [date(2021, 1, 1), date(2021, 1, 2), date(2021, 2, 1), date(2021, 2, 5)],
        "delivery_date": [date(2021, 1, 4), date(2021, 1, 10), date(2021, 2, 3), date(2021, 2, 6)],
    })


@pytest.fixture
def sample_products_df() -> pl.DataFrame:
    return pl.DataFrame({
        "product_id": [100, 101, 102],
        "product_type": ["Shirt", "Jacket", "Trousers"],
        "product_name": ["Linen", "Bomber", "Chinos"],
        "size": ["M", "L", "S"],
        "colour": ["blue", "black", "green"],
        "price": [10.0, 50.0, 30.0],
    })


@pytest.fixture
def sample_sales_df() -> pl.DataFrame:
    """Sale 5 references the unknown product 999, sale 6 the unknown order 99"""
    return pl.DataFrame({
        "sales_id": [1, 2, 3, 4, 5, 6],
        "order_id": [10, 10, 11, 12, 13, 99],
        "product_id": [100, 101, 100, 102, 999, 101],
        "price_per_unit": [10.0, 50.0, 10.0, 30.0, 25.0, 50.0],
        "quantity": [2, 1, 5, 1, 2, 1],
        "total_price": [20.0, 50.0, 50.0, 30.0, 50.0, 50.0],
    })


@pytest.fixture
def source_tables(
    sample_customers_df,
    sample_orders_df,
    sample_products_df,
    sample_sales_df,
) -> SourceTables:
    return source_tables_from_frames({
        "customers": sample_customers_df,
        "orders": sample_orders_df,
        "products": sample_products_df,
        "sales": sample_sales_df,
    })


@pytest.fixture
def source_store(source_tables) -> SourceStore:
    return SourceStore(source_tables)


@pytest.fixture
def fact_store(source_store) -> FactStore:
    """Fact store built from the sample sources and subscribed to customer updates"""
    store = FactStore().attach(source_store)
    store.rebuild(source_store)
    return store


@pytest.fixture
def insights_service(fact_store) -> InsightsService:
    return InsightsService(fact_store, top_n=10)


@pytest.fixture
def facts_df(fact_store) -> pl.DataFrame:
    return fact_store.snapshot().frame
