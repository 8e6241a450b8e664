"""
Source Store

Holds the four normalized source tables (customers, orders, products, sales)
and owns the single mutation path, customer attribute updates. Every update is
handed to the registered listeners synchronously before the call returns, which
is how the fact table stays in step without a rebuild.
"""

import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Mapping

import polars as pl
import structlog

from cart_insights.exceptions import (
    CustomerNotFoundError,
    InvalidCustomerUpdateError,
    SourceUnavailableError,
)

logger = structlog.get_logger(__name__)


# Columns each table must provide, with the types the pipeline works in
SOURCE_SCHEMAS: Dict[str, Dict[str, pl.DataType]] = {
    "customers": {
        "customer_id": pl.Int64,
        "customer_name": pl.Utf8,
        "gender": pl.Utf8,
        "age": pl.Int64,
        "home_address": pl.Utf8,
        "zip_code": pl.Int64,
        "city": pl.Utf8,
        "state": pl.Utf8,
        "country": pl.Utf8,
    },
    "orders": {
        "order_id": pl.Int64,
        "customer_id": pl.Int64,
        "payment": pl.Utf8,
        "order_date": pl.Date,
        "delivery_date": pl.Date,
    },
    "products": {
        "product_id": pl.Int64,
        "product_type": pl.Utf8,
        "product_name": pl.Utf8,
        "size": pl.Utf8,
        "colour": pl.Utf8,
        "price": pl.Float64,
        "quantity": pl.Int64,
        "description": pl.Utf8,
    },
    "sales": {
        "sales_id": pl.Int64,
        "order_id": pl.Int64,
        "product_id": pl.Int64,
        "price_per_unit": pl.Float64,
        "quantity": pl.Int64,
        "total_price": pl.Float64,
    },
}

MUTABLE_CUSTOMER_ATTRIBUTES = frozenset(SOURCE_SCHEMAS["customers"]) - {"customer_id"}

CustomerListener = Callable[[Dict[str, Any]], Any]


@dataclass(frozen=True)
class SourceTables:
    """The four source tables as read-only frames"""
    customers: pl.DataFrame
    orders: pl.DataFrame
    products: pl.DataFrame
    sales: pl.DataFrame

    def table(self, name: str) -> pl.DataFrame:
        """Get a table by name"""
        if name not in SOURCE_SCHEMAS:
            raise ValueError(f"Unknown source table: {name}")
        return getattr(self, name)

    def row_counts(self) -> Dict[str, int]:
        return {name: self.table(name).height for name in SOURCE_SCHEMAS}


def require_columns(name: str, df: pl.DataFrame, columns) -> None:
    """Raise SourceUnavailableError when df lacks any of columns"""
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise SourceUnavailableError(name, f"missing columns {missing}")


class SourceStore:
    """
    In-memory holder of the source tables.

    Reads never block: `tables` returns the currently published SourceTables.
    Updates are serialised and each one is pushed to every listener while the
    update lock is held, so successive edits of a customer propagate in order.

    Example:
        store = SourceStore(tables)
        store.subscribe(fact_store.apply_customer_update)
        store.update_customer(64, age=47, state="New State")
    """

    def __init__(self, tables: SourceTables):
        require_columns("customers", tables.customers, ["customer_id"])
        self._tables = tables
        self._listeners: List[CustomerListener] = []
        self._lock = threading.RLock()

    @property
    def tables(self) -> SourceTables:
        return self._tables

    def subscribe(self, listener: CustomerListener) -> "SourceStore":
        """Register a callable receiving each updated customer record"""
        self._listeners.append(listener)
        return self

    def get_customer(self, customer_id: int) -> Dict[str, Any]:
        """Return the customer record as a dict"""
        matches = self._tables.customers.filter(pl.col("customer_id") == customer_id)
        if matches.height == 0:
            raise CustomerNotFoundError(customer_id)
        return matches.row(0, named=True)

    def update_customer(self, customer_id: int, /, **changes: Any) -> Dict[str, Any]:
        """
        Update customer attributes and propagate the change.

        If a listener raises, the update is rolled back: the previous customer
        record is restored and re-sent to the listeners that had already
        applied the change, then the error is raised to the caller.

        Args:
            customer_id: Customer to update
            **changes: New attribute values, e.g. age=47, state="New State"

        Returns:
            The post-update customer record
        """
        invalid = set(changes) - MUTABLE_CUSTOMER_ATTRIBUTES
        if invalid:
            raise InvalidCustomerUpdateError(invalid)

        with self._lock:
            previous_tables = self._tables
            previous_record = self.get_customer(customer_id)

            customers = previous_tables.customers
            mask = pl.col("customer_id") == customer_id

            absent = [column for column in changes if column not in customers.columns]
            if absent:
                customers = customers.with_columns([
                    pl.lit(None).cast(SOURCE_SCHEMAS["customers"][column]).alias(column)
                    for column in absent
                ])

            customers = customers.with_columns([
                pl.when(mask)
                .then(pl.lit(value))
                .otherwise(pl.col(column))
                .cast(customers.schema[column])
                .alias(column)
                for column, value in changes.items()
            ])
            self._tables = replace(previous_tables, customers=customers)
            record = self.get_customer(customer_id)

            notified: List[CustomerListener] = []
            try:
                for listener in self._listeners:
                    listener(record)
                    notified.append(listener)
            except Exception as e:
                self._tables = previous_tables
                for listener in notified:
                    listener(previous_record)
                logger.error(
                    "Customer update rolled back",
                    customer_id=customer_id,
                    attributes=sorted(changes),
                    error=str(e),
                )
                raise

            logger.info(
                "Customer updated",
                customer_id=customer_id,
                attributes=sorted(changes),
            )

        return record

    def replace_tables(self, tables: SourceTables) -> None:
        """Swap in a freshly loaded set of tables"""
        with self._lock:
            self._tables = tables
        logger.info("Source tables replaced", **tables.row_counts())


def apply_source_schema(name: str, df: pl.DataFrame, date_format: str = "%Y-%m-%d") -> pl.DataFrame:
    """
    Cast the known columns of a source table to the pipeline types.

    String dates are parsed with date_format and datetimes are truncated to
    dates. Columns outside the schema are kept as they are. Values that cannot
    be parsed become null and are logged as a warning; coercion_failures()
    reports them per column.
    """
    schema = SOURCE_SCHEMAS[name]
    casts = []
    for column, dtype in schema.items():
        if column not in df.columns:
            continue
        current = df.schema[column]
        if dtype == pl.Date and current == pl.Utf8:
            casts.append(pl.col(column).str.to_date(date_format, strict=False).alias(column))
        elif dtype == pl.Date and isinstance(current, pl.Datetime):
            casts.append(pl.col(column).dt.date().alias(column))
        elif current != dtype:
            casts.append(pl.col(column).cast(dtype, strict=False).alias(column))
    if not casts:
        return df

    typed = df.with_columns(casts)
    failures = coercion_failures(df, typed)
    if failures:
        logger.warning(
            "Unparseable values set to null",
            table=name,
            columns=failures,
        )
    return typed


def coercion_failures(raw: pl.DataFrame, typed: pl.DataFrame) -> Dict[str, int]:
    """Per column, the number of values present in raw but null in typed"""
    failures = {}
    for column in typed.columns:
        if column not in raw.columns:
            continue
        lost = typed[column].null_count() - raw[column].null_count()
        if lost > 0:
            failures[column] = lost
    return failures


def source_tables_from_frames(
    frames: Mapping[str, pl.DataFrame],
    date_format: str = "%Y-%m-%d",
) -> SourceTables:
    """Build SourceTables from a name -> frame mapping, casting to the schema"""
    missing = [name for name in SOURCE_SCHEMAS if name not in frames]
    if missing:
        raise SourceUnavailableError(missing[0], "table not supplied")
    return SourceTables(**{
        name: apply_source_schema(name, frames[name], date_format)
        for name in SOURCE_SCHEMAS
    })
