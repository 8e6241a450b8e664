"""
Fact Builder

Consolidates sales, orders, customers and products into the denormalized
ShoppingCartInsights fact table. Every sale yields exactly one fact row:
lookups are left joins, so a missing order, customer or product leaves the
corresponding fields null instead of dropping the sale.

Derived columns:
- delivery_time: delivery_date - order_date in whole days
- age_category: coarse age bucket of the customer
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import polars as pl
import structlog

from cart_insights.config import get_settings
from cart_insights.exceptions import SourceUnavailableError
from cart_insights.ingestion.sources import (
    SourceTables,
    apply_source_schema,
    coercion_failures,
    require_columns,
)
from cart_insights.quality.validators import (
    ValidationResult,
    ValidationStatus,
    create_fact_validator,
    parse_failure_checks,
)

logger = structlog.get_logger(__name__)


# (lower bound inclusive, upper bound exclusive, label); anything else falls
# into CATCH_ALL_AGE_CATEGORY, including ages below 20 and from 80 up
AGE_BUCKETS: List[Tuple[int, int, str]] = [
    (20, 35, "20-34"),
    (35, 50, "35-49"),
    (50, 65, "50-64"),
]
CATCH_ALL_AGE_CATEGORY = "65-80"

FACT_SCHEMA: Dict[str, pl.DataType] = {
    "sales_id": pl.Int64,
    "order_id": pl.Int64,
    "product_id": pl.Int64,
    "price_per_unit": pl.Float64,
    "quantity": pl.Int64,
    "total_price": pl.Float64,
    "customer_id": pl.Int64,
    "order_date": pl.Date,
    "delivery_time": pl.Int64,
    "gender": pl.Utf8,
    "age": pl.Int64,
    "age_category": pl.Utf8,
    "state": pl.Utf8,
    "product_type": pl.Utf8,
    "size": pl.Utf8,
    "colour": pl.Utf8,
}

# Columns read from each source table
SALES_COLUMNS = ["sales_id", "order_id", "product_id", "price_per_unit", "quantity", "total_price"]
ORDER_COLUMNS = ["order_id", "customer_id", "order_date", "delivery_date"]
CUSTOMER_COLUMNS = ["customer_id", "gender", "age", "state"]
PRODUCT_COLUMNS = ["product_id", "product_type", "size", "colour"]


def age_category(age: Optional[int]) -> Optional[str]:
    """Bucket an age; None stays None"""
    if age is None:
        return None
    for lower, upper, label in AGE_BUCKETS:
        if lower <= age < upper:
            return label
    return CATCH_ALL_AGE_CATEGORY


def age_category_expr(age: pl.Expr) -> pl.Expr:
    """Polars expression equivalent of age_category()"""
    expr = pl.when(age.is_null()).then(pl.lit(None, dtype=pl.Utf8))
    for lower, upper, label in AGE_BUCKETS:
        expr = expr.when((age >= lower) & (age < upper)).then(pl.lit(label))
    return expr.otherwise(pl.lit(CATCH_ALL_AGE_CATEGORY))


@dataclass
class BuildResult:
    """Result of a fact table build"""
    facts: pl.DataFrame
    input_rows: int
    output_rows: int
    started_at: datetime
    completed_at: datetime
    duration_seconds: float
    quality: Optional[ValidationResult] = None
    duplicate_keys: Dict[str, int] = field(default_factory=dict)
    parse_failures: Dict[str, Dict[str, int]] = field(default_factory=dict)

    @property
    def warnings(self) -> List[str]:
        if self.quality is None:
            return []
        return [check.message for check in self.quality.warnings]


class FactBuilder:
    """
    Builds the fact table from the four source tables.

    The build is a pure function of its inputs; publishing the result (and
    replacing the previous fact table) is the FactStore's job.

    Example:
        builder = FactBuilder()
        result = builder.build(source_tables)
        facts = result.facts
    """

    def __init__(
        self,
        date_format: Optional[str] = None,
        run_quality_checks: Optional[bool] = None,
    ):
        settings = get_settings()
        self.date_format = date_format or settings.sources.date_format
        self.run_quality_checks = (
            settings.data_quality.enable_data_quality_checks
            if run_quality_checks is None else run_quality_checks
        )

    def _prepare(
        self,
        sources: SourceTables,
        name: str,
        columns: List[str],
    ) -> Tuple[pl.DataFrame, Dict[str, int]]:
        """
        Select and type the columns the build needs from one source table.

        Returns the typed frame and, per column, the number of values that
        could not be parsed and became null.
        """
        df = sources.table(name)
        if not isinstance(df, pl.DataFrame):
            raise SourceUnavailableError(name, f"expected a polars DataFrame, got {type(df).__name__}")

        require_columns(name, df, columns)
        raw = df.select(columns)
        typed = apply_source_schema(name, raw, self.date_format)
        return typed, coercion_failures(raw, typed)

    def _dedupe_lookup(self, df: pl.DataFrame, key: str, name: str) -> Tuple[pl.DataFrame, int]:
        """Keep the first row per key so a lookup can never fan out a sale"""
        deduped = df.unique(subset=[key], keep="first", maintain_order=True)
        duplicates = len(df) - len(deduped)
        if duplicates:
            logger.warning(
                "Duplicate keys in lookup table, keeping first occurrence",
                table=name,
                key=key,
                duplicates=duplicates,
            )
        return deduped, duplicates

    def build(self, sources: SourceTables) -> BuildResult:
        """
        Build the fact table.

        Pipeline:
        1. Select and type the needed columns of each source
        2. Left join sales -> orders -> customers, sales -> products
        3. Derive delivery_time and age_category
        4. Run fact table quality checks

        Raises:
            SourceUnavailableError: a source table is missing or incomplete
        """
        started_at = datetime.utcnow()

        parse_failures = {}
        sales, parse_failures["sales"] = self._prepare(sources, "sales", SALES_COLUMNS)
        orders, parse_failures["orders"] = self._prepare(sources, "orders", ORDER_COLUMNS)
        customers, parse_failures["customers"] = self._prepare(sources, "customers", CUSTOMER_COLUMNS)
        products, parse_failures["products"] = self._prepare(sources, "products", PRODUCT_COLUMNS)
        parse_failures = {table: cols for table, cols in parse_failures.items() if cols}

        input_rows = len(sales)
        logger.info("Starting fact table build", sales=input_rows)

        duplicate_keys = {}
        orders, duplicate_keys["orders"] = self._dedupe_lookup(orders, "order_id", "orders")
        customers, duplicate_keys["customers"] = self._dedupe_lookup(customers, "customer_id", "customers")
        products, duplicate_keys["products"] = self._dedupe_lookup(products, "product_id", "products")

        facts = (
            sales
            .join(orders, on="order_id", how="left", maintain_order="left")
            .join(customers, on="customer_id", how="left", maintain_order="left")
            .join(products, on="product_id", how="left", maintain_order="left")
            .with_columns([
                (pl.col("delivery_date") - pl.col("order_date"))
                .dt.total_days()
                .alias("delivery_time"),
                age_category_expr(pl.col("age")).alias("age_category"),
            ])
            .select([
                pl.col(column).cast(dtype) for column, dtype in FACT_SCHEMA.items()
            ])
        )

        quality = None
        if self.run_quality_checks:
            quality = create_fact_validator().validate(facts)

        # Parse failures are reported even when the fact checks are disabled
        parse_checks = [
            check
            for table, failures in parse_failures.items()
            for check in parse_failure_checks(table, failures, sources.table(table).height)
        ]
        if parse_checks:
            if quality is None:
                quality = ValidationResult(
                    status=ValidationStatus.PASSED,
                    total_checks=0,
                    passed_checks=0,
                    failed_checks=0,
                    warning_count=0,
                )
            quality.add_checks(parse_checks)

        completed_at = datetime.utcnow()
        result = BuildResult(
            facts=facts,
            input_rows=input_rows,
            output_rows=len(facts),
            started_at=started_at,
            completed_at=completed_at,
            duration_seconds=(completed_at - started_at).total_seconds(),
            quality=quality,
            duplicate_keys={k: v for k, v in duplicate_keys.items() if v},
            parse_failures=parse_failures,
        )

        logger.info(
            "Fact table built",
            input_rows=result.input_rows,
            output_rows=result.output_rows,
            warnings=len(result.warnings),
            duration_seconds=round(result.duration_seconds, 3),
        )

        return result


def build_fact_table(sources: SourceTables) -> pl.DataFrame:
    """
    Convenience function to build the fact table.

    Args:
        sources: The four source tables

    Returns:
        Fact table DataFrame
    """
    return FactBuilder().build(sources).facts
