"""
Aggregation Views

Read-only reports over the fact table:
- Revenue share by age category, gender and product type
- Top revenue products
- Average delivery time by state
- Monthly average revenue

Every function takes the fact table and returns a new DataFrame; nothing is
stored between calls. Null groups are kept: ascending orderings put them
first and descending orderings put them last.
"""

import polars as pl


def _revenue_share(facts: pl.DataFrame, key: str) -> pl.DataFrame:
    """
    Total revenue per key value and its share of the grand total.

    The denominator is the revenue of the whole fact table, so the shares of
    one report add up to 100 (up to rounding).
    """
    grand_total = facts["total_price"].sum()
    if grand_total:
        percentage = (pl.col("total_revenue") / grand_total * 100).round(1)
    else:
        percentage = pl.lit(None, dtype=pl.Float64)

    return (
        facts
        .group_by(key)
        .agg(pl.col("total_price").sum().alias("total_revenue"))
        .with_columns(percentage.alias("revenue_percentage"))
        .with_columns(pl.col("total_revenue").round(2))
    )


def revenue_by_age_category(facts: pl.DataFrame) -> pl.DataFrame:
    """Revenue by age category, ascending by category label"""
    return _revenue_share(facts, "age_category").sort("age_category", nulls_last=False)


def revenue_by_gender(facts: pl.DataFrame) -> pl.DataFrame:
    """Revenue by gender, largest share first"""
    return _revenue_share(facts, "gender").sort(
        ["revenue_percentage", "gender"],
        descending=[True, False],
        nulls_last=True,
    )


def revenue_by_product_type(facts: pl.DataFrame) -> pl.DataFrame:
    """Revenue by product type, largest share first"""
    return _revenue_share(facts, "product_type").sort(
        ["revenue_percentage", "product_type"],
        descending=[True, False],
        nulls_last=True,
    )


def top_revenue_products(facts: pl.DataFrame, n: int = 10) -> pl.DataFrame:
    """
    Top n products by total revenue.

    Products with equal revenue are ordered by product_id ascending, and
    revenue_rank numbers the result 1..n in that order.
    """
    return (
        facts
        .group_by("product_id")
        .agg(pl.col("total_price").sum().round(2).alias("total_revenue"))
        .sort(["total_revenue", "product_id"], descending=[True, False], nulls_last=True)
        .head(n)
        .with_row_index("revenue_rank", offset=1)
        .with_columns(pl.col("revenue_rank").cast(pl.Int64))
        .select(["revenue_rank", "product_id", "total_revenue"])
    )


def avg_delivery_time_by_state(facts: pl.DataFrame) -> pl.DataFrame:
    """
    Average delivery time per state, fastest first.

    delivery_time is an order attribute repeated on every sale of the order,
    so rows are reduced to distinct (order_id, state, delivery_time) before
    averaging.
    """
    unique_orders = facts.select(["order_id", "state", "delivery_time"]).unique()
    return (
        unique_orders
        .group_by("state")
        .agg(pl.col("delivery_time").mean().round(1).alias("avg_delivery_time"))
        .sort(["avg_delivery_time", "state"], nulls_last=False)
    )


def monthly_average_revenue(facts: pl.DataFrame) -> pl.DataFrame:
    """Average sale value per calendar month of the order date"""
    return (
        facts
        .with_columns(pl.col("order_date").dt.strftime("%Y-%m").alias("yearmonth"))
        .group_by("yearmonth")
        .agg(pl.col("total_price").mean().round(1).alias("avg_monthly_revenue"))
        .sort("yearmonth", nulls_last=False)
    )


def revenue_summary(facts: pl.DataFrame) -> dict:
    """Headline numbers for logging and workflow results"""
    return {
        "fact_rows": facts.height,
        "total_revenue": round(facts["total_price"].sum() or 0.0, 2),
        "orders": facts["order_id"].n_unique(),
        "customers": facts["customer_id"].drop_nulls().n_unique(),
        "products": facts["product_id"].n_unique(),
    }
