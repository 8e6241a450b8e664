"""
Sales Trend Engine

Per-product daily quantity series with a trailing moving average and a
sales jump flag.

For each product the sales days are ordered by date, and each day is averaged
with up to (window - 1) preceding sales days. A day is a jump when its
quantity exceeds multiplier x that average. The average includes the day being
tested, so a single-day window can never be a jump.
"""

from dataclasses import dataclass
from datetime import date
from typing import List, Optional

import polars as pl
import structlog

from cart_insights.config import get_settings

logger = structlog.get_logger(__name__)


@dataclass
class SalesJump:
    """One flagged product day"""
    product_id: int
    order_date: Optional[date]
    daily_quantity: int
    moving_average: float
    threshold: float

    @property
    def ratio(self) -> float:
        """Daily quantity relative to the moving average"""
        if not self.moving_average:
            return 0.0
        return self.daily_quantity / self.moving_average


class TrendEngine:
    """
    Moving-average trend calculator over the fact table.

    Example:
        engine = TrendEngine(window=3, jump_multiplier=1.5)
        trend = engine.compute(facts)
        jumps = engine.detect_jumps(facts)
    """

    def __init__(
        self,
        window: Optional[int] = None,
        jump_multiplier: Optional[float] = None,
    ):
        pipeline = get_settings().pipeline
        self.window = pipeline.moving_average_window if window is None else window
        self.jump_multiplier = (
            pipeline.sales_jump_multiplier if jump_multiplier is None else jump_multiplier
        )

        if self.window < 1:
            raise ValueError(f"Window must be at least 1, got {self.window}")

    @property
    def average_column(self) -> str:
        return f"moving_avg_{self.window}_days"

    def daily_quantities(self, facts: pl.DataFrame) -> pl.DataFrame:
        """Total quantity per (product_id, order_date), ordered by product then date"""
        return (
            facts
            .group_by(["product_id", "order_date"])
            .agg(pl.col("quantity").sum().alias("daily_quantity"))
            .sort(["product_id", "order_date"])
        )

    def compute(self, facts: pl.DataFrame) -> pl.DataFrame:
        """
        Build the product trend table.

        Returns:
            DataFrame with product_id, order_date, daily_quantity,
            moving_avg_{window}_days (1 decimal) and is_sales_jump,
            ordered by (product_id, order_date)
        """
        window_mean = (
            pl.col("daily_quantity")
            .rolling_mean(window_size=self.window, min_samples=1)
            .over("product_id")
        )

        # The jump test uses the unrounded mean
        return (
            self.daily_quantities(facts)
            .with_columns(window_mean.alias("_window_mean"))
            .with_columns([
                pl.col("_window_mean").round(1).alias(self.average_column),
                (pl.col("daily_quantity") > self.jump_multiplier * pl.col("_window_mean"))
                .fill_null(False)
                .alias("is_sales_jump"),
            ])
            .drop("_window_mean")
        )

    def detect_jumps(self, facts: pl.DataFrame) -> List[SalesJump]:
        """Flagged product days as SalesJump records"""
        trend = self.compute(facts).filter(pl.col("is_sales_jump"))

        jumps = [
            SalesJump(
                product_id=row["product_id"],
                order_date=row["order_date"],
                daily_quantity=row["daily_quantity"],
                moving_average=row[self.average_column],
                threshold=round(self.jump_multiplier * row[self.average_column], 2),
            )
            for row in trend.iter_rows(named=True)
        ]

        if jumps:
            logger.info(
                f"Sales jumps detected: {len(jumps)}",
                products=len({j.product_id for j in jumps}),
                multiplier=self.jump_multiplier,
            )

        return jumps


def compute_product_trends(facts: pl.DataFrame) -> pl.DataFrame:
    """Convenience function using the configured window and multiplier"""
    return TrendEngine().compute(facts)
