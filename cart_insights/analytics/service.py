"""
Insights Service

Exposes the fact table, the aggregation views and the product trend table as
named result sets. Results are memoized per fact table version, so a rebuild
or a propagated customer update invalidates them on the next read.
"""

import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple, Union

import polars as pl
import structlog

from cart_insights.config import get_settings
from cart_insights.storage.fact_store import FactStore
from . import views
from .trends import TrendEngine

logger = structlog.get_logger(__name__)

FACT_TABLE = "ShoppingCartInsights"


class InsightsService:
    """
    Named, version-aware access to every result set.

    Example:
        service = InsightsService(fact_store)
        service.view("RevenueByGender")
        service.export("data/curated")
    """

    def __init__(
        self,
        store: FactStore,
        top_n: Optional[int] = None,
        trend_engine: Optional[TrendEngine] = None,
    ):
        self.store = store
        self.top_n = get_settings().pipeline.top_n_products if top_n is None else top_n
        if self.top_n < 1:
            raise ValueError(f"top_n must be at least 1, got {self.top_n}")
        self.trend_engine = trend_engine or TrendEngine()
        self._cache: Dict[str, Tuple[int, pl.DataFrame]] = {}
        self._cache_lock = threading.Lock()

        self._views: Dict[str, Callable[[pl.DataFrame], pl.DataFrame]] = {
            FACT_TABLE: lambda facts: facts,
            "RevenueByAgeCategory": views.revenue_by_age_category,
            "RevenueByGender": views.revenue_by_gender,
            "AvgDeliveryTimeByState": views.avg_delivery_time_by_state,
            "ProductQuantityMovingAvg": self.trend_engine.compute,
            "RevenueByProductType": views.revenue_by_product_type,
            f"Top{self.top_n}RevenueProducts": lambda facts: views.top_revenue_products(facts, self.top_n),
            "MonthlyAverageRevenue": views.monthly_average_revenue,
        }

    @property
    def view_names(self) -> list:
        return list(self._views)

    def view(self, name: str) -> pl.DataFrame:
        """
        Get a result set by name, computed from the current fact table.

        Raises:
            ValueError: unknown view name
            FactsNotBuiltError: the fact table has not been built yet
        """
        compute = self._views.get(name)
        if compute is None:
            raise ValueError(f"Unknown view: {name}. Available: {self.view_names}")

        snapshot = self.store.snapshot()

        with self._cache_lock:
            cached = self._cache.get(name)
        if cached is not None and cached[0] == snapshot.version:
            return cached[1]

        result = compute(snapshot.frame)
        logger.debug("View computed", view=name, version=snapshot.version, rows=len(result))

        with self._cache_lock:
            current = self._cache.get(name)
            if current is None or current[0] < snapshot.version:
                self._cache[name] = (snapshot.version, result)

        return result

    def all_views(self) -> Dict[str, pl.DataFrame]:
        return {name: self.view(name) for name in self._views}

    def revenue_by_age_category(self) -> pl.DataFrame:
        return self.view("RevenueByAgeCategory")

    def revenue_by_gender(self) -> pl.DataFrame:
        return self.view("RevenueByGender")

    def revenue_by_product_type(self) -> pl.DataFrame:
        return self.view("RevenueByProductType")

    def top_revenue_products(self) -> pl.DataFrame:
        return self.view(f"Top{self.top_n}RevenueProducts")

    def avg_delivery_time_by_state(self) -> pl.DataFrame:
        return self.view("AvgDeliveryTimeByState")

    def monthly_average_revenue(self) -> pl.DataFrame:
        return self.view("MonthlyAverageRevenue")

    def product_trends(self) -> pl.DataFrame:
        return self.view("ProductQuantityMovingAvg")

    def export(
        self,
        output_dir: Optional[Union[str, Path]] = None,
        file_format: Optional[str] = None,
    ) -> Dict[str, str]:
        """
        Write every result set to output_dir.

        Args:
            output_dir: Target directory (default: settings)
            file_format: "parquet" or "csv" (default: settings)

        Returns:
            Mapping of view name to written file path
        """
        pipeline = get_settings().pipeline
        output_dir = Path(output_dir or pipeline.output_path)
        file_format = file_format or pipeline.output_format
        if file_format not in ("parquet", "csv"):
            raise ValueError(f"Unsupported export format: {file_format}")

        output_dir.mkdir(parents=True, exist_ok=True)
        started_at = datetime.utcnow()
        written = {}

        for name in self._views:
            df = self.view(name)
            output_file = output_dir / f"{name}.{file_format}"
            if file_format == "parquet":
                df.write_parquet(output_file)
            else:
                df.write_csv(output_file)
            written[name] = str(output_file)
            logger.info(f"Written {len(df)} rows to {output_file}", view=name)

        logger.info(
            "Result sets exported",
            views=len(written),
            version=self.store.version,
            duration_seconds=(datetime.utcnow() - started_at).total_seconds(),
        )
        return written
