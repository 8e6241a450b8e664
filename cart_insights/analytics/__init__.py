"""
Analytics Module
"""
from .views import (
    avg_delivery_time_by_state,
    monthly_average_revenue,
    revenue_by_age_category,
    revenue_by_gender,
    revenue_by_product_type,
    revenue_summary,
    top_revenue_products,
)
from .trends import SalesJump, TrendEngine, compute_product_trends
from .service import FACT_TABLE, InsightsService

__all__ = [
    "avg_delivery_time_by_state",
    "monthly_average_revenue",
    "revenue_by_age_category",
    "revenue_by_gender",
    "revenue_by_product_type",
    "revenue_summary",
    "top_revenue_products",
    "SalesJump",
    "TrendEngine",
    "compute_product_trends",
    "FACT_TABLE",
    "InsightsService",
]
