"""
Data Transformation Module
"""
from .fact_builder import (
    FACT_SCHEMA,
    BuildResult,
    FactBuilder,
    age_category,
    age_category_expr,
    build_fact_table,
)
from .propagation import PROPAGATED_ATTRIBUTES, propagate_customer_update

__all__ = [
    "FACT_SCHEMA",
    "BuildResult",
    "FactBuilder",
    "age_category",
    "age_category_expr",
    "build_fact_table",
    "PROPAGATED_ATTRIBUTES",
    "propagate_customer_update",
]
