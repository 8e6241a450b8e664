"""
Customer Update Propagation

Patches the fact table after a customer edit instead of rebuilding it. Only
the customer snapshot columns are touched, and age_category is recomputed
with the same bucket function the build uses.
"""

from typing import Any, Mapping, Tuple

import polars as pl
import structlog

from .fact_builder import age_category

logger = structlog.get_logger(__name__)

# Customer attributes copied into fact rows
PROPAGATED_ATTRIBUTES = ("gender", "age", "state")


def propagate_customer_update(
    facts: pl.DataFrame,
    customer: Mapping[str, Any],
) -> Tuple[pl.DataFrame, int]:
    """
    Apply a customer's post-update attributes to its fact rows.

    The input frame is not modified; a patched copy is returned so the caller
    can publish it in one step. Applying the same record twice gives the same
    frame.

    Args:
        facts: Current fact table
        customer: Post-update customer record, must contain customer_id

    Returns:
        (patched facts, number of rows updated). When no row references the
        customer the original frame is returned with 0.
    """
    customer_id = customer["customer_id"]
    mask = pl.col("customer_id") == customer_id

    affected = facts.filter(mask).height
    if affected == 0:
        logger.debug("No fact rows for customer, nothing to propagate", customer_id=customer_id)
        return facts, 0

    new_values = {name: customer.get(name) for name in PROPAGATED_ATTRIBUTES}
    new_values["age_category"] = age_category(new_values["age"])

    patched = facts.with_columns([
        pl.when(mask)
        .then(pl.lit(value))
        .otherwise(pl.col(column))
        .cast(facts.schema[column])
        .alias(column)
        for column, value in new_values.items()
    ])

    logger.info(
        "Customer update propagated",
        customer_id=customer_id,
        rows_updated=affected,
        age_category=new_values["age_category"],
    )

    return patched, affected
