"""
Prefect Workflow Orchestration - Shopping Cart Insights

Batch workflow that:
- Loads the four source tables
- Runs source data quality checks
- Rebuilds the fact table
- Applies pending customer updates through the propagation rule
- Exports every result set to the curated zone
"""

from typing import Dict, List, Optional

from prefect import flow, task, get_run_logger
from prefect.cache_policies import NO_CACHE

from cart_insights.analytics import InsightsService, revenue_summary
from cart_insights.config import get_settings
from cart_insights.ingestion import SourceStore, SourceTables, create_source_loader
from cart_insights.quality import ValidationStatus, validate_sources
from cart_insights.storage import FactStore

settings = get_settings()


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="load_sources",
    description="Load customers, orders, products and sales",
    retries=2,
    retry_delay_seconds=30,
    cache_policy=NO_CACHE,
)
def load_sources(source_dir: Optional[str] = None) -> SourceTables:
    """Load the source tables from files"""
    logger = get_run_logger()

    tables = create_source_loader().load_sources(source_dir)
    logger.info(f"Sources loaded: {tables.row_counts()}")

    return tables


@task(
    name="validate_sources",
    description="Run source data quality checks",
    cache_policy=NO_CACHE,
)
def validate_source_tables(tables: SourceTables) -> dict:
    """Validate source data quality"""
    logger = get_run_logger()

    results = validate_sources(tables)
    for table, result in results.items():
        logger.info(
            f"Validation {table} {result.status.value}: "
            f"{result.passed_checks}/{result.total_checks} checks passed"
        )

    return {
        "passed": all(r.status != ValidationStatus.FAILED for r in results.values()),
        "tables": {
            table: {
                "status": result.status.value,
                "failed_checks": result.failed_checks,
                "warnings": [c.message for c in result.warnings],
            }
            for table, result in results.items()
        },
    }


@task(
    name="rebuild_facts",
    description="Rebuild the ShoppingCartInsights fact table",
    cache_policy=NO_CACHE,
)
def rebuild_facts(fact_store: FactStore, source_store: SourceStore) -> dict:
    """Rebuild and publish the fact table"""
    logger = get_run_logger()

    result = fact_store.rebuild(source_store)
    for warning in result.warnings:
        logger.warning(f"Fact table data quality: {warning}")

    logger.info(
        f"Fact table rebuilt: {result.input_rows} sales -> {result.output_rows} rows "
        f"in {result.duration_seconds:.2f}s"
    )

    return {
        "input_rows": result.input_rows,
        "output_rows": result.output_rows,
        "duration_seconds": result.duration_seconds,
        "warnings": result.warnings,
        "version": fact_store.version,
    }


@task(
    name="apply_customer_updates",
    description="Apply customer edits and propagate them into the fact table",
    cache_policy=NO_CACHE,
)
def apply_customer_updates(source_store: SourceStore, updates: List[Dict]) -> int:
    """Apply customer edits; each one propagates synchronously"""
    logger = get_run_logger()

    for update in updates:
        changes = dict(update)
        customer_id = changes.pop("customer_id")
        source_store.update_customer(customer_id, **changes)

    logger.info(f"Applied {len(updates)} customer updates")
    return len(updates)


@task(
    name="export_views",
    description="Write result sets to the curated zone",
    cache_policy=NO_CACHE,
)
def export_views(
    service: InsightsService,
    output_dir: Optional[str] = None,
    file_format: Optional[str] = None,
) -> Dict[str, str]:
    """Export every result set"""
    logger = get_run_logger()

    written = service.export(output_dir, file_format)
    logger.info(f"Exported {len(written)} result sets")

    return written


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="shopping_cart_insights_etl",
    description="Batch pipeline for the ShoppingCartInsights fact table and its views",
)
def shopping_cart_insights_etl(
    source_dir: Optional[str] = None,
    output_dir: Optional[str] = None,
    customer_updates: Optional[List[Dict]] = None,
) -> dict:
    """
    Shopping cart insights pipeline.

    Steps:
    1. Load source files
    2. Validate source data quality
    3. Rebuild the fact table
    4. Apply customer updates (propagated, no rebuild)
    5. Export result sets
    """
    logger = get_run_logger()

    source_dir = source_dir or settings.sources.data_dir
    output_dir = output_dir or settings.pipeline.output_path

    logger.info(f"Starting shopping cart insights pipeline from {source_dir}")

    results = {"steps": {}}

    try:
        tables = load_sources(source_dir)
        results["steps"]["validation"] = validate_source_tables(tables)

        source_store = SourceStore(tables)
        fact_store = FactStore().attach(source_store)

        results["steps"]["rebuild"] = rebuild_facts(fact_store, source_store)

        if customer_updates:
            results["steps"]["customer_updates"] = apply_customer_updates(
                source_store, customer_updates
            )

        service = InsightsService(fact_store)
        results["steps"]["export"] = export_views(service, output_dir)
        results["summary"] = revenue_summary(fact_store.snapshot().frame)
        results["status"] = "success"

    except Exception as e:
        logger.error(f"Pipeline failed: {e}")
        results["status"] = "failed"
        results["error"] = str(e)
        raise

    return results


if __name__ == "__main__":
    shopping_cart_insights_etl()
