"""
Fact Store

Holds the published ShoppingCartInsights fact table as an immutable frame
plus a version number. Writers (rebuild, propagation) build a new frame and
publish it with a single reference swap under the writer lock; readers take a
snapshot without locking and never observe a half-written table.
"""

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional, Union

import polars as pl
import structlog

from cart_insights.exceptions import FactsNotBuiltError
from cart_insights.ingestion.sources import SourceStore, SourceTables
from cart_insights.transformation.fact_builder import BuildResult, FactBuilder
from cart_insights.transformation.propagation import propagate_customer_update

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FactSnapshot:
    """A published fact table and its version"""
    version: int
    frame: pl.DataFrame
    published_at: datetime

    def __len__(self) -> int:
        return self.frame.height


@dataclass
class PropagationResult:
    """Result of propagating one customer update"""
    customer_id: int
    rows_updated: int
    version: int

    @property
    def is_noop(self) -> bool:
        return self.rows_updated == 0


class FactStore:
    """
    Versioned fact table with atomic publication.

    Example:
        store = FactStore()
        store.attach(source_store)
        store.rebuild(source_store)
        facts = store.snapshot().frame
    """

    def __init__(self, builder: Optional[FactBuilder] = None):
        self.builder = builder or FactBuilder()
        self._snapshot: Optional[FactSnapshot] = None
        self._write_lock = threading.Lock()

    @property
    def is_built(self) -> bool:
        return self._snapshot is not None

    @property
    def version(self) -> int:
        """Current version, 0 before the first build"""
        snapshot = self._snapshot
        return snapshot.version if snapshot else 0

    def snapshot(self) -> FactSnapshot:
        """Return the currently published fact table"""
        snapshot = self._snapshot
        if snapshot is None:
            raise FactsNotBuiltError()
        return snapshot

    def _publish(self, frame: pl.DataFrame) -> FactSnapshot:
        snapshot = FactSnapshot(
            version=self.version + 1,
            frame=frame,
            published_at=datetime.utcnow(),
        )
        self._snapshot = snapshot
        return snapshot

    def rebuild(self, sources: Union[SourceTables, SourceStore]) -> BuildResult:
        """
        Rebuild the fact table from scratch and replace the published one.

        The writer lock is held for the whole build, so customer updates that
        arrive meanwhile are propagated onto the new table once it is
        published. If the build fails the previous table stays published and
        the error is raised to the caller.

        Args:
            sources: Source tables, or a SourceStore to read them from
        """
        with self._write_lock:
            tables = sources.tables if isinstance(sources, SourceStore) else sources
            previous_version = self.version

            try:
                result = self.builder.build(tables)
            except Exception as e:
                logger.error(
                    "Fact table rebuild failed, keeping previous version",
                    error=str(e),
                    version=previous_version,
                )
                raise

            snapshot = self._publish(result.facts)

        logger.info(
            "Fact table published",
            version=snapshot.version,
            rows=len(snapshot),
        )
        return result

    def apply_customer_update(self, customer: Mapping[str, Any]) -> PropagationResult:
        """
        Propagate a post-update customer record into the fact table.

        Registered on a SourceStore via attach(), this runs synchronously
        inside every customer update. A customer without sales is a no-op.
        """
        customer_id = customer["customer_id"]

        with self._write_lock:
            snapshot = self._snapshot
            if snapshot is None:
                logger.debug("Fact table not built, skipping propagation", customer_id=customer_id)
                return PropagationResult(customer_id=customer_id, rows_updated=0, version=0)

            patched, rows_updated = propagate_customer_update(snapshot.frame, customer)
            if rows_updated:
                snapshot = self._publish(patched)

        return PropagationResult(
            customer_id=customer_id,
            rows_updated=rows_updated,
            version=snapshot.version,
        )

    def attach(self, source_store: SourceStore) -> "FactStore":
        """Subscribe the propagation rule to a SourceStore's customer updates"""
        source_store.subscribe(self.apply_customer_update)
        return self
