"""
Unit Tests - Customer Updates and Fact Store
"""
import threading

import pytest
import polars as pl

from cart_insights.exceptions import (
    CustomerNotFoundError,
    FactsNotBuiltError,
    InvalidCustomerUpdateError,
    SourceUnavailableError,
)
from cart_insights.ingestion import SourceStore, SourceTables
from cart_insights.storage import FactStore
from cart_insights.transformation import age_category, build_fact_table, propagate_customer_update


def _customer_rows(facts: pl.DataFrame, customer_id: int) -> pl.DataFrame:
    return facts.filter(pl.col("customer_id") == customer_id)


class TestSourceStore:
    """Tests for SourceStore customer updates"""

    def test_update_customer(self, source_store):
        """Test the update is applied to the customer only"""
        record = source_store.update_customer(1, age=40, state="New South Wales")

        assert record["age"] == 40
        assert record["state"] == "New South Wales"
        assert source_store.get_customer(2)["age"] == 55
        assert source_store.tables.customers.schema["age"] == pl.Int64

    def test_unknown_customer(self, source_store):
        """Test updating a missing customer raises"""
        with pytest.raises(CustomerNotFoundError) as exc_info:
            source_store.update_customer(42, age=30)

        assert exc_info.value.customer_id == 42

    def test_invalid_attribute(self, source_store):
        """Test unknown and key attributes are rejected before any change"""
        with pytest.raises(InvalidCustomerUpdateError) as exc_info:
            source_store.update_customer(1, customer_id=5, shoe_size=9)

        assert exc_info.value.attributes == ["customer_id", "shoe_size"]
        assert source_store.get_customer(1)["age"] == 30

    def test_update_adds_absent_column(self, source_store):
        """Test a known attribute missing from the frame is added for that customer only"""
        source_store.update_customer(1, city="Melbourne")

        assert source_store.get_customer(1)["city"] == "Melbourne"
        assert source_store.get_customer(2)["city"] is None

    def test_listeners_receive_record(self, source_store):
        """Test listeners are called with the post-update record"""
        received = []
        source_store.subscribe(received.append)

        source_store.update_customer(3, gender="Agender")

        assert len(received) == 1
        assert received[0]["customer_id"] == 3
        assert received[0]["gender"] == "Agender"

    def test_failing_listener_rolls_back(self, source_store, fact_store):
        """Test a listener error restores the customer and the fact rows"""
        def fail(record):
            raise RuntimeError("listener down")

        before = fact_store.snapshot().frame
        source_store.subscribe(fail)

        with pytest.raises(RuntimeError, match="listener down"):
            source_store.update_customer(1, age=40)

        assert source_store.get_customer(1)["age"] == 30
        after = fact_store.snapshot().frame
        assert after.equals(before)
        assert _customer_rows(after, 1)["age_category"].to_list() == ["20-34", "20-34"]

    def test_failing_first_listener_keeps_source(self, source_store):
        """Test the source table is unchanged when the only listener fails"""
        def fail(record):
            raise ValueError("rejected")

        source_store.subscribe(fail)

        with pytest.raises(ValueError):
            source_store.update_customer(2, state="Victoria")

        assert source_store.get_customer(2)["state"] == "Queensland"


class TestPropagation:
    """Tests for propagating customer updates into the fact table"""

    def test_age_change_updates_category(self, source_store, fact_store):
        """Test an age change re-buckets the customer's fact rows"""
        source_store.update_customer(1, age=40)

        rows = _customer_rows(fact_store.snapshot().frame, 1)
        assert rows.height == 2
        assert rows["age"].to_list() == [40, 40]
        assert rows["age_category"].to_list() == ["35-49", "35-49"]

    def test_other_customers_untouched(self, source_store, fact_store):
        """Test rows of other customers and unresolved rows are unchanged"""
        before = fact_store.snapshot().frame
        source_store.update_customer(1, age=40, gender="Female", state="Tasmania")
        after = fact_store.snapshot().frame

        others_before = before.filter((pl.col("customer_id") != 1) | pl.col("customer_id").is_null())
        others_after = after.filter((pl.col("customer_id") != 1) | pl.col("customer_id").is_null())
        assert others_after.equals(others_before)

    def test_only_customer_columns_change(self, source_store, fact_store):
        """Test sale, order and product columns keep their values"""
        before = fact_store.snapshot().frame
        source_store.update_customer(2, state="Victoria")
        after = fact_store.snapshot().frame

        unchanged = [c for c in before.columns if c not in ("gender", "age", "age_category", "state")]
        assert after.select(unchanged).equals(before.select(unchanged))
        assert _customer_rows(after, 2)["state"].to_list() == ["Victoria"]

    def test_matches_full_rebuild(self, source_store, fact_store):
        """Test a propagated update equals rebuilding from the updated sources"""
        source_store.update_customer(3, age=45, gender="Male", state="Victoria")

        rebuilt = build_fact_table(source_store.tables)

        assert fact_store.snapshot().frame.equals(rebuilt)

    def test_idempotent(self, facts_df, source_store):
        """Test applying the same record twice gives the same table"""
        record = source_store.update_customer(1, age=40)

        once, rows_once = propagate_customer_update(facts_df, record)
        twice, rows_twice = propagate_customer_update(once, record)

        assert rows_once == rows_twice == 2
        assert twice.equals(once)

    def test_input_frame_not_modified(self, facts_df):
        """Test propagation returns a patched copy"""
        original = facts_df.clone()

        propagate_customer_update(facts_df, {"customer_id": 1, "gender": "Male", "age": 66, "state": "Victoria"})

        assert facts_df.equals(original)

    def test_customer_without_sales_is_noop(self, source_store, fact_store):
        """Test updating a customer with no sales publishes nothing"""
        version = fact_store.version
        frame = fact_store.snapshot().frame

        source_store.update_customer(4, age=60)

        assert fact_store.version == version
        assert fact_store.snapshot().frame is frame

    def test_propagation_result(self, fact_store, source_store):
        """Test the result reports rows updated and the published version"""
        record = source_store.update_customer(2, age=36)

        result = fact_store.apply_customer_update(record)

        assert result.customer_id == 2
        assert result.rows_updated == 1
        assert not result.is_noop
        assert result.version == fact_store.version

    def test_missing_age_clears_category(self, source_store, fact_store):
        """Test clearing the age clears the age category"""
        source_store.update_customer(1, age=None)

        rows = _customer_rows(fact_store.snapshot().frame, 1)
        assert rows["age"].to_list() == [None, None]
        assert rows["age_category"].to_list() == [None, None]


class TestFactStore:
    """Tests for FactStore versioning"""

    def test_snapshot_before_build(self):
        """Test reading before the first build raises"""
        store = FactStore()

        assert not store.is_built
        assert store.version == 0
        with pytest.raises(FactsNotBuiltError):
            store.snapshot()

    def test_update_before_build_is_noop(self, source_store):
        """Test updates before the first build are skipped"""
        store = FactStore().attach(source_store)

        source_store.update_customer(1, age=40)

        assert not store.is_built
        store.rebuild(source_store)
        assert store.snapshot().frame.filter(pl.col("customer_id") == 1)["age"].to_list() == [40, 40]

    def test_versions_increase(self, source_store, fact_store):
        """Test each publication bumps the version"""
        assert fact_store.version == 1

        source_store.update_customer(1, age=40)
        assert fact_store.version == 2

        fact_store.rebuild(source_store)
        assert fact_store.version == 3
        assert len(fact_store.snapshot()) == 6

    def test_failed_rebuild_keeps_previous_table(self, source_tables, fact_store):
        """Test a failing rebuild leaves the published table in place"""
        snapshot = fact_store.snapshot()
        broken = SourceTables(
            customers=source_tables.customers,
            orders=source_tables.orders,
            products=source_tables.products,
            sales=source_tables.sales.drop("total_price"),
        )

        with pytest.raises(SourceUnavailableError):
            fact_store.rebuild(broken)

        assert fact_store.snapshot() is snapshot
        assert fact_store.version == 1

    def test_snapshot_is_stable_across_updates(self, source_store, fact_store):
        """Test a snapshot taken before an update keeps its values"""
        snapshot = fact_store.snapshot()

        source_store.update_customer(1, age=40)

        assert _customer_rows(snapshot.frame, 1)["age"].to_list() == [30, 30]
        assert fact_store.snapshot().version == snapshot.version + 1

    def test_readers_never_see_partial_tables(self, source_store, fact_store):
        """Test concurrent readers only observe consistent, complete tables"""
        stop = threading.Event()
        errors = []
        observed = []

        def read():
            last_version = 0
            while not stop.is_set():
                snapshot = fact_store.snapshot()
                frame = snapshot.frame
                if snapshot.version < last_version:
                    errors.append(f"version went back from {last_version} to {snapshot.version}")
                last_version = snapshot.version
                if frame.height != 6:
                    errors.append(f"version {snapshot.version} has {frame.height} rows")
                for age, category in frame.select(["age", "age_category"]).iter_rows():
                    if category != age_category(age):
                        errors.append(f"version {snapshot.version}: age {age} in {category}")
                observed.append(snapshot.version)

        readers = [threading.Thread(target=read) for _ in range(3)]
        for reader in readers:
            reader.start()

        try:
            for i in range(20):
                source_store.update_customer(1, age=40 if i % 2 else 30)
                source_store.update_customer(2, age=70 if i % 2 else 55)
                if i % 5 == 0:
                    fact_store.rebuild(source_store)
        finally:
            stop.set()
            for reader in readers:
                reader.join()

        assert errors == []
        assert observed
        assert fact_store.version == 1 + 40 + 4

    def test_rebuild_from_store_reads_current_tables(self, source_tables):
        """Test rebuilding from a SourceStore uses its latest tables"""
        store = SourceStore(source_tables)
        store.update_customer(2, state="Tasmania")

        facts = FactStore().rebuild(store).facts

        assert _customer_rows(facts, 2)["state"].to_list() == ["Tasmania"]
