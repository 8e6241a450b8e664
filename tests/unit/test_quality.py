"""
Unit Tests - Data Quality
"""
import pytest
import polars as pl

from cart_insights.ingestion import SourceTables
from cart_insights.quality import (
    DataValidator,
    ValidationSeverity,
    ValidationStatus,
    create_fact_validator,
    parse_failure_checks,
    validate_sources,
)


class TestDataValidator:
    """Tests for DataValidator"""

    def test_not_null_check_passes(self):
        """Test not null check with valid data"""
        df = pl.DataFrame({"id": [1, 2, 3], "name": ["a", "b", "c"]})

        validator = DataValidator()
        validator.add_not_null_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.PASSED
        assert result.passed_checks == 1

    def test_not_null_check_fails(self):
        """Test not null check with null values"""
        df = pl.DataFrame({"id": [1, None, 3], "name": ["a", "b", "c"]})

        validator = DataValidator()
        validator.add_not_null_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.failed_checks == 1

    def test_unique_check_fails(self):
        """Test unique check with duplicates"""
        df = pl.DataFrame({"id": [1, 2, 1]})

        result = DataValidator().add_unique_check("id").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.check("unique_id").failed_rows == 1

    def test_range_check(self):
        """Test range check"""
        df = pl.DataFrame({"price": [10.0, 50.0, -5.0, 200.0]})

        validator = DataValidator()
        validator.add_range_check("price", min_value=0, max_value=100)

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        # Two values outside range: -5 and 200
        check = result.checks[0]
        assert check.failed_rows == 2

    def test_range_check_ignores_nulls(self):
        """Test nulls are not counted as out of range"""
        df = pl.DataFrame({"delivery_time": [3, None, 0]})

        result = DataValidator().add_non_negative_check("delivery_time").validate(df)

        assert result.status == ValidationStatus.PASSED

    def test_warning_gives_partial(self):
        """Test failed warnings do not fail the suite"""
        df = pl.DataFrame({"delivery_time": [3, -1]})

        validator = DataValidator().add_non_negative_check("delivery_time", severity=ValidationSeverity.WARNING)
        result = validator.validate(df)

        assert result.status == ValidationStatus.PARTIAL
        assert result.warning_count == 1
        assert len(result.warnings) == 1

    def test_strict_mode_fails_on_warning(self):
        """Test strict mode turns warnings into failure"""
        df = pl.DataFrame({"delivery_time": [3, -1]})

        validator = DataValidator(strict_mode=True)
        validator.add_non_negative_check("delivery_time", severity=ValidationSeverity.WARNING)

        assert validator.validate(df).status == ValidationStatus.FAILED

    def test_missing_column(self):
        """Test a check on a missing column fails"""
        df = pl.DataFrame({"id": [1]})

        result = DataValidator().add_not_null_check("sales_id").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert "not found" in result.check("not_null_sales_id").message

    def test_custom_check(self):
        """Test custom validation check"""
        df = pl.DataFrame({"total": [100, 200, 300]})

        validator = DataValidator()
        validator.add_custom_check(
            name="total_sum",
            check_func=lambda df: df["total"].sum() < 1000,
            message_on_fail="Sum exceeds 1000",
        )

        result = validator.validate(df)

        # Sum is 600, which is < 1000
        assert result.status == ValidationStatus.PASSED

    def test_custom_check_error(self):
        """Test an exception in a custom check is reported as a failure"""
        df = pl.DataFrame({"total": [100]})

        validator = DataValidator().add_custom_check(
            name="bad_column",
            check_func=lambda df: df["missing"].sum() > 0,
            message_on_fail="unreachable",
        )
        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.check("bad_column").message.startswith("Check failed with error")

    def test_referential_integrity(self):
        """Test orphan foreign keys are counted, nulls excluded"""
        orders = pl.DataFrame({"order_id": [1, 2], "customer_id": [10, 99]})
        customers = pl.DataFrame({"customer_id": [10, 11]})
        sales = pl.DataFrame({"customer_id": [10, None]})

        validator = DataValidator().add_referential_integrity_check("customer_id", customers, "customer_id")

        assert validator.validate(orders).check("ref_integrity_customer_id").failed_rows == 1
        assert validator.validate(sales).status == ValidationStatus.PASSED

    def test_add_checks(self):
        """Test appended warning checks update the counts and status"""
        result = DataValidator().add_not_null_check("id").validate(pl.DataFrame({"id": [1, 2]}))

        result.add_checks(parse_failure_checks("orders", {"delivery_date": 3}, 10))

        assert result.status == ValidationStatus.PARTIAL
        assert result.total_checks == 2
        assert result.warning_count == 1
        assert result.check("parse_orders_delivery_date").failed_rows == 3

    def test_unknown_check_name(self):
        """Test looking up a check that did not run"""
        result = DataValidator().validate(pl.DataFrame({"id": [1]}))

        with pytest.raises(KeyError):
            result.check("unique_id")


class TestPrebuiltValidators:
    """Tests for the fact and source validators"""

    def test_fact_validator(self, facts_df):
        """Test the fact validator passes on the sample fact table"""
        result = create_fact_validator().validate(facts_df)

        assert result.status == ValidationStatus.PASSED
        assert result.total_checks == 4

    def test_fact_validator_age_range(self, facts_df):
        """Test ages outside the bucketed range are warnings"""
        facts = facts_df.with_columns(pl.col("age").fill_null(17))

        result = create_fact_validator().validate(facts)

        assert result.status == ValidationStatus.PARTIAL
        assert result.check("range_age").failed_rows == 2

    def test_source_validators(self, source_tables):
        """Test orphan references in the sources are warnings"""
        results = validate_sources(source_tables)

        assert set(results) == {"customers", "orders", "products", "sales"}
        assert results["customers"].status == ValidationStatus.PASSED
        assert results["products"].status == ValidationStatus.PASSED
        assert results["orders"].status == ValidationStatus.PARTIAL
        assert results["orders"].check("ref_integrity_customer_id").failed_rows == 1
        assert results["sales"].check("ref_integrity_order_id").failed_rows == 1
        assert results["sales"].check("ref_integrity_product_id").failed_rows == 1

    def test_delivery_before_order(self, source_tables):
        """Test orders delivered before they were placed are flagged"""
        orders = source_tables.orders.with_columns(
            pl.col("order_date").dt.offset_by("-1d").alias("delivery_date")
        )
        tables = SourceTables(
            customers=source_tables.customers,
            orders=orders,
            products=source_tables.products,
            sales=source_tables.sales,
        )

        result = validate_sources(tables)["orders"]

        assert not result.check("delivery_after_order").passed
