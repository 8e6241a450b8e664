"""
Data Validation Module

Rule-based data quality checks for the source tables and the fact table.

Features:
- Null and uniqueness checks on keys
- Range checks (non-negative delivery time, bucketed age range)
- Referential integrity between source tables
- Custom frame-level checks
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import polars as pl
import structlog

from cart_insights.config import get_settings

logger = structlog.get_logger(__name__)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Critical - blocks pipeline
    WARNING = "warning"  # Non-critical - logged but continues
    INFO = "info"  # Informational only


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def warnings(self) -> List[ValidationCheck]:
        return [c for c in self.checks if not c.passed and c.severity == ValidationSeverity.WARNING]

    def check(self, name: str) -> ValidationCheck:
        """Look up a check result by name"""
        for result in self.checks:
            if result.name == name:
                return result
        raise KeyError(name)

    def add_checks(self, checks: List[ValidationCheck]) -> None:
        """Append checks run outside a DataValidator and recompute the counts"""
        self.checks.extend(checks)
        self.total_checks = len(self.checks)
        self.passed_checks = sum(1 for c in self.checks if c.passed)
        self.failed_checks = sum(1 for c in self.checks if not c.passed and c.severity == ValidationSeverity.ERROR)
        self.warning_count = sum(1 for c in self.checks if not c.passed and c.severity == ValidationSeverity.WARNING)

        if self.failed_checks > 0:
            self.status = ValidationStatus.FAILED
        elif self.warning_count > 0 and self.status == ValidationStatus.PASSED:
            self.status = ValidationStatus.PARTIAL


def _missing_column(name: str, column: str, severity: ValidationSeverity) -> ValidationCheck:
    return ValidationCheck(
        name=name,
        passed=False,
        severity=severity,
        message=f"Column '{column}' not found",
    )


class DataValidator:
    """
    Data validator with a chainable check suite.

    Example:
        validator = DataValidator("sales")
        validator.add_not_null_check("sales_id")
        validator.add_range_check("quantity", min_value=0)
        result = validator.validate(df)
    """

    def __init__(self, table: str = "dataframe", strict_mode: bool = False):
        self.table = table
        self.strict_mode = strict_mode  # Fail on any warning
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for null values in column"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"not_null_{column}"
            if column not in df.columns:
                return _missing_column(name, column, severity)

            null_count = df[column].null_count()
            total = len(df)
            passed = null_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {null_count} null values" if not passed else f"Column '{column}' has no null values",
                details={"null_count": null_count, "null_percentage": (null_count / total) * 100 if total > 0 else 0},
                failed_rows=null_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_unique_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for uniqueness of column values"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"unique_{column}"
            if column not in df.columns:
                return _missing_column(name, column, severity)

            total = len(df)
            duplicate_count = total - df[column].n_unique()
            passed = duplicate_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {duplicate_count} duplicate values" if not passed else f"Column '{column}' values are unique",
                details={"duplicate_count": duplicate_count},
                failed_rows=duplicate_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values within [min_value, max_value]; nulls are ignored"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"range_{column}"
            if column not in df.columns:
                return _missing_column(name, column, severity)

            conditions = []
            if min_value is not None:
                conditions.append(pl.col(column) < min_value)
            if max_value is not None:
                conditions.append(pl.col(column) > max_value)

            if not conditions:
                return ValidationCheck(
                    name=name,
                    passed=True,
                    severity=severity,
                    message="No range specified",
                )

            combined = conditions[0]
            for cond in conditions[1:]:
                combined = combined | cond

            out_of_range = df.filter(combined).height
            total = len(df)
            passed = out_of_range == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {out_of_range} values outside range [{min_value}, {max_value}]" if not passed else "All values in range",
                details={"min": min_value, "max": max_value, "out_of_range_count": out_of_range},
                failed_rows=out_of_range,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_non_negative_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values >= 0"""
        return self.add_range_check(column, min_value=0, severity=severity)

    def add_custom_check(
        self,
        name: str,
        check_func: Callable[[pl.DataFrame], bool],
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add custom validation check"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            try:
                passed = bool(check_func(df))
            except Exception as e:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    message=f"Check failed with error: {str(e)}",
                )
            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message="Check passed" if passed else message_on_fail,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_referential_integrity_check(
        self,
        column: str,
        reference_df: pl.DataFrame,
        reference_column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that every non-null value of column exists in the reference"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"ref_integrity_{column}"
            if column not in df.columns:
                return _missing_column(name, column, severity)
            if reference_column not in reference_df.columns:
                return _missing_column(name, reference_column, severity)

            orphans = df.filter(
                ~pl.col(column).is_in(reference_df[reference_column].drop_nulls().unique().to_list())
                & pl.col(column).is_not_null()
            ).height
            total = len(df)
            passed = orphans == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {orphans} orphan records" if not passed else "Referential integrity maintained",
                details={"orphan_count": orphans, "reference_column": reference_column},
                failed_rows=orphans,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all validation checks on DataFrame.

        Args:
            df: DataFrame to validate

        Returns:
            ValidationResult with all check results
        """
        started_at = datetime.utcnow()
        results = []

        logger.debug(f"Running {len(self._checks)} validation checks on {len(df)} rows", table=self.table)

        for check_func in self._checks:
            result = check_func(df)
            results.append(result)

            if not result.passed:
                logger.warning(
                    f"Validation failed: {result.name}",
                    table=self.table,
                    message=result.message,
                    severity=result.severity.value,
                    failed_rows=result.failed_rows,
                )

        completed_at = datetime.utcnow()

        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        if failed_checks > 0:
            status = ValidationStatus.FAILED
        elif warning_count > 0 and self.strict_mode:
            status = ValidationStatus.FAILED
        elif warning_count > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        validation_result = ValidationResult(
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=completed_at,
        )

        logger.info(
            f"Validation complete: {status.value}",
            table=self.table,
            passed=passed_checks,
            failed=failed_checks,
            warnings=warning_count,
        )

        return validation_result


# Pre-built validators
def create_fact_validator() -> DataValidator:
    """
    Validator for the fact table.

    Negative delivery times and ages outside the bucketed range are warnings:
    the rows are kept but the finding is reported.
    """
    quality = get_settings().data_quality
    return (
        DataValidator("fact_table")
        .add_not_null_check("sales_id")
        .add_unique_check("sales_id")
        .add_non_negative_check("delivery_time", severity=ValidationSeverity.WARNING)
        .add_range_check(
            "age",
            min_value=quality.min_bucketed_age,
            max_value=quality.max_bucketed_age - 1,
            severity=ValidationSeverity.WARNING,
        )
    )


def create_source_validators(sources) -> Dict[str, DataValidator]:
    """
    Validators for the four source tables.

    Orphaned foreign keys are warnings since the fact build tolerates them
    with null fields.

    Args:
        sources: SourceTables providing the reference tables
    """
    warning = ValidationSeverity.WARNING
    return {
        "customers": (
            DataValidator("customers")
            .add_not_null_check("customer_id")
            .add_unique_check("customer_id", severity=warning)
        ),
        "orders": (
            DataValidator("orders")
            .add_not_null_check("order_id")
            .add_unique_check("order_id", severity=warning)
            .add_referential_integrity_check(
                "customer_id", sources.customers, "customer_id", severity=warning
            )
            .add_custom_check(
                name="delivery_after_order",
                check_func=lambda df: df.filter(
                    pl.col("delivery_date") < pl.col("order_date")
                ).height == 0,
                message_on_fail="Orders delivered before they were placed",
                severity=warning,
            )
        ),
        "products": (
            DataValidator("products")
            .add_not_null_check("product_id")
            .add_unique_check("product_id", severity=warning)
        ),
        "sales": (
            DataValidator("sales")
            .add_not_null_check("sales_id")
            .add_unique_check("sales_id")
            .add_referential_integrity_check(
                "order_id", sources.orders, "order_id", severity=warning
            )
            .add_referential_integrity_check(
                "product_id", sources.products, "product_id", severity=warning
            )
            .add_non_negative_check("quantity", severity=warning)
        ),
    }


def validate_sources(sources) -> Dict[str, ValidationResult]:
    """Run the source validators and return results per table"""
    return {
        table: validator.validate(sources.table(table))
        for table, validator in create_source_validators(sources).items()
    }


def parse_failure_checks(table: str, failures: Dict[str, int], total_rows: int) -> List[ValidationCheck]:
    """
    Warning checks for source values that could not be parsed to their type.

    Args:
        table: Source table name
        failures: Column -> number of values nulled while casting
        total_rows: Rows in the source table
    """
    return [
        ValidationCheck(
            name=f"parse_{table}_{column}",
            passed=False,
            severity=ValidationSeverity.WARNING,
            message=f"{count} values in {table}.{column} could not be parsed and were set to null",
            details={"table": table, "column": column},
            failed_rows=count,
            total_rows=total_rows,
        )
        for column, count in failures.items()
    ]
