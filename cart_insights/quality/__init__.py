"""
Data Quality Module
"""
from .validators import (
    DataValidator,
    ValidationCheck,
    ValidationResult,
    ValidationSeverity,
    ValidationStatus,
    create_fact_validator,
    create_source_validators,
    parse_failure_checks,
    validate_sources,
)

__all__ = [
    "DataValidator",
    "ValidationCheck",
    "ValidationResult",
    "ValidationSeverity",
    "ValidationStatus",
    "create_fact_validator",
    "create_source_validators",
    "parse_failure_checks",
    "validate_sources",
]
