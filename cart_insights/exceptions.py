"""
Pipeline Exceptions

Missing join references are not errors (they surface as null fact fields) and
data-quality findings are reported through validation results, so only the
conditions below abort an operation.
"""

from typing import Iterable, Optional


class PipelineError(Exception):
    """Base class for pipeline failures"""


class SourceUnavailableError(PipelineError):
    """A source table could not be read or lacks required columns"""

    def __init__(self, table: str, reason: str):
        self.table = table
        self.reason = reason
        super().__init__(f"Source table '{table}' unavailable: {reason}")


class FactsNotBuiltError(PipelineError, RuntimeError):
    """The fact table was read before the first successful rebuild"""

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Fact table not built. Call FactStore.rebuild() first.")


class CustomerNotFoundError(PipelineError, LookupError):
    """A customer update referenced an unknown customer id"""

    def __init__(self, customer_id: int):
        self.customer_id = customer_id
        super().__init__(f"Customer {customer_id} not found")


class InvalidCustomerUpdateError(PipelineError, ValueError):
    """A customer update named unknown or immutable attributes"""

    def __init__(self, attributes: Iterable[str]):
        self.attributes = sorted(attributes)
        super().__init__(f"Cannot update customer attributes: {self.attributes}")
