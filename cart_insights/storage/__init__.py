"""
Fact Table Storage
"""
from .fact_store import FactSnapshot, FactStore, PropagationResult

__all__ = ["FactSnapshot", "FactStore", "PropagationResult"]
