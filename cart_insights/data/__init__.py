"""
Synthetic Data Generation
"""
from .generators import DataGenerator

__all__ = ["DataGenerator"]
