"""
Shopping Cart Insights
Sales analytics pipeline over customers, orders, products and sales.
"""

__version__ = "1.0.0"
