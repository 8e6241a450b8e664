"""
Source Dataset Generator
Writes customers, products, orders and sales CSV files into the source data directory.
"""

from pathlib import Path

from cart_insights.config import get_settings
from cart_insights.config.logging import configure_logging
from cart_insights.data import DataGenerator

N_CUSTOMERS = 1000
N_PRODUCTS = 1260
N_ORDERS = 1000


def main():
    configure_logging()
    output_dir = Path(get_settings().sources.data_dir)

    print("=" * 60)
    print("Shopping Cart Source Dataset Generator")
    print("=" * 60 + "\n")

    tables = DataGenerator(output_dir=str(output_dir)).generate_all(
        n_customers=N_CUSTOMERS,
        n_products=N_PRODUCTS,
        n_orders=N_ORDERS,
        save=True,
    )

    print(f"\nOutput: {output_dir}\n")
    for name, rows in tables.row_counts().items():
        print(f"   {name}: {rows:,} rows")


if __name__ == "__main__":
    main()
