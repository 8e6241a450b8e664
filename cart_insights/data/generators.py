"""
Synthetic Data Generator

Generates referentially consistent source tables for development and tests:
- Customers with demographics and addresses
- Products of a clothing catalog
- Orders with order and delivery dates
- Sales lines per order
"""

import random
from datetime import date, timedelta
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import polars as pl
import structlog
from faker import Faker

from cart_insights.config import get_settings
from cart_insights.ingestion.sources import SourceTables, source_tables_from_frames

logger = structlog.get_logger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

PRODUCT_TYPES = {
    "Shirt": ["Oxford Cloth", "Linen", "Denim", "Flannel", "Polo"],
    "Jacket": ["Bomber", "Denim", "Leather", "Puffer", "Windbreaker"],
    "Trousers": ["Chinos", "Cargo", "Joggers", "Wool", "Trousers"],
}
SIZES = ["XS", "S", "M", "L", "XL"]
COLOURS = ["red", "orange", "yellow", "green", "blue", "indigo", "violet", "black", "white"]
PAYMENT_METHODS = ["Cash", "Credit Card", "Debit Card", "PayPal"]
GENDERS = ["Male", "Female", "Genderfluid", "Bigender", "Agender", "Non-binary", "Polygender", "Genderqueer"]
GENDER_WEIGHTS = [0.44, 0.44, 0.02, 0.02, 0.02, 0.02, 0.02, 0.02]


# =============================================================================
# GENERATORS
# =============================================================================

class CustomerGenerator:
    """Generate customer data"""

    def __init__(self, fake: Faker, rng: random.Random):
        self.fake = fake
        self.rng = rng

    def generate(self, n: int = 1000) -> pl.DataFrame:
        customers = []

        for customer_id in range(1, n + 1):
            customers.append({
                "customer_id": customer_id,
                "customer_name": self.fake.name(),
                "gender": self.rng.choices(GENDERS, weights=GENDER_WEIGHTS)[0],
                "age": self.rng.randint(20, 79),
                "home_address": self.fake.street_address(),
                "zip_code": int(self.fake.numerify("####")),
                "city": self.fake.city(),
                "state": self.fake.state(),
                "country": "Australia",
            })

        return pl.DataFrame(customers)


class ProductGenerator:
    """Generate the product catalog"""

    def __init__(self, fake: Faker, rng: random.Random):
        self.fake = fake
        self.rng = rng

    def generate(self, n: int = 100) -> pl.DataFrame:
        products = []

        for product_id in range(1, n + 1):
            product_type = self.rng.choice(list(PRODUCT_TYPES))
            product_name = self.rng.choice(PRODUCT_TYPES[product_type])
            colour = self.rng.choice(COLOURS)

            products.append({
                "product_id": product_id,
                "product_type": product_type,
                "product_name": product_name,
                "size": self.rng.choice(SIZES),
                "colour": colour,
                "price": float(self.rng.randrange(90, 120)),
                "quantity": self.rng.randint(40, 80),
                "description": f"A {colour} coloured, {product_name.lower()} {product_type.lower()}.",
            })

        return pl.DataFrame(products)


class OrderGenerator:
    """Generate orders and their sales lines"""

    def __init__(
        self,
        customers_df: pl.DataFrame,
        products_df: pl.DataFrame,
        rng: random.Random,
        np_rng: np.random.Generator,
    ):
        self.customer_ids = customers_df["customer_id"].to_list()
        self.product_prices = dict(zip(
            products_df["product_id"].to_list(),
            products_df["price"].to_list(),
        ))
        self.rng = rng
        self.np_rng = np_rng

    def generate(
        self,
        n: int = 1000,
        start_date: Optional[date] = None,
        days: int = 180,
    ) -> Dict[str, pl.DataFrame]:
        """Generate n orders with 1-5 sales lines each"""
        start_date = start_date or date(2021, 1, 1)
        product_ids = list(self.product_prices)

        orders = []
        sales = []
        sales_id = 0

        for order_id in range(1, n + 1):
            order_date = start_date + timedelta(days=self.rng.randrange(days))
            delivery_date = order_date + timedelta(days=self.rng.randint(1, 30))

            orders.append({
                "order_id": order_id,
                "customer_id": self.rng.choice(self.customer_ids),
                "payment": self.rng.choice(PAYMENT_METHODS),
                "order_date": order_date,
                "delivery_date": delivery_date,
            })

            # Most orders have one or two lines
            num_lines = int(self.np_rng.choice([1, 2, 3, 4, 5], p=[0.45, 0.30, 0.15, 0.07, 0.03]))

            for product_id in self.rng.sample(product_ids, k=min(num_lines, len(product_ids))):
                sales_id += 1
                quantity = int(self.np_rng.choice([1, 2, 3], p=[0.60, 0.25, 0.15]))
                price = self.product_prices[product_id]

                sales.append({
                    "sales_id": sales_id,
                    "order_id": order_id,
                    "product_id": product_id,
                    "price_per_unit": price,
                    "quantity": quantity,
                    "total_price": round(price * quantity, 2),
                })

        return {"orders": pl.DataFrame(orders), "sales": pl.DataFrame(sales)}


# =============================================================================
# MAIN GENERATOR
# =============================================================================

class DataGenerator:
    """
    Main data generator orchestrator.

    Output is reproducible for a given seed.

    Example:
        tables = DataGenerator(seed=7).generate_all(n_customers=50, save=False)
    """

    def __init__(self, output_dir: Optional[str] = None, seed: int = 42):
        self.output_dir = Path(output_dir or get_settings().sources.data_dir)
        self.fake = Faker()
        self.fake.seed_instance(seed)
        self.rng = random.Random(seed)
        self.np_rng = np.random.default_rng(seed)

    def generate_all(
        self,
        n_customers: int = 1000,
        n_products: int = 100,
        n_orders: int = 1000,
        save: bool = True,
    ) -> SourceTables:
        """Generate the four source tables"""
        logger.info(
            "Generating synthetic source data",
            customers=n_customers,
            products=n_products,
            orders=n_orders,
        )

        customers_df = CustomerGenerator(self.fake, self.rng).generate(n_customers)
        products_df = ProductGenerator(self.fake, self.rng).generate(n_products)
        order_data = OrderGenerator(customers_df, products_df, self.rng, self.np_rng).generate(n_orders)

        tables = source_tables_from_frames({
            "customers": customers_df,
            "products": products_df,
            "orders": order_data["orders"],
            "sales": order_data["sales"],
        })

        if save:
            self._save_data(tables)

        logger.info("Data generation complete", **tables.row_counts())
        return tables

    def _save_data(self, tables: SourceTables) -> None:
        """Save generated tables as CSV in the source file layout"""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        file_stems = get_settings().sources.table_files

        for name, stem in file_stems.items():
            df = tables.table(name)
            csv_path = self.output_dir / f"{stem}.csv"
            df.write_csv(csv_path)
            logger.info(f"Saved {name}: {len(df)} rows -> {csv_path}")
