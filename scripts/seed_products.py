"""Replace the product catalog with the test-priced sample items."""

import argparse

from stkpay.common.config import settings
from stkpay.common.db import Base, make_engine, make_session_factory
from stkpay.common.logging import configure_logging
from stkpay.services.checkout.store import ProductCatalog

SAMPLE_PRODUCTS = [
    {"name": "Laptop", "price": 1, "description": "High-performance laptop (Test Price)"},
    {"name": "Phone", "price": 1, "description": "Latest smartphone (Test Price)"},
]


def main() -> None:
    """CLI entrypoint for catalog seeding."""

    parser = argparse.ArgumentParser(description="Seed the products table.")
    parser.add_argument("--database-url", default=settings.database_url)
    parser.add_argument("--create-schema", action="store_true", help="Run create_all before seeding")
    args = parser.parse_args()

    configure_logging()
    engine = make_engine(args.database_url)
    try:
        if args.create_schema:
            Base.metadata.create_all(engine)
        count = ProductCatalog(make_session_factory(engine)).seed(SAMPLE_PRODUCTS)
    finally:
        engine.dispose()
    print(f"Seeded {count} products")


if __name__ == "__main__":
    main()
