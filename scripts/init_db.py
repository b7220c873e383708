"""
Create the database tables and seed the location hierarchy.

    python scripts/init_db.py [--with-sample-accounts]

--with-sample-accounts also adds the demo admin (admin / admin123, code from
ADMIN_CODE) and the verified ward official KTM001 / official123.
"""
import argparse
import os
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from standwithnepal.config import settings
from standwithnepal.db import Base, SessionLocal, engine
from standwithnepal.logging import setup_logging
from standwithnepal.models import models  # noqa: F401  registers the tables
from standwithnepal.services.seed import seed_locations, seed_sample_accounts


def main() -> None:
    parser = argparse.ArgumentParser(description="Initialise the Stand with Nepal database")
    parser.add_argument("--with-sample-accounts", action="store_true", help="add the demo admin and official accounts")
    args = parser.parse_args()

    setup_logging()
    if settings.database_url.startswith("sqlite:///./"):
        os.makedirs("var", exist_ok=True)
    Base.metadata.create_all(bind=engine)
    print("Tables created/verified")

    db = SessionLocal()
    try:
        added = seed_locations(db)
        print(f"Locations seeded ({added} new rows)")
        if args.with_sample_accounts:
            added = seed_sample_accounts(db)
            print(f"Sample accounts seeded ({added} new)")
    finally:
        db.close()


if __name__ == "__main__":
    main()
