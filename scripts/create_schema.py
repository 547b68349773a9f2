"""
Standalone script to create (and optionally drop) the booking engine schema.

The tables are created from the ORM models, so the schema always matches
`clinic_booking_backend.database.models`.

Usage:
    python scripts/create_schema.py [--drop] [--prod]
"""

import sys
import argparse
import asyncio
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

# --- Path Setup ---
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT / "src") not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT / "src"))

from dotenv import load_dotenv
load_dotenv(PROJECT_ROOT / ".env")

from clinic_booking_backend.common.config import settings
from clinic_booking_backend.database.engine import build_engine
from clinic_booking_backend.database.models import Base


async def create_schema(database_url: str, drop: bool) -> None:
    engine = build_engine(database_url)
    try:
        async with engine.begin() as conn:
            if drop:
                print("Dropping all tables...")
                await conn.run_sync(Base.metadata.drop_all)
            print("Creating all tables...")
            await conn.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()


def main():
    parser = argparse.ArgumentParser(description="Create the booking engine database schema.")
    parser.add_argument("--drop", action="store_true", help="Drop every table before creating it again.")
    parser.add_argument("--prod", action="store_true", help="Run against the PRODUCTION database.")
    args = parser.parse_args()

    if args.prod:
        database_url = settings.DATABASE_URL_PROD
        print("⚠️  WARNING: You are about to change the PRODUCTION database schema. ⚠️")
        confirmation = input("Are you sure you want to proceed? (y/n): ").strip().lower()
        if confirmation != 'y':
            print("Operation aborted.")
            return
    else:
        database_url = settings.DATABASE_URL_TEST

    try:
        asyncio.run(create_schema(database_url, args.drop))
    except SQLAlchemyError as e:
        print(f"❌ Schema creation failed: {e}")
        sys.exit(1)

    print("✅ Schema is up to date.")


if __name__ == "__main__":
    main()
