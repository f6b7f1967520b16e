#!/usr/bin/env python
"""Create the pay-run engine tables in the database.

Usage:
    python scripts/create_schema.py
    python scripts/create_schema.py --database-url postgresql+asyncpg://...
    python scripts/create_schema.py --dry-run
"""

import argparse
import asyncio

from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateIndex, CreateTable

from payrun_engine.config import get_settings
from payrun_engine.database import get_engine
from payrun_engine.models import Base


def print_ddl() -> None:
    """Print the PostgreSQL DDL for every table and index."""
    dialect = postgresql.dialect()
    for table in Base.metadata.sorted_tables:
        print(f"{str(CreateTable(table).compile(dialect=dialect)).strip()};\n")
        for index in sorted(table.indexes, key=lambda i: i.name or ""):
            print(f"{str(CreateIndex(index).compile(dialect=dialect)).strip()};\n")


async def create_schema(database_url: str) -> None:
    """Create any missing tables. Existing tables are left untouched."""
    engine = get_engine(database_url)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create pay-run engine tables")
    parser.add_argument(
        "--database-url",
        default=None,
        help="Async database URL (default: DATABASE_URL)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the DDL without connecting",
    )
    args = parser.parse_args()

    if args.dry_run:
        print_ddl()
        return

    database_url = args.database_url or get_settings().database_url
    print(f"Creating tables on {database_url.split('@')[-1]}")
    asyncio.run(create_schema(database_url))
    print(f"Created {len(Base.metadata.tables)} tables (existing tables skipped)")


if __name__ == "__main__":
    main()
