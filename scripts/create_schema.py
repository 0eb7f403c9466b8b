#!/usr/bin/env python
"""Create the settlement engine tables.

Usage:
    python scripts/create_schema.py
    python scripts/create_schema.py --database-url sqlite+aiosqlite:///settlements.db
    python scripts/create_schema.py --dry-run

Existing tables are left alone; only missing ones are created.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from sqlalchemy import inspect
from sqlalchemy.schema import CreateIndex, CreateTable

from settlement_engine.config import get_settings
from settlement_engine.database import get_engine
from settlement_engine.models import Base


def print_ddl(dialect) -> None:
    for table in Base.metadata.sorted_tables:
        print(f"{str(CreateTable(table).compile(dialect=dialect)).strip()};\n")
        for index in table.indexes:
            print(f"{str(CreateIndex(index).compile(dialect=dialect)).strip()};\n")


async def create_schema(database_url: str, dry_run: bool) -> int:
    engine = get_engine(database_url)
    try:
        if dry_run:
            print_ddl(engine.dialect)
            return 0

        async with engine.begin() as conn:
            existing = set(await conn.run_sync(lambda c: inspect(c).get_table_names()))
            await conn.run_sync(Base.metadata.create_all)

        created = [t.name for t in Base.metadata.sorted_tables if t.name not in existing]
        for name in created:
            print(f"  Created: {name}")
        present = len(existing & set(Base.metadata.tables))
        print(f"\n{len(created)} table(s) created, {present} already present.")
        return 0
    finally:
        await engine.dispose()


def main() -> int:
    parser = argparse.ArgumentParser(description="Create settlement engine tables")
    parser.add_argument(
        "--database-url",
        default=get_settings().database_url,
        help="Async database URL (default: from settings)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the DDL without connecting",
    )
    args = parser.parse_args()

    target = args.database_url.split("@")[-1] if "@" in args.database_url else args.database_url
    print(f"Database: {target}\n")
    return asyncio.run(create_schema(args.database_url, args.dry_run))


if __name__ == "__main__":
    sys.exit(main())
