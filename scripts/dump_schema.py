#!/usr/bin/env python3
"""
Dump the database schema to schema.json and schema.txt.

schema.json maps each table to its [{"column", "type"}] list; schema.txt
holds the same listing in the plain-text form used in the model's system
instruction. Useful for reviewing what the model is told about the
database, or for pasting into prompts by hand.

Usage:
    python scripts/dump_schema.py
    python scripts/dump_schema.py --schema inventory --output-dir ./out
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add the src directory to the Python path
project_root = Path(__file__).parent.parent
src_path = project_root / "src"
sys.path.insert(0, str(src_path))

from dotenv import load_dotenv

env_file = project_root / ".env"
if env_file.exists():
    load_dotenv(env_file)


async def dump_schema(schema: str, output_dir: Path) -> None:
    from asset_query.config import get_settings
    from asset_query.infrastructure.database_client import DatabaseClient
    from asset_query.repositories.schema_repository import SchemaRepository
    from asset_query.services.schema_service import (
        SchemaService,
        render_schema_json,
        render_schema_text,
    )
    from asset_query.utils.logging import configure_logging

    configure_logging()
    settings = get_settings()

    db_client = DatabaseClient(settings.database)
    await db_client.connect()
    try:
        schema_service = SchemaService(SchemaRepository(db_client), schema=schema)
        tables = await schema_service.get_tables()
    finally:
        await db_client.close()

    output_dir.mkdir(parents=True, exist_ok=True)

    json_path = output_dir / "schema.json"
    json_path.write_text(json.dumps(render_schema_json(tables), indent=2), encoding="utf-8")

    text_path = output_dir / "schema.txt"
    text_path.write_text(render_schema_text(tables), encoding="utf-8")

    print(f"✅ Schema for '{schema}' ({len(tables)} tables) saved to:")
    print(f"- {json_path}")
    print(f"- {text_path}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Dump table and column metadata to JSON and text")
    parser.add_argument("--schema", default=None, help="PostgreSQL schema (default: DATABASE__DEFAULT_SCHEMA)")
    parser.add_argument("--output-dir", type=Path, default=project_root, help="Directory for the output files")
    args = parser.parse_args()

    if args.schema is None:
        from asset_query.config import get_settings
        args.schema = get_settings().database.default_schema

    asyncio.run(dump_schema(args.schema, args.output_dir))
