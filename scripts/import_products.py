#!/usr/bin/env python3
"""Bulk import products script.

Imports a CSV or XLSX file of products through the same all-or-nothing
path as the POST /products/bulk endpoint.

Usage:
    python scripts/import_products.py products.csv
    python scripts/import_products.py products.xlsx --create-tables
"""

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.catalog.exceptions import CatalogError
from app.catalog.importer import CSV_MIMETYPES, XLSX_MIMETYPE, FileUpload
from app.catalog.service import BulkImportResult, ProductService
from app.infrastructure.database import async_session_factory, engine, Base
from app.infrastructure.logging import configure_logging

SUFFIX_MIMETYPES = {
    ".csv": "text/csv",
    ".xlsx": XLSX_MIMETYPE,
}


async def create_tables() -> None:
    """Create database tables if they don't exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def guess_mimetype(path: Path) -> str:
    """Guess the upload MIME type from the file suffix.

    Args:
        path: File to import.

    Returns:
        MIME type understood by the importer, or the system guess.
    """
    suffix = path.suffix.lower()
    if suffix in SUFFIX_MIMETYPES:
        return SUFFIX_MIMETYPES[suffix]
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "application/octet-stream"


async def import_file(path: Path) -> BulkImportResult:
    """Import one file.

    Args:
        path: CSV or XLSX file.

    Returns:
        Import result.
    """
    upload = FileUpload(mimetype=guess_mimetype(path), buffer=path.read_bytes())
    async with async_session_factory() as session:
        service = ProductService(session)
        return await service.bulk_create_products(upload)


async def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Bulk import products from a CSV or XLSX file",
    )
    parser.add_argument("file", type=Path, help="CSV or XLSX file to import")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create database tables before importing",
    )

    args = parser.parse_args()
    configure_logging(json_output=False)

    if not args.file.is_file():
        print(f"✗ No such file: {args.file}")
        return 1

    mimetype = guess_mimetype(args.file)
    if mimetype not in CSV_MIMETYPES and mimetype != XLSX_MIMETYPE:
        print(f"✗ Unsupported file type: {args.file.suffix or mimetype}")
        return 1

    if args.create_tables:
        print("Creating database tables...")
        await create_tables()

    print(f"Importing {args.file} ({mimetype})...")
    try:
        result = await import_file(args.file)
    except CatalogError as e:
        print(f"  ✗ {e.error_code}: {e.message}")
        for key, value in e.details.items():
            print(f"      {key}: {value}")
        return 1
    finally:
        await engine.dispose()

    print(f"  ✓ Created: {result.count} products")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
