"""
Command line.

    python -m atelier serve --host 0.0.0.0 --port 8000
    python -m atelier init-db
    python -m atelier seed products.json

``seed`` reads a JSON list of products. Names already in the catalog are
skipped; a missing tone is derived from the name.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import uvicorn
from kungfu import Ok, Error
from pydantic import ValidationError

from atelier.api import schemas
from atelier.app import build_runner, create_app
from atelier.catalog import product_names
from atelier.config import Settings, configure_logging
from atelier.db import create_database

log = logging.getLogger("atelier")


# ═══════════════════════════════════════════════════════════════════════════════
# Commands
# ═══════════════════════════════════════════════════════════════════════════════


async def init_db(settings: Settings) -> None:
    db = await create_database(settings.database_url)
    await db.dispose()
    log.info("Schema ready at %s", settings.database_url)


def _entry(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise ValueError("each product must be a JSON object")
    entry = dict(raw)
    # bare image URLs get the product name as alt text
    entry["images"] = [
        {"src": image, "alt": entry.get("name", "")} if isinstance(image, str) else image
        for image in entry.get("images") or ()
    ]
    return entry


async def seed(settings: Settings, path: Path) -> int:
    """Create every product from ``path`` that is not in the catalog yet; return failures."""
    entries = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(entries, list):
        raise SystemExit(f"{path}: expected a JSON list of products")

    db = await create_database(settings.database_url)
    runner = build_runner(settings, db)
    created = skipped = failed = 0
    try:
        existing = await product_names(db)
        for position, raw in enumerate(entries, start=1):
            try:
                request = schemas.ProductIn.model_validate(_entry(raw))
            except (ValueError, ValidationError) as e:
                log.warning("Entry %d skipped: %s", position, e)
                failed += 1
                continue

            if request.name in existing:
                log.info("Exists, skipping: %s", request.name)
                skipped += 1
                continue

            match await runner.run(request.to_domain(None)):
                case Ok(product):
                    existing.add(product.name)
                    created += 1
                case Error(failure):
                    log.warning("Could not create %s: %s", request.name, failure)
                    failed += 1
    finally:
        await db.dispose()

    log.info("Seed done: %d created, %d skipped, %d failed", created, skipped, failed)
    return failed


# ═══════════════════════════════════════════════════════════════════════════════
# Entry point
# ═══════════════════════════════════════════════════════════════════════════════


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="atelier", description="Crystal Atelier storefront")
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    commands.add_parser("init-db", help="create tables")

    seed_cmd = commands.add_parser("seed", help="load products from a JSON file")
    seed_cmd.add_argument("file", type=Path)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    match args.command:
        case "serve":
            uvicorn.run(create_app(settings), host=args.host, port=args.port, log_config=None)
            return 0
        case "init-db":
            asyncio.run(init_db(settings))
            return 0
        case "seed":
            return 1 if asyncio.run(seed(settings, args.file)) else 0
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
