#!/usr/bin/env python3
"""Run a crawler batch from a file of URLs against a JSON selector profile.

    python backend/scripts/batch_import.py --urls urls.txt --profile profile.json --kind article
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from app.models.base import init_db, session_scope
from app.services.catalog_store import SqlCatalogStore
from app.services.crawler.batch import BatchOrchestrator
from app.services.crawler.errors import ConfigurationError
from app.services.crawler.models import CrawlKind, load_source_config

logger = logging.getLogger("batch_import")


def _load_json(path: Path) -> Dict[str, Any]:
    payload = json.loads(path.read_text())
    if not isinstance(payload, dict):
        raise ValueError(f"Expected JSON object in {path}")
    return payload


def _read_urls(path: Path) -> List[str]:
    lines = path.read_text().splitlines()
    return [line.strip() for line in lines if line.strip() and not line.lstrip().startswith("#")]


async def _run(args: argparse.Namespace) -> Dict[str, Any]:
    config = load_source_config(_load_json(Path(args.profile)))
    urls = _read_urls(Path(args.urls))
    await init_db()
    async with session_scope() as db:
        orchestrator = BatchOrchestrator(SqlCatalogStore(db), progress_callback=logger.info)
        result = await orchestrator.run_batch(
            urls, config, args.category_id, args.status, CrawlKind(args.kind)
        )
    return result.to_dict()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Import articles or products from a list of URLs.")
    parser.add_argument("--urls", required=True, help="Text file with one URL per line")
    parser.add_argument("--profile", required=True, help="JSON crawl source config")
    parser.add_argument("--kind", choices=[kind.value for kind in CrawlKind], default="article")
    parser.add_argument("--category-id", type=int, default=None)
    parser.add_argument("--status", default="draft")
    parser.add_argument("--out", default=None, help="Write the batch result JSON here")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    try:
        report = asyncio.run(_run(args))
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 2

    text = json.dumps(report, indent=2, ensure_ascii=False)
    if args.out:
        Path(args.out).write_text(text)
        logger.info("Wrote %s", args.out)
    else:
        print(text)
    logger.info(report["message"])
    return 0 if report["failed"] == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
