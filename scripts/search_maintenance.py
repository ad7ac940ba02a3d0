#!/usr/bin/env python3
"""
Scheduled maintenance for search & discovery.

Commands:
    cleanup-trending    Purge trending aggregates older than the retention window
    sync-index          Push every active catalog product to Algolia
    configure-index     Apply Algolia settings, synonyms and sort replicas
    warm-autocomplete   Pre-warm autocomplete for popular query prefixes

Usage:
    # From project root, with venv active:
    PYTHONPATH=src python scripts/search_maintenance.py cleanup-trending --retention-days 30
    PYTHONPATH=src python scripts/search_maintenance.py sync-index --batch-size 200
    PYTHONPATH=src python scripts/search_maintenance.py configure-index
    PYTHONPATH=src python scripts/search_maintenance.py warm-autocomplete --region global

Intended for cron. sync-index runs its index writes inline so the
process only exits once every batch has been pushed.
"""

import argparse
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv
load_dotenv()

from core.logging import configure_logging, get_logger

logger = get_logger("search_maintenance")


def cleanup_trending(args) -> int:
    from search.trending import get_trending_tracker

    deleted = get_trending_tracker().cleanup_old_trends(args.retention_days)
    print(f"Deleted {deleted} stale trending rows")
    return 0


def sync_index(args) -> int:
    from core.tasks import TaskRunner
    from search.algolia_client import get_algolia_client
    from search.catalog import get_catalog_store
    from search.index_sync import IndexSyncService

    runner = TaskRunner()
    service = IndexSyncService(
        catalog=get_catalog_store(),
        index=get_algolia_client(),
        task_runner=runner,
    )
    queued = service.sync_all_products(batch_size=args.batch_size)
    failures = runner.dead_letters()

    print(f"Pushed {queued} products to {service.index.index_name}")
    if failures:
        print(f"  {len(failures)} batch(es) failed:")
        for failure in failures:
            print(f"    [{failure.error_type}] {failure.error}")
        return 1
    return 0


def configure_index(args) -> int:
    from search.algolia_client import get_algolia_client

    algolia = get_algolia_client()
    print(f"Configuring Algolia index: {algolia.index_name}")

    algolia.configure_index()
    print("  Settings applied")

    algolia.configure_synonyms()
    print("  Synonyms applied")

    replicas = algolia.configure_replicas()
    print(f"  Configured {len(replicas)} sort replicas")
    return 0


def warm_autocomplete(args) -> int:
    from search.autocomplete import get_autocomplete_service

    warmed = get_autocomplete_service().refresh_popular_prefixes(args.region)
    print(f"Warmed {warmed} autocomplete prefixes for region '{args.region}'")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Search & discovery maintenance")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("cleanup-trending", help="Purge stale trending aggregates")
    p.add_argument("--retention-days", type=int, default=None, help="Override TRENDING_RETENTION_DAYS")
    p.set_defaults(func=cleanup_trending)

    p = sub.add_parser("sync-index", help="Push active products to Algolia")
    p.add_argument("--batch-size", type=int, default=100, help="Products per index write")
    p.set_defaults(func=sync_index)

    p = sub.add_parser("configure-index", help="Apply index settings, synonyms and replicas")
    p.set_defaults(func=configure_index)

    p = sub.add_parser("warm-autocomplete", help="Pre-warm popular prefixes")
    p.add_argument("--region", default="global", help="Region bucket")
    p.set_defaults(func=warm_autocomplete)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(json_logs=False, log_level="DEBUG" if args.verbose else "INFO")
    logger.info("Running maintenance command", command=args.command)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
