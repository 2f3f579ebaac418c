#!/usr/bin/env python3
"""
Backfill Embeddings

Memories saved while the embedding model couldn't load have no vector
and only show up in keyword search. This gives them one.

Usage:
    python scripts/backfill_embeddings.py                    # Preview only
    python scripts/backfill_embeddings.py --apply
    python scripts/backfill_embeddings.py --profile my-api --apply
"""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from eclipse_core.config import load_settings
from eclipse_core.context import CoreContext
from eclipse_core.logs import setup_logging
from eclipse_core.maintenance import MaintenanceEngine
from eclipse_core.memory import MemoryService


async def backfill(profile: str | None = None, apply: bool = False, scope: str = "all") -> int:
    """Re-embed memories without a vector. Returns how many got one."""
    settings = load_settings(profile_override=profile)
    setup_logging(settings.log_level)
    ctx = CoreContext.create(settings)

    try:
        print(f"=== Embedding Backfill ===")
        print(f"Profile: {ctx.profile}")
        print(f"Model: {settings.embedding_model}")

        engine = MaintenanceEngine(ctx, MemoryService(ctx))
        report = await engine.reembed(dry_run=not apply, scope=scope)
        print(f"\nMemories without a vector: {len(report.candidates)}")

        if not apply:
            for memory in report.candidates[:20]:
                print(f"  {memory.short_id} [{memory.scope}] {memory.title}")
            print("\n[DRY RUN] Run with --apply to generate vectors.")
            return 0

        print(f"\n✓ Re-embedded {report.applied}/{len(report.candidates)} memories")
        if report.applied < len(report.candidates):
            print("  The embedding model is unavailable; run again later.")
        return report.applied
    finally:
        ctx.close()


def main():
    parser = argparse.ArgumentParser(description="Add vectors to memories saved without one")
    parser.add_argument("--profile", default=None,
                        help="Profile to backfill (default: resolved from the working directory)")
    parser.add_argument("--scope", default="all", choices=["profile", "global", "all"],
                        help="Which stores to backfill (default: all)")
    parser.add_argument("--apply", action="store_true",
                        help="Write vectors (default is a dry run)")
    args = parser.parse_args()

    asyncio.run(backfill(profile=args.profile, apply=args.apply, scope=args.scope))


if __name__ == "__main__":
    main()
