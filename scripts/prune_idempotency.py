from __future__ import annotations

import argparse
import asyncio
from datetime import timedelta

from newsletter.core.config import get_settings
from newsletter.core.logging import configure_logging
from newsletter.persistence.db import get_engine, get_session
from newsletter.services.idempotency import prune_idempotency_records


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Delete saved idempotent responses past their retention window")
    parser.add_argument(
        "--older-than-hours",
        type=float,
        default=None,
        help="Override IDEMPOTENCY_TTL_HOURS for this run",
    )
    return parser


async def prune(older_than_hours: float | None = None) -> int:
    settings = get_settings()
    configure_logging(settings.log_level)
    hours = older_than_hours if older_than_hours is not None else settings.idempotency_ttl_hours
    try:
        # Remove expired responses to keep the idempotency table bounded.
        async with get_session() as session:
            deleted = await prune_idempotency_records(session, older_than=timedelta(hours=hours))
    finally:
        await get_engine().dispose()
    print(f"pruned_idempotency_records={deleted}")
    return deleted


if __name__ == "__main__":
    args = _build_parser().parse_args()
    asyncio.run(prune(args.older_than_hours))
