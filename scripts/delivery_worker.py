from __future__ import annotations

import asyncio

from newsletter.core.config import get_settings
from newsletter.core.logging import configure_logging
from newsletter.services.delivery.worker import run_worker_till_stopped


async def _main() -> None:
    # Run delivery apart from the API so a slow mail provider never stalls request handlers.
    settings = get_settings()
    configure_logging(settings.log_level)
    await run_worker_till_stopped(settings)


if __name__ == "__main__":
    asyncio.run(_main())
