from __future__ import annotations

import argparse
import asyncio
import logging

import uvicorn

from newsletter.apps.api.main import create_app
from newsletter.core.config import get_settings
from newsletter.core.logging import configure_logging
from newsletter.services.auth.passwords import shutdown_blocking_pool
from newsletter.services.delivery.worker import run_worker_till_stopped


logger = logging.getLogger("newsletter.serve")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the newsletter API and delivery worker together")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    return parser


def _report_exit(name: str, task: asyncio.Task) -> None:
    if task.cancelled():
        logger.info("%s was cancelled", name)
        return
    exc = task.exception()
    if exc is None:
        logger.info("%s has exited", name)
    else:
        logger.error("%s failed", name, exc_info=exc)


async def _main(host: str, port: int) -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    server = uvicorn.Server(
        uvicorn.Config(create_app(settings=settings), host=host, port=port, log_config=None)
    )
    tasks = {
        asyncio.create_task(server.serve(), name="API"): "API",
        asyncio.create_task(run_worker_till_stopped(settings), name="Background worker"): "Background worker",
    }
    try:
        # Whichever side stops first takes the process down with it.
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            _report_exit(tasks[task], task)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
    finally:
        shutdown_blocking_pool()


if __name__ == "__main__":
    args = _build_parser().parse_args()
    asyncio.run(_main(args.host, args.port))
