from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, TypeVar

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from pydantic import SecretStr

from newsletter.core.config import get_settings


T = TypeVar("T")

# Argon2id with the library defaults; stored hashes carry their own parameters.
_hasher = PasswordHasher()

_blocking_pool: ThreadPoolExecutor | None = None


def _get_blocking_pool() -> ThreadPoolExecutor:
    global _blocking_pool
    if _blocking_pool is None:
        _blocking_pool = ThreadPoolExecutor(
            max_workers=max(1, int(get_settings().blocking_pool_max_workers)),
            thread_name_prefix="newsletter-blocking",
        )
    return _blocking_pool


async def run_blocking(fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    # CPU-heavy steps run on a dedicated pool so request handlers keep the event loop free.
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_get_blocking_pool(), partial(fn, *args, **kwargs))


def shutdown_blocking_pool() -> None:
    global _blocking_pool
    if _blocking_pool is not None:
        _blocking_pool.shutdown(wait=False)
        _blocking_pool = None


def hash_password(password: SecretStr) -> str:
    return _hasher.hash(password.get_secret_value())


def verify_password(password: SecretStr, encoded: str) -> bool:
    # Mismatches and malformed stored hashes both verify as False; the caller reports an auth failure.
    try:
        return _hasher.verify(encoded, password.get_secret_value())
    except (VerifyMismatchError, InvalidHashError, VerificationError):
        return False
