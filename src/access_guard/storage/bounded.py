"""Timeout-bounded store calls."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

import structlog
from sqlalchemy.exc import SQLAlchemyError

from access_guard.errors import StoreUnavailable

logger = structlog.get_logger()

T = TypeVar("T")


async def bounded(awaitable: Awaitable[T], timeout: float, *, operation: str) -> T:
    """Await a store operation, converting timeouts and driver errors.

    Raises:
        StoreUnavailable: on timeout, SQLAlchemy errors, or connection errors.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except TimeoutError as exc:
        logger.warning("store_timeout", operation=operation, timeout=timeout)
        raise StoreUnavailable(f"{operation} timed out after {timeout}s") from exc
    except (SQLAlchemyError, ConnectionError, OSError) as exc:
        logger.warning("store_error", operation=operation, error=type(exc).__name__)
        raise StoreUnavailable(f"{operation} failed: {type(exc).__name__}") from exc
