"""Fetch Pool — bounded concurrency for every collaborator read and the enrollment write.

Invariants:
    - At most max_concurrency collaborator calls in flight per pool
    - Reads surface only FetchError; the write surfaces only PersistenceError
    - Domain errors (EnrollmentServiceError) pass through untouched
    - CancelledError is never converted — cancellation always propagates

Design Decisions:
    - asyncio.Semaphore over a thread pool: collaborators are async (SQLAlchemy AsyncSession),
      so the bound is on concurrent operations, and the event loop stays the single
      delivery context for results and state transitions
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from enrollment.core.errors import (
    EnrollmentServiceError, ErrorContext, FetchError, PersistenceError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FetchPool:
    """Semaphore-bounded runner for collaborator coroutines."""

    def __init__(self, max_concurrency: int = 8):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.max_concurrency = max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def fetch(
        self,
        source: str,
        call: Callable[[], Awaitable[T]],
        context: ErrorContext | None = None,
    ) -> T:
        """Run a read. Any non-domain failure becomes FetchError(source)."""
        async with self._semaphore:
            try:
                return await call()
            except EnrollmentServiceError:
                raise
            except Exception as e:
                logger.error(
                    "Fetch of %s failed: %s", source, e,
                    extra={"error_code": "FETCH_ERROR"},
                )
                raise FetchError(str(e), source, context) from e

    async def write(
        self,
        call: Callable[[], Awaitable[T]],
        context: ErrorContext | None = None,
    ) -> T:
        """Run the enrollment write. Any non-domain failure becomes PersistenceError."""
        async with self._semaphore:
            try:
                return await call()
            except EnrollmentServiceError:
                raise
            except Exception as e:
                logger.error(
                    "Enrollment write failed: %s", e,
                    extra={"error_code": "PERSISTENCE_ERROR"},
                )
                raise PersistenceError(str(e), context) from e
