"""Backoff schedule for bringing the context server up."""

from __future__ import annotations

import asyncio

from ..supervisor.errors import BindFailureError, ServerStartError


class ActivationRetry:
    RETRY_INITIAL_DELAY_MS = 500
    RETRY_BACKOFF_FACTOR = 2
    RETRY_MAX_DELAY_MS = 5_000

    @staticmethod
    async def sleep(ms: int) -> None:
        await asyncio.sleep(max(ms, 0) / 1000)

    @classmethod
    def delay_ms(cls, attempt: int) -> int:
        turn = max(int(attempt), 1)
        backoff = cls.RETRY_INITIAL_DELAY_MS * (cls.RETRY_BACKOFF_FACTOR ** (turn - 1))
        return min(backoff, cls.RETRY_MAX_DELAY_MS)

    @classmethod
    def retryable(cls, error: Exception) -> bool:
        # Config problems do not go away by waiting.
        return isinstance(error, (BindFailureError, ServerStartError))
