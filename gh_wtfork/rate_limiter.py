"""Helpers for coordinating GitHub rate limits."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from math import ceil
from typing import Any, Literal, Mapping

from .config import RateLimitInfo, UTC

LOGGER = logging.getLogger(__name__)

ApiFamily = Literal["rest", "graphql"]


@dataclass(slots=True)
class _Budget:
    info: RateLimitInfo | None = None
    estimated_cost: float = 1.0


class RateLimiter:
    """Tracks the REST and GraphQL budgets separately, as GitHub meters them.

    Budgets are unknown until the first response of a family is recorded;
    an unknown budget never delays a call.
    """

    def __init__(self, *, minimum_sleep: float = 0.05) -> None:
        self._lock = asyncio.Lock()
        self._budgets: dict[str, _Budget] = {"rest": _Budget(), "graphql": _Budget()}
        self._minimum_sleep = max(minimum_sleep, 0.0)

    async def acquire(self, family: ApiFamily) -> None:
        """Wait until the family's budget can cover the next call."""

        while True:
            async with self._lock:
                budget = self._budgets[family]
                info = budget.info
                if info is None:
                    return
                cost = max(1, ceil(budget.estimated_cost))
                if info.remaining >= cost:
                    info.remaining -= cost
                    return
                remaining = info.remaining
                reset_at = info.reset_at

            delay = max((reset_at - datetime.now(tz=UTC)).total_seconds(), self._minimum_sleep)
            LOGGER.warning(
                "GitHub %s rate limit low (%s remaining); sleeping %.2fs until reset",
                family,
                remaining,
                delay,
            )
            await asyncio.sleep(delay)
            async with self._lock:
                if budget.info is info:
                    budget.info = None

    async def record(self, family: ApiFamily, info: RateLimitInfo) -> None:
        async with self._lock:
            budget = self._budgets[family]
            budget.info = RateLimitInfo(cost=info.cost, remaining=info.remaining, reset_at=info.reset_at)
            if info.cost > 0:
                budget.estimated_cost = max(1.0, (budget.estimated_cost * 0.5) + (info.cost * 0.5))

    async def reset(self, family: ApiFamily) -> None:
        """Forget the family's budget after a failed request."""

        async with self._lock:
            self._budgets[family].info = None

    async def remaining(self, family: ApiFamily) -> int | None:
        async with self._lock:
            info = self._budgets[family].info
            return info.remaining if info else None


def rate_limit_from_headers(headers: Mapping[str, str]) -> RateLimitInfo | None:
    """Read the REST budget from ``X-RateLimit-*`` response headers."""

    remaining = headers.get("X-RateLimit-Remaining")
    reset = headers.get("X-RateLimit-Reset")
    if remaining is None or reset is None:
        return None
    try:
        return RateLimitInfo(
            cost=1,
            remaining=int(remaining),
            reset_at=datetime.fromtimestamp(int(reset), tz=UTC),
        )
    except (TypeError, ValueError):
        return None


def rate_limit_from_graphql(data: Mapping[str, Any]) -> RateLimitInfo | None:
    """Read the GraphQL budget from a ``rateLimit`` selection, when the query asked for one."""

    rate = data.get("rateLimit")
    if not rate or not rate.get("resetAt"):
        return None
    value = rate["resetAt"]
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return RateLimitInfo(
        cost=rate.get("cost", 0),
        remaining=rate.get("remaining", 0),
        reset_at=datetime.fromisoformat(value),
    )


__all__ = ["ApiFamily", "RateLimiter", "rate_limit_from_graphql", "rate_limit_from_headers"]
