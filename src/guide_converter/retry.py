"""Ordered capability attempts with a per-candidate retry budget.

Both the ingestion endpoint ladder and the rewrite provider ladder are a list
of candidates tried in order. Each candidate gets ``max_attempts`` calls with a
linear backoff (``attempt * backoff_s``) between them; a failure matching
``abandon_if`` ends that candidate immediately without spending the rest of
its budget.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from .errors import CandidateExhausted, ChainExhausted
from .logging import RunLogger, error_to_dict

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]
AbandonPredicate = Callable[[BaseException], bool]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_s: float = 0.4

    def delay_for(self, attempt: int) -> float:
        return max(0.0, attempt * self.backoff_s)


@dataclass(slots=True)
class Candidate(Generic[T]):
    name: str
    call: Callable[[int], Awaitable[T]]
    policy: RetryPolicy = RetryPolicy()


async def attempt_candidate(
    candidate: Candidate[T],
    *,
    abandon_if: AbandonPredicate | None = None,
    sleep: SleepFn = asyncio.sleep,
    logger: RunLogger | None = None,
) -> T:
    attempts = max(1, candidate.policy.max_attempts)
    last_error: BaseException | None = None
    for attempt in range(1, attempts + 1):
        try:
            return await candidate.call(attempt)
        except Exception as exc:
            last_error = exc
            if abandon_if is not None and abandon_if(exc):
                if logger:
                    logger.warn(
                        "candidate abandoned",
                        candidate=candidate.name,
                        attempt=attempt,
                        error=error_to_dict(exc),
                    )
                raise CandidateExhausted(candidate.name, attempt, exc, abandoned=True) from exc
            if logger:
                logger.warn(
                    "candidate attempt failed",
                    candidate=candidate.name,
                    attempt=attempt,
                    max_attempts=attempts,
                    error=error_to_dict(exc),
                )
            if attempt < attempts:
                await sleep(candidate.policy.delay_for(attempt))
    assert last_error is not None
    raise CandidateExhausted(candidate.name, attempts, last_error) from last_error


async def try_in_order(
    candidates: Sequence[Candidate[T]],
    *,
    abandon_if: AbandonPredicate | None = None,
    on_exhausted: Callable[[CandidateExhausted], None] | None = None,
    sleep: SleepFn = asyncio.sleep,
    logger: RunLogger | None = None,
) -> T:
    failures: list[CandidateExhausted] = []
    for candidate in candidates:
        try:
            return await attempt_candidate(candidate, abandon_if=abandon_if, sleep=sleep, logger=logger)
        except CandidateExhausted as exhausted:
            failures.append(exhausted)
            if on_exhausted is not None:
                on_exhausted(exhausted)
    raise ChainExhausted(failures)


__all__ = ["Candidate", "RetryPolicy", "attempt_candidate", "try_in_order"]
