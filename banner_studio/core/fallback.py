"""
Ordered Attempt Combinator

Runs a fixed list of strategies one after another and stops at the first
acceptable result. Both the upload resolver and the background-removal
ladder are expressed through it.

There is no backoff, no scheduling and no state shared between calls.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

from banner_studio.core.logging import get_logger

logger = get_logger(__name__)

S = TypeVar("S")
R = TypeVar("R")


@dataclass
class Attempt(Generic[S, R]):
    """One strategy execution and what came of it."""
    strategy: S
    result: Optional[R] = None
    error: Optional[Exception] = None
    succeeded: bool = False

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None


@dataclass
class AttemptOutcome(Generic[S, R]):
    """Result of running a strategy list."""
    value: Optional[R]
    attempts: List[Attempt[S, R]] = field(default_factory=list)
    succeeded: bool = False
    degraded: bool = False

    @property
    def winning(self) -> Optional[Attempt[S, R]]:
        for attempt in self.attempts:
            if attempt.succeeded:
                return attempt
        return None


class AttemptsExhausted(Exception):
    """Every strategy failed and no degrade value was supplied."""

    def __init__(self, attempts: List[Attempt]):
        self.attempts = attempts
        self.last_error = next(
            (a.error for a in reversed(attempts) if a.error is not None),
            None
        )
        message = str(self.last_error) if self.last_error else "no strategy produced an acceptable result"
        super().__init__(message)


async def attempt_in_order(
    strategies: Sequence[S],
    run: Callable[[S], Awaitable[R]],
    accept: Optional[Callable[[R], bool]] = None,
    degrade: Optional[Callable[[], R]] = None,
    on_attempt: Optional[Callable[[Attempt[S, R]], Any]] = None,
) -> AttemptOutcome[S, R]:
    """
    Try strategies strictly in order until one yields an accepted result.

    Args:
        strategies: Ordered strategies to try
        run: Coroutine executing one strategy
        accept: Predicate on a returned value; defaults to accepting anything
        degrade: Produces the value returned when every strategy fails
        on_attempt: Called after each attempt (metrics, logging)

    Raises:
        AttemptsExhausted: All strategies failed and no degrade was given
    """
    attempts: List[Attempt[S, R]] = []

    for strategy in strategies:
        attempt: Attempt[S, R] = Attempt(strategy=strategy)
        try:
            attempt.result = await run(strategy)
            attempt.succeeded = accept(attempt.result) if accept else True
        except Exception as e:
            attempt.error = e
            logger.debug(
                "strategy_attempt_raised",
                strategy=str(strategy),
                error=str(e),
                error_type=type(e).__name__
            )

        attempts.append(attempt)
        if on_attempt is not None:
            on_attempt(attempt)

        if attempt.succeeded:
            return AttemptOutcome(value=attempt.result, attempts=attempts, succeeded=True)

    if degrade is None:
        raise AttemptsExhausted(attempts)

    return AttemptOutcome(value=degrade(), attempts=attempts, succeeded=False, degraded=True)
