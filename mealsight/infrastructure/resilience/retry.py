"""
Retry policies for inference oracle calls.

Two policies with separate budgets:
- RetryPolicy: transient failures (rate limit, 5xx, timeout, connection)
  with capped exponential backoff.
- retry_on_bad_json: malformed model output, re-prompted after a short
  fixed pause.

Classification switches on OracleErrorKind, never on message text.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, FrozenSet, Optional, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from mealsight.domain.shared.errors import (
    TRANSIENT_KINDS,
    OracleError,
    OracleErrorKind,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]

DEFAULT_BAD_JSON_ATTEMPTS = 2
BAD_JSON_RETRY_DELAY_S = 1.0


@dataclass(frozen=True)
class RetryConfig:
    """
    Backoff settings.

    Delay before retry n (1-based) is
    min(initial_delay_ms * backoff_multiplier ** (n - 1), max_delay_ms).
    """

    max_attempts: int = 2
    initial_delay_ms: int = 1000
    max_delay_ms: int = 5000
    backoff_multiplier: float = 2.0
    retryable_kinds: FrozenSet[OracleErrorKind] = field(default=TRANSIENT_KINDS)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("delays must be non-negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be at least 1")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt `attempt` (1-based)."""
        delay_ms = self.initial_delay_ms * self.backoff_multiplier ** (attempt - 1)
        return min(delay_ms, self.max_delay_ms) / 1000.0

    def is_retryable(self, error: BaseException) -> bool:
        return isinstance(error, OracleError) and error.kind in self.retryable_kinds


DEFAULT_RETRY_CONFIG = RetryConfig()


def _describe(error: Optional[BaseException]) -> str:
    if isinstance(error, OracleError):
        return error.kind.value
    return type(error).__name__ if error else "unknown"


class RetryPolicy:
    """
    Bounded retry with exponential backoff for transient oracle failures.

    Non-retryable errors are raised after a single attempt. Once
    attempts are exhausted the last error is raised unchanged.

    Example:
        >>> policy = RetryPolicy(RetryConfig(max_attempts=3))
        >>> response = await policy.execute(functools.partial(client.analyze, request))
    """

    def __init__(self, config: RetryConfig = DEFAULT_RETRY_CONFIG, sleep: Sleep = asyncio.sleep):
        """
        Args:
            config: Backoff settings
            sleep: Awaitable sleep (injectable for tests)
        """
        self.config = config
        self._sleep = sleep

    def _log_retry(self, context: str) -> Callable[[RetryCallState], None]:
        def before_sleep(state: RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome else None
            logger.warning(
                "Retrying operation",
                context=context,
                attempt=state.attempt_number,
                max_attempts=self.config.max_attempts,
                delay_s=state.next_action.sleep if state.next_action else None,
                error_kind=_describe(error),
            )

        return before_sleep

    async def execute(self, operation: Callable[[], Awaitable[T]], context: str = "operation") -> T:
        """
        Run `operation`, retrying transient failures.

        Args:
            operation: Zero-argument coroutine factory (called once per attempt)
            context: Label used in logs

        Returns:
            The operation's result

        Raises:
            Exception: The last attempt's error, unchanged
        """
        config = self.config
        attempts = 0

        async def attempt() -> T:
            nonlocal attempts
            attempts += 1
            return await operation()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(config.max_attempts),
            wait=wait_exponential(
                multiplier=config.initial_delay_ms / 1000.0,
                exp_base=config.backoff_multiplier,
                min=0,
                max=config.max_delay_ms / 1000.0,
            ),
            retry=retry_if_exception(config.is_retryable),
            before_sleep=self._log_retry(context),
            sleep=self._sleep,
            reraise=True,
        )

        try:
            result = await retrying(attempt)
        except Exception as e:
            logger.error(
                "Operation failed",
                context=context,
                attempts=attempts,
                retryable=config.is_retryable(e),
                error_kind=_describe(e),
            )
            raise

        if attempts > 1:
            logger.info("Operation succeeded after retry", context=context, attempts=attempts)
        return result


async def retry_on_bad_json(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_BAD_JSON_ATTEMPTS,
    sleep: Sleep = asyncio.sleep,
    delay_s: float = BAD_JSON_RETRY_DELAY_S,
) -> T:
    """
    Re-prompt the oracle when its output cannot be parsed.

    Only malformed-output errors are retried; anything else is raised
    on the spot.

    Args:
        operation: Zero-argument coroutine factory
        max_attempts: Total attempts (default 2)
        sleep: Awaitable sleep (injectable for tests)
        delay_s: Pause between attempts

    Returns:
        The operation's result

    Raises:
        Exception: The last attempt's error, unchanged
    """

    def before_sleep(state: RetryCallState) -> None:
        logger.warning(
            "Oracle output malformed, re-prompting",
            attempt=state.attempt_number,
            max_attempts=max_attempts,
        )

    # tenacity only awaits callables it recognises as coroutine functions
    async def attempt() -> T:
        return await operation()

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(delay_s),
        retry=retry_if_exception(
            lambda e: isinstance(e, OracleError) and e.is_malformed_output
        ),
        before_sleep=before_sleep,
        sleep=sleep,
        reraise=True,
    )
    return await retrying(attempt)
