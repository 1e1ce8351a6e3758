"""Exponential-backoff retry for calls to the LLM and to tool backends.

Thin layer over tenacity that takes its settings from a RetryPolicy value
instead of decorator arguments, so every call site can be handed its own
policy (and tests can hand in a zero-delay one).

Timing for attempts=3, initial_delay=1.0, backoff_factor=2.0:

    attempt 1 -> fails -> wait 1.0s
    attempt 2 -> fails -> wait 2.0s
    attempt 3 -> fails -> the attempt 3 exception is re-raised as-is
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from changelog_agent.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class RetryPolicy(BaseModel):
    """Retry settings for one call site.

    Attributes:
        attempts: Total number of attempts, including the first one
        initial_delay: Seconds to wait before the second attempt
        backoff_factor: Multiplier applied to the delay after each retry
    """

    model_config = ConfigDict(frozen=True)

    attempts: int = Field(3, ge=1)
    initial_delay: float = Field(1.0, ge=0.0)
    backoff_factor: float = Field(2.0, ge=1.0)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "call_retrying",
        attempt=retry_state.attempt_number,
        wait_seconds=retry_state.next_action.sleep if retry_state.next_action else 0.0,
        error=str(exc),
        error_type=type(exc).__name__,
    )


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run ``operation`` under ``policy``.

    Args:
        operation: Zero-argument callable returning an awaitable, such as
                   a coroutine function or ``lambda: client.call(x)``
        policy: Attempt count and backoff settings
        retry_on: Exception types worth retrying; anything else propagates
                  on the first occurrence
        sleep: Awaitable used for the backoff delay

    Returns:
        Whatever ``operation`` returns on its first successful attempt

    Raises:
        The exception from the last attempt, unchanged, once all attempts
        have failed.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.attempts),
        wait=wait_exponential(
            multiplier=policy.initial_delay,
            exp_base=policy.backoff_factor,
        ),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await operation()
    raise AssertionError("AsyncRetrying stopped without an outcome")
