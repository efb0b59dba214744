"""
RETRY UTILITY
=============

Two flavours of "call it again if it fails", both with a fixed pause between
attempts (no exponential growth):

  with_retry(fn)      - synchronous; used for Tavily search calls on the server.
  RetryController     - asynchronous; wraps one logical client request ("send a
                        message and obtain the full response"). Every attempt
                        runs under a deadline; when the deadline expires the
                        attempt is cancelled and counts as a failure.

Example:
  controller = RetryController(timeout=60.0)
  text = await controller.run(lambda: client.stream_chat(payload))
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

import config


logger = logging.getLogger("Zeno")

# Type variable: the wrappers return whatever the callable returns.
T = TypeVar("T")

TIMEOUT_MESSAGE = "Request timed out. The model is taking too long to respond. Please try again."


def with_retry(
    fn: Callable[[], T],
    max_retries: int = config.MAX_RETRIES,
    delay: float = config.RETRY_DELAY_SECONDS,
) -> T:
    """
    Execute fn(). If it raises, wait `delay` seconds and try again.
    After max_retries attempts (including the first), re-raise the last exception.
    """
    attempts = max(1, int(max_retries))
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as e:
            if attempt == attempts:
                raise
            logger.warning(
                "Attempt %s/%s failed (%s). Retrying in %.1fs: %s",
                attempt,
                attempts,
                getattr(fn, "__name__", "call"),
                delay,
                e,
            )
            time.sleep(delay)
    raise RuntimeError("unreachable")


class RetryExhaustedError(Exception):
    """
    Raised once, after the last attempt failed.

    `timed_out` tells whether the last attempt hit its deadline; `message` is
    the text to show the user; `last_error` is the underlying exception.
    """

    def __init__(self, message: str, attempts: int, timed_out: bool, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.attempts = attempts
        self.timed_out = timed_out
        self.last_error = last_error


class RetryController:
    """
    Bounded retry with a fixed backoff and a per-attempt deadline.

    `is_retryable(exc)` lets the caller stop early on failures that another
    attempt cannot fix (bad request, missing server configuration); those are
    re-raised unchanged.
    """

    def __init__(
        self,
        timeout: float = config.CHAT_TIMEOUT_SECONDS,
        max_attempts: int = config.MAX_RETRIES,
        delay: float = config.RETRY_DELAY_SECONDS,
        is_retryable: Optional[Callable[[BaseException], bool]] = None,
        timeout_message: str = TIMEOUT_MESSAGE,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.timeout = timeout
        self.max_attempts = max(1, int(max_attempts))
        self.delay = delay
        self.is_retryable = is_retryable or (lambda exc: True)
        self.timeout_message = timeout_message
        self._sleep = sleep

    async def run(self, operation: Callable[[], Awaitable[T]], give_up: Optional[Callable[[], bool]] = None) -> T:
        """
        Run operation until it succeeds or the attempts are used up.

        `give_up()` is checked after every failed attempt; when it returns True
        no further attempt is made (e.g. the caller already holds a partial
        result that a fresh attempt would throw away).
        """
        last_error: Optional[BaseException] = None
        timed_out = False
        attempts = 0

        for attempt in range(1, self.max_attempts + 1):
            attempts = attempt
            try:
                return await asyncio.wait_for(operation(), timeout=self.timeout)
            except asyncio.TimeoutError as e:
                last_error, timed_out = e, True
                logger.warning("Attempt %s/%s timed out after %.0fs", attempt, self.max_attempts, self.timeout)
            except Exception as e:
                if not self.is_retryable(e):
                    raise
                last_error, timed_out = e, False
                logger.warning("Attempt %s/%s failed: %s", attempt, self.max_attempts, e)

            if give_up is not None and give_up():
                logger.info("Not retrying after attempt %s/%s", attempt, self.max_attempts)
                break
            if attempt < self.max_attempts:
                await self._sleep(self.delay)

        if timed_out:
            message = self.timeout_message
        else:
            message = str(getattr(last_error, "message", None) or last_error or "Failed to get response")
        logger.error("Request failed after %s attempts: %s", attempts, message)
        raise RetryExhaustedError(message, attempts, timed_out, last_error)
