"""Bounded exponential-backoff polling.

Every cloud call that may fail transiently runs through :func:`poll` or
:func:`call`. A check reports one of three outcomes:

- ``Done(value)``: finished, return the value.
- ``Retry(error)``: recoverable, wait and try again.
- ``Fail(error)``: terminal, raise immediately.

Example:
    from efsctl.retry import Backoff, Done, Retry, poll

    def check():
        state = describe()
        return Done(state) if state == "available" else Retry()

    poll(check, Backoff(delay=5.0, factor=1.2, steps=10), description="file system")

When attempts run out, the last recoverable error is raised as-is.
Callers cannot tell exhaustion apart from a single failure.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from botocore.exceptions import ClientError
from loguru import logger
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from efsctl.exceptions import CancelledError, NotAvailableError

log = logger.bind(component="retry")


@dataclass(frozen=True, slots=True)
class Backoff:
    """Retry policy.

    Attributes:
        delay: Seconds to wait after the first failed attempt.
        factor: Multiplier applied to the delay after each attempt.
        steps: Maximum number of attempts, including the first.
    """

    delay: float
    factor: float
    steps: int

    def __post_init__(self) -> None:
        if self.steps < 1:
            raise ValueError(f"Backoff steps must be >= 1, got {self.steps}")
        if self.delay < 0 or self.factor < 1:
            raise ValueError(f"Invalid backoff delay={self.delay} factor={self.factor}")


# =============================================================================
# Poll Outcomes
# =============================================================================


@dataclass(frozen=True, slots=True)
class Done[T]:
    value: T


@dataclass(frozen=True, slots=True)
class Retry:
    error: Exception | None = None


@dataclass(frozen=True, slots=True)
class Fail:
    error: Exception


type PollOutcome[T] = Done[T] | Retry | Fail


class _Pending(Exception):
    """Internal signal that the check asked for another attempt."""

    def __init__(self, error: Exception | None) -> None:
        super().__init__(str(error) if error else "not ready")
        self.error = error


def _log_retry(description: str, backoff: Backoff) -> Callable[[RetryCallState], None]:
    def before_sleep(state: RetryCallState) -> None:
        delay = state.next_action.sleep if state.next_action else 0.0
        reason = state.outcome.exception() if state.outcome else None
        log.warning(
            "Retry {attempt}/{steps} for {description} after {reason}. Waiting {delay:.1f}s...",
            attempt=state.attempt_number,
            steps=backoff.steps,
            description=description,
            reason=reason,
            delay=delay,
        )

    return before_sleep


def poll[T](
    check: Callable[[], PollOutcome[T]],
    backoff: Backoff,
    *,
    description: str = "operation",
    cancel: threading.Event | None = None,
) -> T:
    """Run ``check`` until it is done, fails, or the policy is exhausted.

    Args:
        check: Performs one attempt and reports its outcome.
        backoff: Delay, growth factor and attempt budget.
        description: Used in log lines and error messages.
        cancel: Optional event; when set, aborts before the next attempt.

    Returns:
        The value carried by ``Done``.

    Raises:
        CancelledError: If ``cancel`` was set between attempts.
        NotAvailableError: If attempts ran out and the last one carried no error.
        Exception: The error from ``Fail``, or the last ``Retry`` error on exhaustion.
    """
    last_error: Exception | None = None

    def attempt() -> T:
        nonlocal last_error
        if cancel is not None and cancel.is_set():
            raise CancelledError(description)

        match check():
            case Done(value=value):
                return value
            case Retry(error=error):
                last_error = error
                raise _Pending(error)
            case Fail(error=error):
                raise error
            case other:
                raise TypeError(f"Unexpected poll outcome: {other!r}")

    retrying = Retrying(
        stop=stop_after_attempt(backoff.steps),
        wait=wait_exponential(multiplier=backoff.delay, exp_base=backoff.factor),
        retry=retry_if_exception_type(_Pending),
        before_sleep=_log_retry(description, backoff),
        sleep=cancel.wait if cancel is not None else time.sleep,
        reraise=True,
    )

    try:
        return retrying(attempt)
    except _Pending:
        if last_error is not None:
            raise last_error from None
        raise NotAvailableError(description) from None


def call[T](
    fn: Callable[[], T],
    backoff: Backoff,
    *,
    description: str = "operation",
    retry_on: type[Exception] | tuple[type[Exception], ...] = ClientError,
    terminal: Callable[[Exception], bool] | None = None,
    cancel: threading.Event | None = None,
) -> T:
    """Call ``fn`` with retries on ``retry_on`` exceptions.

    Exceptions for which ``terminal`` returns True are raised without
    retrying, as is anything not matching ``retry_on``.
    """

    def check() -> PollOutcome[T]:
        try:
            return Done(fn())
        except retry_on as e:
            if terminal is not None and terminal(e):
                return Fail(e)
            return Retry(e)

    return poll(check, backoff, description=description, cancel=cancel)


# =============================================================================
# Provider Error Helpers
# =============================================================================


def error_code(exc: BaseException) -> str:
    """Return the provider error code of a botocore ClientError, or ''."""
    if isinstance(exc, ClientError):
        return str(exc.response.get("Error", {}).get("Code", ""))
    return ""


def has_code(*codes: str) -> Callable[[Exception], bool]:
    """Create a predicate matching ClientErrors with any of ``codes``."""
    wanted = frozenset(codes)

    def predicate(e: Exception) -> bool:
        return error_code(e) in wanted

    return predicate
