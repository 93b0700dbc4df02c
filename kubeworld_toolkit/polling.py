"""Poll-until-ready helpers shared by every readiness check.

SSH reachability, K3s readiness, Fleet CRD presence, kubeconfig availability and
Ansible recovery windows all reduce to the same loop: run a check, sleep a fixed
interval, give up after a fixed number of attempts. The sleep only happens
*between* attempts so a budget of ``n`` attempts costs at most
``initial_delay + (n - 1) * interval`` seconds of waiting.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from .errors import PollTimeout

Check = Callable[[], object]
RetryHook = Callable[[int, int], None]


@dataclass(slots=True, frozen=True)
class PollResult:
    succeeded: bool
    attempts: int

    def __bool__(self) -> bool:
        return self.succeeded


def poll_until(
    check: Check,
    *,
    interval: float,
    max_attempts: int,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: RetryHook | None = None,
    initial_delay: float = 0,
) -> PollResult:
    """Call ``check`` until it returns a truthy value or attempts run out.

    ``on_retry(attempt, max_attempts)`` runs after every failed attempt that will be
    retried. Exceptions raised by ``check`` are not swallowed.
    """

    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    if interval < 0 or initial_delay < 0:
        raise ValueError("interval and initial_delay must not be negative")

    if initial_delay:
        sleep(initial_delay)

    for attempt in range(1, max_attempts + 1):
        if check():
            return PollResult(True, attempt)
        if attempt == max_attempts:
            break
        if on_retry is not None:
            on_retry(attempt, max_attempts)
        sleep(interval)
    return PollResult(False, max_attempts)


def wait_until(
    check: Check,
    *,
    description: str,
    interval: float,
    max_attempts: int,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: RetryHook | None = None,
    initial_delay: float = 0,
) -> PollResult:
    """Like :func:`poll_until` but raise :class:`PollTimeout` when unsuccessful."""

    result = poll_until(
        check,
        interval=interval,
        max_attempts=max_attempts,
        sleep=sleep,
        on_retry=on_retry,
        initial_delay=initial_delay,
    )
    if not result.succeeded:
        raise PollTimeout(description, max_attempts, interval)
    return result


def attempts_for(timeout: float, interval: float) -> int:
    """Convert a wall-clock budget into an attempt count for :func:`poll_until`."""

    if interval <= 0:
        raise ValueError("interval must be positive")
    return max(1, math.ceil(timeout / interval))
