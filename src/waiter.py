"""Condition waiter: observe a named resource until a predicate holds.

The observation stream is consumed in a sub-task that is raced against the
deadline with asyncio.wait_for. Whichever finishes first wins; on timeout the
observation task is cancelled and its stream closed before WaitTimeout is
raised, so no poll loop outlives the call.
"""

import asyncio
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass
from typing import Optional

from cluster.errors import ApiError
from cluster.resources import ObservedResource
from conditions import Condition, describe

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0


class WaitError(Exception):
    """Base exception for condition waits."""

    def __init__(self, name: str, message: str, last_observed: Optional[ObservedResource] = None):
        self.name = name
        self.last_observed = last_observed
        super().__init__(message)


class WaitTimeout(WaitError):
    """Deadline elapsed before the condition held."""

    def __init__(self, name: str, timeout: float, condition: str,
                 last_observed: Optional[ObservedResource] = None):
        self.timeout = timeout
        self.condition = condition
        state = f"phase={last_observed.phase}" if last_observed else "not observed"
        super().__init__(
            name,
            f"Timed out after {timeout}s waiting for {condition} on {name} ({state})",
            last_observed,
        )


class ObservationStreamError(WaitError):
    """Observation stream failed or ended before the condition held."""


@dataclass(frozen=True)
class WaitOutcome:
    """Result of a satisfied wait."""
    satisfied: bool
    elapsed: float
    last_observed: Optional[ObservedResource]


class _Observation:
    """Latest state seen by the observation task, read after cancellation."""

    def __init__(self):
        self.last: Optional[ObservedResource] = None
        self.count = 0
        self.satisfied = False


async def _observe_until(handle, name: str, predicate: Condition, poll_interval: float,
                         seen: _Observation, once: bool = False) -> Optional[ObservedResource]:
    """Consume the stream until predicate holds (or after one observation if once)."""
    stream = handle.observe(name, poll_interval=poll_interval)
    try:
        async with aclosing(stream) as observations:
            async for observed in observations:
                seen.last = observed
                seen.count += 1
                if predicate(observed):
                    seen.satisfied = True
                    return observed
                if once:
                    return observed
                logger.debug(
                    f"[wait] {name} not yet {describe(predicate)} "
                    f"(phase={observed.phase if observed else 'absent'})"
                )
    except ApiError as e:
        raise ObservationStreamError(name, f"Observation of {name} failed: {e}", seen.last) from e
    except TimeoutError as e:
        # A read timing out inside the stream; the deadline reaches this task as cancellation
        raise ObservationStreamError(name, f"Observation of {name} timed out: {e}", seen.last) from e
    raise ObservationStreamError(name, f"Observation stream for {name} ended before condition held", seen.last)


async def await_condition(
    handle,
    name: str,
    predicate: Condition,
    timeout: float,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> WaitOutcome:
    """Wait until predicate holds for the named resource.

    A timeout of zero or less leaves no time to wait: the first observation
    decides, and that single read is bounded only by the handle's request
    timeout.

    Args:
        handle: Object with an observe(name, poll_interval) async iterator
        name: Resource name
        predicate: Pure function of Optional[ObservedResource]
        timeout: Seconds before giving up; control returns no later than this
        poll_interval: Seconds between observations

    Returns:
        WaitOutcome with the observation that satisfied the predicate

    Raises:
        WaitTimeout: Deadline elapsed first
        ObservationStreamError: The stream failed or ended
    """
    seen = _Observation()
    start = time.monotonic()

    if timeout <= 0:
        logger.debug(f"[wait] No wait budget, checking {describe(predicate)} on {name} once")
        observed = await _observe_until(handle, name, predicate, poll_interval, seen, once=True)
        if not seen.satisfied:
            raise WaitTimeout(name, timeout, describe(predicate), observed)
        return WaitOutcome(satisfied=True, elapsed=time.monotonic() - start, last_observed=observed)

    logger.debug(f"[wait] Waiting up to {timeout}s for {describe(predicate)} on {name}")
    try:
        observed = await asyncio.wait_for(
            _observe_until(handle, name, predicate, poll_interval, seen),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        elapsed = time.monotonic() - start
        logger.debug(f"[wait] Timeout on {name} after {elapsed:.2f}s ({seen.count} observations)")
        raise WaitTimeout(name, timeout, describe(predicate), seen.last) from None

    elapsed = time.monotonic() - start
    logger.debug(f"[wait] {name} satisfied {describe(predicate)} after {elapsed:.2f}s")
    return WaitOutcome(satisfied=True, elapsed=elapsed, last_observed=observed)
