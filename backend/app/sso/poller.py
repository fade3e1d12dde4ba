"""Caller-side polling policy for the device authorization flow.

The service answers one poll at a time; waiting between polls is the
caller's job.  ``wait_for_authorization`` drives any poll function with an
explicit policy so the loop can be tested with a fake sleep.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable

from app.errors import AuthorizationExpiredError, PollTimeoutError, SSOFlowError

from .service import PollResult, PollStatus

logger = logging.getLogger(__name__)

MIN_INTERVAL_SECONDS = 5.0


@dataclass(frozen=True)
class PollPolicy:
    """Fixed-cadence, bounded polling (5s x 60 attempts ~= 5 minutes)."""
    interval_seconds: float = MIN_INTERVAL_SECONDS
    max_attempts: int = 60
    slow_down_increment: float = 5.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @classmethod
    def from_settings(cls, settings) -> "PollPolicy":
        """Build from the `polling` section of the settings file."""
        return cls(interval_seconds=settings.interval_seconds, max_attempts=settings.max_attempts)

    @property
    def initial_interval(self) -> float:
        return max(self.interval_seconds, MIN_INTERVAL_SECONDS)


def wait_for_authorization(
    poll_fn: Callable[[], PollResult],
    policy: PollPolicy = PollPolicy(),
    sleep: Callable[[float], None] = time.sleep,
) -> PollResult:
    """Poll until the flow is authorized, expired, failed, or out of attempts.

    Sleeps before every attempt, since the user cannot have approved the
    request the instant it was issued.

    Returns:
        The AUTHORIZED poll result.

    Raises:
        AuthorizationExpiredError: The provider expired the device code.
        SSOFlowError: The provider failed the poll.
        PollTimeoutError: ``policy.max_attempts`` polls without a decision.
    """
    interval = policy.initial_interval
    for attempt in range(1, policy.max_attempts + 1):
        sleep(interval)
        result = poll_fn()

        if result.status is PollStatus.AUTHORIZED:
            logger.info("Authorized after %d poll(s)", attempt)
            return result
        if result.status is PollStatus.EXPIRED:
            raise AuthorizationExpiredError()
        if result.status is PollStatus.FAILED:
            raise SSOFlowError(result.error or "Poll failed")
        if result.status is PollStatus.SLOW_DOWN:
            interval = max(interval + policy.slow_down_increment, MIN_INTERVAL_SECONDS)
            logger.debug("Slow down requested; interval now %.1fs", interval)

    raise PollTimeoutError(policy.max_attempts)
