"""Utility functions for host provisioning."""
import logging
import re
import shlex
import threading
import time
from dataclasses import dataclass
from ipaddress import ip_address
from typing import Callable, Optional

from tenacity import (
    RetryError,
    Retrying,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    stop_when_event_set,
    wait_fixed,
)

from hostforge.config import Config
from .errors import ConfigurationError, WaitTimeoutError

logger = logging.getLogger("provision.utils")

HOSTNAME_LABEL_RE = re.compile(r'^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$')


@dataclass(frozen=True)
class WaitPolicy:
    """Bounds for a polling loop.

    Attributes:
        interval: Seconds to sleep between probe calls
        max_attempts: Maximum number of probe calls
        timeout: Optional overall budget in seconds
    """
    interval: float = 3.0
    max_attempts: int = 60
    timeout: Optional[float] = None

    @classmethod
    def default(cls) -> 'WaitPolicy':
        return cls(interval=Config.WAIT_INTERVAL, max_attempts=Config.WAIT_MAX_ATTEMPTS)

    @classmethod
    def lock_default(cls) -> 'WaitPolicy':
        """Policy for waiting on a package manager lock.

        The lock wait is bounded by time; the attempt budget only has to be
        large enough never to be the limiting factor.
        """
        interval = Config.LOCK_WAIT_INTERVAL
        attempts = int(Config.LOCK_WAIT_TIMEOUT / interval) + 1 if interval > 0 else Config.WAIT_MAX_ATTEMPTS
        return cls(interval=interval, max_attempts=max(attempts, 1), timeout=Config.LOCK_WAIT_TIMEOUT)


def wait_for(
    probe: Callable[[], bool],
    policy: Optional[WaitPolicy] = None,
    cancel_event: Optional[threading.Event] = None,
    description: str = "condition",
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Call ``probe`` until it returns a truthy value.

    Args:
        probe: Side-effect-safe check, called repeatedly
        policy: Interval and bounds (defaults to WaitPolicy.default())
        cancel_event: Checked between calls; stops the loop when set
        description: What is being waited for, used in logs and errors
        sleep: Sleep function, replaceable in tests

    Returns:
        int: Number of probe calls it took

    Raises:
        WaitTimeoutError: If the bounds are exhausted or the wait is cancelled
    """
    policy = policy or WaitPolicy.default()
    stop = stop_after_attempt(policy.max_attempts)
    if policy.timeout is not None:
        stop = stop | stop_after_delay(policy.timeout)
    if cancel_event is not None:
        stop = stop | stop_when_event_set(cancel_event)

    def _log_retry(retry_state):
        logger.debug("Still waiting for %s (attempt %d/%d)",
                     description, retry_state.attempt_number, policy.max_attempts)

    attempts = 0

    def _probe():
        nonlocal attempts
        attempts += 1
        return probe()

    retrying = Retrying(
        stop=stop,
        wait=wait_fixed(policy.interval),
        retry=retry_if_result(lambda ok: not ok),
        before_sleep=_log_retry,
        sleep=sleep,
    )
    try:
        retrying(_probe)
    except RetryError:
        cancelled = cancel_event is not None and cancel_event.is_set()
        raise WaitTimeoutError(description, attempts, cancelled=cancelled) from None
    return attempts


def quote(value: str) -> str:
    """Quote a value for interpolation into a remote shell command."""
    return shlex.quote(str(value))


def validate_hostname(hostname: str) -> None:
    """Raise ConfigurationError unless ``hostname`` is a DNS name, dotted or not.

    IP addresses are rejected even though their labels look valid.
    """
    labels = (hostname or '').split('.')
    if len(hostname or '') <= 253 and all(HOSTNAME_LABEL_RE.match(label) for label in labels):
        try:
            ip_address(hostname)
        except ValueError:
            return
    raise ConfigurationError(f"invalid hostname: {hostname!r}")
