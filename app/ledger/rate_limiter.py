# ============================================================================
# Burn Bridge v1.0.0
# Submission Pacing & Token Bucket Rate Limiter
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Controls RPC request frequency and mint submission pacing
#
# SOVEREIGN MANDATE:
#   - One signing authority, one in-flight transaction
#   - Mandatory pacing delay between mint submissions
#   - Exponential backoff on HTTP 429 / 5xx / timeouts
#
# ============================================================================

import random
import time
import threading
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class TokenBucket:
    """
    Thread-Safe Token Bucket Rate Limiter.

    Reliability Level: SOVEREIGN TIER
    Thread Safety: Mutex lock on consume() and _refill()

    Example Usage:
        bucket = TokenBucket(capacity=40, refill_rate=4.0)
        if bucket.consume(correlation_id="abc-123"):
            response = rpc.call()
        else:
            time.sleep(bucket.get_backoff_delay())
    """

    # Public RPC endpoints commonly allow ~40 requests per 10 seconds
    DEFAULT_CAPACITY = 40
    DEFAULT_REFILL_RATE = 4.0

    BACKOFF_BASE_SECONDS = 1.0
    BACKOFF_MULTIPLIER = 2.0
    BACKOFF_MAX_SECONDS = 60.0

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        refill_rate: float = DEFAULT_REFILL_RATE,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize TokenBucket with thread-safe mutex.

        Args:
            capacity: Maximum tokens in bucket
            refill_rate: Tokens added per second
            clock: Monotonic clock (injectable for tests)
        """
        self.capacity = capacity
        self.refill_rate = refill_rate
        self._clock = clock

        self._tokens = float(capacity)
        self._last_refill = clock()
        self._consecutive_failures = 0

        self._lock = threading.Lock()

        logger.info(
            f"[BRG-RATE] TokenBucket initialized | "
            f"capacity={capacity} | refill_rate={refill_rate}/s"
        )

    def consume(
        self,
        tokens: int = 1,
        correlation_id: Optional[str] = None
    ) -> bool:
        """
        Attempt to consume tokens from bucket (thread-safe).

        Args:
            tokens: Number of tokens to consume
            correlation_id: Audit trail identifier

        Returns:
            True if tokens consumed successfully, False if insufficient
        """
        with self._lock:
            self._refill()

            if self._tokens >= tokens:
                self._tokens -= tokens
                self._consecutive_failures = 0
                logger.debug(
                    f"[BRG-RATE] Token consumed | "
                    f"remaining={self._tokens:.1f}/{self.capacity} | "
                    f"correlation_id={correlation_id}"
                )
                return True

            self._consecutive_failures += 1
            backoff = self._get_backoff_delay_unlocked()

            logger.warning(
                f"[BRG-RATE-001] Rate limit - insufficient tokens | "
                f"requested={tokens} | available={self._tokens:.1f} | "
                f"consecutive_failures={self._consecutive_failures} | "
                f"backoff_delay={backoff:.1f}s | "
                f"correlation_id={correlation_id}"
            )
            return False

    def seconds_until_available(self, tokens: int = 1) -> float:
        """Seconds until `tokens` can be consumed (0.0 if available now)."""
        with self._lock:
            self._refill()
            missing = tokens - self._tokens
            if missing <= 0:
                return 0.0
            return missing / self.refill_rate

    def _refill(self) -> None:
        """Refill tokens based on elapsed time (called within lock)."""
        now = self._clock()
        elapsed = now - self._last_refill
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_rate)
        self._last_refill = now

    def _get_backoff_delay_unlocked(self) -> float:
        delay = self.BACKOFF_BASE_SECONDS * (
            self.BACKOFF_MULTIPLIER ** self._consecutive_failures
        )
        return min(delay, self.BACKOFF_MAX_SECONDS)

    def get_backoff_delay(self) -> float:
        """
        Exponential backoff delay based on consecutive failures.

        Formula: min(base * (multiplier ^ failures), max_delay)
        """
        with self._lock:
            return self._get_backoff_delay_unlocked()



# ============================================================================
# Submission Pacer
# ============================================================================

class SubmissionPacer:
    """
    Enforces a minimum interval between mint submissions.

    Blocks the caller until the pacing interval since the previous
    submission has elapsed and the token bucket can supply a token.
    The first submission of a run is never delayed.

    Reliability Level: SOVEREIGN TIER
    Side Effects: Sleeps the calling thread

    Example Usage:
        pacer = SubmissionPacer(min_interval_seconds=2.0)
        for record in pending:
            pacer.wait(correlation_id)
            submit(record)
    """

    def __init__(
        self,
        min_interval_seconds: float = 2.0,
        bucket: Optional[TokenBucket] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.min_interval_seconds = min_interval_seconds
        self.bucket = bucket
        self._clock = clock
        self._sleep = sleep
        self._last_submission: Optional[float] = None
        self.total_waited = 0.0

    def wait(self, correlation_id: Optional[str] = None) -> float:
        """
        Block until the next submission is allowed.

        Returns:
            Seconds spent waiting
        """
        waited = 0.0

        if self._last_submission is not None:
            remaining = self.min_interval_seconds - (self._clock() - self._last_submission)
            if remaining > 0:
                logger.debug(
                    f"[BRG-RATE] Pacing submission | wait={remaining:.2f}s | "
                    f"correlation_id={correlation_id}"
                )
                self._sleep(remaining)
                waited += remaining

        if self.bucket is not None:
            while not self.bucket.consume(correlation_id=correlation_id):
                delay = max(self.bucket.seconds_until_available(), 0.05)
                self._sleep(delay)
                waited += delay

        self._last_submission = self._clock()
        self.total_waited += waited
        return waited


# ============================================================================
# Exponential Backoff Helper
# ============================================================================

class ExponentialBackoff:
    """
    Exponential Backoff Calculator for RPC retries.

    Reliability Level: SOVEREIGN TIER
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        multiplier: float = 2.0,
        max_delay: float = 30.0,
        jitter: float = 0.25
    ):
        """
        Initialize backoff calculator.

        Args:
            base_delay: Initial delay in seconds
            multiplier: Delay multiplier per attempt
            max_delay: Maximum delay cap in seconds
            jitter: Random jitter factor (0-1)
        """
        self.base_delay = base_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self.jitter = jitter
        self._attempt = 0

    def get_delay(self) -> float:
        """Get next backoff delay and increment attempt counter."""
        delay = self.base_delay * (self.multiplier ** self._attempt)
        delay = min(delay, self.max_delay)

        if self.jitter > 0:
            delay += delay * self.jitter * random.random()

        self._attempt += 1
        return delay

    def reset(self) -> None:
        """Reset attempt counter after successful request."""
        self._attempt = 0
