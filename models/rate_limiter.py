"""Adaptive request rate limiting for generation providers.

Requests are tracked per model id and globally in trailing 60s / 1s windows.
Limits start from a per-tier default table and are replaced by provider
reported quotas (``X-RateLimit-*`` headers) while those are fresh.

All state changes happen in synchronous methods, so under asyncio no caller
can observe a half-updated window. The limiter is not safe for use from
several OS threads.
"""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field

from config.settings import RateLimitConfig, TierLimits

logger = logging.getLogger(__name__)

MINUTE_MS = 60_000
SECOND_MS = 1_000
WAIT_BUFFER_MS = 100

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


def _wall_clock_ms() -> float:
    return time.time() * 1000


@dataclass(frozen=True)
class RateLimitHeaders:
    """Quota signals reported by a provider. ``reset`` is epoch milliseconds."""

    limit: int | None = None
    remaining: int | None = None
    reset: float | None = None


@dataclass
class ModelRateLimitState:
    """Sliding window and provider-reported quota for one model id."""

    requests: deque[float] = field(default_factory=deque)
    known_limit: int | None = None
    known_remaining: int | None = None
    reset_timestamp: float | None = None
    last_updated: float = 0.0

    def clear_header_state(self) -> None:
        self.known_limit = None
        self.known_remaining = None
        self.reset_timestamp = None

    @property
    def has_header_state(self) -> bool:
        return (
            self.known_limit is not None
            or self.known_remaining is not None
            or self.reset_timestamp is not None
        )


def _prune(window: deque[float], cutoff: float) -> None:
    while window and window[0] <= cutoff:
        window.popleft()


def _count_since(window: deque[float], cutoff: float) -> tuple[int, float | None]:
    """Count entries newer than ``cutoff``; also return the oldest such entry."""
    count = 0
    oldest = None
    for timestamp in reversed(window):
        if timestamp <= cutoff:
            break
        count += 1
        oldest = timestamp
    return count, oldest


def parse_rate_limit_headers(headers: Mapping[str, str]) -> RateLimitHeaders:
    """Parse ``X-RateLimit-*`` headers, case-insensitively.

    Reset values that look like epoch seconds are converted to milliseconds.
    Unparseable values are ignored.
    """
    lowered = {key.lower(): value for key, value in headers.items()}

    def _int(name: str) -> int | None:
        raw = lowered.get(name)
        if raw is None or raw == "":
            return None
        try:
            return int(float(raw))
        except ValueError:
            logger.debug("Ignoring unparseable %s header: %r", name, raw)
            return None

    reset = _int("x-ratelimit-reset")
    if reset is not None and reset < 10_000_000_000:
        reset *= 1000
    return RateLimitHeaders(
        limit=_int("x-ratelimit-limit"),
        remaining=_int("x-ratelimit-remaining"),
        reset=float(reset) if reset is not None else None,
    )


class RateLimiter:
    """Proactive rate limiter with adaptive, model-specific limits."""

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        clock: Clock = _wall_clock_ms,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._sleep = sleep
        self._model_states: dict[str, ModelRateLimitState] = {}
        self._global_requests: deque[float] = deque()

        logger.info(
            "Rate limiter initialized (global %s rpm / %s rps)",
            self.config.global_requests_per_minute,
            self.config.global_requests_per_second,
        )

    def get_model_tier(self, model_id: str) -> str:
        """Classify a model id into a tier by name fragments.

        The longest matching fragment wins, so 'gpt-4o-mini' is not mistaken
        for 'gpt-4o'.
        """
        lower_id = model_id.lower()
        if ":free" in lower_id or "/free" in lower_id:
            return "free"

        best_tier = "default"
        best_length = 0
        for tier, patterns in self.config.tier_patterns.items():
            for pattern in patterns:
                if pattern in lower_id and len(pattern) > best_length:
                    best_tier = tier
                    best_length = len(pattern)

        if best_tier not in self.config.tiers:
            return "default"
        return best_tier

    def _get_limits(self, model_id: str) -> TierLimits:
        return self.config.tiers[self.get_model_tier(model_id)]

    def _get_state(self, model_id: str) -> ModelRateLimitState:
        state = self._model_states.get(model_id)
        if state is None:
            state = ModelRateLimitState(last_updated=self._clock())
            self._model_states[model_id] = state
        return state

    def _expire_stale_headers(self, state: ModelRateLimitState, now: float) -> None:
        if state.has_header_state and state.last_updated < now - self.config.header_stale_after_ms:
            state.clear_header_state()

    def update_from_headers(self, model_id: str, headers: RateLimitHeaders) -> None:
        """Merge provider-reported quota signals into the model's state."""
        state = self._get_state(model_id)

        if headers.limit is not None:
            state.known_limit = headers.limit
        if headers.remaining is not None:
            state.known_remaining = headers.remaining
        if headers.reset is not None:
            state.reset_timestamp = headers.reset
        state.last_updated = self._clock()

        logger.debug(
            "Updated rate limit state for %s from headers: limit=%s remaining=%s reset=%s",
            model_id,
            state.known_limit,
            state.known_remaining,
            state.reset_timestamp,
        )

    def check_limit(self, model_id: str) -> int:
        """Return how long to wait (ms) before calling ``model_id``; 0 means go."""
        now = self._clock()
        minute_cutoff = now - MINUTE_MS
        second_cutoff = now - SECOND_MS

        state = self._get_state(model_id)
        limits = self._get_limits(model_id)

        _prune(state.requests, minute_cutoff)
        _prune(self._global_requests, minute_cutoff)
        self._expire_stale_headers(state, now)

        if state.known_remaining is not None and state.known_remaining <= 0:
            if state.reset_timestamp is not None and state.reset_timestamp > now:
                wait_ms = int(state.reset_timestamp - now + WAIT_BUFFER_MS)
                logger.warning(
                    "Rate limit exhausted for %s, waiting %sms for reset", model_id, wait_ms
                )
                return wait_ms

        base_limit = state.known_limit if state.known_limit is not None else limits.requests_per_minute
        effective_rpm = int(base_limit * limits.safety_buffer)
        if len(state.requests) >= effective_rpm and state.requests:
            wait_ms = int(state.requests[0] + MINUTE_MS - now + WAIT_BUFFER_MS)
            logger.debug(
                "Per-minute limit reached for %s (%s/%s), wait %sms",
                model_id,
                len(state.requests),
                effective_rpm,
                wait_ms,
            )
            return max(0, wait_ms)

        effective_rps = int(limits.requests_per_second * limits.safety_buffer)
        in_second, oldest_in_second = _count_since(state.requests, second_cutoff)
        if in_second >= effective_rps and oldest_in_second is not None:
            wait_ms = int(oldest_in_second + SECOND_MS - now + WAIT_BUFFER_MS)
            logger.debug(
                "Per-second limit reached for %s (%s/%s), wait %sms",
                model_id,
                in_second,
                effective_rps,
                wait_ms,
            )
            return max(0, wait_ms)

        if len(self._global_requests) >= self.config.global_requests_per_minute:
            wait_ms = int(self._global_requests[0] + MINUTE_MS - now + WAIT_BUFFER_MS)
            logger.debug("Global per-minute limit reached, wait %sms", wait_ms)
            return max(0, wait_ms)

        global_in_second, oldest_global = _count_since(self._global_requests, second_cutoff)
        if global_in_second >= self.config.global_requests_per_second and oldest_global is not None:
            wait_ms = int(oldest_global + SECOND_MS - now + WAIT_BUFFER_MS)
            logger.debug("Global per-second limit reached, wait %sms", wait_ms)
            return max(0, wait_ms)

        return 0

    def record_request(self, model_id: str) -> None:
        """Record that a request to ``model_id`` is being made now."""
        now = self._clock()
        state = self._get_state(model_id)

        state.requests.append(now)
        self._global_requests.append(now)

        if state.known_remaining is not None and state.known_remaining > 0:
            state.known_remaining -= 1

        logger.debug(
            "Request recorded for %s (%s in window, remaining=%s)",
            model_id,
            len(state.requests),
            state.known_remaining,
        )

    async def wait_if_needed(self, model_id: str) -> int:
        """Suspend the caller until ``model_id`` may be called; return the wait in ms.

        Only the calling task is delayed; callers for other models proceed.
        """
        wait_ms = self.check_limit(model_id)
        if wait_ms > 0:
            logger.info("Rate limiting %s: waiting %sms before request", model_id, wait_ms)
            await self._sleep(wait_ms / 1000)
        return wait_ms

    def get_retry_after(self, model_id: str, headers: RateLimitHeaders | None = None) -> int:
        """Backoff (ms) after the provider rejected a request for quota reasons."""
        now = self._clock()

        if headers is not None and headers.reset is not None:
            wait_ms = headers.reset - now
            if wait_ms > 0:
                return int(wait_ms + WAIT_BUFFER_MS)

        state = self._get_state(model_id)
        if state.reset_timestamp is not None:
            wait_ms = state.reset_timestamp - now
            if wait_ms > 0:
                return int(wait_ms + WAIT_BUFFER_MS)

        return self._get_limits(model_id).backoff_ms

    async def wait_after_rejection(
        self, model_id: str, headers: RateLimitHeaders | None = None
    ) -> int:
        """Sleep for ``get_retry_after`` and return the wait in ms."""
        wait_ms = self.get_retry_after(model_id, headers)
        logger.info("Provider rejected %s for quota, backing off %sms", model_id, wait_ms)
        await self._sleep(wait_ms / 1000)
        return wait_ms

    def cleanup(self) -> None:
        """Prune windows, expire stale header data and drop idle models."""
        now = self._clock()
        minute_cutoff = now - MINUTE_MS
        stale_cutoff = now - self.config.header_stale_after_ms

        _prune(self._global_requests, minute_cutoff)

        for model_id in list(self._model_states):
            state = self._model_states[model_id]
            _prune(state.requests, minute_cutoff)

            if state.last_updated < stale_cutoff:
                state.clear_header_state()
                if not state.requests:
                    del self._model_states[model_id]
                    logger.debug("Evicted idle rate limit state for %s", model_id)

    async def run_cleanup_loop(self) -> None:
        """Run ``cleanup`` forever at the configured interval."""
        while True:
            await self._sleep(self.config.cleanup_interval_ms / 1000)
            self.cleanup()

    def get_stats(self) -> dict[str, object]:
        """Current window sizes and known quotas, for operators."""
        models: dict[str, object] = {}
        for model_id, state in self._model_states.items():
            models[model_id] = {
                "tier": self.get_model_tier(model_id),
                "requests_in_window": len(state.requests),
                "known_limit": state.known_limit,
                "known_remaining": state.known_remaining,
                "reset_timestamp": state.reset_timestamp,
            }
        return {
            "global_requests": len(self._global_requests),
            "models": models,
        }


_default_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Return the process-wide limiter shared by all debates."""
    global _default_rate_limiter
    if _default_rate_limiter is None:
        _default_rate_limiter = RateLimiter()
    return _default_rate_limiter
