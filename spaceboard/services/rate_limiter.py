"""Per-endpoint rate limiter with exponential backoff and a circuit breaker.

Coordinates every outbound origin call so the dashboard never trips the
third-party APIs' own limits.  Each logical endpoint name ("open-notify",
"launch-library", ...) owns one :class:`RateLimitState`.

Admission check, in order:

    1. Circuit breaker open?  Reject until the cooldown has elapsed, then
       move to half-open: exactly one probe is admitted and the failure
       count restarts at zero.  A success closes the breaker; a failure
       re-opens it immediately.
    2. Inside a backoff period?  Reject with the remaining backoff.
    3. Sliding 60 s window expired?  Restart the request counter.
    4. Counter at the per-minute limit?  Reject with the window remainder.
    5. Otherwise count the request and admit it.

Backoff after the n-th consecutive failure is
``min(initial * multiplier ** (n - 1), max)`` plus up to 10 % jitter, and
doubled when the origin answered 429.

The whole state map is written to an ``IStorageBackend`` record after
every mutation and reloaded at construction, so backoffs and open
breakers survive a restart.  Persistence is best effort: failures are
logged and the in-memory state stays authoritative.  A disk-backed store
is written from a background task in a worker thread; bursts of mutations
collapse into one write of the latest snapshot, and :meth:`flush` waits
for it.

All mutations are synchronous, so under cooperative scheduling a
check-then-update sequence can never interleave with another caller's.
"""

from __future__ import annotations

import asyncio
import contextlib
import random
from typing import Any, Awaitable, Callable, TypeVar

import structlog
from pydantic import TypeAdapter, ValidationError

from spaceboard.interfaces.storage_backend import IStorageBackend
from spaceboard.models.cache import RateLimitPolicy, RateLimitResult, RateLimitState
from spaceboard.providers.storage.memory_storage import MemoryStorageBackend
from spaceboard.utils.clock import Clock, now_ms
from spaceboard.utils.errors import CircuitOpenError, RateLimitError, StorageError
from spaceboard.utils.logging import get_logger

_T = TypeVar("_T")

STATE_KEY = "rate-limit-state"

_REASON_CIRCUIT_OPEN = "Circuit breaker open due to repeated failures"
_REASON_PROBE_PENDING = "Circuit breaker half-open, probe request in flight"
_REASON_RATE_LIMIT = "Rate limit exceeded"

# Used when a rejection carries no retry hint.
_FALLBACK_RETRY_MS = 1_000
_TOO_MANY_REQUESTS = 429

_STATE_MAP = TypeAdapter(dict[str, RateLimitState])

RetryCallback = Callable[[int, int], Any]
Sleep = Callable[[float], Awaitable[Any]]


class RateLimiter:
    """Sliding-window limiter, backoff and circuit breaker keyed by endpoint.

    Parameters
    ----------
    policy:
        Limits, backoff and breaker tunables.
    backend:
        Record store the state map is persisted to.  A private in-memory
        store when omitted, i.e. no persistence across restarts.
    clock:
        Epoch-millisecond time source.
    sleep:
        Coroutine used to wait out rejections inside :meth:`with_rate_limit`.
        Takes seconds, like :func:`asyncio.sleep`.
    sweep_interval_s:
        Period of the background sweeper started by :meth:`start`.
    """

    def __init__(
        self,
        policy: RateLimitPolicy | None = None,
        backend: IStorageBackend | None = None,
        clock: Clock = now_ms,
        sleep: Sleep = asyncio.sleep,
        sweep_interval_s: float = 60.0,
    ) -> None:
        self._policy = policy or RateLimitPolicy()
        self._backend = backend or MemoryStorageBackend(prefix="spaceboard_rate_limit_")
        self._clock = clock
        self._sleep = sleep
        self._sweep_interval_s = sweep_interval_s
        self._sweeper: asyncio.Task[None] | None = None
        self._flusher: asyncio.Task[None] | None = None
        self._dirty = False
        self._logger: structlog.BoundLogger = get_logger(__name__)
        self._state: dict[str, RateLimitState] = self._load_state()

    @property
    def policy(self) -> RateLimitPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load_state(self) -> dict[str, RateLimitState]:
        try:
            raw = self._backend.read(STATE_KEY)
            if raw is None:
                return {}
            state = _STATE_MAP.validate_json(raw)
        except (StorageError, ValidationError) as exc:
            self._logger.error("rate_limit_state_load_failed", error=str(exc))
            return {}
        self._logger.debug("rate_limit_state_loaded", endpoints=len(state))
        return state

    def _snapshot(self) -> str:
        return _STATE_MAP.dump_json(self._state).decode("utf-8")

    def _save_state(self) -> None:
        if self._backend.blocking_io:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
            if loop is not None:
                self._dirty = True
                if self._flusher is None or self._flusher.done():
                    self._flusher = loop.create_task(self._flush_pending())
                return

        try:
            self._backend.write(STATE_KEY, self._snapshot())
        except StorageError as exc:
            self._logger.error("rate_limit_state_save_failed", error=str(exc))

    async def _flush_pending(self) -> None:
        while self._dirty:
            self._dirty = False
            try:
                await self._backend.write_async(STATE_KEY, self._snapshot())
            except StorageError as exc:
                self._logger.error("rate_limit_state_save_failed", error=str(exc))

    async def flush(self) -> None:
        """Wait until every state change so far has reached the backend."""
        while self._flusher is not None and not self._flusher.done():
            await self._flusher

    def _get_or_create(self, endpoint: str) -> RateLimitState:
        state = self._state.get(endpoint)
        if state is None:
            state = RateLimitState(window_start=self._clock())
            self._state[endpoint] = state
        return state

    # ------------------------------------------------------------------
    # Backoff
    # ------------------------------------------------------------------

    def _calculate_backoff(self, failure_count: int) -> int:
        policy = self._policy
        backoff = min(
            policy.initial_backoff_ms * policy.backoff_multiplier ** (failure_count - 1),
            policy.max_backoff_ms,
        )
        jitter = random.random() * 0.1 * backoff
        return int(backoff + jitter)

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def check_rate_limit(self, endpoint: str) -> RateLimitResult:
        """Decide whether a request to *endpoint* may be sent now.

        An admitted request is counted against the window immediately.
        """
        state = self._get_or_create(endpoint)
        policy = self._policy
        now = self._clock()

        if state.circuit_breaker_open:
            reopen_at = state.circuit_breaker_opened_at + policy.circuit_breaker_timeout_ms
            if now < reopen_at:
                return RateLimitResult(
                    allowed=False, retry_after=reopen_at - now, reason=_REASON_CIRCUIT_OPEN
                )
            state.circuit_breaker_open = False
            state.half_open = True
            state.probe_started_at = 0
            state.failure_count = 0
            self._logger.info("circuit_breaker_half_open", endpoint=endpoint)
            self._save_state()

        if state.half_open and state.probe_started_at:
            # A probe that never reported back stops blocking after one cooldown.
            probe_deadline = state.probe_started_at + policy.circuit_breaker_timeout_ms
            if now < probe_deadline:
                return RateLimitResult(
                    allowed=False, retry_after=probe_deadline - now, reason=_REASON_PROBE_PENDING
                )

        if now < state.backoff_until:
            return RateLimitResult(
                allowed=False,
                retry_after=state.backoff_until - now,
                reason=f"Backoff period active (attempt {state.failure_count})",
            )

        if now - state.window_start >= policy.window_ms:
            state.request_count = 0
            state.window_start = now

        if state.request_count >= policy.max_requests_per_minute:
            return RateLimitResult(
                allowed=False,
                retry_after=max(0, state.window_start + policy.window_ms - now),
                reason=_REASON_RATE_LIMIT,
            )

        state.request_count += 1
        if state.half_open:
            state.probe_started_at = now
        self._save_state()
        return RateLimitResult(allowed=True)

    def record_success(self, endpoint: str) -> None:
        """Reset failures and backoff, and close the breaker if it was tripped."""
        state = self._get_or_create(endpoint)
        if state.failure_count > 0:
            self._logger.debug("rate_limit_failures_reset", endpoint=endpoint)
        if state.circuit_breaker_open or state.half_open:
            self._logger.info("circuit_breaker_closed", endpoint=endpoint)

        state.failure_count = 0
        state.backoff_until = 0
        state.circuit_breaker_open = False
        state.half_open = False
        state.probe_started_at = 0
        self._save_state()

    def record_failure(self, endpoint: str, status_code: int | None = None) -> None:
        """Count a failure, push the backoff forward and maybe trip the breaker."""
        state = self._get_or_create(endpoint)
        now = self._clock()

        state.failure_count += 1
        state.last_failure = now
        backoff = self._calculate_backoff(state.failure_count)
        if status_code == _TOO_MANY_REQUESTS:
            backoff *= 2
        state.backoff_until = max(state.backoff_until, now + backoff)

        self._logger.warning(
            "rate_limit_failure_recorded",
            endpoint=endpoint,
            failures=state.failure_count,
            backoff_ms=backoff,
            status_code=status_code,
        )

        if state.half_open or state.failure_count >= self._policy.circuit_breaker_threshold:
            state.circuit_breaker_open = True
            state.circuit_breaker_opened_at = now
            self._logger.warning(
                "circuit_breaker_opened",
                endpoint=endpoint,
                failures=state.failure_count,
                probe_failed=state.half_open,
            )
            state.half_open = False
            state.probe_started_at = 0

        self._save_state()

    async def with_rate_limit(
        self,
        endpoint: str,
        operation: Callable[[], Awaitable[_T]],
        max_retries: int = 3,
        on_retry: RetryCallback | None = None,
    ) -> _T:
        """Run *operation* under the limiter, retrying up to *max_retries* times.

        A local rejection waits out its ``retry_after`` (notifying *on_retry*
        with the attempt number and the wait in milliseconds) before trying
        again.  An operation failure is recorded, with the HTTP status taken
        from the exception's ``status_code`` attribute when present, and
        retried; the next check then enforces the new backoff.

        Raises
        ------
        RateLimitError
            When the final attempt is rejected locally.
            :class:`CircuitOpenError` when the breaker caused the rejection.
        Exception
            Whatever the operation raised on its final attempt.
        """
        attempt = 0
        while attempt <= max_retries:
            result = self.check_rate_limit(endpoint)

            if not result.allowed:
                if attempt >= max_retries:
                    self._logger.warning(
                        "rate_limit_rejected", endpoint=endpoint, reason=result.reason
                    )
                    error_cls = (
                        CircuitOpenError
                        if result.reason in (_REASON_CIRCUIT_OPEN, _REASON_PROBE_PENDING)
                        else RateLimitError
                    )
                    raise error_cls(
                        message=f"Rate limit exceeded for {endpoint}: {result.reason}",
                        provider_name=endpoint,
                        endpoint=endpoint,
                        retry_after_ms=result.retry_after,
                        reason=result.reason,
                    )

                retry_after = result.retry_after or _FALLBACK_RETRY_MS
                if on_retry is not None:
                    on_retry(attempt + 1, retry_after)
                self._logger.info(
                    "rate_limit_waiting",
                    endpoint=endpoint,
                    retry_after_ms=retry_after,
                    attempt=attempt + 1,
                    max_retries=max_retries,
                )
                await self._sleep(retry_after / 1000)
                attempt += 1
                continue

            try:
                value = await operation()
            except Exception as exc:
                self.record_failure(endpoint, status_code=getattr(exc, "status_code", None))
                if attempt >= max_retries:
                    raise
                attempt += 1
                continue

            self.record_success(endpoint)
            return value

        raise RateLimitError(
            message=f"Max retries exceeded for {endpoint}",
            provider_name=endpoint,
            endpoint=endpoint,
        )

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def get_backoff_time(self, endpoint: str) -> int:
        """Milliseconds until *endpoint*'s backoff period ends (``0`` if none)."""
        state = self._state.get(endpoint)
        if state is None:
            return 0
        return max(0, state.backoff_until - self._clock())

    def is_circuit_open(self, endpoint: str) -> bool:
        state = self._state.get(endpoint)
        return state.circuit_breaker_open if state else False

    def get_failure_count(self, endpoint: str) -> int:
        state = self._state.get(endpoint)
        return state.failure_count if state else 0

    def get_stats(self) -> dict[str, RateLimitState]:
        """Copies of every endpoint's state."""
        return {endpoint: state.model_copy() for endpoint, state in self._state.items()}

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def reset(self, endpoint: str) -> None:
        self._state[endpoint] = RateLimitState(window_start=self._clock())
        self._logger.info("rate_limit_reset", endpoint=endpoint)
        self._save_state()

    def reset_all(self) -> None:
        self._state.clear()
        self._save_state()
        self._logger.info("rate_limit_reset_all")

    def sweep(self) -> int:
        """Forget endpoints with no activity for longer than ``stale_after_ms``.

        Returns the number of endpoints removed.
        """
        now = self._clock()
        stale = [
            endpoint
            for endpoint, state in self._state.items()
            if now - state.last_activity() > self._policy.stale_after_ms
        ]
        for endpoint in stale:
            del self._state[endpoint]
        if stale:
            self._logger.info("rate_limit_state_swept", removed=len(stale))
            self._save_state()
        return len(stale)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval_s)
            self.sweep()

    def start(self) -> None:
        """Start the periodic sweeper on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Cancel the sweeper and write out any pending state."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None
        await self.flush()
