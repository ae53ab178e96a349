"""Session feed: decides between cache, API call, stale data and the sample session.

One fetch cycle runs at a time. Every cycle ends with something to render:
fresh data, cached data (possibly stale), or the static fallback record.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable

from .cache import QuotaTracker, ResultCache
from .config import REQUEST_TIMEOUT, SESSION_POLL_INTERVAL, SESSION_REFRESH_INTERVAL
from .errors import ConfigurationError, NoUpcomingSession, ProviderError, ProviderTimeout
from .fallback import with_default_start
from .models import (
    CachedResult,
    FeedState,
    ProviderFailure,
    Provenance,
    QuotaExhausted,
    SessionInfo,
    SessionResult,
    Success,
)
from .youtube import YouTubeClient

logger = logging.getLogger(__name__)

MSG_NOT_CONFIGURED = "Live session data is not configured."
MSG_QUOTA = "Daily API quota reached; new session data resumes tomorrow."
MSG_REFRESH_QUOTA = "Refresh unavailable: all {limit} API calls for today are used ({remaining} remaining). The budget resets tomorrow."
MSG_NO_UPCOMING = "No upcoming sessions are scheduled right now."
MSG_UNREACHABLE = "Could not reach YouTube."
MSG_UNEXPECTED = "Session data could not be loaded."
MSG_SHOWING_STALE = "Showing the last known session."
MSG_SHOWING_SAMPLE = "Showing a sample session."


class SessionFeed:
    """Quota-aware, cache-backed source of the next session.

    Owns the quota tracker and result cache; nothing else should write to them.
    """

    def __init__(
        self,
        client: YouTubeClient,
        quota: QuotaTracker,
        cache: ResultCache,
        fallback: SessionInfo,
        poll_interval: float = SESSION_POLL_INTERVAL,
        refresh_interval: float = SESSION_REFRESH_INTERVAL,
        request_timeout: float = REQUEST_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ):
        self._client = client
        self._quota = quota
        self._cache = cache
        self._fallback = fallback
        self._poll_interval = poll_interval
        self._refresh_interval = refresh_interval
        self._request_timeout = request_timeout
        self._clock = clock
        self._state = FeedState.IDLE
        self._latest: SessionResult | None = None
        self._inflight: asyncio.Task | None = None
        self._inflight_force = False
        self._tasks: list[asyncio.Task] = []
        self._stopped = False

    @property
    def state(self) -> FeedState:
        return self._state

    @property
    def latest(self) -> SessionResult | None:
        """Result of the most recent cycle or cache poll, if any."""
        return self._latest

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    # Triggers

    async def load(self) -> SessionResult:
        """Cache first, then the API if the budget allows (mount / periodic refresh)."""
        return await self._run(force=False)

    async def refresh(self) -> SessionResult:
        """Manual refresh: skip the fresh-cache check but still respect the quota."""
        return await self._run(force=True)

    def poll_cache(self) -> SessionResult | None:
        """Pick up a fresh cache entry written elsewhere. Never calls the API.

        Returns the new result if the cache held something newer, else None.
        Does nothing while a fetch cycle is running; that cycle publishes last.
        """
        if self._inflight is not None and not self._inflight.done():
            return None
        cached = self._cache.read()
        if cached is None:
            return None
        latest = self._latest
        if (
            latest is not None
            and latest.provenance != Provenance.FALLBACK
            and latest.result.fetched_at >= cached.fetched_at
        ):
            return None
        logger.debug("Picked up session written by another process")
        return self._publish(SessionResult(FeedState.SUCCEEDED, cached, Success(cached)))

    def clear_cache(self) -> None:
        """Evict the cached session so the next load() goes to the API."""
        self._cache.clear()
        logger.info("Session cache cleared")

    def status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "quota": self._quota.snapshot(),
            "cache_ttl": self._cache.ttl,
            "last_api_error_time": self._cache.last_error_time(),
            "timers_running": self.running,
        }

    # Single flight

    async def _run(self, force: bool) -> SessionResult:
        while self._inflight is not None and not self._inflight.done():
            # A forced trigger only joins a cycle that will hit the network anyway
            if not force or self._inflight_force or self._state == FeedState.FETCHING:
                logger.debug("Fetch cycle already in flight, joining it")
                return await asyncio.shield(self._inflight)
            logger.debug("Refresh waiting for a cache-first cycle to finish")
            await asyncio.shield(self._inflight)
        self._inflight = asyncio.create_task(self._cycle(force))
        self._inflight_force = force
        # Shielded: a cancelled caller must not abort a cycle others are awaiting
        return await asyncio.shield(self._inflight)

    async def _cycle(self, force: bool) -> SessionResult:
        try:
            result = await self._acquire(force)
        except Exception as e:
            logger.exception(f"Session fetch cycle failed: {type(e).__name__}: {e}")
            result = self._degrade(MSG_UNEXPECTED, reason=f"{type(e).__name__}", state=FeedState.FAILED_HARD)
        return self._publish(result)

    def _publish(self, result: SessionResult) -> SessionResult:
        # After stop() an abandoned cycle may still finish; keep the old view
        if not self._stopped:
            self._state = result.state
            self._latest = result
        return result

    # State machine

    async def _acquire(self, force: bool) -> SessionResult:
        if not force:
            self._state = FeedState.CHECKING_CACHE
            cached = self._cache.read()
            if cached is not None:
                logger.debug(f"Session cache hit (age {self._clock() - cached.fetched_at:.0f}s)")
                return SessionResult(FeedState.SUCCEEDED, cached, Success(cached))

        if not self._client.configured:
            return self._not_configured()

        if not self._quota.can_proceed():
            logger.warning(f"Daily quota of {self._quota.limit} API calls reached, serving degraded data")
            if force:
                diagnostic = MSG_REFRESH_QUOTA.format(limit=self._quota.limit, remaining=self._quota.remaining())
                return self._degrade(diagnostic, show_source=False)
            return self._degrade(MSG_QUOTA)

        self._state = FeedState.FETCHING
        count = self._quota.increment_and_get()
        logger.info(f"Fetching upcoming session from YouTube (call {count}/{self._quota.limit} today)")
        try:
            session = await self._fetch_upcoming()
        except ConfigurationError:
            return self._not_configured()
        except NoUpcomingSession as e:
            logger.info(f"YouTube reports no upcoming session: {e}")
            return self._degrade(MSG_NO_UPCOMING, reason=str(e))
        except ProviderError as e:
            logger.warning(f"YouTube fetch failed: {type(e).__name__}: {e}")
            self._cache.record_error()
            return self._degrade(MSG_UNREACHABLE, reason=e.reason)

        self._cache.write(session)
        result = CachedResult(payload=session, fetched_at=self._clock(), provenance=Provenance.FRESH)
        return SessionResult(FeedState.SUCCEEDED, result, Success(result))

    async def _fetch_upcoming(self) -> SessionInfo:
        """Both API calls under one deadline; httpx only bounds each phase of each request."""
        try:
            async with asyncio.timeout(self._request_timeout):
                return await self._client.fetch_upcoming()
        except TimeoutError:
            raise ProviderTimeout(f"YouTube fetch did not finish within {self._request_timeout:g}s") from None

    def _fallback_result(self) -> CachedResult:
        now = self._clock()
        payload = with_default_start(self._fallback, datetime.fromtimestamp(now, timezone.utc))
        return CachedResult(payload=payload, fetched_at=now, provenance=Provenance.FALLBACK)

    def _not_configured(self) -> SessionResult:
        logger.warning("YouTube API key or channel id missing, serving the sample session")
        return SessionResult(
            FeedState.DEGRADED,
            self._fallback_result(),
            ProviderFailure(reason="not configured", fallback_used=True),
            f"{MSG_NOT_CONFIGURED} {MSG_SHOWING_SAMPLE}",
        )

    def _degrade(
        self,
        diagnostic: str,
        reason: str | None = None,
        state: FeedState = FeedState.DEGRADED,
        show_source: bool = True,
    ) -> SessionResult:
        """Stale cache if present, else the fallback record.

        reason=None means the cycle stopped at the quota check.
        """
        stale = self._cache.read_stale()
        result = stale if stale is not None else self._fallback_result()
        if reason is None:
            outcome = QuotaExhausted(remaining=0)
        else:
            outcome = ProviderFailure(reason=reason, fallback_used=stale is None)
        if show_source:
            diagnostic = f"{diagnostic} {MSG_SHOWING_SAMPLE if stale is None else MSG_SHOWING_STALE}"
        return SessionResult(state, result, outcome, diagnostic)

    # Timers

    def start(self) -> None:
        """Start the cache poll and full refresh timers. The refresh timer loads immediately."""
        if self.running:
            return
        self._stopped = False
        self._tasks = [
            asyncio.create_task(self._refresh_loop(), name="session-refresh"),
            asyncio.create_task(self._poll_loop(), name="session-cache-poll"),
        ]
        logger.info(
            f"Session feed started (poll every {self._poll_interval:g}s, "
            f"refresh every {self._refresh_interval:g}s)"
        )

    async def stop(self) -> None:
        """Cancel both timers. An in-flight fetch is abandoned, not cancelled."""
        self._stopped = True
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Session feed stopped")

    async def _refresh_loop(self) -> None:
        while True:
            await self.load()
            await asyncio.sleep(self._refresh_interval)

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            self.poll_cache()
