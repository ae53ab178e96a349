"""Club Sessions MCP Server - next live session for the club website."""

import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Any

from fastmcp import FastMCP
from mcp.types import ToolAnnotations
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, StreamingResponse
from starlette.routing import Route

from . import __version__
from .cache import QuotaTracker, ResultCache
from .config import (
    HTTP_PORT,
    RATE_LIMIT_REQUESTS,
    SESSION_CACHE_TTL,
    SESSION_DAILY_LIMIT,
    SESSION_FALLBACK_PATH,
    SESSION_POLL_INTERVAL,
    SESSION_REFRESH_INTERVAL,
    SESSION_STORE_PATH,
    YOUTUBE_API_KEY,
    YOUTUBE_CHANNEL_ID,
)
from .countdown import ticker, time_left
from .fallback import load_fallback_session
from .feed import SessionFeed
from .models import SessionResult
from .store import KeyValueStore, SqliteStore, open_store
from .youtube import YouTubeClient

logger = logging.getLogger(__name__)

# Global state
_store: KeyValueStore | None = None
_youtube_client: YouTubeClient | None = None
_feed: SessionFeed | None = None


def build_feed(store: KeyValueStore, client: YouTubeClient) -> SessionFeed:
    """Wire quota tracker, cache and fallback record around a client."""
    return SessionFeed(
        client=client,
        quota=QuotaTracker(store, "YouTube", SESSION_DAILY_LIMIT),
        cache=ResultCache(store, ttl=SESSION_CACHE_TTL),
        fallback=load_fallback_session(SESSION_FALLBACK_PATH),
        poll_interval=SESSION_POLL_INTERVAL,
        refresh_interval=SESSION_REFRESH_INTERVAL,
    )


@asynccontextmanager
async def lifespan(app):
    """Open the store, start the feed timers, and tear everything down on exit."""
    global _store, _youtube_client, _feed
    _store = open_store(SESSION_STORE_PATH)
    _youtube_client = YouTubeClient(YOUTUBE_API_KEY, YOUTUBE_CHANNEL_ID)
    if not _youtube_client.configured:
        logger.warning("YOUTUBE_API_KEY/YOUTUBE_CHANNEL_ID not set, serving the sample session only")
    _feed = build_feed(_store, _youtube_client)
    _feed.start()
    logger.info("Session feed initialized")

    yield

    if _feed:
        await _feed.stop()
    if _youtube_client:
        await _youtube_client.close()
    if isinstance(_store, SqliteStore):
        _store.close()


# Create MCP server
mcp = FastMCP(
    name="clubsessions",
    instructions="Next live/upcoming session of the club's YouTube channel. Use get_session for the current session (served from cache when fresh). refresh_session forces an API call and counts against a small daily quota; check session_quota first.",
    lifespan=lifespan,
)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limiting middleware - requests/minute per IP.

    Caps the number of tracked IPs and periodically drops stale ones.
    """

    MAX_TRACKED_IPS = 10_000

    def __init__(self, app, requests_per_minute: int = RATE_LIMIT_REQUESTS):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.request_counts: dict[str, list[float]] = {}
        self._last_cleanup = time.time()

    def _get_client_ip(self, request) -> str:
        """Extract client IP, preferring the rightmost X-Forwarded-For entry (set by our proxy)."""
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ips = [ip.strip() for ip in forwarded.split(",")]
            return ips[-1] if ips else "unknown"
        return request.client.host if request.client else "unknown"

    def _cleanup_stale_ips(self, now: float) -> None:
        window_start = now - 60
        stale_ips = [
            ip for ip, timestamps in self.request_counts.items()
            if not timestamps or timestamps[-1] < window_start
        ]
        for ip in stale_ips:
            del self.request_counts[ip]

    def _check_rate_limit(self, client_ip: str) -> bool:
        now = time.time()
        window_start = now - 60

        if now - self._last_cleanup > 60:
            self._cleanup_stale_ips(now)
            self._last_cleanup = now

        if len(self.request_counts) >= self.MAX_TRACKED_IPS:
            self._cleanup_stale_ips(now)
            if len(self.request_counts) >= self.MAX_TRACKED_IPS:
                return True

        timestamps = [t for t in self.request_counts.get(client_ip, []) if t > window_start]
        if len(timestamps) >= self.requests_per_minute:
            self.request_counts[client_ip] = timestamps
            return True
        timestamps.append(now)
        self.request_counts[client_ip] = timestamps
        return False

    async def dispatch(self, request, call_next):
        if request.url.path == "/health":
            return await call_next(request)

        client_ip = self._get_client_ip(request)
        if self._check_rate_limit(client_ip):
            return JSONResponse(
                status_code=429,
                content={"error": "Rate limit exceeded", "retry_after": 60},
                headers={"Retry-After": "60"},
            )
        return await call_next(request)


def _session_payload(result: SessionResult) -> dict[str, Any]:
    """Serialize a feed result for clients, adding the countdown to its start."""
    payload = result.to_dict()
    start = result.session.scheduled_start
    payload["countdown"] = time_left(start).to_dict() if start else None
    return payload


# Tools

@mcp.tool(
    annotations=ToolAnnotations(
        title="Get Next Session",
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=True,
    )
)
async def get_session() -> dict:
    """Get the club's next live or upcoming session.

    Served from cache while fresh (30 minutes by default). Otherwise calls the
    YouTube API if today's budget allows, and falls back to the last known or a
    sample session when it does not.

    Returns:
        session: id, title, description, scheduled_start, thumbnails, url, is_live, stats
        provenance: "fresh", "cached" or "fallback"
        state: "succeeded" or "degraded"
        diagnostic: Human-readable note when data is degraded
        countdown: days/hours/minutes/seconds until scheduled_start
    """
    if not _feed:
        return {"error": "Session feed not initialized"}
    try:
        return _session_payload(await _feed.load())
    except Exception as e:
        logger.error(f"get_session failed: {type(e).__name__}: {e}")
        return {"error": "Session lookup failed. Check server logs for details."}


@mcp.tool(
    annotations=ToolAnnotations(
        title="Refresh Session (Live API)",
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=False,
        openWorldHint=True,
    )
)
async def refresh_session() -> dict:
    """Force a YouTube API call for the next session, bypassing the fresh cache.

    Uses one call from the daily budget. When the budget is used up the
    diagnostic says so and the last known session is returned instead.
    """
    if not _feed:
        return {"error": "Session feed not initialized"}
    try:
        return _session_payload(await _feed.refresh())
    except Exception as e:
        logger.error(f"refresh_session failed: {type(e).__name__}: {e}")
        return {"error": "Session refresh failed. Check server logs for details."}


@mcp.tool(
    annotations=ToolAnnotations(
        title="Session API Quota",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def session_quota() -> dict:
    """Today's YouTube API usage: used, remaining, limit and the date it applies to."""
    if not _feed:
        return {"error": "Session feed not initialized"}
    return _feed.status()


@mcp.tool(
    annotations=ToolAnnotations(
        title="Clear Session Cache",
        readOnlyHint=False,
        destructiveHint=True,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def clear_session_cache() -> dict:
    """Evict the cached session so the next get_session calls the API."""
    if not _feed:
        return {"error": "Session feed not initialized"}
    _feed.clear_cache()
    return {"cleared": True}


# HTTP routes for the website

async def session_route(request):
    if not _feed:
        return JSONResponse({"error": "Session feed not initialized"}, status_code=503)
    return JSONResponse(_session_payload(await _feed.load()))


async def refresh_route(request):
    if not _feed:
        return JSONResponse({"error": "Session feed not initialized"}, status_code=503)
    return JSONResponse(_session_payload(await _feed.refresh()))


async def countdown_route(request):
    """Server-sent events with the time left to the current session, until it starts."""
    if not _feed:
        return JSONResponse({"error": "Session feed not initialized"}, status_code=503)
    result = _feed.latest or await _feed.load()
    start = result.session.scheduled_start
    if start is None:
        return JSONResponse({"error": "Session has no scheduled start"}, status_code=404)

    async def events():
        async for left in ticker(start):
            yield f"data: {json.dumps(left.to_dict())}\n\n"

    return StreamingResponse(events(), media_type="text/event-stream")


async def health(request):
    return JSONResponse({
        "status": "healthy",
        "service": "clubsessions-mcp",
        "version": __version__,
        "feed": _feed.state.value if _feed else None,
    })


# Create ASGI app
def create_app():
    """Create the ASGI application."""
    middleware = [
        Middleware(RateLimitMiddleware, requests_per_minute=RATE_LIMIT_REQUESTS),
    ]

    app = mcp.http_app(
        path="/mcp",
        middleware=middleware,
        transport="streamable-http",
        stateless_http=True,
    )

    app.routes.append(Route("/health", health))
    app.routes.append(Route("/session", session_route, methods=["GET"]))
    app.routes.append(Route("/session/refresh", refresh_route, methods=["POST"]))
    app.routes.append(Route("/session/countdown", countdown_route, methods=["GET"]))

    return app


app = create_app()


class _HealthFilterLog(logging.Filter):
    """Suppress noisy /health access logs from Docker healthchecks."""

    def filter(self, record: logging.LogRecord) -> bool:
        return "/health" not in record.getMessage()


def main():
    """Run the server."""
    import uvicorn

    logging.getLogger("uvicorn.access").addFilter(_HealthFilterLog())

    uvicorn.run(
        "clubsessions_mcp.server:app",
        host="0.0.0.0",
        port=HTTP_PORT,
        lifespan="on",
    )


if __name__ == "__main__":
    main()
