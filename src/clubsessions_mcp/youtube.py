"""YouTube Data API v3 client for the channel's next live/upcoming session."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .config import (
    PLACEHOLDER_THUMBNAIL_URL,
    REQUEST_TIMEOUT,
    THUMBNAIL_PRIORITY,
    YOUTUBE_API_KEY,
    YOUTUBE_BASE_URL,
    YOUTUBE_CHANNEL_ID,
    YOUTUBE_WATCH_URL,
)
from .errors import (
    ConfigurationError,
    NoUpcomingSession,
    ProviderError,
    ProviderTimeout,
    ProviderUnreachable,
)
from .models import SessionInfo, Thumbnail, parse_datetime

logger = logging.getLogger(__name__)


class YouTubeAPIError(ProviderError):
    """YouTube returned an error envelope, an HTTP error, or an unusable body."""

    def __init__(self, code: int | str, message: str, api_reason: str = ""):
        self.code = code
        self.api_reason = api_reason
        super().__init__(f"YouTube API error [{code}]: {message}")


def _to_int(value: Any) -> int | None:
    """Statistics arrive as decimal strings ('1234')."""
    if value is None:
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        return None


def select_thumbnail(thumbnails: dict[str, Thumbnail]) -> str:
    """Pick the highest resolution available, else the placeholder image."""
    for name in THUMBNAIL_PRIORITY:
        thumb = thumbnails.get(name)
        if thumb and thumb.url:
            return thumb.url
    return PLACEHOLDER_THUMBNAIL_URL


def _normalize_video(item: dict[str, Any]) -> SessionInfo:
    """Normalize a YouTube video resource into a SessionInfo."""
    video_id = item["id"]
    snippet = item.get("snippet", {})
    live = item.get("liveStreamingDetails", {})
    stats = item.get("statistics", {})

    thumbnails = {}
    for name, thumb in snippet.get("thumbnails", {}).items():
        if thumb.get("url"):
            thumbnails[name] = Thumbnail(
                url=thumb["url"],
                width=thumb.get("width"),
                height=thumb.get("height"),
            )

    return SessionInfo(
        id=video_id,
        title=snippet.get("title", ""),
        description=snippet.get("description", ""),
        scheduled_start=parse_datetime(live.get("scheduledStartTime")),
        thumbnails=thumbnails,
        thumbnail_url=select_thumbnail(thumbnails),
        url=YOUTUBE_WATCH_URL.format(video_id=video_id),
        is_live=snippet.get("liveBroadcastContent") == "live",
        view_count=_to_int(stats.get("viewCount")),
        like_count=_to_int(stats.get("likeCount")),
        concurrent_viewers=_to_int(live.get("concurrentViewers")),
    )


class YouTubeClient:
    """Async client for the YouTube Data API v3 (API key auth)."""

    def __init__(
        self,
        api_key: str = YOUTUBE_API_KEY,
        channel_id: str = YOUTUBE_CHANNEL_ID,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self._api_key = api_key
        self._channel_id = channel_id
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def configured(self) -> bool:
        return bool(self._api_key and self._channel_id)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        """Make an authenticated GET request to the YouTube API.

        The key travels as a query parameter, so httpx exceptions (which carry the
        URL) are replaced with sanitized ones.
        """
        url = f"{YOUTUBE_BASE_URL}{path}"
        try:
            response = await self._get_client().get(url, params={**params, "key": self._api_key})
        except httpx.TimeoutException:
            raise ProviderTimeout(f"YouTube API did not respond within {self._timeout:g}s") from None
        except httpx.HTTPError:
            raise ProviderUnreachable("YouTube API request failed (network/connection error)") from None

        try:
            data = response.json()
        except ValueError:
            raise YouTubeAPIError(response.status_code, "response body is not valid JSON") from None

        if isinstance(data, dict) and data.get("error"):
            err = data["error"]
            if not isinstance(err, dict):
                raise YouTubeAPIError(response.status_code, str(err))
            errors = err.get("errors")
            first = errors[0] if isinstance(errors, list) and errors and isinstance(errors[0], dict) else {}
            raise YouTubeAPIError(
                err.get("code", response.status_code),
                err.get("message", "Unknown YouTube API error"),
                api_reason=first.get("reason", ""),
            )
        if response.status_code >= 400:
            raise YouTubeAPIError(response.status_code, f"HTTP {response.status_code}")
        if not isinstance(data, dict):
            raise YouTubeAPIError(response.status_code, "unexpected response shape")
        return data

    async def find_upcoming_id(self) -> str:
        """Search the channel for its next upcoming broadcast and return the video id."""
        data = await self._get("/search", {
            "part": "id",
            "channelId": self._channel_id,
            "eventType": "upcoming",
            "type": "video",
            "order": "date",
            "maxResults": 1,
        })
        items = data.get("items") or []
        if not items:
            raise NoUpcomingSession("No upcoming sessions scheduled on the channel")
        first = items[0] if isinstance(items, list) else None
        ident = first.get("id") if isinstance(first, dict) else None
        video_id = ident.get("videoId") if isinstance(ident, dict) else None
        if not video_id or not isinstance(video_id, str):
            raise YouTubeAPIError(200, "search result has no videoId")
        return video_id

    async def get_video(self, video_id: str) -> SessionInfo:
        """Fetch title, schedule, thumbnails and statistics for a video."""
        data = await self._get("/videos", {
            "part": "snippet,liveStreamingDetails,statistics",
            "id": video_id,
        })
        items = data.get("items") or []
        if not items:
            # Deleted or made private between the search and details calls
            raise NoUpcomingSession(f"Upcoming video {video_id} is no longer available")
        try:
            return _normalize_video(items[0])
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise YouTubeAPIError(200, f"malformed video details ({type(e).__name__})") from None

    async def fetch_upcoming(self) -> SessionInfo:
        """Search-then-details call pair for the channel's next session.

        Raises:
            ConfigurationError: API key or channel id missing
            NoUpcomingSession: nothing scheduled
            ProviderError: timeout, network failure or bad response
        """
        if not self.configured:
            raise ConfigurationError("YOUTUBE_API_KEY and YOUTUBE_CHANNEL_ID must be set")
        video_id = await self.find_upcoming_id()
        logger.debug(f"Upcoming session video: {video_id}")
        return await self.get_video(video_id)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
