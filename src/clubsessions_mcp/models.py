"""Data model for session payloads, cached results and fetch outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Provenance(str, Enum):
    """Where a result came from. Set once per fetch cycle."""

    FRESH = "fresh"
    CACHED = "cached"
    FALLBACK = "fallback"


class FeedState(str, Enum):
    IDLE = "idle"
    CHECKING_CACHE = "checking_cache"
    FETCHING = "fetching"
    SUCCEEDED = "succeeded"
    DEGRADED = "degraded"
    FAILED_HARD = "failed_hard"


@dataclass
class Thumbnail:
    url: str
    width: int | None = None
    height: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Thumbnail:
        return cls(url=data["url"], width=data.get("width"), height=data.get("height"))


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp, accepting the 'Z' suffix YouTube uses."""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


@dataclass
class SessionInfo:
    """A live or upcoming session broadcast."""

    id: str
    title: str
    description: str = ""
    scheduled_start: datetime | None = None
    thumbnails: dict[str, Thumbnail] = field(default_factory=dict)
    thumbnail_url: str = ""
    url: str = ""
    is_live: bool = False
    view_count: int | None = None
    like_count: int | None = None
    concurrent_viewers: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "scheduled_start": self.scheduled_start.isoformat() if self.scheduled_start else None,
            "thumbnails": {name: thumb.to_dict() for name, thumb in self.thumbnails.items()},
            "thumbnail_url": self.thumbnail_url,
            "url": self.url,
            "is_live": self.is_live,
            "view_count": self.view_count,
            "like_count": self.like_count,
            "concurrent_viewers": self.concurrent_viewers,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionInfo:
        """Rebuild a SessionInfo from to_dict() output.

        Raises KeyError/ValueError/TypeError on malformed input; callers reading
        from storage treat that as a cache miss.
        """
        return cls(
            id=data["id"],
            title=data["title"],
            description=data.get("description", ""),
            scheduled_start=parse_datetime(data.get("scheduled_start")),
            thumbnails={
                name: Thumbnail.from_dict(thumb)
                for name, thumb in (data.get("thumbnails") or {}).items()
            },
            thumbnail_url=data.get("thumbnail_url", ""),
            url=data.get("url", ""),
            is_live=bool(data.get("is_live", False)),
            view_count=data.get("view_count"),
            like_count=data.get("like_count"),
            concurrent_viewers=data.get("concurrent_viewers"),
        )


@dataclass
class CachedResult:
    payload: SessionInfo
    fetched_at: float  # Epoch seconds
    provenance: Provenance

    def to_dict(self) -> dict[str, Any]:
        return {
            "session": self.payload.to_dict(),
            "fetched_at": self.fetched_at,
            "provenance": self.provenance.value,
        }


# Fetch outcomes (tagged union)

@dataclass
class Success:
    result: CachedResult
    kind: str = field(default="success", init=False)


@dataclass
class QuotaExhausted:
    remaining: int = 0
    kind: str = field(default="quota_exhausted", init=False)


@dataclass
class ProviderFailure:
    reason: str
    fallback_used: bool
    kind: str = field(default="provider_error", init=False)


FetchOutcome = Success | QuotaExhausted | ProviderFailure


@dataclass
class SessionResult:
    """What the feed hands to a caller: always something to render."""

    state: FeedState
    result: CachedResult
    outcome: FetchOutcome
    diagnostic: str | None = None

    @property
    def provenance(self) -> Provenance:
        return self.result.provenance

    @property
    def session(self) -> SessionInfo:
        return self.result.payload

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "state": self.state.value,
            "outcome": self.outcome.kind,
            "diagnostic": self.diagnostic,
        }
        out.update(self.result.to_dict())
        return out
