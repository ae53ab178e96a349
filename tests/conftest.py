"""Shared fixtures: a controllable clock and sample sessions."""

from datetime import datetime, timezone

import pytest

from clubsessions_mcp.models import SessionInfo, Thumbnail
from clubsessions_mcp.store import MemoryStore


class FakeClock:
    """Callable epoch clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start.timestamp()

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def set(self, when: datetime) -> None:
        self.now = when.timestamp()


@pytest.fixture
def clock():
    # Naive datetime = local time, matching how the quota derives its date key
    return FakeClock(datetime(2025, 3, 10, 12, 0, 0))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def session():
    return SessionInfo(
        id="dQw4w9WgXcQ",
        title="Introduction to System Design",
        description="Fundamentals of designing scalable distributed systems.",
        scheduled_start=datetime(2025, 3, 14, 13, 30, tzinfo=timezone.utc),
        thumbnails={
            "high": Thumbnail("https://i.ytimg.com/vi/dQw4w9WgXcQ/hqdefault.jpg", 480, 360),
            "maxres": Thumbnail("https://i.ytimg.com/vi/dQw4w9WgXcQ/maxresdefault.jpg", 1280, 720),
        },
        thumbnail_url="https://i.ytimg.com/vi/dQw4w9WgXcQ/maxresdefault.jpg",
        url="https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        is_live=False,
        view_count=0,
        like_count=12,
    )


@pytest.fixture
def other_session():
    return SessionInfo(
        id="abc123xyz00",
        title="Cracking Product-Based Company Interviews",
        scheduled_start=datetime(2025, 3, 18, 14, 0, tzinfo=timezone.utc),
        url="https://www.youtube.com/watch?v=abc123xyz00",
    )


@pytest.fixture
def fallback():
    return SessionInfo(
        id="sample-session",
        title="Building Scalable APIs with Node.js",
        scheduled_start=datetime(2025, 3, 13, 12, 0, tzinfo=timezone.utc),
        thumbnail_url="/placeholder.svg",
    )
