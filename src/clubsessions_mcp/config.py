"""Configuration for Club Sessions MCP server."""

import os

# Server settings
HTTP_PORT = int(os.getenv("HTTP_PORT", "8080"))
RATE_LIMIT_REQUESTS = int(os.getenv("RATE_LIMIT_REQUESTS", "100"))

# YouTube Data API v3
YOUTUBE_API_KEY = os.getenv("YOUTUBE_API_KEY", "")
YOUTUBE_CHANNEL_ID = os.getenv("YOUTUBE_CHANNEL_ID", "")
YOUTUBE_BASE_URL = os.getenv("YOUTUBE_BASE_URL", "https://www.googleapis.com/youtube/v3")
YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

# Highest resolution first; the placeholder is used when none are present
THUMBNAIL_PRIORITY = ("maxres", "standard", "high", "medium", "default")
PLACEHOLDER_THUMBNAIL_URL = os.getenv("PLACEHOLDER_THUMBNAIL_URL", "/placeholder.svg")

# Request settings
REQUEST_TIMEOUT = int(os.getenv("SESSION_REQUEST_TIMEOUT_MS", "10000")) / 1000

# Daily call budget, kept well below the provider's real quota
SESSION_DAILY_LIMIT = int(os.getenv("SESSION_DAILY_LIMIT", "50"))

# Session cache settings
SESSION_CACHE_TTL = int(os.getenv("SESSION_CACHE_TTL", "1800"))  # 30 minutes
SESSION_POLL_INTERVAL = int(os.getenv("SESSION_POLL_INTERVAL", "60"))  # Cache-only re-check
SESSION_REFRESH_INTERVAL = int(os.getenv("SESSION_REFRESH_INTERVAL", "300"))  # Full cycle

# Persistence - empty path keeps everything in memory
SESSION_STORE_PATH = os.getenv("SESSION_STORE_PATH", "data/sessions.db")

# JSON file with the sample session shown when nothing else is available
SESSION_FALLBACK_PATH = os.getenv("SESSION_FALLBACK_PATH", "")

# Countdown display
COUNTDOWN_TICK_INTERVAL = float(os.getenv("COUNTDOWN_TICK_INTERVAL", "1"))

# Persisted keys
SESSION_DATA_KEY = "session_data"
SESSION_TIME_KEY = "session_time"
API_CALLS_KEY_PREFIX = "api_calls_today_"
LAST_API_ERROR_KEY = "last_api_error_time"
