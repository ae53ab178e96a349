"""Exceptions raised while acquiring session data."""


class SessionFeedError(Exception):
    """Base class for session feed errors."""


class ConfigurationError(SessionFeedError):
    """API key or channel id is missing. Not retried until the next timer."""


class ProviderError(SessionFeedError):
    """The external provider could not produce a usable result."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class ProviderTimeout(ProviderError):
    """The provider did not answer within the request timeout."""


class ProviderUnreachable(ProviderError):
    """Network or connection failure talking to the provider."""


class NoUpcomingSession(SessionFeedError):
    """The provider answered, but nothing is scheduled. Not an error for the UI."""


class StorageError(SessionFeedError):
    """Reading or writing the persistent key/value store failed."""
