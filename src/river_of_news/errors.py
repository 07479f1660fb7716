"""Error types raised by the river-of-news core."""


class RiverError(Exception):
    """Base class for all river-of-news errors."""


class InvalidUrlError(RiverError, ValueError):
    """Raised when a URL is malformed or not http(s)."""


class DuplicateFeedError(RiverError):
    """Raised when a feed with the same normalized URL already exists."""


class FeedFetchError(RiverError):
    """Raised when a feed cannot be fetched or parsed."""


class NotFoundError(RiverError):
    """Raised when an item or feed id does not exist."""


class InvalidQueryError(RiverError, ValueError):
    """Raised when river query parameters are invalid."""


class InvalidSettingsError(RiverError):
    """Raised when an environment variable holds an unusable value."""

    def __init__(self, name: str, message: str) -> None:
        self.name = name
        super().__init__(f"Invalid environment variable {name}: {message}")
