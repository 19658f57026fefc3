"""Error types raised while talking to the translation service."""
from typing import Optional


class TranslationServiceError(Exception):
    """Base class for translation service failures."""


class TransientRateLimited(TranslationServiceError):
    """The service answered with its rate-limit status (429)."""

    def __init__(self, url: str, retry_after: Optional[str] = None):
        super().__init__(f"{url} - API rate limits reached (429)")
        self.url = url
        self.retry_after = retry_after


class RequestFailed(TranslationServiceError):
    """A request failed with a network error or an unexpected status."""

    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class MetadataNotFound(TranslationServiceError):
    """The service has no source string record for the requested hash."""

    def __init__(self, url: str):
        super().__init__(f"{url} - resource string not found (404)")
        self.url = url


class ContentFormatError(TranslationServiceError):
    """Resource content or a dictionaries file is not a mapping of strings."""
