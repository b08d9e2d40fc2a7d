from __future__ import annotations

from typing import Optional


class CompleteSeriesError(RuntimeError):
    pass


class ConfigurationError(CompleteSeriesError):
    pass


class AuthenticationFailed(CompleteSeriesError):
    pass


class InvalidInput(CompleteSeriesError):
    pass


class MalformedData(CompleteSeriesError):
    pass


class StorageError(CompleteSeriesError):
    pass


class Cancelled(CompleteSeriesError):
    pass


class RateLimitExceeded(CompleteSeriesError):
    def __init__(self, url: str, retries: int) -> None:
        super().__init__(f"Rate limit exceeded after {retries} retries: {url}")
        self.url = url
        self.retries = retries


class RequestFailed(CompleteSeriesError):
    def __init__(self, url: str, status_code: int, body: str = "") -> None:
        if status_code:
            msg = f"request failed ({status_code}): {url}"
        else:
            msg = f"request failed (no response): {url}"
        if body:
            msg = f"{msg} | {body}"
        super().__init__(msg)
        self.url = url
        self.status_code = status_code
        self.body = body


class FetchFailed(CompleteSeriesError):
    def __init__(self, url: str, http_code: int, reason: Optional[str] = None) -> None:
        msg = f"Failed to fetch Audible series page (http={http_code}): {url}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)
        self.url = url
        self.http_code = http_code
        self.reason = reason
