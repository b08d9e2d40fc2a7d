from __future__ import annotations

import json
import logging
import re
import threading
import time
from typing import Callable, Dict, Optional, Tuple

import requests

from completeseries.core.errors import Cancelled, MalformedData, RateLimitExceeded, RequestFailed
from completeseries.core.models import FetchResponse

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_S = 60
DEFAULT_MAX_RETRIES = 3
DEFAULT_TIMEOUT: Tuple[float, float] = (10.0, 30.0)
USER_AGENT = "completeseries/1.0"

RATE_LIMIT_HEADERS = ("x-ratelimit-limit", "x-ratelimit-remaining", "x-cached")

_LEADING_INT_RE = re.compile(r"^\s*(\d+)")

ProgressSink = Callable[[int], None]


def _safe_body_preview(resp: requests.Response, limit: int = 800) -> str:
    try:
        text = resp.text or ""
    except Exception:
        return "<unavailable>"
    text = text.replace("\r", " ").strip()
    if len(text) > limit:
        return text[:limit].rstrip() + "..."
    return text


def _parse_int(value: object) -> Optional[int]:
    m = _LEADING_INT_RE.match(str(value)) if value is not None else None
    return int(m.group(1)) if m else None


def retry_after_seconds(resp: requests.Response, default: int = DEFAULT_RETRY_AFTER_S) -> int:
    """
    Wait hint for a 429 response:
      - errors[0].retryAfter from a JSON body, else `default`
      - a positive numeric Retry-After header overrides the body value
    """
    wait = default
    try:
        payload = json.loads(resp.text or "")
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        errors = payload.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            parsed = _parse_int(errors[0].get("retryAfter"))
            if parsed:
                wait = parsed

    header = _parse_int(resp.headers.get("Retry-After"))
    if header:
        wait = header
    return wait


def format_wait(remaining: int) -> str:
    minutes, secs = divmod(int(remaining), 60)
    return f"{minutes}m {secs}s" if minutes > 0 else f"{secs}s"


def log_progress(remaining: int) -> None:
    if remaining > 0:
        logger.info("Rate limit reached. Waiting %s before resuming...", format_wait(remaining))


def make_session(user_agent: str = USER_AGENT) -> requests.Session:
    s = requests.Session()
    s.headers.update({
        "Accept": "application/json",
        "User-Agent": user_agent,
    })
    return s


class RateLimitedFetcher:
    """
    Sequential HTTP helper that understands HTTP 429:
      - waits the server-provided retry hint (body or Retry-After header)
      - reports the remaining wait once per second to `progress`
      - gives up with RateLimitExceeded after `max_retries` waits
      - any other non-2xx becomes RequestFailed
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        timeout: Tuple[float, float] = DEFAULT_TIMEOUT,
        progress: Optional[ProgressSink] = None,
        sleep: Callable[[float], None] = time.sleep,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.session = session or make_session()
        self.max_retries = max(0, int(max_retries))
        self.timeout = timeout
        self.progress = progress or log_progress
        self._sleep = sleep
        self.cancel_event = cancel_event

    def _check_cancelled(self, url: str) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise Cancelled(f"request cancelled: {url}")

    def _wait(self, seconds: int, url: str) -> None:
        for remaining in range(int(seconds), 0, -1):
            self.progress(remaining)
            if self.cancel_event is not None:
                if self.cancel_event.wait(1.0):
                    raise Cancelled(f"rate limit wait cancelled: {url}")
            else:
                self._sleep(1.0)
        self.progress(0)

    def _send(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]],
        body: Optional[object],
        timeout: Tuple[float, float],
    ) -> requests.Response:
        try:
            return self.session.request(
                method,
                url,
                headers=headers,
                json=body,
                timeout=timeout,
                allow_redirects=True,
            )
        except requests.RequestException as e:
            logger.error("request error | method=%s | url=%s | err=%r", method, url, e)
            raise RequestFailed(url, 0, str(e)) from e

    def fetch(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        body: Optional[object] = None,
        *,
        expect_json: bool = True,
        timeout: Optional[Tuple[float, float]] = None,
        max_retries: Optional[int] = None,
    ) -> FetchResponse:
        method = method.upper()
        limit = self.max_retries if max_retries is None else max(0, int(max_retries))
        retries = 0
        while True:
            self._check_cancelled(url)
            logger.debug(
                "request | method=%s | url=%s | retry=%s/%s",
                method,
                url,
                retries,
                limit,
            )
            r = self._send(method, url, headers, body, timeout or self.timeout)

            if r.status_code == 429:
                retries += 1
                if retries > limit:
                    logger.error("rate limit exhausted | url=%s | retries=%s", url, limit)
                    raise RateLimitExceeded(url, limit)
                wait = retry_after_seconds(r)
                logger.warning(
                    "rate limited | url=%s | wait=%ss | retry=%s/%s",
                    url,
                    wait,
                    retries,
                    limit,
                )
                self._wait(wait, url)
                continue

            if not 200 <= r.status_code < 300:
                preview = _safe_body_preview(r)
                logger.error("http error | status=%s | url=%s | body=%s", r.status_code, url, preview)
                raise RequestFailed(url, r.status_code, preview)

            selected = {h: r.headers.get(h) for h in RATE_LIMIT_HEADERS}
            if not expect_json:
                return FetchResponse(status_code=r.status_code, body=r.text or "", headers=selected)
            try:
                payload = r.json() if r.content else {}
            except ValueError as e:
                raise MalformedData(f"invalid JSON from {url}: {e}") from e
            return FetchResponse(status_code=r.status_code, body=payload, headers=selected)

    def get_json(self, url: str, headers: Optional[Dict[str, str]] = None, **kwargs) -> object:
        return self.fetch(url, "GET", headers, **kwargs).body

    def post_json(self, url: str, body: object, headers: Optional[Dict[str, str]] = None, **kwargs) -> object:
        return self.fetch(url, "POST", headers, body, **kwargs).body
