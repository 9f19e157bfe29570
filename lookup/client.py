"""
Visa-requirement API client.

Wraps the RapidAPI ``visa-requirement`` endpoint behind the lookup interface
the refresh executor expects: ``check(passport, destination)`` returns a
``LookupResult`` and never raises for a per-pair failure.

Retry policy (explicit bounded loop, see ``utils.http.RetryStrategy``):

  - network errors and 5xx responses are retried with exponential backoff,
    then the pair is reported as a recoverable ``error``
  - 429 is retried the same way, then escalated to ``rate_limited`` so the
    run stops instead of burning budget against a throttled endpoint
  - a payload message mentioning the quota is ``quota_exceeded`` at once.
    On 429 and 5xx responses only the word "quota" counts: RapidAPI's
    per-second throttle body ("You have exceeded the rate limit per
    second...") is a rate limit and is retried like any other 429
  - any other 4xx, or a body that is not a JSON object, is an ``error``
    without retry
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import requests

from pipeline.models import LookupResult
from utils.config import RefreshConfig
from utils.http import RetryStrategy, SessionManager

logger = logging.getLogger(__name__)

# Field names seen in API responses, first present wins
REQUIREMENT_FIELDS = ("requirement", "visa_requirement")
DURATION_FIELDS = ("duration", "stay_duration", "allowed_stay")
NOTES_FIELDS = ("notes", "additional_info")

# Markers for messages in 200 and non-retryable 4xx bodies
QUOTA_MARKERS = ("exceeded", "quota")
# Throttled (429/5xx) bodies also say "exceeded" for per-second limits
THROTTLE_QUOTA_MARKERS = ("quota",)


def _first(payload: dict, names: tuple[str, ...]) -> Any:
    for name in names:
        value = payload.get(name)
        if value not in (None, ""):
            return value
    return None


def is_quota_message(message: Any, markers: tuple[str, ...] = QUOTA_MARKERS) -> bool:
    """True if an API message says the subscription quota is used up."""
    if not isinstance(message, str):
        return False
    lowered = message.lower()
    return any(marker in lowered for marker in markers)


def parse_payload(payload: Any) -> LookupResult:
    """Translate a decoded response body into a ``LookupResult``."""
    if not isinstance(payload, dict):
        return LookupResult.error(f"unexpected response type {type(payload).__name__}")
    if is_quota_message(payload.get("message")):
        return LookupResult.quota_exceeded(str(payload["message"]))
    notes = _first(payload, NOTES_FIELDS)
    return LookupResult.ok(
        requirement_text=_first(payload, REQUIREMENT_FIELDS),
        duration=_first(payload, DURATION_FIELDS),
        notes=str(notes) if notes is not None else None,
        raw=payload,
    )


class VisaApiClient:
    """Looks up one passport/destination pair per call."""

    def __init__(self, config: RefreshConfig,
                 session_manager: Optional[SessionManager] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.retry = RetryStrategy(
            max_retries=int(config.max_retries),
            backoff_factor=float(config.backoff_multiplier),
            base_delay=float(config.request_delay),
        )
        self.session_manager = session_manager or SessionManager(
            retry_strategy=self.retry,
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "x-rapidapi-host": config.api_host,
                "x-rapidapi-key": config.api_key or "",
            },
        )
        self._sleep = sleep

    def close(self) -> None:
        self.session_manager.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def check(self, passport: str, destination: str) -> LookupResult:
        """Look up the entry requirement for *passport* travelling to *destination*."""
        label = f"{passport}->{destination}"
        session = self.session_manager.session
        last_error = ""
        throttled = False

        for attempt in range(self.retry.attempts):
            if attempt:
                delay = self.retry.delay_for(attempt)
                reason = "Rate limited" if throttled else "Retrying"
                logger.info("  %s %s, waiting %.1fs before retry %d/%d",
                            reason, label, delay, attempt, self.retry.max_retries)
                self._sleep(delay)

            try:
                resp = session.post(
                    self.config.api_url,
                    data={"passport": passport.upper(), "destination": destination.upper()},
                    timeout=self.config.timeout_seconds,
                )
            except requests.RequestException as e:
                throttled = False
                last_error = f"{type(e).__name__}: {e}"
                logger.warning("  Network error for %s: %s", label, last_error)
                continue

            if self.retry.should_retry_status(resp.status_code):
                quota = self._quota_message(resp, THROTTLE_QUOTA_MARKERS)
                if quota:
                    return LookupResult.quota_exceeded(quota)
                throttled = resp.status_code == 429
                last_error = f"HTTP {resp.status_code}"
                continue

            if resp.status_code >= 400:
                quota = self._quota_message(resp)
                if quota:
                    return LookupResult.quota_exceeded(quota)
                logger.warning("  Error %s: HTTP %d", label, resp.status_code)
                return LookupResult.error(f"HTTP {resp.status_code}")

            try:
                payload = resp.json()
            except ValueError:
                logger.warning("  Non-JSON response for %s", label)
                return LookupResult.error("response is not JSON")
            return parse_payload(payload)

        if throttled:
            logger.warning("Rate limit persists for %s after %d retries",
                           label, self.retry.max_retries)
            return LookupResult.rate_limited(
                f"rate limit persists after {self.retry.max_retries} retries"
            )
        return LookupResult.error(
            f"{last_error} after {self.retry.max_retries} retries"
        )

    @staticmethod
    def _quota_message(resp: requests.Response,
                       markers: tuple[str, ...] = QUOTA_MARKERS) -> Optional[str]:
        try:
            payload = resp.json()
        except ValueError:
            return None
        if isinstance(payload, dict) and is_quota_message(payload.get("message"), markers):
            return str(payload["message"])
        return None
