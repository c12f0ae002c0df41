"""Blocking JSON requests with bounded exponential backoff."""
from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional

import requests

from .errors import ProviderError, SchemaError, TransportError


logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
# Connection drops, timeouts and bodies broken mid-read
RETRYABLE_ERRORS = (
    requests.ConnectionError,
    requests.Timeout,
    requests.exceptions.ChunkedEncodingError,
    requests.exceptions.ContentDecodingError,
)


def request_json(
    session: requests.Session,
    method: str,
    url: str,
    *,
    params: Optional[Dict] = None,
    json: Optional[Dict] = None,
    headers: Optional[Dict] = None,
    timeout: float = 10.0,
    max_attempts: int = 3,
    backoff_base: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict:
    """Send one request and decode its JSON body.

    Connection errors, timeouts, broken bodies, 429 and 5xx answers are retried up to
    ``max_attempts`` times with the delay doubling from ``backoff_base``.
    Any other non-2xx status or ``requests`` failure raises ``ProviderError``
    on the first attempt.
    """
    last_error: Optional[str] = None
    for attempt in range(max_attempts):
        if attempt:
            delay = backoff_base * (2 ** (attempt - 1))
            logger.debug("retrying %s %s in %.1fs (attempt %d)", method, url, delay, attempt + 1)
            sleep(delay)
        try:
            response = session.request(method, url, params=params, json=json, headers=headers, timeout=timeout)
        except RETRYABLE_ERRORS as exc:
            last_error = f"{type(exc).__name__}: {exc}"
            logger.warning("transport error on %s: %s", url, last_error)
            continue
        except requests.RequestException as exc:
            raise ProviderError(f"{method} {url} failed: {type(exc).__name__}: {exc}") from exc

        if response.status_code in RETRYABLE_STATUS:
            last_error = f"HTTP {response.status_code}"
            logger.warning("retryable status from %s: %s", url, last_error)
            continue
        if response.status_code >= 400:
            raise ProviderError(f"HTTP {response.status_code} from {url}: {response.text[:200]}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise SchemaError(f"invalid JSON from {url}: {exc}") from exc
        if not isinstance(payload, dict):
            raise SchemaError(f"expected a JSON object from {url}, got {type(payload).__name__}")
        return payload

    raise TransportError(f"{method} {url} failed after {max_attempts} attempts ({last_error})")


__all__ = ["request_json", "RETRYABLE_ERRORS", "RETRYABLE_STATUS"]
