"""JSON POST helper with retries for notification channels."""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from jamwatch.errors import UpstreamError

logger = structlog.get_logger()

USER_AGENT = "JamwatchNotifier/0.1"


def _is_retryable_http_status(status_code: int) -> bool:
    return status_code in {408, 425, 429, 500, 502, 503, 504}


def _should_retry(exc: BaseException) -> bool:
    if isinstance(exc, httpx.RequestError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return _is_retryable_http_status(exc.response.status_code)
    return False


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(min=1, max=10),
    retry=retry_if_exception(_should_retry),
    reraise=True,
)
def _post(url: str, payload: dict[str, Any], timeout_seconds: float, transport: httpx.BaseTransport | None) -> httpx.Response:
    with httpx.Client(timeout=timeout_seconds, headers={"User-Agent": USER_AGENT}, transport=transport) as client:
        response = client.post(url, json=payload)
    if response.status_code >= 400:
        raise httpx.HTTPStatusError(f"HTTP {response.status_code}", request=response.request, response=response)
    return response


def post_json(
    url: str,
    payload: dict[str, Any],
    *,
    timeout_seconds: float = 10.0,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Response:
    """POST a JSON payload, retrying transient failures.

    Raises:
        UpstreamError: when the endpoint keeps failing or answers with a client error.
    """
    try:
        return _post(url, payload, timeout_seconds, transport)
    except httpx.HTTPStatusError as exc:
        logger.warning("Notification endpoint rejected request", status=exc.response.status_code)
        raise UpstreamError(f"http_{exc.response.status_code}") from exc
    except httpx.RequestError as exc:
        logger.warning("Notification endpoint unreachable", error=str(exc))
        raise UpstreamError(str(exc)) from exc
