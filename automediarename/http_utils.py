from __future__ import annotations

import random
import time
from typing import Any

import httpx

DEFAULT_HEADERS = {"User-Agent": "automediarename/0.1"}


def post_with_retry(
    client: httpx.Client,
    url: str,
    *,
    retries: int = 3,
    backoff_base_seconds: float = 1.0,
    backoff_jitter_seconds: float = 0.3,
    **kwargs: Any,
) -> httpx.Response:
    last_exc: Exception | None = None
    for attempt in range(1, retries + 1):
        try:
            response = client.post(url, **kwargs)

            # Retry on server errors and common throttling responses.
            if response.status_code >= 500 or response.status_code in {429, 408}:
                raise httpx.HTTPStatusError(
                    f"retryable http error: {response.status_code}", request=response.request, response=response
                )
            return response
        except (httpx.TimeoutException, httpx.NetworkError, httpx.HTTPStatusError) as exc:
            last_exc = exc
            if attempt < retries:
                sleep_for = backoff_base_seconds * (2 ** (attempt - 1)) + random.uniform(0.0, backoff_jitter_seconds)
                time.sleep(sleep_for)

    if last_exc is None:
        raise RuntimeError("unknown request failure")
    raise last_exc
