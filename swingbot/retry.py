"""Shared async HTTP request helper with exponential-backoff retry."""

import asyncio
import logging
from typing import Optional

import httpx

logger = logging.getLogger("swingbot")

# Retry settings
MAX_RETRIES = 3
RETRY_BASE_DELAY = 2.0  # seconds; doubles each attempt
RETRYABLE_STATUS_CODES = {502, 503, 504, 429}


async def request_with_retry(
    method: str,
    url: str,
    *,
    headers: Optional[dict] = None,
    service: str = "HTTP",
    **kwargs,
) -> httpx.Response:
    """Execute an HTTP request with exponential-backoff retry.

    Retries on transient server errors (502, 503, 504), rate-limits (429)
    and transport errors.  Non-retryable errors are raised immediately;
    once retries are exhausted the last error is raised.

    Args:
        method: ``httpx.AsyncClient`` method name, e.g. ``"get"``.
        url: Absolute URL.
        headers: Request headers.
        service: Label used in retry log lines.
    """
    last_exc: Optional[Exception] = None

    for attempt in range(MAX_RETRIES):
        try:
            async with httpx.AsyncClient() as client:
                resp = await getattr(client, method)(
                    url,
                    headers=headers or {},
                    timeout=30.0,
                    **kwargs,
                )

            if resp.status_code in RETRYABLE_STATUS_CODES:
                delay = RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning(
                    "%s %s %s returned %d, retry %d/%d in %.1fs",
                    service, method.upper(), url, resp.status_code,
                    attempt + 1, MAX_RETRIES, delay,
                )
                await asyncio.sleep(delay)
                last_exc = httpx.HTTPStatusError(
                    f"Server error '{resp.status_code}'",
                    request=resp.request,
                    response=resp,
                )
                continue

            resp.raise_for_status()
            return resp

        except httpx.TransportError as exc:
            delay = RETRY_BASE_DELAY * (2 ** attempt)
            logger.warning(
                "%s %s %s transport error (%s), retry %d/%d in %.1fs",
                service, method.upper(), url, exc,
                attempt + 1, MAX_RETRIES, delay,
            )
            last_exc = exc
            await asyncio.sleep(delay)

    raise last_exc  # type: ignore[misc]
