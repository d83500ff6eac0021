"""
Payload Fetcher
===============

HTTP helpers for obtaining media bytes and packed payloads.

    - fetch_bytes(): one request with retries, shared by the download
      task and the canvas-side fetcher
    - PayloadFetcher: posts VideoCanvasOptions to the preprocessing
      service and returns the packed payload

Design Rules:
    - Network and status errors are retried `retries` times
    - After the last attempt a FetchError is raised
"""

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from videocanvas.errors import FetchError
from videocanvas.models.options import VideoCanvasOptions


logger = logging.getLogger(__name__)


async def fetch_bytes(
    session: aiohttp.ClientSession,
    url: str,
    method: str = "GET",
    json: Optional[Any] = None,
    retries: int = 0,
    retry_delay: float = 0.5,
) -> bytes:
    """
    Fetch a response body, retrying on failure.

    Args:
        session: Open aiohttp session
        url: Request URL
        method: HTTP method
        json: Optional JSON request body
        retries: Extra attempts after the first failure
        retry_delay: Seconds between attempts

    Returns:
        Response body

    Raises:
        FetchError: If every attempt failed
    """
    attempts = retries + 1
    last_error: Optional[Exception] = None

    for attempt in range(1, attempts + 1):
        try:
            async with session.request(method, url, json=json) as response:
                response.raise_for_status()
                body = await response.read()
                logger.debug(f"{method} {url}: {len(body)} bytes")
                return body
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            last_error = e
            logger.warning(f"{method} {url} failed (attempt {attempt}/{attempts}): {e}")
            if attempt < attempts:
                await asyncio.sleep(retry_delay)

    raise FetchError(f"{method} {url} failed after {attempts} attempts: {last_error}")


class PayloadFetcher:
    """
    Fetches packed payloads from the preprocessing service.

    Example:
        fetcher = PayloadFetcher("http://localhost:8001")
        payload = await fetcher(options)
    """

    def __init__(
        self,
        base_url: str,
        endpoint: str = "video_preprocess",
        timeout_seconds: float = 60.0,
        retries: int = 0,
    ) -> None:
        """
        Initialize fetcher.

        Args:
            base_url: Preprocessing service base URL
            endpoint: Path of the preprocess endpoint
            timeout_seconds: Total timeout per request
            retries: Retries of the preprocess request itself. The
                download retries in options.retry_fetchs are applied by
                the preprocessing service.
        """
        self.url = f"{base_url.rstrip('/')}/{endpoint.lstrip('/')}"
        self.timeout_seconds = timeout_seconds
        self.retries = retries

    async def __call__(self, options: VideoCanvasOptions) -> bytes:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            return await fetch_bytes(
                session,
                self.url,
                method="POST",
                json=options.export(),
                retries=self.retries,
            )
