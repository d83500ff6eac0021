"""
Preprocessing Tasks
===================

Concrete tasks run by VideoPreprocessor.

    - DownloadTask: fetch the base (and optional mask) media bytes
    - ProcessTask: pack the downloaded media into the wire payload
"""

import asyncio
import logging
from typing import Optional, Tuple

import aiohttp

from videocanvas.models.options import VideoCanvasOptions
from videocanvas.scheduler.cache import DownloadCache
from videocanvas.scheduler.task import Task
from videocanvas.stream.fetcher import fetch_bytes
from videocanvas.stream.payload import pack_payload


logger = logging.getLogger(__name__)


DownloadResult = Tuple[bytes, Optional[bytes]]


class DownloadTask(Task):
    """
    Download a video and its optional mask.

    Attributes:
        url: Base video URL
        mask_url: Mask video URL, if any
        retries: Extra attempts per request
        ignore_cache: Neither read from nor write to the shared cache
    """

    kind = "download"

    def __init__(
        self,
        url: str,
        mask_url: Optional[str] = None,
        retries: int = 2,
        ignore_cache: bool = False,
        timeout_seconds: float = 60.0,
        cache: Optional[DownloadCache] = None,
    ) -> None:
        super().__init__()
        self.url = url
        self.mask_url = mask_url
        self.retries = retries
        self.ignore_cache = ignore_cache
        self.timeout_seconds = timeout_seconds
        self._cache = cache

    async def run(self) -> DownloadResult:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            buffer = await self._download(session, self.url)
            mask_buffer = None
            if self.mask_url:
                mask_buffer = await self._download(session, self.mask_url)
        return buffer, mask_buffer

    async def _download(self, session: aiohttp.ClientSession, url: str) -> bytes:
        if self._cache is not None and not self.ignore_cache:
            cached = self._cache.get(url)
            if cached is not None:
                logger.debug(f"{self.name}: cache hit for {url}")
                return cached

        body = await fetch_bytes(session, url, retries=self.retries)
        logger.info(f"{self.name}: downloaded {url} ({len(body)} bytes)")

        if self._cache is not None and not self.ignore_cache:
            self._cache.put(url, body)
        return body


class ProcessTask(Task):
    """
    Pack downloaded media into the payload consumed by VideoCanvas.

    Payload fields:
        buffer: Base video bytes
        hasMask: Whether maskBuffer is present
        maskBuffer: Mask video bytes (only when hasMask)
    """

    kind = "process"

    def __init__(
        self,
        options: VideoCanvasOptions,
        buffer: bytes,
        mask_buffer: Optional[bytes] = None,
    ) -> None:
        super().__init__()
        self.options = options
        self.buffer = buffer
        self.mask_buffer = mask_buffer

    async def run(self) -> bytes:
        obj = {
            "url": self.options.url,
            "hasMask": self.mask_buffer is not None,
            "buffer": self.buffer,
        }
        if self.mask_buffer is not None:
            obj["maskBuffer"] = self.mask_buffer

        payload = await asyncio.to_thread(pack_payload, obj)
        logger.info(f"{self.name}: packed {self.options.url} ({len(payload)} bytes)")
        return payload
