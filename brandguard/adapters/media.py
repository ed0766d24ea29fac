from __future__ import annotations

import asyncio
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from urllib.parse import urlparse

import httpx
from PIL import Image, UnidentifiedImageError

from brandguard.errors import MediaFetchError


@dataclass
class MediaFetchConfig:
    timeout_seconds: float


@dataclass(frozen=True)
class DecodedImage:
    data: bytes
    width: int
    height: int
    mime_type: str


def is_remote_locator(locator: str) -> bool:
    scheme = urlparse(str(locator or '')).scheme.lower()
    return scheme in {'http', 'https'}


def locator_host(locator: str) -> str:
    """Lower-cased host of a URL locator; empty when there is none or it cannot be parsed."""
    try:
        return (urlparse(str(locator or '')).hostname or '').lower()
    except ValueError:
        return ''


def decode_image(data: bytes) -> DecodedImage:
    if not data:
        raise MediaFetchError('image payload is empty')
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            width, height = img.size
            fmt = (img.format or '').upper()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise MediaFetchError(f'image could not be decoded: {exc}') from exc
    mime_type = Image.MIME.get(fmt, 'application/octet-stream')
    return DecodedImage(data=data, width=int(width), height=int(height), mime_type=mime_type)


class MediaFetcher:
    """Reads submission source bytes from a local path or an http(s) URL."""

    def __init__(self, cfg: MediaFetchConfig, *, client: httpx.AsyncClient | None = None):
        self.cfg = cfg
        self._client = client

    async def fetch_bytes(self, locator: str) -> bytes:
        try:
            remote = is_remote_locator(locator)
        except ValueError as exc:
            raise MediaFetchError(f'invalid media locator {locator!r}: {exc}') from exc
        if remote:
            return await self._fetch_remote(locator)
        return await self._read_local(locator)

    async def fetch_image(self, locator: str) -> DecodedImage:
        data = await self.fetch_bytes(locator)
        return decode_image(data)

    async def _fetch_remote(self, url: str) -> bytes:
        try:
            if self._client is not None:
                response = await self._client.get(url, follow_redirects=True)
            else:
                async with httpx.AsyncClient(timeout=max(1.0, float(self.cfg.timeout_seconds))) as client:
                    response = await client.get(url, follow_redirects=True)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise MediaFetchError(f'failed to fetch {url}: {type(exc).__name__}: {exc}') from exc
        return response.content

    async def _read_local(self, locator: str) -> bytes:
        path = Path(locator).expanduser()
        if not path.is_file():
            raise MediaFetchError(f'source file not found: {path}')
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise MediaFetchError(f'failed to read {path}: {exc}') from exc
