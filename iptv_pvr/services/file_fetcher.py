"""
File fetcher.
Reads playlist and EPG artifacts from a local path or an http(s) URL,
keeping a copy of remote downloads in the artifact cache.
"""
import gzip
import logging
from pathlib import Path
from typing import Optional

import httpx

from iptv_pvr.services.cache import CacheService, get_cache
from iptv_pvr.services.stream_utils import redact_url

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"


def is_remote_location(location: str) -> bool:
    return location.lower().startswith(("http://", "https://"))


def decode_contents(data: bytes) -> str:
    """UTF-8 (BOM tolerated), falling back to cp1252 for legacy playlists."""
    if data[:2] == GZIP_MAGIC:
        data = gzip.decompress(data)
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.debug("Contents are not UTF-8, decoding as cp1252")
        return data.decode("cp1252", errors="replace")


class FileFetcher:
    """Fetch artifacts, optionally served from the cache."""

    TIMEOUT = 60.0
    USER_AGENT = "iptv-pvr/1.0"

    def __init__(self, cache: Optional[CacheService] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self._cache = cache
        self._transport = transport

    async def _get_cache(self) -> CacheService:
        if self._cache is None:
            self._cache = await get_cache()
        return self._cache

    async def _read_remote(self, location: str) -> bytes:
        async with httpx.AsyncClient(
            timeout=self.TIMEOUT,
            follow_redirects=True,
            transport=self._transport,
            headers={"User-Agent": self.USER_AGENT},
        ) as client:
            response = await client.get(location)
            response.raise_for_status()
            return response.content

    async def get_cached_file_contents(
        self, cache_name: str, location: str, use_cache: bool = True
    ) -> Optional[str]:
        """
        Return the whole artifact as text, or None when it cannot be read.

        With use_cache set a cached copy of a remote location is returned
        without fetching; fresh remote downloads always refresh the cache.
        """
        if not location:
            logger.error(f"No location configured for {cache_name}")
            return None

        remote = is_remote_location(location)

        if remote and use_cache:
            cache = await self._get_cache()
            cached = await cache.get(cache_name, location)
            if cached is not None:
                logger.info(f"Using cached {cache_name} for {redact_url(location)}")
                return cached

        try:
            if remote:
                logger.info(f"Downloading {cache_name} from {redact_url(location)}")
                data = await self._read_remote(location)
            else:
                data = Path(location).expanduser().read_bytes()
        except httpx.HTTPError as e:
            logger.error(f"Failed to download {redact_url(location)}: {e}")
            return None
        except OSError as e:
            logger.error(f"Failed to read {location}: {e}")
            return None

        try:
            contents = decode_contents(data)
        except (OSError, EOFError) as e:
            logger.error(f"Failed to decompress {redact_url(location)}: {e}")
            return None

        if remote:
            cache = await self._get_cache()
            await cache.set(cache_name, location, contents)

        return contents
