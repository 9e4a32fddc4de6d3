"""
Chart image fetcher (aiohttp)
"""

import asyncio
import logging
from typing import Optional

import aiohttp

from pattern_alerts.config import get_settings
from pattern_alerts.exceptions import ImageFetchError

logger = logging.getLogger(__name__)


class ImageResolver:
    """Fetch raw image bytes with a bounded timeout"""

    def __init__(self, timeout_seconds: Optional[float] = None):
        if timeout_seconds is None:
            timeout_seconds = get_settings().http_timeout_seconds
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def fetch_bytes(self, url: str) -> bytes:
        """
        Download image bytes

        Raises:
            ImageFetchError: non-200 response, network error or timeout
        """
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        raise ImageFetchError(f"Failed to fetch image: {response.status}")
                    return await response.read()
        except ImageFetchError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"⚠️ Image fetch error for {url}: {e}")
            raise ImageFetchError(f"Failed to fetch image {url}: {e}") from e
