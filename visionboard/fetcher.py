"""
Photo fetcher - the engine's only network I/O
"""
import asyncio
import base64
import ipaddress
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import aiohttp
from loguru import logger

from visionboard.errors import AssetFetchFailure
from visionboard.models import ImageAsset
from visionboard.settings import settings

REMOTE_SCHEMES = ("http", "https", "data")


def is_private_host(host: Optional[str]) -> bool:
    """Loopback, link-local and private addresses, plus localhost names"""
    if not host:
        return True
    host = host.strip("[]").lower()
    if host == "localhost" or host.endswith(".localhost"):
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_unspecified
    )


def check_remote_url(url: str) -> None:
    """Raise ValueError unless ``url`` is a public http(s) or data: URL"""
    parsed = urlparse(url)
    scheme = parsed.scheme.lower()
    if scheme not in REMOTE_SCHEMES:
        raise ValueError(f"unsupported photo url scheme: {scheme or 'local path'}")
    if scheme != "data" and is_private_host(parsed.hostname):
        raise ValueError(f"photo host is not public: {parsed.hostname}")


class PhotoFetcher:
    """Resolves an ImageAsset to raw bytes: inline data, http(s), data: or local files.

    Local files and private hosts are refused unless ``allow_local`` is set.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        export: Optional[bool] = None,
        allow_local: Optional[bool] = None,
    ):
        self.timeout = timeout or settings.fetch_timeout
        self.export = settings.use_export_resolution if export is None else export
        self.allow_local = settings.allow_local_photos if allow_local is None else allow_local

    async def __call__(self, asset: ImageAsset, item_index: Optional[int] = None) -> bytes:
        return await self.fetch(asset, item_index)

    async def fetch(self, asset: ImageAsset, item_index: Optional[int] = None) -> bytes:
        if asset.data:
            return asset.data

        url = asset.source_url(export=self.export)
        if not url:
            raise AssetFetchFailure(f"photo {asset.id} has no url", item_index=item_index)

        if not self.allow_local:
            try:
                check_remote_url(url)
            except ValueError as e:
                raise AssetFetchFailure(f"refused {url}: {e}", item_index=item_index) from e

        scheme = urlparse(url).scheme.lower()
        try:
            if scheme in ("http", "https"):
                return await self._fetch_http(url, item_index)
            if scheme == "data":
                return self._decode_data_url(url)
            if scheme == "file":
                path = Path(unquote(urlparse(url).path))
            else:
                path = Path(url)
            return await asyncio.to_thread(path.read_bytes)
        except AssetFetchFailure:
            raise
        except Exception as e:
            raise AssetFetchFailure(f"fetch failed for {url}: {e}", item_index=item_index) from e

    async def _fetch_http(self, url: str, item_index: Optional[int]) -> bytes:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            # redirects could lead to a private host
            async with session.get(url, allow_redirects=self.allow_local) as response:
                if response.status != 200:
                    raise AssetFetchFailure(
                        f"HTTP {response.status} for {url}", item_index=item_index
                    )
                data = await response.read()
        logger.debug(f"Fetched {len(data)} bytes from {url}")
        return data

    @staticmethod
    def _decode_data_url(url: str) -> bytes:
        header, _, payload = url.partition(",")
        if header.endswith(";base64"):
            return base64.b64decode(payload)
        return unquote(payload).encode("latin-1")
