"""The remote version manifest, mapping version identifiers to their descriptor URL.
"""

from pathlib import Path
import asyncio
import logging
import json

import aiofiles

from .http import HttpClient, HttpError
from .standard import VERSION_MANIFEST_URL

from typing import Optional, Tuple


__all__ = ["VersionManifest"]

logger = logging.getLogger(__name__)


class VersionManifest:
    """The Mojang's official version manifest. Providing officially available versions
    with optional cache file, used as a fallback when the network is unavailable.
    """

    def __init__(self, client: HttpClient, *,
        url: str = VERSION_MANIFEST_URL,
        cache_file: Optional[Path] = None
    ) -> None:
        self.client = client
        self.url = url
        self.cache_file = cache_file
        self.data: Optional[dict] = None
        self._lock = asyncio.Lock()

    async def _ensure_data(self) -> dict:
        """Internal method that ensure that the manifest data is up-to-date, the manifest
        is requested at most once even with concurrent callers.

        :return: The full data of the manifest.
        :raises HttpError: Underlying HTTP error if manifest could not be requested.
        """

        async with self._lock:
            if self.data is None:
                self.data = await self._request_data()
        return self.data

    async def _request_data(self) -> dict:

        headers = {}
        cache_data = None

        # If a cache file should be used, try opening it and read the last modified
        # time that will be used for requesting the manifest, only if needed.
        if self.cache_file is not None:
            try:
                async with aiofiles.open(self.cache_file, "rt") as cache_fp:
                    cache_data = json.loads(await cache_fp.read())
                if "last_modified" in cache_data:
                    headers["If-Modified-Since"] = cache_data["last_modified"]
            except (OSError, json.JSONDecodeError):
                cache_data = None

        try:

            res = await self.client.request("GET", self.url,
                headers=headers,
                accept="application/json")

            data = res.json()
            if not isinstance(data, dict) or not isinstance(data.get("versions"), list):
                raise ValueError(f"manifest: /versions must be a list ({self.url})")

            if "Last-Modified" in res.headers:
                data["last_modified"] = res.headers["Last-Modified"]

            if self.cache_file is not None:
                self.cache_file.parent.mkdir(parents=True, exist_ok=True)
                async with aiofiles.open(self.cache_file, "wt") as cache_fp:
                    await cache_fp.write(json.dumps(data))

            return data

        except HttpError as error:
            # Checking for 0, which means network error, in such case we want to
            # ignore the network error and just use the cached data.
            if error.res.status in (0, 304) and cache_data is not None:
                logger.info("Using cached version manifest (%s)", error)
                return cache_data
            raise

    def is_alias(self, version: str) -> bool:
        """Basic function that returns true if the given version is an release or
        snapshot alias.
        """
        return version in ("release", "snapshot")

    async def filter_latest(self, version: str) -> Tuple[str, bool]:
        """Filter a version identifier if 'release' or 'snapshot' alias is used, then it's
        replaced by the full version identifier, like `1.12.2`.

        :param version: The version id or alias.
        :return: A tuple containing the full version id and a boolean indicating if the
        given version identifier is an alias.
        :raises HttpError: Underlying HTTP error if manifest could not be requested, only
        possible when the given version is a known alias.
        """

        if self.is_alias(version):
            latest = (await self._ensure_data()).get("latest", {}).get(version)
            if latest is not None:
                return latest, True
        return version, False

    async def get_version(self, version: str) -> Optional[dict]:
        """Get a manifest's version metadata. Containing the metadata's URL, its SHA1 and
        its type.

        :param version: The version identifier.
        :return: If found, the version is returned.
        :raises HttpError: Underlying HTTP error if manifest could not be requested.
        """
        version, _alias = await self.filter_latest(version)
        for version_data in (await self._ensure_data())["versions"]:
            if version_data.get("id") == version:
                return version_data
        return None

    async def all_versions(self) -> list:
        return (await self._ensure_data())["versions"]
