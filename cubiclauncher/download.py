"""Definition of the content fetcher and of the parallel download batches built on it.
"""

from pathlib import Path
import urllib.parse
import hashlib
import asyncio
import logging

import aiohttp
import aiofiles

from .http import HttpClient
from .util import calc_file_sha1

from typing import Optional, Dict, List, Tuple, Callable


__all__ = ["DownloadEntry", "FetchError", "FetchProgress", "Fetcher", "DownloadList",
    "DownloadReport", "check_file"]

logger = logging.getLogger(__name__)

_REDIRECT_STATUSES = (301, 302, 303, 307, 308)


class DownloadEntry:
    """A download entry for the fetcher.
    """

    __slots__ = "url", "size", "sha1", "dst", "name"

    def __init__(self,
        url: str,
        dst: Path, *,
        size: Optional[int] = None,
        sha1: Optional[str] = None,
        name: Optional[str] = None
    ) -> None:
        self.url = url
        self.dst = dst
        self.size = size
        self.sha1 = sha1
        self.name = url if name is None else name

    def __repr__(self) -> str:
        return f"<DownloadEntry {self.name}>"

    def __hash__(self) -> int:
        # Size and sha1 are part of the hash, these attributes should not be modified
        # once the entry is added to a dictionary.
        return hash((self.url, self.dst, self.size, self.sha1))

    def __eq__(self, other):
        return isinstance(other, DownloadEntry) and \
            (self.url, self.dst, self.size, self.sha1) == \
            (other.url, other.dst, other.size, other.sha1)


class FetchError(Exception):
    """Raised when an entry cannot be fetched, the error code is indicated and the
    details relevant to that code are given: the final HTTP status, the original
    transport error or the expected and actual digest/size.
    """

    TRANSPORT = "transport"
    HTTP = "http"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    INVALID_SIZE = "invalid_size"
    CONFLICT = "conflict"

    def __init__(self, entry: DownloadEntry, code: str, *,
        status: Optional[int] = None,
        origin: Optional[BaseException] = None,
        expected=None,
        actual=None
    ) -> None:
        super().__init__(entry, code)
        self.entry = entry
        self.code = code
        self.status = status
        self.origin = origin
        self.expected = expected
        self.actual = actual

    @property
    def retriable(self) -> bool:
        """True if trying the same entry again may succeed, client errors (4xx) and
        redirect loops are definitive, as are conflicting destinations.
        """
        if self.code == FetchError.HTTP:
            return self.status is not None and self.status >= 500
        return self.code != FetchError.CONFLICT

    def __str__(self) -> str:
        if self.code == FetchError.HTTP:
            detail = f"status {self.status}"
        elif self.code == FetchError.TRANSPORT:
            detail = f"{self.origin}"
        elif self.code == FetchError.CONFLICT:
            detail = f"destination already fetched from {self.expected}"
        else:
            detail = f"expected {self.expected}, got {self.actual}"
        return f"{self.entry.name}: {self.code} ({detail})"

    def __repr__(self) -> str:
        return f"<FetchError {self.code} {self.entry.name}>"


class FetchProgress:
    """Progress of a single fetch, total and percent are unknown if the server gave no
    content length.
    """

    __slots__ = "downloaded", "total"

    def __init__(self, downloaded: int, total: Optional[int]) -> None:
        self.downloaded = downloaded
        self.total = total

    @property
    def percent(self) -> Optional[float]:
        if not self.total:
            return None
        return min(100.0, self.downloaded * 100.0 / self.total)


class Fetcher:
    """The content fetcher, downloads a single entry to its destination, following
    redirects and verifying its integrity. Partially written files never survive a
    failure, be it an error or a cancellation.
    """

    def __init__(self, client: HttpClient, *,
        max_redirects: int = 5,
        max_tries: int = 3,
        retry_delay: float = 1.0,
        chunk_size: int = 65536
    ) -> None:
        self.client = client
        self.max_redirects = max_redirects
        self.max_tries = max_tries
        self.retry_delay = retry_delay
        self.chunk_size = chunk_size

    async def fetch(self, entry: DownloadEntry, on_progress: Optional[Callable[[FetchProgress], None]] = None) -> int:
        """Fetch the given entry to its destination.

        :param entry: The entry to download.
        :param on_progress: Optional callback called after each received chunk.
        :return: The number of bytes written.
        :raises FetchError: When all attempts failed, or on the first definitive error.
        """

        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._fetch_once(entry, on_progress)
            except FetchError as error:
                if not error.retriable or attempt >= self.max_tries:
                    logger.warning("Failed to fetch %s after %d attempt(s): %s", entry.url, attempt, error)
                    raise
                logger.info("Retrying %s after attempt %d failed: %s", entry.url, attempt, error)
            await asyncio.sleep(attempt * self.retry_delay)

    async def _fetch_once(self, entry: DownloadEntry, on_progress: Optional[Callable[[FetchProgress], None]]) -> int:

        session = self.client.session()
        url = entry.url
        hops = 0

        try:
            while True:
                async with session.get(url, allow_redirects=False) as res:

                    if res.status in _REDIRECT_STATUSES and "Location" in res.headers:
                        if hops >= self.max_redirects:
                            raise FetchError(entry, FetchError.HTTP, status=res.status)
                        hops += 1
                        url = urllib.parse.urljoin(url, res.headers["Location"])
                        logger.debug("Redirected to %s", url)
                        continue

                    if not 200 <= res.status < 300:
                        raise FetchError(entry, FetchError.HTTP, status=res.status)

                    return await self._stream(entry, res, on_progress)

        except FetchError:
            _unlink(entry.dst)
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as error:
            _unlink(entry.dst)
            raise FetchError(entry, FetchError.TRANSPORT, origin=error)
        except BaseException:
            _unlink(entry.dst)
            raise

    async def _stream(self, entry: DownloadEntry, res: aiohttp.ClientResponse, on_progress: Optional[Callable[[FetchProgress], None]]) -> int:

        total = res.content_length
        sha1 = hashlib.sha1()
        size = 0

        entry.dst.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(entry.dst, "wb") as dst_fp:
            async for chunk in res.content.iter_chunked(self.chunk_size):
                size += len(chunk)
                sha1.update(chunk)
                await dst_fp.write(chunk)
                if on_progress is not None:
                    on_progress(FetchProgress(size, total))

        if entry.size is not None and size < entry.size:
            raise FetchError(entry, FetchError.INVALID_SIZE, expected=entry.size, actual=size)

        if entry.sha1 is not None:
            actual = sha1.hexdigest()
            if actual != entry.sha1.lower():
                raise FetchError(entry, FetchError.CHECKSUM_MISMATCH, expected=entry.sha1, actual=actual)

        return size


class DownloadReport:
    """Outcome of a download batch, both lists are sorted by entry name so that two
    runs with the same outcome give equal reports.
    """

    __slots__ = "succeeded", "failed"

    def __init__(self, succeeded: List[str], failed: List[Tuple[DownloadEntry, FetchError]]) -> None:
        self.succeeded = succeeded
        self.failed = failed

    @property
    def ok(self) -> bool:
        return not self.failed


class DownloadList:
    """A download list, composed of entries that can be downloaded all at once in batch
    with bounded parallelism. An entry added with an already queued destination is not
    fetched twice, it takes the outcome of the queued entry if both are equal, or fails
    as a conflict otherwise.
    """

    __slots__ = "entries", "duplicates", "count", "size", "_dsts"

    def __init__(self):
        self.entries: List[DownloadEntry] = []
        self.duplicates: List[DownloadEntry] = []
        self.count = 0
        self.size = 0
        self._dsts: Dict[Path, DownloadEntry] = {}

    def clear(self) -> None:
        """Clear the download list, removing all entries and computed count/size.
        """
        self.entries.clear()
        self.duplicates.clear()
        self._dsts.clear()
        self.count = 0
        self.size = 0

    def add(self, entry: DownloadEntry, *, verify: bool = False) -> None:
        """Add a download entry to this list. The count includes entries with an already
        added destination, every counted entry is given a result when downloading.

        :param entry: The entry to add.
        :param verify: Set to true in order to check if the file exists and has the same
        size has the given entry, in such case the entry is not added.
        """

        if entry.dst in self._dsts:
            self.duplicates.append(entry)
            self.count += 1
            return

        if verify and entry.dst.is_file() and (entry.size is None or entry.size == entry.dst.stat().st_size):
            return

        self.entries.append(entry)
        self._dsts[entry.dst] = entry
        self.count += 1
        if entry.size is not None:
            self.size += entry.size

    async def download(self, fetcher: Fetcher, *,
        concurrency: int = 16,
        on_result: Optional[Callable[[DownloadEntry, Optional[FetchError]], None]] = None
    ) -> DownloadReport:
        """Execute the download, a failed entry never aborts the others.

        :param fetcher: The fetcher used for every entry.
        :param concurrency: Maximum number of entries being fetched at the same time.
        :param on_result: Optional callback called once per entry when it's done, with
        the error if it failed.
        """

        succeeded: List[str] = []
        failed: List[Tuple[DownloadEntry, FetchError]] = []
        errors: Dict[Path, FetchError] = {}
        semaphore = asyncio.Semaphore(max(1, concurrency))

        def add_result(entry: DownloadEntry, error: Optional[FetchError]) -> None:
            if error is None:
                succeeded.append(entry.name)
            else:
                failed.append((entry, error))
            if on_result is not None:
                on_result(entry, error)

        async def download_entry(entry: DownloadEntry) -> None:
            async with semaphore:
                try:
                    await fetcher.fetch(entry)
                except FetchError as error:
                    errors[entry.dst] = error
                    add_result(entry, error)
                    return
            add_result(entry, None)

        # Big files first, entries without size are considered 1 Mio.
        entries = sorted(self.entries, key=lambda e: e.size or 1048576, reverse=True)
        tasks = [asyncio.ensure_future(download_entry(entry)) for entry in entries]

        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        for entry in self.duplicates:
            queued = self._dsts[entry.dst]
            if entry != queued:
                logger.warning("Conflicting downloads of %s: %s and %s", entry.dst, queued.url, entry.url)
                add_result(entry, FetchError(entry, FetchError.CONFLICT, expected=queued.url, actual=entry.url))
            else:
                add_result(entry, errors.get(entry.dst))

        succeeded.sort()
        failed.sort(key=lambda pair: pair[0].name)
        return DownloadReport(succeeded, failed)


async def check_file(path: Path, *, size: Optional[int] = None, sha1: Optional[str] = None) -> bool:
    """Check that a file is a valid artifact: it exists, it's not empty and its sha1
    matches if declared, otherwise its size is at least the declared one.
    """

    try:
        actual_size = path.stat().st_size
    except OSError:
        return False

    if not path.is_file() or actual_size == 0:
        return False

    if sha1 is not None:
        return (await calc_file_sha1(path)) == sha1.lower()
    elif size is not None:
        return actual_size >= size

    return True


def _unlink(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass  # Not a problem if the file isn't present.
