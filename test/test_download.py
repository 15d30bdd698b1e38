from pathlib import Path
import asyncio
import pytest

from cubiclauncher.http import HttpClient
from cubiclauncher.download import DownloadEntry, DownloadList, Fetcher, FetchError, check_file

from support import LocalServer, sha1


CONTENT = b"the content of the artifact"


def test_fetch_retry_checksum(tmp_path):

    dst = tmp_path / "artifact.bin"

    async def run():
        async with LocalServer() as server, HttpClient() as client:
            server.add("/a", b"corrupted content")
            server.add("/a", b"corrupted again")
            url = server.add("/a", CONTENT)
            fetcher = Fetcher(client, retry_delay=0)
            size = await fetcher.fetch(DownloadEntry(url, dst, sha1=sha1(CONTENT), size=len(CONTENT)))
            return size, server.hits_of("/a")

    size, hits = asyncio.run(run())
    assert size == len(CONTENT)
    assert hits == 3
    assert dst.read_bytes() == CONTENT


def test_fetch_checksum_exhausted(tmp_path):

    dst = tmp_path / "artifact.bin"

    async def run():
        async with LocalServer() as server, HttpClient() as client:
            url = server.add("/a", b"corrupted content")
            fetcher = Fetcher(client, retry_delay=0)
            with pytest.raises(FetchError) as exc_info:
                await fetcher.fetch(DownloadEntry(url, dst, sha1=sha1(CONTENT)))
            return exc_info.value, server.hits_of("/a")

    error, hits = asyncio.run(run())
    assert error.code == FetchError.CHECKSUM_MISMATCH
    assert error.expected == sha1(CONTENT)
    assert error.actual == sha1(b"corrupted content")
    assert hits == 3
    assert not dst.exists()


def test_fetch_invalid_size(tmp_path):

    dst = tmp_path / "artifact.bin"

    async def run():
        async with LocalServer() as server, HttpClient() as client:
            url = server.add("/a", CONTENT)
            fetcher = Fetcher(client, retry_delay=0, max_tries=2)
            with pytest.raises(FetchError) as exc_info:
                await fetcher.fetch(DownloadEntry(url, dst, size=len(CONTENT) + 10))
            return exc_info.value, server.hits_of("/a")

    error, hits = asyncio.run(run())
    assert error.code == FetchError.INVALID_SIZE
    assert hits == 2
    assert not dst.exists()


def test_fetch_redirect(tmp_path):

    dst = tmp_path / "artifact.bin"

    async def run():
        async with LocalServer() as server, HttpClient() as client:
            url = server.redirect("/old", "/middle", status=301)
            server.redirect("/middle", server.url("/new"))
            server.add("/new", CONTENT)
            await Fetcher(client, retry_delay=0).fetch(DownloadEntry(url, dst, sha1=sha1(CONTENT)))
            return [server.hits_of(path) for path in ("/old", "/middle", "/new")]

    assert asyncio.run(run()) == [1, 1, 1]
    assert dst.read_bytes() == CONTENT


def test_fetch_redirect_loop(tmp_path):

    dst = tmp_path / "artifact.bin"

    async def run():
        async with LocalServer() as server, HttpClient() as client:
            url = server.redirect("/loop", "/loop")
            fetcher = Fetcher(client, retry_delay=0, max_redirects=2)
            with pytest.raises(FetchError) as exc_info:
                await fetcher.fetch(DownloadEntry(url, dst))
            return exc_info.value, server.hits_of("/loop")

    error, hits = asyncio.run(run())
    assert error.code == FetchError.HTTP
    assert error.status == 302
    assert not error.retriable
    # The initial request and two redirects, never retried.
    assert hits == 3


def test_fetch_not_found_not_retried(tmp_path):

    dst = tmp_path / "artifact.bin"

    async def run():
        async with LocalServer() as server, HttpClient() as client:
            with pytest.raises(FetchError) as exc_info:
                await Fetcher(client, retry_delay=0).fetch(DownloadEntry(server.url("/missing"), dst))
            return exc_info.value, server.hits_of("/missing")

    error, hits = asyncio.run(run())
    assert error.code == FetchError.HTTP
    assert error.status == 404
    assert hits == 1
    assert not dst.exists()


def test_fetch_server_error_retried(tmp_path):

    dst = tmp_path / "artifact.bin"

    async def run():
        async with LocalServer() as server, HttpClient() as client:
            server.add("/a", status=503)
            url = server.add("/a", CONTENT)
            await Fetcher(client, retry_delay=0).fetch(DownloadEntry(url, dst))
            return server.hits_of("/a")

    assert asyncio.run(run()) == 2
    assert dst.read_bytes() == CONTENT


def test_fetch_transport_error(tmp_path):

    dst = tmp_path / "artifact.bin"

    async def run():
        async with HttpClient() as client:
            # Nothing listens on this port.
            entry = DownloadEntry("http://127.0.0.1:1/artifact.bin", dst)
            with pytest.raises(FetchError) as exc_info:
                await Fetcher(client, retry_delay=0, max_tries=2).fetch(entry)
            return exc_info.value

    error = asyncio.run(run())
    assert error.code == FetchError.TRANSPORT
    assert error.origin is not None
    assert error.retriable
    assert not dst.exists()


def test_fetch_slow_transfer(tmp_path):

    dst = tmp_path / "artifact.bin"
    body = b"steady"

    async def run():
        # The whole transfer lasts longer than the timeout but data never stops coming.
        async with LocalServer() as server, HttpClient(timeout=1.0) as client:
            url = server.add("/big.jar", body, drip=0.3)
            return await Fetcher(client, max_tries=1).fetch(DownloadEntry(url, dst, sha1=sha1(body)))

    assert asyncio.run(run()) == len(body)
    assert dst.read_bytes() == body


def test_fetch_idle_timeout(tmp_path):

    dst = tmp_path / "artifact.bin"

    async def run():
        async with LocalServer() as server, HttpClient(timeout=0.3) as client:
            url = server.add("/a", CONTENT * 1000, stall=True)
            with pytest.raises(FetchError) as exc_info:
                await Fetcher(client, max_tries=1).fetch(DownloadEntry(url, dst))
            return exc_info.value

    error = asyncio.run(run())
    assert error.code == FetchError.TRANSPORT
    assert not dst.exists()


def test_fetch_progress(tmp_path):

    dst = tmp_path / "artifact.bin"
    progress = []

    async def run():
        async with LocalServer() as server, HttpClient() as client:
            url = server.add("/a", CONTENT * 100)
            await Fetcher(client, chunk_size=256).fetch(DownloadEntry(url, dst), progress.append)

    asyncio.run(run())

    assert len(progress) > 1
    assert [p.downloaded for p in progress] == sorted(p.downloaded for p in progress)
    assert progress[-1].downloaded == len(CONTENT) * 100
    assert progress[-1].total == len(CONTENT) * 100
    assert progress[-1].percent == 100.0


def test_fetch_cancel_removes_file(tmp_path):

    dst = tmp_path / "artifact.bin"

    async def run():

        async with LocalServer() as server, HttpClient() as client:

            url = server.add("/a", CONTENT * 1000, stall=True)
            received = asyncio.Event()
            task = asyncio.ensure_future(Fetcher(client).fetch(DownloadEntry(url, dst), lambda _p: received.set()))

            await asyncio.wait_for(received.wait(), 10)
            assert dst.exists()

            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

    asyncio.run(run())
    assert not dst.exists()


def test_download_list(tmp_path):

    results = []

    async def run():
        async with LocalServer() as server, HttpClient() as client:

            dl = DownloadList()
            for i in range(3):
                body = CONTENT * (i + 1)
                url = server.add(f"/{i}", body)
                dl.add(DownloadEntry(url, tmp_path / f"{i}.bin", sha1=sha1(body), size=len(body), name=f"entry-{i}"))

            # Same destination and same download, fetched once for both.
            dl.add(DownloadEntry(server.url("/0"), tmp_path / "0.bin", sha1=sha1(CONTENT), size=len(CONTENT), name="entry-0-alias"))
            # Same destination but another download.
            dl.add(DownloadEntry(server.url("/other"), tmp_path / "0.bin", name="conflict"))
            dl.add(DownloadEntry(server.url("/missing"), tmp_path / "missing.bin", name="entry-missing"))

            assert dl.count == 6
            assert len(dl.entries) == 4
            report = await dl.download(Fetcher(client, retry_delay=0), concurrency=2,
                on_result=lambda entry, error: results.append((entry.name, error)))
            return report, server.hits_of("/0"), server.hits_of("/other")

    report, hits, other_hits = asyncio.run(run())

    assert not report.ok
    assert report.succeeded == ["entry-0", "entry-0-alias", "entry-1", "entry-2"]
    assert [entry.name for entry, _error in report.failed] == ["conflict", "entry-missing"]
    conflict, missing = (error for _entry, error in report.failed)
    assert conflict.code == FetchError.CONFLICT
    assert not conflict.retriable
    assert missing.status == 404
    assert len(results) == 6
    assert hits == 1
    assert other_hits == 0
    assert (tmp_path / "0.bin").read_bytes() == CONTENT
    assert (tmp_path / "2.bin").read_bytes() == CONTENT * 3
    assert not (tmp_path / "missing.bin").exists()


def test_download_list_duplicate_failure(tmp_path):

    async def run():
        async with LocalServer() as server, HttpClient() as client:
            dl = DownloadList()
            dl.add(DownloadEntry(server.url("/missing"), tmp_path / "missing.bin", name="first"))
            dl.add(DownloadEntry(server.url("/missing"), tmp_path / "missing.bin", name="second"))
            return await dl.download(Fetcher(client, retry_delay=0))

    report = asyncio.run(run())
    assert report.succeeded == []
    assert [(entry.name, error.status) for entry, error in report.failed] == [("first", 404), ("second", 404)]


def test_download_list_verify(tmp_path):

    existing = tmp_path / "existing.bin"
    existing.write_bytes(CONTENT)

    dl = DownloadList()
    dl.add(DownloadEntry("http://localhost/existing.bin", existing, size=len(CONTENT)), verify=True)
    dl.add(DownloadEntry("http://localhost/other.bin", tmp_path / "other.bin", size=12), verify=True)

    assert dl.count == 1
    assert dl.size == 12

    dl.clear()
    assert dl.count == 0 and dl.size == 0 and dl.entries == []


def test_check_file(tmp_path):

    async def run(path: Path, **kwargs) -> bool:
        return await check_file(path, **kwargs)

    path = tmp_path / "file.bin"
    assert not asyncio.run(run(path))

    path.write_bytes(b"")
    assert not asyncio.run(run(path))

    path.write_bytes(CONTENT)
    assert asyncio.run(run(path))
    assert asyncio.run(run(path, sha1=sha1(CONTENT)))
    assert asyncio.run(run(path, sha1=sha1(CONTENT).upper()))
    assert not asyncio.run(run(path, sha1=sha1(b"other")))
    assert asyncio.run(run(path, size=len(CONTENT)))
    assert asyncio.run(run(path, size=len(CONTENT) - 1))
    assert not asyncio.run(run(path, size=len(CONTENT) + 1))
