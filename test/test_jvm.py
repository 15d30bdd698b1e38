from zipfile import ZipFile
import tarfile
import asyncio
import sys
import io
import pytest

from cubiclauncher.http import HttpClient
from cubiclauncher.download import Fetcher
from cubiclauncher.jvm import JvmResolver, JvmNotFoundError, query_jvm_version, jvm_major_version, JVM_RUNTIME_NAME
from cubiclauncher.standard import JvmLoadingEvent, JvmFetchingEvent, JvmLoadedEvent

from support import LocalServer, Recorder


pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="java scripts need a POSIX shell")


def java_script(version: str, code: int = 0) -> bytes:
    return f"#!/bin/sh\necho 'openjdk version \"{version}\" 2023-04-18' >&2\nexit {code}\n".encode()


def write_java(path, version: str, code: int = 0):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(java_script(version, code))
    path.chmod(0o755)
    return path


def tar_archive(members) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as archive:
        for name, data in members:
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755
            archive.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def zip_archive(members) -> bytes:
    buf = io.BytesIO()
    with ZipFile(buf, "w") as archive:
        for name, data in members:
            archive.writestr(name, data)
    return buf.getvalue()


def test_query_jvm_version(tmp_path):

    java8 = write_java(tmp_path / "java8", "1.8.0_372")
    broken = write_java(tmp_path / "broken", "1.8.0_372", code=1)

    assert asyncio.run(query_jvm_version(str(java8))) == "1.8.0_372"
    assert asyncio.run(query_jvm_version(str(broken))) is None
    assert asyncio.run(query_jvm_version(str(tmp_path / "missing"))) is None


def test_jvm_major_version():
    assert jvm_major_version("1.8.0_372") == 8
    assert jvm_major_version("17.0.2") == 17
    assert jvm_major_version("21") == 21
    assert jvm_major_version("") is None


def test_jvm_builtin(tmp_context, tmp_path):

    java8 = write_java(tmp_path / "java", "1.8.0_372")
    recorder = Recorder()

    async def run():
        resolver = JvmResolver(tmp_context, Fetcher(HttpClient()), builtin=str(java8))
        return await resolver.resolve(recorder)

    jvm = asyncio.run(run())

    assert jvm.path == java8
    assert jvm.version == "1.8.0_372"
    assert jvm.kind == JvmLoadedEvent.BUILTIN
    assert len(recorder.of_type(JvmLoadingEvent)) == 1
    assert [(event.version, event.kind) for event in recorder.of_type(JvmLoadedEvent)] == [("1.8.0_372", "builtin")]
    assert not tmp_context.jvm_dir.exists()


def test_jvm_download_tar(tmp_context, tmp_path):

    # The builtin java is too recent, a runtime is installed.
    java17 = write_java(tmp_path / "java", "17.0.2")
    archive = tar_archive([("jdk8u372-b07-jre/bin/java", java_script("1.8.0_372")), ("jdk8u372-b07-jre/release", b"JAVA_VERSION=1.8.0_372")])
    recorder = Recorder()

    async def run():
        async with LocalServer() as server, HttpClient() as client:
            url = server.add("/jre.tar.gz", archive)
            resolver = JvmResolver(tmp_context, Fetcher(client, retry_delay=0), builtin=str(java17), archive_url=url)
            first, second = await asyncio.gather(resolver.resolve(recorder), resolver.resolve())
            # Another resolver finds the installed runtime.
            local = await JvmResolver(tmp_context, Fetcher(client), builtin=None, archive_url=url).resolve()
            return first, second, local, server.hits_of("/jre.tar.gz")

    first, second, local, hits = asyncio.run(run())

    runtime_dir = tmp_context.jvm_dir / JVM_RUNTIME_NAME
    assert first is second
    assert first.kind == JvmLoadedEvent.DOWNLOADED
    assert first.version == "1.8.0_372"
    assert first.path == runtime_dir / "jdk8u372-b07-jre" / "bin" / "java"
    assert local.kind == JvmLoadedEvent.LOCAL
    assert local.path == first.path
    assert hits == 1
    assert [event.url.endswith("/jre.tar.gz") for event in recorder.of_type(JvmFetchingEvent)] == [True]
    assert sorted(path.name for path in tmp_context.jvm_dir.iterdir()) == [JVM_RUNTIME_NAME]


def test_jvm_download_zip(tmp_context):

    archive = zip_archive([("jre/bin/java", java_script("1.8.0_372"))])

    async def run():
        async with LocalServer() as server, HttpClient() as client:
            url = server.add("/jre.zip", archive)
            return await JvmResolver(tmp_context, Fetcher(client), builtin=None, archive_url=url).resolve()

    jvm = asyncio.run(run())
    assert jvm.kind == JvmLoadedEvent.DOWNLOADED
    assert jvm.path == tmp_context.jvm_dir / JVM_RUNTIME_NAME / "jre" / "bin" / "java"


def test_jvm_errors(tmp_context):

    unsafe = tar_archive([("../evil/bin/java", java_script("1.8.0_372"))])
    empty = tar_archive([("jre/release", b"nothing")])

    async def resolve(client, url):
        resolver = JvmResolver(tmp_context, Fetcher(client, retry_delay=0), builtin=None, archive_url=url)
        with pytest.raises(JvmNotFoundError) as exc_info:
            await resolver.resolve()
        return exc_info.value.code

    async def run():
        async with LocalServer() as server, HttpClient() as client:
            codes = [
                await resolve(client, server.url("/missing.tar.gz")),
                await resolve(client, server.add("/unsafe.tar.gz", unsafe)),
                await resolve(client, server.add("/empty.tar.gz", empty)),
            ]
            resolver = JvmResolver(tmp_context, Fetcher(client), builtin=None)
            resolver.archive_url = None
            with pytest.raises(JvmNotFoundError) as exc_info:
                await resolver.resolve()
            codes.append(exc_info.value.code)
            return codes

    assert asyncio.run(run()) == [
        JvmNotFoundError.DOWNLOAD_FAILED,
        JvmNotFoundError.INVALID_RUNTIME,
        JvmNotFoundError.INVALID_RUNTIME,
        JvmNotFoundError.UNSUPPORTED_PLATFORM,
    ]
    assert not (tmp_context.jvm_dir / "evil").exists()
    assert not list(tmp_context.jvm_dir.glob("*.tar.gz"))
