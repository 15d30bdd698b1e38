"""Definition of the JVM resolver, finding a Java runtime able to run the game: the
builtin `java` command if it has the right major version, or else a runtime installed
in the JVM directory of the context, downloaded first if needed.
"""

from zipfile import ZipFile, BadZipFile
from pathlib import Path
import tarfile
import platform
import asyncio
import logging
import shutil
import stat
import os
import re

from .standard import Context, Watcher, JvmLoadingEvent, JvmFetchingEvent, JvmLoadedEvent
from .download import Fetcher, DownloadEntry, FetchError
from .descriptor import minecraft_os, minecraft_arch
from .util import SingleFlight

from typing import Optional, List


__all__ = ["Jvm", "JvmResolver", "JvmNotFoundError", "query_jvm_version", "extract_archive",
    "JVM_ARCHIVE_URLS", "JVM_RUNTIME_NAME"]

logger = logging.getLogger(__name__)


# Temurin 8 runtimes, the game and its loader don't run on later major versions.
_TEMURIN_8 = "https://github.com/adoptium/temurin8-binaries/releases/download/jdk8u372-b07/"
JVM_ARCHIVE_URLS = {
    ("windows", "x86_64"): f"{_TEMURIN_8}OpenJDK8U-jre_x64_windows_hotspot_8u372b07.zip",
    ("linux", "x86_64"): f"{_TEMURIN_8}OpenJDK8U-jre_x64_linux_hotspot_8u372b07.tar.gz",
    ("osx", "x86_64"): f"{_TEMURIN_8}OpenJDK8U-jre_x64_mac_hotspot_8u372b07.tar.gz",
    ("osx", "arm64"): f"{_TEMURIN_8}OpenJDK8U-jre_x64_mac_hotspot_8u372b07.tar.gz",
}

JVM_RUNTIME_NAME = "jre-8"

_java_exe = "java.exe" if platform.system() == "Windows" else "java"
_version_re = re.compile(r'version "([^"]+)"')


class JvmNotFoundError(Exception):
    """Raised if no JVM can be found nor installed, the particular reason is given as
    code, with the error that caused it if any.
    """

    UNSUPPORTED_PLATFORM = "unsupported_platform"
    DOWNLOAD_FAILED = "download_failed"
    INVALID_RUNTIME = "invalid_runtime"

    def __init__(self, code: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(code)
        self.code = code
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is None:
            return repr(self.code)
        return f"{self.code!r} ({self.cause})"


class Jvm:
    """A resolved JVM, its kind is one of the `JvmLoadedEvent` kinds.
    """

    __slots__ = "path", "version", "kind"

    def __init__(self, path: Path, version: str, kind: str) -> None:
        self.path = path
        self.version = version
        self.kind = kind

    def __repr__(self) -> str:
        return f"<Jvm {self.kind} {self.version} {self.path}>"


class JvmResolver:
    """Resolve the JVM of the game, once per resolver. The runtime is installed in
    `<main>/jvm/jre-8`.

    :param builtin: Name or path of the builtin java command to check first, none to
    never use a builtin JVM.
    :param archive_url: URL of the runtime archive (zip or tar.gz), defaults to the
    Temurin 8 archive of the running platform.
    :param major_version: The required major version.
    """

    def __init__(self, context: Context, fetcher: Fetcher, *,
        builtin: Optional[str] = _java_exe,
        archive_url: Optional[str] = None,
        major_version: int = 8,
        version_timeout: float = 10.0
    ) -> None:
        self.context = context
        self.fetcher = fetcher
        self.builtin = builtin
        self.archive_url = JVM_ARCHIVE_URLS.get((minecraft_os, minecraft_arch)) if archive_url is None else archive_url
        self.major_version = major_version
        self.version_timeout = version_timeout
        self.jvm: Optional[Jvm] = None
        self._flights = SingleFlight()

    @property
    def runtime_dir(self) -> Path:
        return self.context.jvm_dir / JVM_RUNTIME_NAME

    async def resolve(self, watcher: Optional[Watcher] = None) -> Jvm:
        """Resolve the JVM, concurrent calls share the same resolution.

        :raises JvmNotFoundError: If no JVM is usable and none can be installed.
        """
        if self.jvm is None:
            watcher = Watcher() if watcher is None else watcher
            self.jvm = await self._flights.run(JVM_RUNTIME_NAME, lambda: self._resolve(watcher))
        return self.jvm

    async def _resolve(self, watcher: Watcher) -> Jvm:

        watcher.handle(JvmLoadingEvent())

        if self.builtin is not None:
            builtin_path = shutil.which(self.builtin)
            if builtin_path is not None:
                version = await query_jvm_version(builtin_path, timeout=self.version_timeout)
                if version is not None and jvm_major_version(version) == self.major_version:
                    logger.debug("Using builtin JVM %s (%s)", builtin_path, version)
                    return self._loaded(watcher, Jvm(Path(builtin_path), version, JvmLoadedEvent.BUILTIN))
                logger.info("Builtin JVM %s is not a Java %d runtime (%s)", builtin_path, self.major_version, version)

        jvm = await self._find_installed(JvmLoadedEvent.LOCAL)
        if jvm is not None:
            return self._loaded(watcher, jvm)

        if self.archive_url is None:
            raise JvmNotFoundError(JvmNotFoundError.UNSUPPORTED_PLATFORM)

        await self._install(watcher, self.archive_url)

        jvm = await self._find_installed(JvmLoadedEvent.DOWNLOADED)
        if jvm is None:
            raise JvmNotFoundError(JvmNotFoundError.INVALID_RUNTIME)
        return self._loaded(watcher, jvm)

    def _loaded(self, watcher: Watcher, jvm: Jvm) -> Jvm:
        watcher.handle(JvmLoadedEvent(jvm.version, jvm.kind))
        return jvm

    async def _find_installed(self, kind: str) -> Optional[Jvm]:
        """Find the java executable of the installed runtime, if it runs.
        """
        for path in find_java_executables(self.runtime_dir):
            version = await query_jvm_version(str(path), timeout=self.version_timeout)
            if version is not None:
                return Jvm(path, version, kind)
        return None

    async def _install(self, watcher: Watcher, url: str) -> None:

        archive_file = self.context.jvm_dir / url.rsplit("/", 1)[-1]
        tmp_dir = self.context.jvm_dir / f"{JVM_RUNTIME_NAME}.tmp"

        watcher.handle(JvmFetchingEvent(url))
        logger.info("Downloading JVM from %s", url)

        try:
            await self.fetcher.fetch(DownloadEntry(url, archive_file, name=archive_file.name))
        except FetchError as error:
            raise JvmNotFoundError(JvmNotFoundError.DOWNLOAD_FAILED, cause=error)

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, _install_runtime, archive_file, tmp_dir, self.runtime_dir)
        except (OSError, ValueError, BadZipFile, tarfile.TarError) as error:
            raise JvmNotFoundError(JvmNotFoundError.INVALID_RUNTIME, cause=error)
        finally:
            shutil.rmtree(tmp_dir, ignore_errors=True)
            archive_file.unlink(missing_ok=True)


async def query_jvm_version(path: str, *, timeout: float = 10.0) -> Optional[str]:
    """Run `<path> -version` and return the version it prints, an empty string if it
    prints none, or none if the executable can't run or fails.
    """

    try:
        process = await asyncio.create_subprocess_exec(path, "-version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT)
    except OSError:
        return None

    try:
        output, _ = await asyncio.wait_for(process.communicate(), timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        return None

    if process.returncode != 0:
        return None

    match = _version_re.search(output.decode(errors="replace"))
    return "" if match is None else match[1]


def jvm_major_version(version: str) -> Optional[int]:
    """Major version of a java version string, `1.8.0_372` and `8.0.372` are both 8.
    """
    parts = re.split(r"[._+-]", version)
    try:
        major = int(parts[0])
        if major == 1 and len(parts) > 1:
            major = int(parts[1])
    except ValueError:
        return None
    return major


def find_java_executables(runtime_dir: Path) -> List[Path]:
    """Java executables of a runtime directory, found in any `bin` subdirectory.
    """
    if not runtime_dir.is_dir():
        return []
    return sorted(path for path in runtime_dir.rglob(_java_exe) if path.parent.name == "bin" and path.is_file())


def extract_archive(archive_file: Path, dst_dir: Path) -> None:
    """Extract a zip or tar archive, no member can be written outside of the
    destination directory.
    """

    dst_dir.mkdir(parents=True, exist_ok=True)

    if archive_file.name.endswith(".zip"):
        with ZipFile(archive_file, "r") as archive_zip:
            for name in archive_zip.namelist():
                _check_member(dst_dir, name)
            archive_zip.extractall(dst_dir)
    else:
        with tarfile.open(archive_file, "r:*") as archive_tar:
            members = archive_tar.getmembers()
            for member in members:
                _check_member(dst_dir, member.name)
            if hasattr(tarfile, "data_filter"):
                archive_tar.extractall(dst_dir, members, filter="data")
            else:
                archive_tar.extractall(dst_dir, members)


def _check_member(dst_dir: Path, name: str) -> None:
    root = dst_dir.resolve()
    target = (dst_dir / name).resolve()
    if target != root and root not in target.parents:
        raise ValueError(f"archive member outside of the destination: {name}")


def _install_runtime(archive_file: Path, tmp_dir: Path, runtime_dir: Path) -> None:

    shutil.rmtree(tmp_dir, ignore_errors=True)
    extract_archive(archive_file, tmp_dir)

    # Zip archives don't keep the executable permission.
    for path in find_java_executables(tmp_dir):
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    shutil.rmtree(runtime_dir, ignore_errors=True)
    os.replace(tmp_dir, runtime_dir)
