"""Definition of the version resolver, in charge of producing a valid and self-contained
version descriptor with its JAR file, repairing the local versions directory from the
remote sources when needed.

Each version goes through the following steps:
- check the local descriptor: it must parse and have the current schema version, then
  its JAR file is checked and repaired alone if invalid;
- otherwise the descriptor is fetched from the manifest (base versions) or synthesized
  from a loader release merged over its base version (loader versions);
- the JAR file is fetched, or copied from the base version for loaders without their
  own client;
- the descriptor is atomically written, only once the JAR file is valid.

A failed resolution leaves nothing cached and can be retried.
"""

from pathlib import Path
import asyncio
import logging
import shutil
import os

import aiofiles

from .descriptor import SCHEMA_VERSION, VersionDescriptor, merge
from .download import DownloadEntry, Fetcher, FetchError, check_file
from .standard import Context, VersionHandle, Watcher, VersionLoadingEvent, \
    VersionFetchingEvent, VersionRepairingEvent, VersionLoadedEvent, JarFoundEvent
from .manifest import VersionManifest
from .forge import LoaderRelease
from .http import HttpError
from .util import SingleFlight

from typing import Optional, Dict, Tuple


__all__ = ["Resolver", "ResolveError"]

logger = logging.getLogger(__name__)


class ResolveError(Exception):
    """Raised when a version cannot be resolved, the error code is indicated and the
    underlying error, if any, is given as cause.
    """

    VERSION_NOT_FOUND = "version_not_found"
    METADATA_INVALID = "metadata_invalid"
    REPAIR_FAILED = "repair_failed"

    def __init__(self, version: str, code: str, cause: Optional[BaseException] = None, detail: Optional[str] = None) -> None:
        super().__init__(version, code)
        self.version = version
        self.code = code
        self.cause = cause
        self.detail = detail

    def __str__(self) -> str:
        ret = f"{self.version}: {self.code}"
        if self.detail is not None:
            ret += f" ({self.detail})"
        elif self.cause is not None:
            ret += f" ({self.cause})"
        return ret

    def __repr__(self) -> str:
        return f"<ResolveError {self}>"


class Resolver:
    """The version resolver. Resolved descriptors are cached for the lifetime of the
    resolver and concurrent resolutions of the same version share the same work.
    """

    BASE = "base"
    LOADER = "loader"

    # Maximum number of parents in a version hierarchy.
    MAX_DEPTH = 10

    def __init__(self,
        context: Context,
        fetcher: Fetcher,
        manifest: VersionManifest, *,
        loaders: Optional[Dict[str, LoaderRelease]] = None,
        watcher: Optional[Watcher] = None
    ) -> None:
        self.context = context
        self.fetcher = fetcher
        self.manifest = manifest
        self.loaders: Dict[str, LoaderRelease] = {} if loaders is None else dict(loaders)
        self.watcher = Watcher() if watcher is None else watcher
        self._cache: Dict[str, VersionDescriptor] = {}
        self._flights = SingleFlight()
        # Child version id to the parent version id it's currently waiting for.
        self._waiting: Dict[str, str] = {}

    def register_loader(self, release: LoaderRelease) -> None:
        self.loaders[release.id] = release

    def kind_of(self, version_id: str) -> str:
        """Return the kind of resolution used by default for the given version.
        """
        return Resolver.LOADER if version_id in self.loaders else Resolver.BASE

    def cached(self, version_id: str) -> Optional[VersionDescriptor]:
        return self._cache.get(version_id)

    def invalidate(self, version_id: str) -> None:
        """Forget the cached descriptor of the given version, the next resolution will
        check the local files again.
        """
        self._cache.pop(version_id, None)

    async def resolve(self, version_id: str, kind: Optional[str] = None) -> VersionDescriptor:
        """Resolve the given version, returning its self-contained descriptor once its
        descriptor file and JAR file are valid on disk.

        :param version_id: The version identifier.
        :param kind: Kind of resolution, `BASE` or `LOADER`, defaults to the kind of
        the version.
        :raises ResolveError: If the resolution failed.
        """
        if kind is None:
            kind = self.kind_of(version_id)
        return await self._resolve(version_id, kind, ())

    async def _resolve(self, version_id: str, kind: str, chain: Tuple[str, ...]) -> VersionDescriptor:

        cached = self._cache.get(version_id)
        if cached is not None:
            if _is_non_empty(self.context.get_version(version_id).jar_file()):
                return cached
            logger.info("JAR file of %s disappeared, resolving again", version_id)
            del self._cache[version_id]

        return await self._flights.run(version_id, lambda: self._load(version_id, kind, chain))

    async def _resolve_parent(self, child_id: str, parent_id: str, chain: Tuple[str, ...]) -> VersionDescriptor:

        chain = (*chain, child_id)
        if parent_id in chain or self._waits_on(parent_id, child_id):
            raise ResolveError(child_id, ResolveError.METADATA_INVALID,
                detail=f"cyclic hierarchy through {parent_id}")
        if len(chain) > Resolver.MAX_DEPTH:
            raise ResolveError(child_id, ResolveError.METADATA_INVALID,
                detail=f"hierarchy deeper than {Resolver.MAX_DEPTH}: {' -> '.join(chain)}")

        self._waiting[child_id] = parent_id
        try:
            return await self._resolve(parent_id, self.kind_of(parent_id), chain)
        finally:
            self._waiting.pop(child_id, None)

    def _waits_on(self, start: str, target: str) -> bool:
        """Return true if the given start version is, transitively, waiting for target.
        """
        seen = set()
        current: Optional[str] = start
        while current is not None and current not in seen:
            if current == target:
                return True
            seen.add(current)
            current = self._waiting.get(current)
        return False

    async def _load(self, version_id: str, kind: str, chain: Tuple[str, ...]) -> VersionDescriptor:

        self.watcher.handle(VersionLoadingEvent(version_id))
        handle = self.context.get_version(version_id)

        try:

            descriptor = await self._check_local(handle)
            fetched = descriptor is None

            if descriptor is not None:
                if not await self._check_jar(handle, descriptor):
                    logger.info("Repairing JAR file of %s", version_id)
                    self.watcher.handle(VersionRepairingEvent(version_id))
                    await self._materialize_jar(handle, descriptor, kind, chain)
            else:
                self.watcher.handle(VersionFetchingEvent(version_id))
                if kind == Resolver.LOADER:
                    descriptor = await self._synthesize(version_id, chain)
                else:
                    descriptor = await self._fetch_remote(handle, chain)
                if not await self._check_jar(handle, descriptor):
                    await self._materialize_jar(handle, descriptor, kind, chain)
                await self._persist(handle, descriptor)

        except ResolveError:
            raise
        except ValueError as error:
            raise ResolveError(version_id, ResolveError.METADATA_INVALID, error)
        except (FetchError, HttpError, OSError) as error:
            raise ResolveError(version_id, ResolveError.REPAIR_FAILED, error)

        logger.debug("Resolved %s (fetched: %s)", version_id, fetched)
        self.watcher.handle(VersionLoadedEvent(version_id, fetched))
        self._cache[version_id] = descriptor
        return descriptor

    async def _check_local(self, handle: VersionHandle) -> Optional[VersionDescriptor]:
        """Read the local descriptor, none is returned if it is absent, malformed or
        produced by another schema version.
        """

        try:
            async with aiofiles.open(handle.metadata_file(), "rt") as fp:
                text = await fp.read()
        except FileNotFoundError:
            logger.debug("No local descriptor for %s", handle.id)
            return None
        except (OSError, UnicodeDecodeError) as error:
            logger.info("Unreadable local descriptor for %s, rebuilding: %s", handle.id, error)
            return None

        try:
            descriptor = VersionDescriptor.from_json(text)
        except ValueError as error:
            logger.info("Invalid local descriptor for %s, rebuilding: %s", handle.id, error)
            return None

        if not descriptor.is_current() or descriptor.id != handle.id:
            logger.info("Stale local descriptor for %s (schema %s), rebuilding", handle.id, descriptor.schema_version)
            return None

        return descriptor

    async def _check_jar(self, handle: VersionHandle, descriptor: VersionDescriptor) -> bool:
        client = descriptor.client
        if client is None:
            return await check_file(handle.jar_file())
        return await check_file(handle.jar_file(), size=client.size, sha1=client.sha1)

    async def _fetch_remote(self, handle: VersionHandle, chain: Tuple[str, ...]) -> VersionDescriptor:

        version_id = handle.id
        version_data = await self.manifest.get_version(version_id)
        if version_data is None:
            raise ResolveError(version_id, ResolveError.VERSION_NOT_FOUND)

        url = version_data.get("url")
        if not isinstance(url, str):
            raise ValueError(f"manifest: /versions/{version_id}/url must be a string")

        logger.info("Fetching descriptor of %s from %s", version_id, url)

        tmp_file = handle.dir / f"{version_id}.json.part"
        await self.fetcher.fetch(DownloadEntry(url, tmp_file, sha1=version_data.get("sha1"), name=f"{version_id}.json"))
        try:
            async with aiofiles.open(tmp_file, "rt") as fp:
                text = await fp.read()
        finally:
            _unlink(tmp_file)

        descriptor = VersionDescriptor.from_json(text)
        descriptor.id = version_id

        if descriptor.inherits_from is not None:
            parent = await self._resolve_parent(version_id, descriptor.inherits_from, chain)
            descriptor = merge(parent, descriptor)
        elif descriptor.main_class is None:
            raise ValueError("metadata: /mainClass must be a string")

        descriptor.schema_version = SCHEMA_VERSION
        return descriptor

    async def _synthesize(self, version_id: str, chain: Tuple[str, ...]) -> VersionDescriptor:

        release = self.loaders.get(version_id)
        if release is None:
            raise ResolveError(version_id, ResolveError.VERSION_NOT_FOUND, detail="unknown loader release")

        logger.info("Synthesizing descriptor of %s over %s", version_id, release.base_version)
        base = await self._resolve_parent(version_id, release.base_version, chain)

        descriptor = merge(base, release.descriptor())
        descriptor.schema_version = SCHEMA_VERSION
        return descriptor

    async def _materialize_jar(self, handle: VersionHandle, descriptor: VersionDescriptor, kind: str, chain: Tuple[str, ...]) -> None:

        jar_file = handle.jar_file()
        release = self.loaders.get(handle.id) if kind == Resolver.LOADER else None

        if release is not None and release.client is None:
            base = await self._resolve_parent(handle.id, release.base_version, chain)
            base_jar = self.context.get_version(base.id).jar_file()
            logger.info("Seeding JAR file of %s from %s", handle.id, base.id)
            await _copy_file(base_jar, jar_file)
        elif descriptor.client is not None:
            client = descriptor.client
            logger.info("Fetching JAR file of %s", handle.id)
            await self.fetcher.fetch(DownloadEntry(client.url, jar_file,
                size=client.size,
                sha1=client.sha1,
                name=jar_file.name))
        else:
            raise ResolveError(handle.id, ResolveError.REPAIR_FAILED, detail="no client download for the JAR file")

        self.watcher.handle(JarFoundEvent(handle.id))

    async def _persist(self, handle: VersionHandle, descriptor: VersionDescriptor) -> None:
        """Atomically write the descriptor file, other readers see either the previous
        file or the new one.
        """

        handle.dir.mkdir(parents=True, exist_ok=True)
        tmp_file = handle.dir / f"{handle.id}.json.tmp"
        try:
            async with aiofiles.open(tmp_file, "wt") as fp:
                await fp.write(descriptor.to_json())
            os.replace(tmp_file, handle.metadata_file())
        except BaseException:
            _unlink(tmp_file)
            raise


async def _copy_file(src: Path, dst: Path) -> None:
    dst.parent.mkdir(parents=True, exist_ok=True)
    tmp_file = dst.with_name(f"{dst.name}.tmp")
    try:
        await asyncio.get_running_loop().run_in_executor(None, shutil.copyfile, src, tmp_file)
        os.replace(tmp_file, dst)
    except BaseException:
        _unlink(tmp_file)
        raise


def _is_non_empty(path: Path) -> bool:
    try:
        return path.stat().st_size > 0
    except OSError:
        return False


def _unlink(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
