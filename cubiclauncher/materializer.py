"""Definition of the materializer, installing the libraries and assets required by a
resolved version descriptor. Items are processed independently: a failed item is
reported and never aborts the others.
"""

from json import JSONDecodeError
from pathlib import Path
import asyncio
import logging
import shutil
import json

import aiofiles

from .descriptor import VersionDescriptor, AssetIndexRef
from .download import DownloadEntry, DownloadList, Fetcher, FetchError, check_file
from .standard import Context, Watcher, ProgressEvent, LibrariesResolvedEvent, \
    AssetsResolveEvent, RESOURCES_URL
from .http import HttpError

from typing import Optional, Dict, List


__all__ = ["Materializer", "MaterializeReport", "MaterializeItemError", "LibraryNotFoundError"]

logger = logging.getLogger(__name__)


class LibraryNotFoundError(Exception):
    """Critical error raised when a library has no download indication and is not
    currently installed in game's libraries.
    """
    def __init__(self, name: str, path: Path) -> None:
        super().__init__(name, path)
        self.name = name
        self.path = path

    def __str__(self) -> str:
        return f"{self.name} not found at {self.path}"


class MaterializeItemError:
    """A single failed item of a materialization, the id is the library name, the asset
    name or `asset-index:<id>` for the asset index itself.
    """

    __slots__ = "id", "cause"

    def __init__(self, id: str, cause: BaseException) -> None:
        self.id = id
        self.cause = cause

    def __str__(self) -> str:
        return f"{self.id}: {self.cause}"

    def __repr__(self) -> str:
        return f"<MaterializeItemError {self}>"


class MaterializeReport:
    """Report of a materialization, both lists are sorted by item id.
    """

    __slots__ = "succeeded", "failed"

    def __init__(self) -> None:
        self.succeeded: List[str] = []
        self.failed: List[MaterializeItemError] = []

    @property
    def ok(self) -> bool:
        return not self.failed

    def _sort(self) -> None:
        self.succeeded.sort()
        self.failed.sort(key=lambda item: item.id)


class Materializer:
    """Install the libraries and assets of a descriptor with bounded parallelism.
    """

    def __init__(self,
        context: Context,
        fetcher: Fetcher, *,
        concurrency: int = 16,
        resources_url: str = RESOURCES_URL,
        progress_interval: int = 100
    ) -> None:
        self.context = context
        self.fetcher = fetcher
        self.concurrency = concurrency
        self.resources_url = resources_url
        self.progress_interval = progress_interval

    async def materialize(self, descriptor: VersionDescriptor, watcher: Optional[Watcher] = None) -> MaterializeReport:
        """Install all libraries and assets of the given descriptor.
        """

        watcher = Watcher() if watcher is None else watcher
        report = MaterializeReport()

        await self._materialize_libraries(descriptor, report, watcher)
        if descriptor.asset_index is not None:
            await self._materialize_assets(descriptor.asset_index, report, watcher)

        report._sort()
        if report.failed:
            logger.warning("Materialized %s with %d failure(s)", descriptor.id, len(report.failed))
        return report

    async def _materialize_libraries(self, descriptor: VersionDescriptor, report: MaterializeReport, watcher: Watcher) -> None:

        dl = DownloadList()
        class_count = native_count = 0
        libraries = [library for library in descriptor.libraries if library.applies()]

        for library in libraries:

            if library.native:
                native_count += 1
            else:
                class_count += 1

            lib_file = self.context.libraries_dir / library.path
            artifact = library.artifact

            if artifact is None:
                if await check_file(lib_file):
                    report.succeeded.append(library.name)
                else:
                    logger.warning("Library %s has no download and is missing", library.name)
                    report.failed.append(MaterializeItemError(library.name, LibraryNotFoundError(library.name, lib_file)))
            elif await check_file(lib_file, size=artifact.size, sha1=artifact.sha1):
                report.succeeded.append(library.name)
            else:
                dl.add(DownloadEntry(artifact.url, lib_file, size=artifact.size, sha1=artifact.sha1, name=library.name))

        await self._download(ProgressEvent.LIBRARIES, dl, len(libraries) - dl.count, len(libraries), report, watcher)
        watcher.handle(LibrariesResolvedEvent(class_count, native_count))

    async def _materialize_assets(self, asset_index: AssetIndexRef, report: MaterializeReport, watcher: Watcher) -> None:

        watcher.handle(AssetsResolveEvent(asset_index.id, None))

        try:
            index = await self._load_asset_index(asset_index)
            objects = _parse_asset_index(index)
        except (FetchError, HttpError, OSError, ValueError) as error:
            logger.warning("Failed to load asset index %s: %s", asset_index.id, error)
            report.failed.append(MaterializeItemError(f"asset-index:{asset_index.id}", error))
            return

        objects_dir = self.context.assets_dir / "objects"
        dl = DownloadList()
        assets: Dict[str, Path] = {}
        # Different asset names may share the same object, downloaded once for all.
        pending: Dict[Path, List[str]] = {}

        for asset_id, (asset_hash, asset_size) in objects.items():
            asset_hash_prefix = asset_hash[:2]
            asset_file = objects_dir.joinpath(asset_hash_prefix, asset_hash)
            assets[asset_id] = asset_file
            # Content addressed files are not hashed again if already present.
            if asset_file.is_file():
                report.succeeded.append(asset_id)
                continue
            names = pending.setdefault(asset_file, [])
            if not names:
                dl.add(DownloadEntry(f"{self.resources_url}{asset_hash_prefix}/{asset_hash}", asset_file,
                    size=asset_size, sha1=asset_hash, name=asset_id))
            names.append(asset_id)

        watcher.handle(AssetsResolveEvent(asset_index.id, len(assets)))

        skipped = len(assets) - sum(map(len, pending.values()))
        await self._download(ProgressEvent.ASSETS, dl, skipped, len(assets), report, watcher)

        failures = {item.id: item for item in report.failed}
        for names in pending.values():
            failure = failures.get(names[0])
            for alias in names[1:]:
                if failure is None:
                    report.succeeded.append(alias)
                else:
                    report.failed.append(MaterializeItemError(alias, failure.cause))

        await self._finalize_assets(index, asset_index.id, assets)

    async def _download(self, phase: str, dl: DownloadList, completed: int, total: int, report: MaterializeReport, watcher: Watcher) -> None:

        count = completed
        watcher.handle(ProgressEvent(phase, count, total))

        def on_result(entry: DownloadEntry, error: Optional[FetchError]) -> None:
            nonlocal count
            count += 1
            if error is None:
                report.succeeded.append(entry.name)
            else:
                report.failed.append(MaterializeItemError(entry.name, error))
            if count % self.progress_interval == 0 and count < total:
                watcher.handle(ProgressEvent(phase, count, total))

        if dl.count:
            logger.info("Downloading %d %s", dl.count, phase)
            await dl.download(self.fetcher, concurrency=self.concurrency, on_result=on_result)
            watcher.handle(ProgressEvent(phase, total, total))

    async def _load_asset_index(self, asset_index: AssetIndexRef) -> dict:
        """Read the asset index if already installed, fetch it otherwise.
        """

        index_file = self.context.assets_dir / "indexes" / f"{asset_index.id}.json"

        try:
            async with aiofiles.open(index_file, "rt") as fp:
                return json.loads(await fp.read())
        except (OSError, JSONDecodeError, UnicodeDecodeError):
            pass

        logger.info("Fetching asset index %s", asset_index.id)
        await self.fetcher.fetch(DownloadEntry(asset_index.url, index_file,
            size=asset_index.size,
            sha1=asset_index.sha1,
            name=f"{asset_index.id}.json"))

        async with aiofiles.open(index_file, "rt") as fp:
            try:
                return json.loads(await fp.read())
            except JSONDecodeError as error:
                raise ValueError(f"assets index: invalid json: {error}")

    async def _finalize_assets(self, index: dict, index_id: str, assets: Dict[str, Path]) -> None:
        """Copy the assets to the locations expected by legacy versions.
        """

        dst_dirs = []
        if index.get("virtual", False):  # For 13w23b < version <= 13w48b (1.7.2)
            dst_dirs.append(self.context.assets_dir.joinpath("virtual", index_id))
        if index.get("map_to_resources", False):  # For version <= 13w23b
            dst_dirs.append(self.context.work_dir / "resources")

        if dst_dirs:
            await asyncio.get_running_loop().run_in_executor(None, _copy_assets, dst_dirs, assets)


def _parse_asset_index(index: dict) -> Dict[str, tuple]:

    if not isinstance(index, dict):
        raise ValueError("assets index: / must be an object")

    for key in ("virtual", "map_to_resources"):
        if not isinstance(index.get(key, False), bool):
            raise ValueError(f"assets index: /{key} must be a boolean")

    objects = index.get("objects")
    if not isinstance(objects, dict):
        raise ValueError("assets index: /objects must be an object")

    ret = {}
    for asset_id, asset_obj in objects.items():

        if not isinstance(asset_obj, dict):
            raise ValueError(f"assets index: /objects/{asset_id} must be an object")

        asset_hash = asset_obj.get("hash")
        if not isinstance(asset_hash, str) or len(asset_hash) < 2:
            raise ValueError(f"assets index: /objects/{asset_id}/hash must be a string")

        asset_size = asset_obj.get("size")
        if not isinstance(asset_size, int):
            raise ValueError(f"assets index: /objects/{asset_id}/size must be an integer")

        ret[asset_id] = (asset_hash.lower(), asset_size)

    return ret


def _copy_assets(dst_dirs: List[Path], assets: Dict[str, Path]) -> None:
    for dst_dir in dst_dirs:
        for asset_id, asset_file in assets.items():
            if not asset_file.is_file():
                continue
            dst_file = dst_dir / asset_id
            dst_file.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(str(asset_file), str(dst_file))
