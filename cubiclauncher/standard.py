"""Definition of the installation context shared by all components of the launcher, of
the watcher plumbing used to report progress and of the events sent through it.
"""

from pathlib import Path
from uuid import uuid4
import asyncio

from .util import get_game_dir

from typing import Optional, Iterator, Dict, Any, Callable, Set


RESOURCES_URL = "https://resources.download.minecraft.net/"
LIBRARIES_URL = "https://libraries.minecraft.net/"
VERSION_MANIFEST_URL = "https://launchermeta.mojang.com/mc/game/version_manifest.json"


class Context:
    """Context of the game's installation and runtime. This defines various directories
    where versions, assets and libraries are stored, as well as a bin directory for
    temporary runtime files, and also a working directory from where the game will run.
    """

    def __init__(self,
        main_dir: Optional[Path] = None,
        work_dir: Optional[Path] = None
    ) -> None:
        """Construct an installation context. This context is used by most of the
        installer's tasks to know where to install files and from where to launch the game.

        :param main_dir: The main directory where versions, assets and libraries are
        installed. If not specified, it's taken from the `CUBICLAUNCHER_DIR` environment
        variable or else the platform's application data directory.
        :param work_dir: The working directory from where the game is run, the game stores
        thing like saves, resource packs, options and mods. This defaults to `main_dir`
        if not specified.
        """

        main_dir = get_game_dir() if main_dir is None else main_dir
        self.main_dir = main_dir
        self.work_dir = main_dir if work_dir is None else work_dir
        self.versions_dir = main_dir / "versions"
        self.assets_dir = main_dir / "assets"
        self.libraries_dir = main_dir / "libraries"
        self.jvm_dir = main_dir / "jvm"
        self.bin_dir = self.work_dir / "bin"
        self.mods_dir = self.work_dir / "mods"

    def get_version(self, version: str) -> "VersionHandle":
        """Get a version's handle.
        """
        return VersionHandle(version, self.versions_dir / version)

    def list_versions(self) -> "Iterator[VersionHandle]":
        """List installed versions given their handles.
        """
        if self.versions_dir.is_dir():
            for version_dir in sorted(self.versions_dir.iterdir()):
                if version_dir.is_dir():
                    version = VersionHandle(version_dir.name, version_dir)
                    if version.metadata_exists():
                        yield version

    def gen_bin_dir(self) -> Path:
        """Generate a random named binary directory, may be used for any kind of temporary
        files and data. Usually for shared libraries used by the game. Note that this
        directory isn't created by this method, only its path is returned.
        """
        return self.bin_dir / str(uuid4())


class VersionHandle:
    """Paths of a version's files in the versions directory. The resolver is the only
    one allowed to write these files.
    """

    __slots__ = "id", "dir"

    def __init__(self, id: str, dir: Path) -> None:
        self.id = id
        self.dir = dir

    def metadata_exists(self) -> bool:
        return self.metadata_file().is_file()

    def metadata_file(self) -> Path:
        return self.dir / f"{self.id}.json"

    def jar_file(self) -> Path:
        return self.dir / f"{self.id}.jar"

    def __str__(self) -> str:
        return self.id

    def __repr__(self) -> str:
        return f"<VersionHandle {self.id}>"


class Watcher:
    """Base class for a watcher of the install process.
    """

    def handle(self, event: Any) -> None:
        """Called when the watcher can handle the given event. Default implementation
        does nothing.
        """


class WatcherGroup(Watcher):
    """A group of watcher that is itself a watcher, its functions dispatches events to
    all tasks.
    """

    def __init__(self) -> None:
        self.children: Set[Watcher] = set()

    def add(self, watcher: Watcher) -> None:
        """Add a watcher to this group.
        """
        self.children.add(watcher)

    def remove(self, watcher: Watcher) -> None:
        """Remove a watcher from the group.
        """
        self.children.remove(watcher)

    def handle(self, event: Any) -> None:
        for watcher in self.children:
            watcher.handle(event)


class SimpleWatcher(Watcher):

    def __init__(self, handlers: Dict[type, Callable[[Any], None]]) -> None:
        self.handlers = handlers

    def handle(self, event: Any) -> None:
        handler = self.handlers.get(type(event))
        if handler is not None:
            handler(event)


class QueueWatcher(Watcher):
    """A watcher pushing every event to an asyncio queue, for a consumer running in
    another task (a user interface for example).
    """

    def __init__(self, queue: "Optional[asyncio.Queue]" = None) -> None:
        self.queue: asyncio.Queue = asyncio.Queue() if queue is None else queue

    def handle(self, event: Any) -> None:
        self.queue.put_nowait(event)


class VersionEvent:
    """Base class for events regarding version.
    """
    __slots__ = "version",
    def __init__(self, version: str) -> None:
        self.version = version

class VersionLoadingEvent(VersionEvent):
    """Event triggered when a version is being loaded from the local versions directory.
    """
    __slots__ = tuple()

class VersionFetchingEvent(VersionEvent):
    """Event triggered when a version's metadata is being fetched or synthesized.
    """
    __slots__ = tuple()

class VersionRepairingEvent(VersionEvent):
    """Event triggered when the JAR file of an otherwise valid version is repaired.
    """
    __slots__ = tuple()

class VersionLoadedEvent(VersionEvent):
    """Event triggered when a version has been successfully resolved.
    """
    __slots__ = "fetched",
    def __init__(self, version: str, fetched: bool) -> None:
        super().__init__(version)
        self.fetched = fetched

class JarFoundEvent(VersionEvent):
    """Event triggered when the game's JAR file has been found or fetched.
    """
    __slots__ = tuple()

class LibrariesResolvedEvent:
    """Event triggered when all libraries have been processed.
    """
    __slots__ = "class_libs_count", "native_libs_count"
    def __init__(self, class_libs_count: int, native_libs_count: int) -> None:
        self.class_libs_count = class_libs_count
        self.native_libs_count = native_libs_count

class AssetsResolveEvent:
    __slots__ = "index_version", "count"
    def __init__(self, index_version: str, count: Optional[int]) -> None:
        self.index_version = index_version
        self.count = count

class JvmLoadingEvent:
    """Event triggered when the JVM starts being resolved.
    """
    __slots__ = tuple()

class JvmFetchingEvent:
    """Event triggered when a JVM runtime is being downloaded and installed.
    """
    __slots__ = "url",
    def __init__(self, url: str) -> None:
        self.url = url

class JvmLoadedEvent:
    """Event triggered when the JVM has been resolved.
    """

    BUILTIN = "builtin"        # Builtin JVM (java command)
    LOCAL = "local"            # Runtime previously installed in the JVM directory
    DOWNLOADED = "downloaded"  # Runtime just installed in the JVM directory
    CUSTOM = "custom"          # Custom JVM given in the runtime options

    __slots__ = "version", "kind"
    def __init__(self, version: Optional[str], kind: str) -> None:
        self.version = version
        self.kind = kind

class ProgressEvent:
    """Event triggered while materializing a batch of items, periodically and once at
    the end of each phase.
    """

    LIBRARIES = "libraries"
    ASSETS = "assets"

    __slots__ = "phase", "completed", "total"
    def __init__(self, phase: str, completed: int, total: int) -> None:
        self.phase = phase
        self.completed = completed
        self.total = total

    @property
    def done(self) -> bool:
        return self.completed >= self.total
