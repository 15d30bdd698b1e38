"""Global utilities used internally. The functions can be used externally but upward
compatibility is not guaranteed unless explicitly specified.
"""

from pathlib import Path
import platform
import asyncio
import hashlib
import os

import aiofiles

from typing import Optional, Dict, Callable, Awaitable, Hashable, TypeVar


T = TypeVar("T")

jvm_bin_filename = "javaw.exe" if platform.system() == "Windows" else "java"


async def calc_file_sha1(path: Path, *, buffer_len: int = 65536) -> str:
    """Calculate the sha1 of a file's full content, reading it by chunks without
    blocking the event loop.

    :param path: Path of the file to hash.
    :param buffer_len: Length of the chunks read from the file, defaults to 65536.
    :return: The sha1 hexadecimal string.
    """
    h = hashlib.sha1()
    async with aiofiles.open(path, "rb") as fp:
        while True:
            chunk = await fp.read(buffer_len)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()


def get_game_dir() -> Path:
    """Internal function to get the default directory for installing and running the
    game. The `CUBICLAUNCHER_DIR` environment variable overrides the platform default.
    """

    env_dir = os.environ.get("CUBICLAUNCHER_DIR")
    if env_dir:
        return Path(env_dir)

    home = Path.home()
    system = platform.system()
    if system == "Windows":
        app_data = os.environ.get("APPDATA")
        base = Path(app_data) if app_data else home.joinpath("AppData", "Roaming")
        return base.joinpath(".cubiclauncher", "minecraft")
    elif system == "Darwin":
        return home.joinpath("Library", "Application Support", "cubiclauncher", "minecraft")
    else:
        return home.joinpath(".cubiclauncher", "minecraft")


class LibrarySpecifier:
    """A maven-style library specifier.
    """

    __slots__ = "group", "artifact", "version", "classifier", "extension"

    def __init__(self, group: str, artifact: str, version: str, classifier: Optional[str] = None, extension: str = "jar"):
        self.group = group
        self.artifact = artifact
        self.version = version
        self.classifier = classifier
        self.extension = extension

    @classmethod
    def from_str(cls, s: str) -> "LibrarySpecifier":
        """Parse a library specifier string 'group:artifact:version[:classifier][@ext]'.
        """

        ext_split = s.rsplit("@", maxsplit=1)
        ext = "jar" if len(ext_split) == 1 else ext_split[1]

        if not len(ext):
            raise ValueError("invalid library specifier: empty extension")

        parts = ext_split[0].split(":", 3)

        if len(parts) < 3:
            raise ValueError("invalid library specifier: too few parts")

        return cls(parts[0], parts[1], parts[2], parts[3] if len(parts) == 4 else None, ext)

    def key(self) -> str:
        """Return the identity of this library regardless of its version, two specifiers
        with the same key designate the same library and cannot coexist in a class path.
        """
        return f"{self.group}:{self.artifact}" + \
            ("" if self.classifier is None else f":{self.classifier}") + \
            ("" if self.extension == "jar" else f"@{self.extension}")

    def __str__(self) -> str:
        return f"{self.group}:{self.artifact}:{self.version}" + \
            ("" if self.classifier is None else f":{self.classifier}") + \
            ("" if self.extension == "jar" else f"@{self.extension}")

    def __eq__(self, other) -> bool:
        return isinstance(other, LibrarySpecifier) and \
            (self.group, self.artifact, self.version, self.classifier, self.extension) == \
            (other.group, other.artifact, other.version, other.classifier, other.extension)

    def __repr__(self) -> str:
        return f"<LibrarySpecifier {self}>"

    def __hash__(self) -> int:
        return hash((self.group, self.artifact, self.version, self.classifier, self.extension))

    def file_path(self) -> str:
        """Return the standard path to store the file of this specifier.

        The path separator will always be forward slashes '/', because it's compatible
        with linux/mac/windows and URL paths.

        Specifier `com.foo.bar:artifact:version@zip` gives
        `com/foo/bar/artifact/version/artifact-version.zip`.
        """

        file_name = f"{self.artifact}-{self.version}" + \
            ("" if self.classifier is None else f"-{self.classifier}") + \
            f".{self.extension}"

        return "/".join([*self.group.split("."), self.artifact, self.version, file_name])


class _Flight:
    __slots__ = "task", "waiters"
    def __init__(self, task: "asyncio.Future") -> None:
        self.task = task
        self.waiters = 0


class SingleFlight:
    """Deduplicate concurrent asynchronous operations sharing the same key. The first
    caller for a key starts the operation, any caller arriving while it's pending waits
    for the same outcome (result or exception) instead of starting another one.

    An entry lives from the first request to the completion of its operation, so a
    failed operation is retried by the next request. If all callers waiting on an
    entry are cancelled, the operation is cancelled and the entry is immediately
    cleared.
    """

    def __init__(self) -> None:
        self._flights: Dict[Hashable, _Flight] = {}

    def __len__(self) -> int:
        return len(self._flights)

    def pending(self, key: Hashable) -> bool:
        """Return true if an operation is currently in-flight for the given key.
        """
        return key in self._flights

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        """Run the operation produced by the factory, or join the one in-flight for
        the same key. The factory is only called when no operation is pending.
        """

        flight = self._flights.get(key)
        if flight is None:
            flight = _Flight(asyncio.ensure_future(factory()))
            self._flights[key] = flight
            flight.task.add_done_callback(lambda _task, key=key, flight=flight: self._forget(key, flight))

        flight.waiters += 1
        try:
            return await asyncio.shield(flight.task)
        finally:
            flight.waiters -= 1
            if not flight.waiters and not flight.task.done():
                # Every waiter is gone, nobody is interested in the result anymore.
                self._forget(key, flight)
                flight.task.cancel()
                await asyncio.wait((flight.task,))
                if not flight.task.cancelled():
                    flight.task.exception()

    def _forget(self, key: Hashable, flight: _Flight) -> None:
        if self._flights.get(key) is flight:
            del self._flights[key]
