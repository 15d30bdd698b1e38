"""Definition of the process runner, spawning the game from a launch configuration and
forwarding what happens to a watcher.
"""

from zipfile import ZipFile
from pathlib import Path
import asyncio
import logging
import shutil

from .launch import LaunchConfig
from .standard import Watcher

from typing import Optional, List


__all__ = ["Runner", "ProcessRunner", "RunnerDebugEvent", "RunnerDataEvent",
    "RunnerProgressEvent", "RunnerErrorEvent", "RunnerCloseEvent"]

logger = logging.getLogger(__name__)


class RunnerDebugEvent:
    __slots__ = "message",
    def __init__(self, message: str) -> None:
        self.message = message

class RunnerDataEvent:
    """Event triggered for each line printed by the game.
    """
    __slots__ = "line",
    def __init__(self, line: str) -> None:
        self.line = line

class RunnerProgressEvent:
    __slots__ = "stage",
    def __init__(self, stage: str) -> None:
        self.stage = stage

class RunnerErrorEvent:
    __slots__ = "error",
    def __init__(self, error: BaseException) -> None:
        self.error = error

class RunnerCloseEvent:
    __slots__ = "code",
    def __init__(self, code: int) -> None:
        self.code = code


class Runner:
    """Base class handling game running.
    """

    async def run(self, config: LaunchConfig, watcher: Optional[Watcher] = None) -> int:
        """Run the game and wait for it to terminate.

        :return: The exit code of the game.
        """
        raise NotImplementedError


class ProcessRunner(Runner):
    """Default runner, extracting natives to a temporary binary directory, spawning the
    game in its working directory and streaming its output line by line. If the task
    running this is cancelled, the game is killed.
    """

    def __init__(self, *, forward_output: bool = True, chunk_size: int = 65536) -> None:
        self.forward_output = forward_output
        self.chunk_size = chunk_size

    async def run(self, config: LaunchConfig, watcher: Optional[Watcher] = None) -> int:

        watcher = Watcher() if watcher is None else watcher
        bin_dir = config.natives_dir.absolute()
        loop = asyncio.get_running_loop()

        try:

            watcher.handle(RunnerProgressEvent("natives"))
            await loop.run_in_executor(None, extract_natives, list(config.native_archives), bin_dir)

            args = config.command()
            watcher.handle(RunnerDebugEvent(" ".join(redact_args(args, config.access_token))))
            watcher.handle(RunnerProgressEvent("spawn"))

            config.work_dir.mkdir(parents=True, exist_ok=True)
            process = await asyncio.create_subprocess_exec(*args,
                cwd=config.work_dir,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT)

            logger.info("Game process started with pid %d", process.pid)
            code = await self._wait(process, watcher)
            logger.info("Game process exited with code %d", code)
            watcher.handle(RunnerCloseEvent(code))
            return code

        except asyncio.CancelledError:
            raise
        except Exception as error:
            watcher.handle(RunnerErrorEvent(error))
            raise
        finally:
            shutil.rmtree(bin_dir, ignore_errors=True)

    async def _wait(self, process: asyncio.subprocess.Process, watcher: Watcher) -> int:
        try:
            assert process.stdout is not None
            # Read by chunks, a line can be longer than the stream reader's limit.
            pending = b""
            while True:
                chunk = await process.stdout.read(self.chunk_size)
                if not chunk:
                    break
                *lines, pending = (pending + chunk).split(b"\n")
                for line in lines:
                    self._forward_line(line, watcher)
            if pending:
                self._forward_line(pending, watcher)
            return await process.wait()
        except BaseException:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

    def _forward_line(self, raw_line: bytes, watcher: Watcher) -> None:
        if self.forward_output:
            watcher.handle(RunnerDataEvent(raw_line.decode(errors="replace").rstrip("\r")))


def extract_natives(native_archives: List[Path], bin_dir: Path) -> None:
    """Extract the dynamic libraries of the native archives (jar, zip) into the binary
    directory, other files are copied.
    """

    bin_dir.mkdir(parents=True, exist_ok=True)

    for src_file in native_archives:

        if not src_file.is_file():
            raise ValueError(f"source native file not found: {src_file}")

        native_name = src_file.name
        if native_name.endswith((".zip", ".jar")):

            with ZipFile(src_file, "r") as native_zip:
                for native_zip_info in native_zip.infolist():
                    native_name = native_zip_info.filename
                    if native_name.endswith((".so", ".dll", ".dylib", ".jnilib")):
                        dst_file = bin_dir / native_name.rsplit("/", 1)[-1]
                        with native_zip.open(native_zip_info, "r") as src_fp:
                            with dst_file.open("wb") as dst_fp:
                                shutil.copyfileobj(src_fp, dst_fp)

        else:
            shutil.copyfile(src_file, bin_dir / native_name)


def redact_args(args: List[str], secret: str) -> List[str]:
    """Return the arguments with any occurrence of the secret hidden.
    """
    if not secret:
        return list(args)
    return [arg.replace(secret, "<redacted>") for arg in args]
