"""Definition of the launch configuration builder, turning a resolved descriptor and an
identity into the exact command line of the game. Nothing is spawned here.
"""

from pathlib import Path
import re
import os

from .descriptor import VersionDescriptor, interpret_args
from .standard import Context
from .util import jvm_bin_filename
from . import LAUNCHER_NAME, LAUNCHER_VERSION

from typing import Optional, Dict, List, Tuple, NamedTuple, Iterator


__all__ = ["Identity", "RuntimeOptions", "LaunchConfig", "ConfigError",
    "build_launch_config", "replace_vars", "replace_list_vars", "parse_memory"]


LAUNCHWRAPPER_MAIN_CLASS = "net.minecraft.launchwrapper.Launch"


class Identity:
    """The identity of the player, as given by an identity provider.
    """

    __slots__ = "display_name", "uuid", "access_token", "user_type", "xuid"

    def __init__(self, display_name: str, uuid: str, access_token: str, *, user_type: str = "msa", xuid: str = "") -> None:
        self.display_name = display_name
        self.uuid = uuid
        self.access_token = access_token
        self.user_type = user_type
        self.xuid = xuid

    def missing_fields(self) -> List[str]:
        return [name for name in ("display_name", "uuid", "access_token") if not getattr(self, name)]

    def __repr__(self) -> str:
        return f"<Identity {self.display_name} {self.uuid}>"


class RuntimeOptions:
    """Options of the game's runtime, memory bounds are given in the JVM format, for
    example `512M` or `2G`. The java executable is resolved by the launcher if not
    given, a bare `java` command is used if the configuration is built directly.
    """

    __slots__ = "min_memory", "max_memory", "java", "extra_jvm_args", "resolution", "demo"

    def __init__(self, *,
        min_memory: str = "1G",
        max_memory: str = "2G",
        java: Optional[str] = None,
        extra_jvm_args: Optional[List[str]] = None,
        resolution: Optional[Tuple[int, int]] = None,
        demo: bool = False
    ) -> None:
        self.min_memory = min_memory
        self.max_memory = max_memory
        self.java = java
        self.extra_jvm_args = [] if extra_jvm_args is None else extra_jvm_args
        self.resolution = resolution
        self.demo = demo


class LaunchConfig(NamedTuple):
    """The complete configuration needed to spawn the game.
    """
    main_dir: Path
    work_dir: Path
    version_id: str
    main_class: str
    java: str
    jvm_args: Tuple[str, ...]
    game_args: Tuple[str, ...]
    min_memory: str
    max_memory: str
    natives_dir: Path
    native_archives: Tuple[Path, ...]
    access_token: str

    def command(self) -> List[str]:
        """Return the full argument vector of the game process.
        """
        return [self.java, *self.jvm_args, self.main_class, *self.game_args]


class ConfigError(Exception):
    """Raised when the launch configuration cannot be built.
    """

    MISSING_IDENTITY = "missing_identity"
    INVALID_MEMORY = "invalid_memory"

    def __init__(self, code: str, detail: str) -> None:
        super().__init__(code, detail)
        self.code = code
        self.detail = detail

    def __str__(self) -> str:
        return f"{self.code}: {self.detail}"


_MEMORY_UNITS = {"": 1, "K": 1024, "M": 1024 ** 2, "G": 1024 ** 3}


def parse_memory(value: str) -> int:
    """Parse a JVM memory size, like `512M`, to a number of bytes.

    :raises ConfigError: If the value is malformed.
    """
    match = re.fullmatch(r"(\d+)([kKmMgG]?)", value.strip()) if isinstance(value, str) else None
    if match is None or int(match[1]) == 0:
        raise ConfigError(ConfigError.INVALID_MEMORY, f"invalid memory size {value!r}")
    return int(match[1]) * _MEMORY_UNITS[match[2].upper()]


def build_launch_config(context: Context, descriptor: VersionDescriptor, identity: Optional[Identity], options: Optional[RuntimeOptions] = None) -> LaunchConfig:
    """Build the launch configuration of a resolved descriptor.

    :raises ConfigError: If the identity is incomplete or the memory bounds invalid.
    :raises ValueError: If the arguments of the descriptor are malformed.
    """

    options = RuntimeOptions() if options is None else options

    if identity is None:
        raise ConfigError(ConfigError.MISSING_IDENTITY, "display_name, uuid, access_token")
    missing = identity.missing_fields()
    if missing:
        raise ConfigError(ConfigError.MISSING_IDENTITY, ", ".join(missing))

    min_memory = options.min_memory.strip()
    max_memory = options.max_memory.strip()
    if parse_memory(min_memory) > parse_memory(max_memory):
        raise ConfigError(ConfigError.INVALID_MEMORY, f"minimum {min_memory} exceeds maximum {max_memory}")

    version_dir = context.versions_dir / descriptor.id
    jar_file = version_dir / f"{descriptor.id}.jar"
    natives_dir = context.gen_bin_dir()

    features = {
        "is_demo_user": options.demo,
        "has_custom_resolution": options.resolution is not None,
    }

    class_path: List[str] = []
    native_archives: List[Path] = []
    for library in descriptor.libraries:
        if not library.applies(features):
            continue
        lib_file = context.libraries_dir / library.path
        if library.native:
            native_archives.append(lib_file.absolute())
        else:
            class_path.append(str(lib_file.absolute()))

    jvm_args = [f"-Xms{min_memory}", f"-Xmx{max_memory}"]
    game_args: List[str] = []
    all_features = set()

    if not descriptor.legacy:
        interpret_args(descriptor.jvm_arguments or [], features, jvm_args, "metadata: /arguments/jvm", all_features=all_features)
        interpret_args(descriptor.game_arguments or [], features, game_args, "metadata: /arguments/game", all_features=all_features)
        # Modern versions seems to prefer having the main class last in class path.
        class_path.append(str(jar_file.absolute()))
    else:
        interpret_args(legacy_jvm_args, features, jvm_args, "<legacy_jvm_args>", all_features=all_features)
        if descriptor.legacy_arguments:
            game_args.extend(descriptor.legacy_arguments.split())
        # Old versions seems to prefer having the main class first in class path.
        class_path.insert(0, str(jar_file.absolute()))

    if descriptor.main_class == LAUNCHWRAPPER_MAIN_CLASS:
        jvm_args.append(f"-Dminecraft.client.jar={jar_file.absolute()}")

    # The arguments do not support custom resolution or demo, add them.
    if options.resolution is not None and "has_custom_resolution" not in all_features:
        game_args.extend(("--width", str(options.resolution[0]), "--height", str(options.resolution[1])))
    if options.demo and "is_demo_user" not in all_features:
        game_args.append("--demo")

    jvm_args.extend(options.extra_jvm_args)

    asset_index_id = "" if descriptor.asset_index is None else descriptor.asset_index.id

    replacements = {
        # Game
        "auth_player_name": identity.display_name,
        "version_name": descriptor.id,
        "library_directory": str(context.libraries_dir.absolute()),
        "game_directory": str(context.work_dir.absolute()),
        "assets_root": str(context.assets_dir.absolute()),
        "assets_index_name": asset_index_id,
        "auth_uuid": identity.uuid.replace("-", ""),
        "auth_access_token": identity.access_token,
        "auth_xuid": identity.xuid,
        "user_type": identity.user_type,
        "version_type": descriptor.type or "release",
        # Game (legacy)
        "auth_session": identity.access_token,
        "game_assets": str(context.assets_dir.joinpath("virtual", asset_index_id).absolute()),
        "user_properties": "{}",
        # JVM
        "natives_directory": str(natives_dir.absolute()),
        "launcher_name": LAUNCHER_NAME,
        "launcher_version": LAUNCHER_VERSION,
        "classpath_separator": os.pathsep,
        "classpath": os.pathsep.join(class_path),
    }

    if options.resolution is not None:
        replacements["resolution_width"] = str(options.resolution[0])
        replacements["resolution_height"] = str(options.resolution[1])

    return LaunchConfig(
        main_dir=context.main_dir,
        work_dir=context.work_dir,
        version_id=descriptor.id,
        main_class=descriptor.main_class or "",
        java=jvm_bin_filename if options.java is None else options.java,
        jvm_args=tuple(replace_list_vars(jvm_args, replacements)),
        game_args=tuple(replace_list_vars(game_args, replacements)),
        min_memory=min_memory,
        max_memory=max_memory,
        natives_dir=natives_dir,
        native_archives=tuple(native_archives),
        access_token=identity.access_token)


_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def replace_vars(text: str, replacements: Dict[str, str]) -> str:
    """Replace all variables of the form `${foo}` in a string, unknown variables are
    left untouched.
    """
    return _VAR_PATTERN.sub(lambda m: replacements.get(m[1], m[0]), text)


def replace_list_vars(text_list: List[str], replacements: Dict[str, str]) -> Iterator[str]:
    """Call `replace_vars` on multiple texts in a list with the same replacements.
    """
    return (replace_vars(elt, replacements) for elt in text_list)


# JVM arguments used if no arguments are specified.
legacy_jvm_args = [
    {
        "rules": [{"action": "allow", "os": {"name": "osx"}}],
        "value": ["-XstartOnFirstThread"]
    },
    {
        "rules": [{"action": "allow", "os": {"name": "windows"}}],
        "value": "-XX:HeapDumpPath=MojangTricksIntelDriversForPerformance_javaw.exe_minecraft.exe.heapdump"
    },
    {
        "rules": [{"action": "allow", "os": {"name": "windows", "version": "^10\\."}}],
        "value": ["-Dos.name=Windows 10", "-Dos.version=10.0"]
    },
    "-Djava.library.path=${natives_directory}",
    "-Dminecraft.launcher.brand=${launcher_name}",
    "-Dminecraft.launcher.version=${launcher_version}",
    "-cp",
    "${classpath}"
]
