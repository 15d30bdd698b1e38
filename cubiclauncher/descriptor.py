"""Definition of the version descriptor model, parsed from both the Mojang's metadata
format and the normalized format written back to the versions directory. Descriptors
with a parent can be merged into self-contained descriptors.
"""

from json import JSONDecodeError
import platform
import json
import re

from .util import LibrarySpecifier

from typing import Optional, Dict, List, Any, Set


__all__ = ["SCHEMA_VERSION", "ArtifactRef", "LibraryRef", "AssetIndexRef",
    "VersionDescriptor", "merge", "interpret_rule", "interpret_args"]


# Version of the merge logic, descriptors stamped with another version are rebuilt.
SCHEMA_VERSION = 1


class ArtifactRef:
    """A downloadable artifact, the optional path is relative to the directory where
    such artifacts are stored (libraries directory for example).
    """

    __slots__ = "url", "sha1", "size", "path"

    def __init__(self, url: str, sha1: Optional[str] = None, size: Optional[int] = None, path: Optional[str] = None) -> None:
        self.url = url
        self.sha1 = sha1
        self.size = size
        self.path = path

    def to_dict(self) -> dict:
        ret: Dict[str, Any] = {}
        if self.path is not None:
            ret["path"] = self.path
        if self.sha1 is not None:
            ret["sha1"] = self.sha1
        if self.size is not None:
            ret["size"] = self.size
        ret["url"] = self.url
        return ret

    def __eq__(self, other) -> bool:
        return isinstance(other, ArtifactRef) and \
            (self.url, self.sha1, self.size, self.path) == (other.url, other.sha1, other.size, other.path)

    def __repr__(self) -> str:
        return f"<ArtifactRef {self.url}>"


class LibraryRef:
    """A library of a version, its artifact is absent for libraries that cannot be
    downloaded and must already be installed.
    """

    __slots__ = "name", "artifact", "native", "rules"

    def __init__(self, name: str, artifact: Optional[ArtifactRef] = None, *, native: bool = False, rules: Optional[list] = None) -> None:
        self.name = name
        self.artifact = artifact
        self.native = native
        self.rules = rules

    def specifier(self) -> LibrarySpecifier:
        return LibrarySpecifier.from_str(self.name)

    def key(self) -> str:
        """Identity of the library regardless of its version.
        """
        return self.specifier().key()

    @property
    def path(self) -> str:
        """Path of this library relative to the libraries directory.
        """
        if self.artifact is not None and self.artifact.path is not None:
            return self.artifact.path
        return self.specifier().file_path()

    def applies(self, features: Optional[Dict[str, bool]] = None) -> bool:
        """Return true if the rules of this library allows it on the running system.
        """
        if self.rules is None:
            return True
        return interpret_rule(self.rules, features or {}, f"library {self.name}: /rules")

    def to_dict(self) -> dict:
        ret: Dict[str, Any] = {"name": self.name}
        if self.artifact is not None:
            ret["downloads"] = {"artifact": self.artifact.to_dict()}
        if self.native:
            ret["native"] = True
        if self.rules is not None:
            ret["rules"] = self.rules
        return ret

    def __eq__(self, other) -> bool:
        return isinstance(other, LibraryRef) and \
            (self.name, self.artifact, self.native, self.rules) == (other.name, other.artifact, other.native, other.rules)

    def __repr__(self) -> str:
        return f"<LibraryRef {self.name}>"


class AssetIndexRef:

    __slots__ = "id", "url", "sha1", "size"

    def __init__(self, id: str, url: str, sha1: Optional[str] = None, size: Optional[int] = None) -> None:
        self.id = id
        self.url = url
        self.sha1 = sha1
        self.size = size

    def to_dict(self) -> dict:
        ret: Dict[str, Any] = {"id": self.id}
        if self.sha1 is not None:
            ret["sha1"] = self.sha1
        if self.size is not None:
            ret["size"] = self.size
        ret["url"] = self.url
        return ret

    def __eq__(self, other) -> bool:
        return isinstance(other, AssetIndexRef) and \
            (self.id, self.url, self.sha1, self.size) == (other.id, other.url, other.sha1, other.size)

    def __repr__(self) -> str:
        return f"<AssetIndexRef {self.id}>"


class VersionDescriptor:
    """A version descriptor, describing everything needed to install and launch a
    version. A descriptor written by the resolver is self-contained, its parent (if any)
    has already been merged into it and `inherits_from` is only kept as provenance.
    """

    __slots__ = "id", "inherits_from", "type", "main_class", "game_arguments", \
        "jvm_arguments", "legacy_arguments", "libraries", "asset_index", "client", \
        "schema_version"

    def __init__(self, id: str, main_class: Optional[str] = None, *,
        inherits_from: Optional[str] = None,
        type: Optional[str] = None,
        game_arguments: Optional[list] = None,
        jvm_arguments: Optional[list] = None,
        legacy_arguments: Optional[str] = None,
        libraries: Optional[List[LibraryRef]] = None,
        asset_index: Optional[AssetIndexRef] = None,
        client: Optional[ArtifactRef] = None,
        schema_version: Optional[int] = None
    ) -> None:
        self.id = id
        self.inherits_from = inherits_from
        self.type = type
        self.main_class = main_class
        self.game_arguments = game_arguments
        self.jvm_arguments = jvm_arguments
        self.legacy_arguments = legacy_arguments
        self.libraries = [] if libraries is None else libraries
        self.asset_index = asset_index
        self.client = client
        self.schema_version = schema_version

    @property
    def legacy(self) -> bool:
        """True if this version only declares the legacy arguments string.
        """
        return self.game_arguments is None and self.legacy_arguments is not None

    def is_current(self) -> bool:
        """Return true if this descriptor was produced by the current merge logic.
        """
        return self.schema_version == SCHEMA_VERSION

    @classmethod
    def parse(cls, data: Any) -> "VersionDescriptor":
        """Parse a version descriptor from its decoded JSON document.

        :raises ValueError: If the document is malformed, the message is prefixed by
        the JSON path of the faulty value.
        """

        if not isinstance(data, dict):
            raise ValueError("metadata: / must be an object")

        id = data.get("id")
        if not isinstance(id, str) or not len(id):
            raise ValueError("metadata: /id must be a non-empty string")

        inherits_from = _get_opt(data, "inheritsFrom", str)
        main_class = _get_opt(data, "mainClass", str)
        if main_class is None and inherits_from is None:
            raise ValueError("metadata: /mainClass must be a string")

        schema_version = _get_opt(data, "schemaVersion", int)
        version_type = _get_opt(data, "type", str)

        game_arguments = None
        jvm_arguments = None
        arguments = data.get("arguments")
        if arguments is not None:
            if not isinstance(arguments, dict):
                raise ValueError("metadata: /arguments must be an object")
            game_arguments = arguments.get("game", [])
            jvm_arguments = arguments.get("jvm", [])
            # Check arguments while ignoring the actual result.
            interpret_args(game_arguments, {}, [], "metadata: /arguments/game")
            interpret_args(jvm_arguments, {}, [], "metadata: /arguments/jvm")

        legacy_arguments = _get_opt(data, "minecraftArguments", str)

        libraries = []
        raw_libraries = data.get("libraries", [])
        if not isinstance(raw_libraries, list):
            raise ValueError("metadata: /libraries must be a list")
        for library_idx, raw_library in enumerate(raw_libraries):
            library = _parse_library(raw_library, f"metadata: /libraries/{library_idx}")
            if library is not None:
                libraries.append(library)

        asset_index = None
        raw_asset_index = data.get("assetIndex")
        if raw_asset_index is not None:
            if not isinstance(raw_asset_index, dict):
                raise ValueError("metadata: /assetIndex must be an object")
            asset_index_id = data.get("assets", raw_asset_index.get("id"))
            if not isinstance(asset_index_id, str):
                raise ValueError("metadata: /assets or /assetIndex/id must be a string")
            artifact = _parse_artifact(raw_asset_index, "metadata: /assetIndex")
            asset_index = AssetIndexRef(asset_index_id, artifact.url, artifact.sha1, artifact.size)

        client = None
        downloads = data.get("downloads")
        if downloads is not None:
            if not isinstance(downloads, dict):
                raise ValueError("metadata: /downloads must be an object")
            raw_client = downloads.get("client")
            if raw_client is not None:
                client = _parse_artifact(raw_client, "metadata: /downloads/client")

        return cls(id, main_class,
            inherits_from=inherits_from,
            type=version_type,
            game_arguments=game_arguments,
            jvm_arguments=jvm_arguments,
            legacy_arguments=legacy_arguments,
            libraries=libraries,
            asset_index=asset_index,
            client=client,
            schema_version=schema_version)

    @classmethod
    def from_json(cls, text: str) -> "VersionDescriptor":
        try:
            data = json.loads(text)
        except JSONDecodeError as error:
            raise ValueError(f"metadata: invalid json: {error}")
        return cls.parse(data)

    def to_dict(self) -> dict:
        """Return the normalized document of this descriptor, the keys are always in
        the same order.
        """

        ret: Dict[str, Any] = {}
        if self.schema_version is not None:
            ret["schemaVersion"] = self.schema_version
        ret["id"] = self.id
        if self.inherits_from is not None:
            ret["inheritsFrom"] = self.inherits_from
        if self.type is not None:
            ret["type"] = self.type
        if self.main_class is not None:
            ret["mainClass"] = self.main_class
        if self.game_arguments is not None or self.jvm_arguments is not None:
            ret["arguments"] = {
                "game": self.game_arguments or [],
                "jvm": self.jvm_arguments or []
            }
        if self.legacy_arguments is not None:
            ret["minecraftArguments"] = self.legacy_arguments
        if self.asset_index is not None:
            ret["assets"] = self.asset_index.id
            ret["assetIndex"] = self.asset_index.to_dict()
        if self.client is not None:
            ret["downloads"] = {"client": self.client.to_dict()}
        ret["libraries"] = [library.to_dict() for library in self.libraries]
        return ret

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    def __eq__(self, other) -> bool:
        return isinstance(other, VersionDescriptor) and self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"<VersionDescriptor {self.id}>"


def merge(parent: VersionDescriptor, child: VersionDescriptor) -> VersionDescriptor:
    """Merge a parent descriptor into its child, producing a new descriptor with the
    child's identity. Libraries of the child come first and override the parent's ones
    with the same key (group, artifact and classifier, regardless of the version).
    Modern arguments are concatenated, parent's first. Other fields of the child take
    precedence when defined. The result has no schema version.
    """

    libraries = list(child.libraries)
    child_keys = {library.key() for library in child.libraries}
    libraries.extend(library for library in parent.libraries if library.key() not in child_keys)

    game_arguments = _concat_args(parent.game_arguments, child.game_arguments)
    jvm_arguments = _concat_args(parent.jvm_arguments, child.jvm_arguments)

    main_class = child.main_class or parent.main_class
    if main_class is None:
        raise ValueError(f"metadata: /mainClass missing from {child.id} and its parent {parent.id}")

    return VersionDescriptor(child.id, main_class,
        inherits_from=child.inherits_from if child.inherits_from is not None else parent.id,
        type=child.type or parent.type,
        game_arguments=game_arguments,
        jvm_arguments=jvm_arguments,
        legacy_arguments=child.legacy_arguments if child.legacy_arguments is not None else parent.legacy_arguments,
        libraries=libraries,
        asset_index=child.asset_index or parent.asset_index,
        client=child.client or parent.client)


def _concat_args(parent: Optional[list], child: Optional[list]) -> Optional[list]:
    if parent is None and child is None:
        return None
    return [*(parent or []), *(child or [])]


def _get_opt(data: dict, key: str, kind: type) -> Any:
    value = data.get(key)
    if value is not None and (not isinstance(value, kind) or isinstance(value, bool)):
        raise ValueError(f"metadata: /{key} must be a {_KIND_NAMES[kind]}")
    return value

_KIND_NAMES = {str: "string", int: "integer", dict: "object", list: "list"}


def _parse_artifact(value: Any, path: str) -> ArtifactRef:
    """Common function to parse an artifact from a metadata JSON file.
    """

    if not isinstance(value, dict):
        raise ValueError(f"{path} must an object")

    url = value.get("url")
    if not isinstance(url, str):
        raise ValueError(f"{path}/url must be a string")

    size = value.get("size")
    if size is not None and not isinstance(size, int):
        raise ValueError(f"{path}/size must be an integer")

    sha1 = value.get("sha1")
    if sha1 is not None and not isinstance(sha1, str):
        raise ValueError(f"{path}/sha1 must be a string")

    artifact_path = value.get("path")
    if artifact_path is not None and not isinstance(artifact_path, str):
        raise ValueError(f"{path}/path must be a string")

    return ArtifactRef(url, sha1, size, artifact_path)


def _parse_library(library: Any, path: str) -> Optional[LibraryRef]:
    """Parse a single library, none is returned if the library is a native library that
    is not available for the running OS.
    """

    if not isinstance(library, dict):
        raise ValueError(f"{path} must be an object")

    name = library.get("name")
    if not isinstance(name, str):
        raise ValueError(f"{path}/name must be a string")

    try:
        spec = LibrarySpecifier.from_str(name)
    except ValueError as error:
        raise ValueError(f"{path}/name {error}")

    rules = library.get("rules")
    if rules is not None:
        # Only to validate the rules, they are evaluated later.
        interpret_rule(rules, {}, f"{path}/rules")

    native = library.get("native", False)
    if not isinstance(native, bool):
        raise ValueError(f"{path}/native must be a boolean")

    # Old metadata files provides a 'natives' mapping from OS to the classifier
    # specific for this OS, this kind of libs are "native libs", we need to
    # extract their dynamic libs into the "bin" directory before running.
    natives = library.get("natives")
    if natives is not None:

        if not isinstance(natives, dict):
            raise ValueError(f"{path}/natives must be an object")

        spec.classifier = natives.get(minecraft_os)
        if spec.classifier is None:
            return None

        if minecraft_arch_bits is not None:
            spec.classifier = spec.classifier.replace("${arch}", str(minecraft_arch_bits))

        native = True

    artifact: Optional[ArtifactRef] = None

    downloads = library.get("downloads")
    if downloads is not None:

        if not isinstance(downloads, dict):
            raise ValueError(f"{path}/downloads must be an object")

        if natives is not None:
            # Only check classifiers if natives mapping is present.
            classifiers = downloads.get("classifiers")
            if classifiers is not None and not isinstance(classifiers, dict):
                raise ValueError(f"{path}/downloads/classifiers must be an object")
            raw_artifact = None if classifiers is None else classifiers.get(spec.classifier)
            artifact_path = f"{path}/downloads/classifiers/{spec.classifier}"
        else:
            raw_artifact = downloads.get("artifact")
            artifact_path = f"{path}/downloads/artifact"

        if raw_artifact is not None:
            artifact = _parse_artifact(raw_artifact, artifact_path)
            if artifact.path is None:
                artifact.path = spec.file_path()

    # If no artifact can be found, try to find the maven repository url.
    if artifact is None:
        repo_url = library.get("url")
        if repo_url is not None:

            if not isinstance(repo_url, str):
                raise ValueError(f"{path}/url must be a string")

            # Let's be sure to have a '/' as last character.
            if not repo_url.endswith("/"):
                repo_url += "/"

            file_path = spec.file_path()
            artifact = ArtifactRef(f"{repo_url}{file_path}", path=file_path)

    # Empty URLs are found in some descriptors for libraries shipped by an installer.
    if artifact is not None and not len(artifact.url):
        artifact = None

    return LibraryRef(str(spec), artifact, native=native, rules=rules)


def interpret_rule(rules: Any, features: Dict[str, bool], path: str, *,
    all_features: Optional[Set[str]] = None
) -> bool:
    """Common function to interpret rules and determine if the condition is met.
    """

    if not isinstance(rules, list):
        raise ValueError(f"{path} must be a list")

    allowed = False
    for i, rule in enumerate(rules):

        if not isinstance(rule, dict):
            raise ValueError(f"{path}/{i} must be an object")

        action = rule.get("action")
        if action not in ("allow", "disallow"):
            raise ValueError(f"{path}/{i}/action must be 'allow' or 'disallow'")

        rule_os = rule.get("os")
        if rule_os is not None and not interpret_rule_os(rule_os, f"{path}/{i}/os"):
            continue

        rule_features = rule.get("features")
        if rule_features is not None:

            if not isinstance(rule_features, dict):
                raise ValueError(f"{path}/{i}/features must be an object")

            feat_valid = True
            for feat_name, feat_expected in rule_features.items():
                if all_features is not None:
                    all_features.add(feat_name)
                if features.get(feat_name, False) != feat_expected:
                    feat_valid = False

            if not feat_valid:
                continue

        if action == "disallow":
            return False    # Early return because of disallow.
        else:
            allowed = True

    return allowed


def interpret_rule_os(rule_os: Any, path: str) -> bool:
    """Common function to interpret a rule constraint on the running OS.
    """

    if not isinstance(rule_os, dict):
        raise ValueError(f"{path} must be an object")

    os_name = rule_os.get("name")
    if os_name is None or os_name == minecraft_os:
        os_arch = rule_os.get("arch")
        if os_arch is None or os_arch == minecraft_arch:
            os_version = rule_os.get("version")
            if os_version is None or re.search(os_version, platform.version()) is not None:
                return True
    return False


def interpret_args(args: Any, features: Dict[str, bool], dst: List[str], path: str, *,
    all_features: Optional[Set[str]] = None
) -> None:
    """Common function for interpreting a list of arguments, whose may be conditional
    under some rules. An optional set of features can be given and will be filled with
    all features found (even if not used).
    """

    if not isinstance(args, list):
        raise ValueError(f"{path} must be a list")

    for i, arg in enumerate(args):

        if isinstance(arg, str):
            dst.append(arg)
        elif isinstance(arg, dict):

            rules = arg.get("rules")
            if rules is not None:
                if not interpret_rule(rules, features, f"{path}/{i}/rules", all_features=all_features):
                    continue

            arg_value = arg.get("value")
            if isinstance(arg_value, list):
                dst.extend(arg_value)
            elif isinstance(arg_value, str):
                dst.append(arg_value)
            else:
                raise ValueError(f"{path}/{i}/value must be a list or a string")
        else:
            raise ValueError(f"{path}/{i} must be an object or a string")


# Name of the OS has used by Minecraft.
minecraft_os = {
    "Linux": "linux",
    "Windows": "windows",
    "Darwin": "osx",
    "FreeBSD": "freebsd"
}.get(platform.system())

# Name of the processor's architecture has used by Minecraft.
minecraft_arch = {
    "i386": "x86",
    "i686": "x86",
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "arm64": "arm64",
    "aarch64": "arm64",
    "armv7l": "arm32",
    "armv6l": "arm32",
}.get(platform.machine().lower())

# Stores the bits length of pointers on the current system.
minecraft_arch_bits = {
    "64bit": 64,
    "32bit": 32
}.get(platform.architecture()[0])
