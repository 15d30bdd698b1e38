"""Definition of the loader releases, installed as variants of a base version. The
loader release used by the community is Forge 14.23.5.2860 for Minecraft 1.12.2.
"""

from .descriptor import VersionDescriptor, LibraryRef, ArtifactRef
from .util import LibrarySpecifier
from .standard import LIBRARIES_URL

from typing import Optional, List


__all__ = ["LoaderRelease", "FORGE_1_12_2", "FORGE_VERSION", "FORGE_MAVEN_URL", "MAVEN_CENTRAL_URL",
    "LOADER_RELEASES", "maven_library"]


FORGE_MAVEN_URL = "https://maven.minecraftforge.net/"
MAVEN_CENTRAL_URL = "https://repo1.maven.org/maven2/"


class LoaderRelease:
    """A loader release, its descriptor is synthesized from its own fields merged over
    the descriptor of its base version.

    If the release declares its own client artifact, the version's JAR file is fetched
    from it, otherwise the JAR file of the base version is copied.
    """

    __slots__ = "loader", "loader_version", "base_version", "main_class", \
        "legacy_arguments", "libraries", "client"

    def __init__(self,
        loader: str,
        loader_version: str,
        base_version: str,
        main_class: str,
        legacy_arguments: Optional[str],
        libraries: List[LibraryRef],
        client: Optional[ArtifactRef] = None
    ) -> None:
        self.loader = loader
        self.loader_version = loader_version
        self.base_version = base_version
        self.main_class = main_class
        self.legacy_arguments = legacy_arguments
        self.libraries = libraries
        self.client = client

    @property
    def id(self) -> str:
        return f"{self.base_version}-{self.loader}-{self.loader_version}"

    def descriptor(self) -> VersionDescriptor:
        """Return the descriptor of this release's own fields, to be merged over the
        base version's descriptor.
        """
        return VersionDescriptor(self.id, self.main_class,
            inherits_from=self.base_version,
            legacy_arguments=self.legacy_arguments,
            libraries=list(self.libraries),
            client=self.client)

    def __repr__(self) -> str:
        return f"<LoaderRelease {self.id}>"


def maven_library(name: str, repo_url: str, *, sha1: Optional[str] = None, size: Optional[int] = None, file_name: Optional[str] = None) -> LibraryRef:
    """Build a library downloaded from a maven repository, an alternative remote file
    name can be given for repositories publishing the artifact under another name.
    """
    spec = LibrarySpecifier.from_str(name)
    path = spec.file_path()
    remote_path = path if file_name is None else path.rsplit("/", 1)[0] + "/" + file_name
    return LibraryRef(name, ArtifactRef(f"{repo_url}{remote_path}", sha1, size, path))


FORGE_VERSION = "14.23.5.2860"

FORGE_1_12_2 = LoaderRelease(
    loader="forge",
    loader_version=FORGE_VERSION,
    base_version="1.12.2",
    main_class="net.minecraft.launchwrapper.Launch",
    legacy_arguments=" ".join([
        "--username ${auth_player_name}",
        "--version ${version_name}",
        "--gameDir ${game_directory}",
        "--assetsDir ${assets_root}",
        "--assetIndex ${assets_index_name}",
        "--uuid ${auth_uuid}",
        "--accessToken ${auth_access_token}",
        "--userType ${user_type}",
        "--tweakClass net.minecraftforge.fml.common.launcher.FMLTweaker",
        "--versionType Forge",
    ]),
    libraries=[
        # The forge library is the universal JAR, stored under its plain name.
        maven_library(f"net.minecraftforge:forge:1.12.2-{FORGE_VERSION}", FORGE_MAVEN_URL,
            sha1="029250575d3aa2cf80b56dffb66238a1eeaea2ac", size=4466148,
            file_name=f"forge-1.12.2-{FORGE_VERSION}-universal.jar"),
        maven_library("net.minecraft:launchwrapper:1.12", LIBRARIES_URL),
        maven_library("org.ow2.asm:asm-all:5.2", FORGE_MAVEN_URL),
        maven_library("org.jline:jline:3.5.1", MAVEN_CENTRAL_URL),
        maven_library("net.java.dev.jna:jna:4.4.0", MAVEN_CENTRAL_URL),
        maven_library("com.typesafe.akka:akka-actor_2.11:2.3.3", FORGE_MAVEN_URL),
        maven_library("com.typesafe:config:1.2.1", FORGE_MAVEN_URL),
        maven_library("org.scala-lang:scala-actors-migration_2.11:1.1.0", FORGE_MAVEN_URL),
        maven_library("org.scala-lang:scala-compiler:2.11.1", FORGE_MAVEN_URL),
        maven_library("org.scala-lang.plugins:scala-continuations-library_2.11:1.0.2", FORGE_MAVEN_URL),
        maven_library("org.scala-lang.plugins:scala-continuations-plugin_2.11.1:1.0.2", FORGE_MAVEN_URL),
        maven_library("org.scala-lang:scala-library:2.11.1", FORGE_MAVEN_URL),
        maven_library("org.scala-lang:scala-parser-combinators_2.11:1.0.1", FORGE_MAVEN_URL),
        maven_library("org.scala-lang:scala-reflect:2.11.1", FORGE_MAVEN_URL),
        maven_library("org.scala-lang:scala-swing_2.11:1.0.1", FORGE_MAVEN_URL),
        maven_library("org.scala-lang:scala-xml_2.11:1.0.2", FORGE_MAVEN_URL),
        maven_library("lzma:lzma:0.0.1", LIBRARIES_URL),
        maven_library("java3d:vecmath:1.5.2", LIBRARIES_URL),
        maven_library("net.sf.trove4j:trove4j:3.0.3", LIBRARIES_URL),
        maven_library("org.apache.maven:maven-artifact:3.5.3", MAVEN_CENTRAL_URL),
        maven_library("net.sf.jopt-simple:jopt-simple:5.0.3", LIBRARIES_URL),
    ])

# Loader releases known by default, by version id.
LOADER_RELEASES = {FORGE_1_12_2.id: FORGE_1_12_2}
