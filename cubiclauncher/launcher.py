"""The launcher, tying the installation pipeline and the launch together: a version is
prepared (resolved then materialized) before being launched with a player's identity.
"""

import logging

from .standard import Context, Watcher, WatcherGroup, JvmLoadedEvent, VERSION_MANIFEST_URL, RESOURCES_URL
from .http import HttpClient
from .download import Fetcher
from .manifest import VersionManifest
from .resolver import Resolver
from .materializer import Materializer, MaterializeReport
from .descriptor import VersionDescriptor
from .launch import Identity, RuntimeOptions, LaunchConfig, build_launch_config
from .runner import Runner, ProcessRunner
from .jvm import JvmResolver
from .forge import LoaderRelease, LOADER_RELEASES

from typing import Optional, Dict


__all__ = ["Launcher", "PreparedVersion"]

logger = logging.getLogger(__name__)


class PreparedVersion:
    """A version ready to be launched, unless its report has failures.
    """

    __slots__ = "descriptor", "report"

    def __init__(self, descriptor: VersionDescriptor, report: MaterializeReport) -> None:
        self.descriptor = descriptor
        self.report = report

    @property
    def ok(self) -> bool:
        return self.report.ok


class Launcher:
    """The launcher owns the shared HTTP client and the components built on it, it should
    be closed once done.
    """

    def __init__(self,
        context: Optional[Context] = None, *,
        client: Optional[HttpClient] = None,
        fetcher: Optional[Fetcher] = None,
        loaders: Optional[Dict[str, LoaderRelease]] = None,
        runner: Optional[Runner] = None,
        jvm: Optional[JvmResolver] = None,
        concurrency: int = 16,
        manifest_url: str = VERSION_MANIFEST_URL,
        resources_url: str = RESOURCES_URL
    ) -> None:
        self.context = Context() if context is None else context
        self.client = HttpClient() if client is None else client
        self.fetcher = Fetcher(self.client) if fetcher is None else fetcher
        self.watcher = WatcherGroup()
        self.manifest = VersionManifest(self.client,
            url=manifest_url,
            cache_file=self.context.versions_dir / "version_manifest.json")
        self.resolver = Resolver(self.context, self.fetcher, self.manifest,
            loaders=LOADER_RELEASES if loaders is None else loaders,
            watcher=self.watcher)
        self.materializer = Materializer(self.context, self.fetcher,
            concurrency=concurrency,
            resources_url=resources_url)
        self.runner = ProcessRunner() if runner is None else runner
        self.jvm = JvmResolver(self.context, self.fetcher) if jvm is None else jvm

    def find_loader(self, version: str, loader: str) -> Optional[LoaderRelease]:
        """Find a registered loader release for the given base version, the loader is
        either a loader name (`forge`) or a full loader version id.
        """
        release = self.resolver.loaders.get(loader)
        if release is not None:
            return release
        for release in self.resolver.loaders.values():
            if release.base_version == version and release.loader == loader:
                return release
        return None

    async def resolve_version_id(self, version: str, loader: Optional[str] = None) -> str:
        """Resolve aliases (`release`, `snapshot`) and loader names to a version id.
        """
        version, _alias = await self.manifest.filter_latest(version)
        if loader is not None:
            release = self.find_loader(version, loader)
            if release is None:
                raise ValueError(f"no {loader} release for {version}")
            return release.id
        return version

    async def prepare(self, version: str, *, loader: Optional[str] = None, watcher: Optional[Watcher] = None) -> PreparedVersion:
        """Resolve the given version and install its libraries and assets.

        :raises ResolveError: If the version cannot be resolved.
        """

        if watcher is not None:
            self.watcher.add(watcher)

        try:
            version_id = await self.resolve_version_id(version, loader)
            descriptor = await self.resolver.resolve(version_id)
            report = await self.materializer.materialize(descriptor, self.watcher)
        finally:
            if watcher is not None:
                self.watcher.remove(watcher)

        logger.info("Prepared %s: %d items, %d failures", descriptor.id, len(report.succeeded), len(report.failed))
        return PreparedVersion(descriptor, report)

    def configure(self, prepared: PreparedVersion, identity: Optional[Identity], options: Optional[RuntimeOptions] = None) -> LaunchConfig:
        return build_launch_config(self.context, prepared.descriptor, identity, options)

    async def launch(self, prepared: PreparedVersion, identity: Optional[Identity], options: Optional[RuntimeOptions] = None, *, watcher: Optional[Watcher] = None) -> int:
        """Launch a prepared version and wait for the game to terminate. If the options
        give no java executable, the JVM is resolved and installed if needed.

        :return: The exit code of the game.
        :raises ConfigError: If the identity or the options are invalid.
        :raises JvmNotFoundError: If no JVM can be found or installed.
        """
        options = RuntimeOptions() if options is None else options
        config = self.configure(prepared, identity, options)
        if options.java is None:
            jvm = await self.jvm.resolve(watcher)
            config = config._replace(java=str(jvm.path))
        elif watcher is not None:
            watcher.handle(JvmLoadedEvent(None, JvmLoadedEvent.CUSTOM))
        return await self.runner.run(config, watcher)

    async def close(self) -> None:
        await self.client.close()

    async def __aenter__(self) -> "Launcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
