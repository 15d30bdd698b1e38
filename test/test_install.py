"""Functional tests of the game's installation.
"""

import asyncio
import pytest

from cubiclauncher.standard import Context
from cubiclauncher.http import HttpClient
from cubiclauncher.download import Fetcher
from cubiclauncher.launcher import Launcher
from cubiclauncher.descriptor import VersionDescriptor, LibraryRef, SCHEMA_VERSION
from cubiclauncher.forge import FORGE_1_12_2


def _without_assets(launcher: Launcher) -> None:

    # We want to avoid downloading all assets since it can take really long time and it
    # tests nothing new, so the asset index is removed from the descriptor.
    old_materialize = launcher.materializer.materialize

    async def materialize(descriptor, watcher=None):
        descriptor.asset_index = None
        return await old_materialize(descriptor, watcher)

    launcher.materializer.materialize = materialize


def test_install_offline(tmp_context: Context):
    """A valid local installation is prepared without any request.
    """

    library = tmp_context.libraries_dir / "org/local/lib/1.0/lib-1.0.jar"
    library.parent.mkdir(parents=True)
    library.write_bytes(b"library")

    handle = tmp_context.get_version("local")
    handle.dir.mkdir(parents=True)
    handle.jar_file().write_bytes(b"jar")
    handle.metadata_file().write_text(VersionDescriptor("local", "local.Main",
        legacy_arguments="--username ${auth_player_name}",
        libraries=[LibraryRef("org.local:lib:1.0")],
        schema_version=SCHEMA_VERSION).to_json())

    async def run():
        # Nothing listens on this port.
        async with Launcher(tmp_context, manifest_url="http://127.0.0.1:1/manifest.json") as launcher:
            return await launcher.prepare("local")

    prepared = asyncio.run(run())
    assert prepared.ok
    assert prepared.report.succeeded == ["org.local:lib:1.0"]


@pytest.mark.slow
@pytest.mark.parametrize("test_version", ["1.12.2", "1.13.2"])
def test_install_vanilla(tmp_context: Context, test_version: str):
    """This test only run if --runslow argument is used and is used to check that the
    official versions can be successfully resolved and prepared.
    """

    async def run():
        async with HttpClient() as client, Launcher(tmp_context, client=client, fetcher=Fetcher(client)) as launcher:
            _without_assets(launcher)
            return await launcher.prepare(test_version)

    prepared = asyncio.run(run())
    assert prepared.ok, prepared.report.failed
    assert tmp_context.get_version(test_version).jar_file().is_file()


@pytest.mark.slow
def test_install_forge(tmp_context: Context):

    async def run():
        async with Launcher(tmp_context) as launcher:
            _without_assets(launcher)
            return await launcher.prepare("1.12.2", loader="forge")

    prepared = asyncio.run(run())
    assert prepared.ok, prepared.report.failed
    assert prepared.descriptor.id == FORGE_1_12_2.id
    assert tmp_context.get_version(FORGE_1_12_2.id).jar_file().read_bytes() == \
        tmp_context.get_version("1.12.2").jar_file().read_bytes()
