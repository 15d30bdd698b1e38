"""Main module of the command line interface, every command handler runs its
asynchronous work in its own event loop.
"""

from uuid import uuid4
import asyncio
import logging
import time
import sys

from .parse import register_arguments, RootNs, SearchNs, InstallNs, StartNs, LoginNs, \
    LogoutNs, ModsNs, ModsAddNs
from .util import format_locale_date, format_percent, format_expiry
from .output import Output, HumanOutput, MachineOutput, OutputTable
from .lang import get as _, lang

from ..standard import Context, SimpleWatcher, VersionLoadingEvent, VersionFetchingEvent, \
    VersionRepairingEvent, VersionLoadedEvent, JarFoundEvent, LibrariesResolvedEvent, \
    AssetsResolveEvent, ProgressEvent, JvmLoadingEvent, JvmFetchingEvent, JvmLoadedEvent
from ..runner import RunnerDebugEvent, RunnerDataEvent, RunnerProgressEvent, RunnerCloseEvent
from ..http import HttpClient, HttpError
from ..download import Fetcher, FetchError
from ..resolver import ResolveError
from ..launch import Identity, RuntimeOptions, ConfigError
from ..jvm import JvmNotFoundError
from ..auth import AccountDatabase, Account, AuthError, \
    OfflineIdentityProvider, MinecraftProfileProvider, login
from ..mods import JsonCatalogStore, ModEntry, ModManager
from ..launcher import Launcher, PreparedVersion
from ..forge import LOADER_RELEASES

from typing import cast, Optional, List, Union, Dict, Callable, Any


EXIT_OK = 0
EXIT_FAILURE = 1

ACCOUNTS_FILE_NAME = "cubiclauncher_accounts.json"
CATALOG_FILE_NAME = "cubiclauncher_mods.json"

CommandHandler = Callable[[Any], Any]
CommandTree = Dict[str, Union[CommandHandler, "CommandTree"]]


def main(args: Optional[List[str]] = None):
    """Main entry point of the CLI. This function parses the input arguments and try to
    find a command handler to dispatch to. These command handlers are specified by the
    `get_command_handlers` function.
    """

    parser = register_arguments()
    ns: RootNs = cast(RootNs, parser.parse_args(args))

    setup_logging(ns.verbose)

    # Setup common objects in the namespace.
    ns.out = get_output(ns.out_kind)
    ns.context = Context(ns.main_dir, ns.work_dir)
    ns.account_database = AccountDatabase(ns.context.work_dir / ACCOUNTS_FILE_NAME)
    ns.catalog = JsonCatalogStore(ns.context.work_dir / CATALOG_FILE_NAME)

    # Find the command handler and run it.
    command_handlers = get_command_handlers()
    command_attr = "subcommand"
    while True:
        command = getattr(ns, command_attr)
        handler = command_handlers.get(command)
        if handler is None:
            parser.print_help()
            sys.exit(EXIT_FAILURE)
        elif callable(handler):
            cmd(handler, ns)
        elif isinstance(handler, dict):
            command_attr = f"{command}_{command_attr}"
            command_handlers = handler
            continue
        sys.exit(EXIT_OK)


def setup_logging(verbose: int) -> None:
    """Logs are written to the standard error, warnings only unless verbose.
    """
    level = logging.WARNING if verbose <= 0 else logging.INFO if verbose == 1 else logging.DEBUG
    logging.basicConfig(level=level, stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def get_output(kind: str) -> Output:
    """Internal function that construct the output depending on its kind.
    The kind is constrained by choices set to the arguments parser.
    """

    if kind == "human-color":
        return HumanOutput(True)
    elif kind == "human":
        return HumanOutput(False)
    elif kind == "machine":
        return MachineOutput()
    else:
        raise ValueError()


def get_command_handlers() -> CommandTree:
    """Internal function returns the tree of command handlers for each subcommand
    of the CLI argument parser.
    """

    return {
        "search": cmd_search,
        "install": cmd_install,
        "start": cmd_start,
        "mods": {
            "list": cmd_mods_list,
            "add": cmd_mods_add,
            "remove": cmd_mods_remove,
            "enable": cmd_mods_enable,
            "disable": cmd_mods_disable,
            "sync": cmd_mods_sync,
        },
        "login": cmd_login,
        "logout": cmd_logout,
        "show": {
            "about": cmd_show_about,
            "accounts": cmd_show_accounts,
            "lang": cmd_show_lang,
        },
    }


def cmd(handler: CommandHandler, ns: RootNs):
    """Generic command handler that launch the given handler with the given namespace,
    it handles error in order to pretty print them.
    """

    try:
        handler(ns)
        sys.exit(EXIT_OK)

    except ResolveError as error:
        ns.out.task("FAILED", f"error.resolve.{error.code}", version=error.version)
        ns.out.finish()
        if error.detail is not None or error.cause is not None:
            print_echo(ns, str(error.detail if error.detail is not None else error.cause))

    except FetchError as error:
        ns.out.task("FAILED", f"error.fetch.{error.code}", name=error.entry.name)
        ns.out.finish()
        print_echo(ns, str(error))

    except HttpError as error:
        ns.out.task("FAILED", "error.http", method=error.method, url=error.url)
        ns.out.finish()
        print_echo(ns, str(error))

    except ConfigError as error:
        ns.out.task("FAILED", f"error.config.{error.code}", detail=error.detail)
        ns.out.finish()

    except AuthError as error:
        ns.out.task("FAILED", f"error.auth.{error.code}")
        ns.out.finish()
        if error.detail is not None:
            print_echo(ns, error.detail)

    except JvmNotFoundError as error:
        ns.out.task("FAILED", f"error.jvm.{error.code}")
        ns.out.finish()
        if error.cause is not None:
            print_echo(ns, str(error.cause))

    except ValueError as error:
        ns.out.task("FAILED", None)
        ns.out.finish()
        for arg in error.args:
            print_echo(ns, str(arg))

    except KeyboardInterrupt:
        ns.out.finish()
        ns.out.task("HALT", "keyboard_interrupt")
        ns.out.finish()

    except OSError as error:
        ns.out.task("FAILED", "error.os")
        ns.out.finish()
        print_echo(ns, str(error))

    sys.exit(EXIT_FAILURE)


def print_echo(ns: RootNs, text: str) -> None:
    ns.out.task(None, "echo", echo=text)
    ns.out.finish()


def new_client(ns: RootNs) -> HttpClient:
    return HttpClient() if ns.timeout is None else HttpClient(timeout=ns.timeout)


def new_launcher(ns: RootNs) -> Launcher:
    return Launcher(ns.context, client=new_client(ns))


def cmd_search(ns: SearchNs):
    table = ns.out.table()
    asyncio.run(search_versions(ns, ns.kind, table))
    table.print()
    sys.exit(EXIT_OK)

async def search_versions(ns: SearchNs, kind: str, table: OutputTable) -> None:
    """Internal function that handles searching a particular kind of search.
    The value of "kind" is constrained by choices in the argument parser.
    """

    search = ns.input

    if kind == "mojang":

        table.add(
            _("search.type"),
            _("search.name"),
            _("search.release_date"),
            _("search.flags"))
        table.separator()

        async with new_launcher(ns) as launcher:
            alias = False
            if search is not None:
                search, alias = await launcher.manifest.filter_latest(search)
            versions = await launcher.manifest.all_versions()

        for version_data in versions:
            version_id = version_data["id"]
            if search is None or (alias and search == version_id) or (not alias and search in version_id):
                version = ns.context.get_version(version_id)
                table.add(
                    version_data.get("type", ""),
                    version_id,
                    format_locale_date(version_data["releaseTime"]) if "releaseTime" in version_data else "",
                    _("search.flags.local") if version.metadata_exists() else "")

    elif kind == "local":

        table.add(
            _("search.name"),
            _("search.last_modified"))
        table.separator()

        for version in ns.context.list_versions():
            if search is None or search in version.id:
                table.add(version.id, format_locale_date(version.metadata_file().stat().st_mtime))

    elif kind == "loader":

        table.add(_("search.name"), _("search.loader"), _("search.base_version"), _("search.flags"))
        table.separator()

        for release in LOADER_RELEASES.values():
            if search is None or search in release.id:
                table.add(
                    release.id,
                    f"{release.loader} {release.loader_version}",
                    release.base_version,
                    _("search.flags.local") if ns.context.get_version(release.id).metadata_exists() else "")

    else:
        raise ValueError()


def cmd_install(ns: InstallNs):
    prepared = asyncio.run(install(ns))
    sys.exit(EXIT_OK if prepared.ok else EXIT_FAILURE)

async def install(ns: InstallNs) -> PreparedVersion:
    async with new_launcher(ns) as launcher:
        return await prepare_version(ns, launcher)


async def prepare_version(ns: InstallNs, launcher: Launcher) -> PreparedVersion:
    """Prepare the version requested by the user and print the failed items, if any.
    """

    prepared = await launcher.prepare(ns.version, loader=ns.loader, watcher=StartWatcher(ns))
    report = prepared.report

    if report.failed:
        ns.out.task("FAILED", "start.report.failed", count=len(report.failed))
        ns.out.finish()
        for item in report.failed:
            ns.out.task(None, "start.report.item", id=item.id, message=str(item.cause))
            ns.out.finish()
    else:
        ns.out.task("OK", "start.report.ok", version=prepared.descriptor.id, count=len(report.succeeded))
        ns.out.finish()

    return prepared


def cmd_start(ns: StartNs):
    sys.exit(asyncio.run(start(ns)))

async def start(ns: StartNs) -> int:

    identity = await get_identity(ns)
    if identity is None:
        return EXIT_FAILURE

    options = RuntimeOptions(
        min_memory=ns.min_memory,
        max_memory=ns.max_memory,
        java=ns.jvm,
        extra_jvm_args=ns.jvm_args.split() if ns.jvm_args else None,
        resolution=ns.resolution,
        demo=ns.demo)

    async with new_launcher(ns) as launcher:

        prepared = await prepare_version(ns, launcher)
        if not prepared.ok:
            return EXIT_FAILURE

        if ns.dry:
            # Building the configuration still validates the identity and options.
            launcher.configure(prepared, identity, options)
            ns.out.task("OK", "start.dry", version=prepared.descriptor.id)
            ns.out.finish()
            return EXIT_OK

        ns.out.task("OK", "start.run.launching", version=prepared.descriptor.id, name=identity.display_name)
        ns.out.finish()
        code = await launcher.launch(prepared, identity, options, watcher=RunWatcher(ns))

    return EXIT_OK if code == 0 else EXIT_FAILURE


async def get_identity(ns: StartNs) -> Optional[Identity]:
    """Return the identity to launch the game with: an offline identity if a username
    is given, the given saved account, or else the current account. If no account is
    selected, an offline identity with a random name is used.
    """

    if ns.username is not None:
        return await login(OfflineIdentityProvider(ns.username))

    ns.account_database.load()

    if ns.login is not None:
        account = ns.account_database.find(ns.login)
        if account is None:
            ns.out.task("FAILED", "start.account.not_found", name=ns.login)
            ns.out.finish()
            return None
    else:
        account = ns.account_database.get_current()
        if account is None:
            return await login(OfflineIdentityProvider(uuid4().hex[:8]))

    if account.expired():
        ns.out.task("FAILED", "start.account.expired", name=account.name)
        ns.out.finish()
        return None

    ns.out.task("INFO", "start.account", name=account.name, kind=account.kind)
    ns.out.finish()
    return account.identity()


def cmd_login(ns: LoginNs):

    kind: str

    if ns.service == "offline":
        if not ns.username:
            ns.out.task("FAILED", "login.offline.missing_username")
            ns.out.finish()
            sys.exit(EXIT_FAILURE)
        kind = OfflineIdentityProvider.kind
        identity = asyncio.run(login(OfflineIdentityProvider(ns.username)))
    else:
        ns.out.task(None, "login.msa.enter_token")
        token = ns.out.prompt(password=True)
        if not token:
            ns.out.task("FAILED", "cancelled")
            ns.out.finish()
            sys.exit(EXIT_FAILURE)
        kind = MinecraftProfileProvider.kind
        identity = asyncio.run(login_msa(ns, token))

    ns.account_database.load()
    ns.account_database.put(Account.from_identity(kind, identity))
    ns.account_database.save()

    ns.out.task("OK", "login.success", name=identity.display_name, kind=kind)
    ns.out.finish()

async def login_msa(ns: LoginNs, token: str) -> Identity:
    ns.out.task("..", "login.msa.checking")
    async with new_client(ns) as client:
        return await login(MinecraftProfileProvider(client, token))


def cmd_logout(ns: LogoutNs):

    ns.account_database.load()
    account = ns.account_database.find(ns.name)
    if account is None:
        ns.out.task("FAILED", "logout.unknown_account", name=ns.name)
        ns.out.finish()
        sys.exit(EXIT_FAILURE)

    ns.account_database.remove(account.uuid)
    ns.account_database.save()
    ns.out.task("OK", "logout.success", name=account.name)
    ns.out.finish()


def new_mod_manager(ns: RootNs, client: Optional[HttpClient] = None) -> ModManager:
    return ModManager(ns.context, Fetcher(new_client(ns) if client is None else client))


def cmd_mods_list(ns: RootNs):

    table = ns.out.table()
    table.add(_("mods.id"), _("mods.name"), _("mods.version"), _("mods.flags"))
    table.separator()

    installed = set(new_mod_manager(ns).list_installed())

    for mod in ns.catalog.list_mods():
        flags = [_("mods.flags.mandatory") if mod.mandatory else _("mods.flags.enabled") if mod.enabled else _("mods.flags.disabled")]
        file_name = mod.file_name()
        if file_name in installed:
            installed.remove(file_name)
            flags.append(_("mods.flags.installed"))
        table.add(mod.id, mod.name, mod.version, ", ".join(flags))

    # Files of the mods directory that are not known by the catalog.
    for file_name in sorted(installed):
        table.add("", file_name, "", _("mods.flags.untracked"))

    table.print()


def cmd_mods_add(ns: ModsAddNs):
    mod = ModEntry(ns.id, ns.name or ns.id, ns.url, ns.mod_version,
        enabled=not ns.disabled,
        mandatory=ns.mandatory,
        description=ns.description)
    ns.catalog.put_mod(mod)
    ns.out.task("OK", "mods.added", id=mod.id, name=mod.name)
    ns.out.finish()


def cmd_mods_remove(ns: ModsNs):

    mod = ns.catalog.get_mod(ns.id)
    if mod is None:
        ns.out.task("FAILED", "mods.unknown", id=ns.id)
        ns.out.finish()
        sys.exit(EXIT_FAILURE)

    ns.catalog.remove_mod(mod.id)
    new_mod_manager(ns).remove(mod.file_name())
    ns.out.task("OK", "mods.removed", id=mod.id, name=mod.name)
    ns.out.finish()


def cmd_mods_enable(ns: ModsNs):
    if not ns.catalog.set_enabled(ns.id, True):
        ns.out.task("FAILED", "mods.unknown", id=ns.id)
        ns.out.finish()
        sys.exit(EXIT_FAILURE)
    ns.out.task("OK", "mods.enabled", id=ns.id)
    ns.out.finish()


def cmd_mods_disable(ns: ModsNs):

    if not ns.catalog.set_enabled(ns.id, False):
        ns.out.task("FAILED", "mods.unknown", id=ns.id)
        ns.out.finish()
        sys.exit(EXIT_FAILURE)

    # A disabled mod must not be loaded by the game, unless mandatory.
    mod = cast(ModEntry, ns.catalog.get_mod(ns.id))
    if not mod.mandatory:
        new_mod_manager(ns).remove(mod.file_name())
        ns.out.task("OK", "mods.disabled", id=ns.id)
    else:
        ns.out.task("WARN", "mods.disabled.mandatory", id=ns.id)
    ns.out.finish()


def cmd_mods_sync(ns: RootNs):

    async def sync():
        async with new_client(ns) as client:
            return await new_mod_manager(ns, client).sync(ns.catalog)

    ns.out.task("..", "mods.syncing")
    report = asyncio.run(sync())

    if report.ok:
        ns.out.task("OK", "mods.synced", count=len(report.installed))
        ns.out.finish()
        return

    ns.out.task("FAILED", "mods.sync_failed", count=len(report.failed))
    ns.out.finish()
    for mod_id, error in sorted(report.failed.items()):
        ns.out.task(None, "start.report.item", id=mod_id, message=str(error))
        ns.out.finish()
    sys.exit(EXIT_FAILURE)


def cmd_show_about(ns: RootNs):

    from .. import LAUNCHER_VERSION, LAUNCHER_AUTHORS, LAUNCHER_COPYRIGHT

    print(f"Version: {LAUNCHER_VERSION}")
    print(f"Authors: {', '.join(LAUNCHER_AUTHORS)}")
    print(f"License: {LAUNCHER_COPYRIGHT}")
    print(f"Main directory: {ns.context.main_dir}")
    print(f"Work directory: {ns.context.work_dir}")


def cmd_show_accounts(ns: RootNs):

    ns.account_database.load()
    current = ns.account_database.get_current()
    now = time.time()
    table = ns.out.table()

    # Intentionally not i18n for now because used for debug purpose.
    table.add("Kind", "Name", "UUID", "Expires", "Current")
    table.separator()

    for account in ns.account_database.list():
        table.add(account.kind, account.name, account.uuid,
            format_expiry(account.expires_at, now),
            "*" if account is current else "")

    table.print()


def cmd_show_lang(ns: RootNs):

    table = ns.out.table()

    # Intentionally not i18n for now because used for debug purpose.
    table.add("Key", "Message")
    table.separator()

    for key, msg in lang.items():
        table.add(key, msg)

    table.print()


class StartWatcher(SimpleWatcher):
    """Print the progress of a version's preparation.
    """

    def __init__(self, ns: RootNs) -> None:

        def progress_task(key: str, **kwargs) -> None:
            ns.out.task("..", key, **kwargs)

        def finish_task(key: str, **kwargs) -> None:
            ns.out.task("OK", key, **kwargs)
            ns.out.finish()

        def version_loaded(e: VersionLoadedEvent) -> None:
            finish_task("start.version.fetched" if e.fetched else "start.version.loaded", version=e.version)

        def assets_resolve(e: AssetsResolveEvent) -> None:
            if e.count is None:
                progress_task("start.assets.resolving", index_version=e.index_version)
            else:
                finish_task("start.assets.resolved", index_version=e.index_version, count=e.count)

        def libraries_resolved(e: LibrariesResolvedEvent) -> None:
            finish_task("start.libraries.resolved", class_libs_count=e.class_libs_count, native_libs_count=e.native_libs_count)

        def progress(e: ProgressEvent) -> None:
            key = f"start.progress.{e.phase}"
            percent = format_percent(e.completed, e.total)
            if e.done:
                finish_task(key, completed=e.completed, total=e.total, percent=percent)
            else:
                progress_task(key, completed=e.completed, total=e.total, percent=percent)

        super().__init__({
            VersionLoadingEvent: lambda e: progress_task("start.version.loading", version=e.version),
            VersionFetchingEvent: lambda e: progress_task("start.version.fetching", version=e.version),
            VersionRepairingEvent: lambda e: progress_task("start.version.repairing", version=e.version),
            VersionLoadedEvent: version_loaded,
            JarFoundEvent: lambda e: finish_task("start.jar.found", version=e.version),
            LibrariesResolvedEvent: libraries_resolved,
            AssetsResolveEvent: assets_resolve,
            ProgressEvent: progress,
        })


class RunWatcher(SimpleWatcher):
    """Forward the game's output and print the runner's lifecycle.
    """

    def __init__(self, ns: RootNs) -> None:

        def debug(e: RunnerDebugEvent) -> None:
            if ns.verbose >= 1:
                ns.out.print(e.message + "\n")

        def run_progress(e: RunnerProgressEvent) -> None:
            if ns.verbose >= 1:
                ns.out.task("INFO", f"start.run.{e.stage}")
                ns.out.finish()

        def jvm_loaded(e: JvmLoadedEvent) -> None:
            ns.out.task("OK", f"start.jvm.loaded.{e.kind}", version=e.version or "")
            ns.out.finish()

        def close(e: RunnerCloseEvent) -> None:
            ns.out.task("OK" if e.code == 0 else "FAILED", "start.run.closed", code=e.code)
            ns.out.finish()

        super().__init__({
            JvmLoadingEvent: lambda e: ns.out.task("..", "start.jvm.loading"),
            JvmFetchingEvent: lambda e: ns.out.task("..", "start.jvm.fetching", url=e.url),
            JvmLoadedEvent: jvm_loaded,
            RunnerDebugEvent: debug,
            RunnerProgressEvent: run_progress,
            RunnerDataEvent: lambda e: ns.out.print(e.line + "\n"),
            RunnerCloseEvent: close,
        })
