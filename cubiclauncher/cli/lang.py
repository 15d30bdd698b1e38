"""CLI languages management.
"""

from ..util import jvm_bin_filename
from ..standard import JvmLoadedEvent
from ..jvm import JvmNotFoundError

from typing import Optional


def get_raw(key: str, kwargs: Optional[dict]) -> str:
    """Get a message translated using the given keyword formatting arguments.

    :param key: The key of the message to translate.
    :param kwargs: The keyword formatting dictionary.
    :return: Translated message, or the key itself if not found.
    """
    try:
        return lang[key].format_map(kwargs or {})
    except KeyError:
        return key


def get(key: str, **kwargs) -> str:
    """Get a message translated using the given keyword formatting arguments.
    """
    return get_raw(key, kwargs)


lang = {
    # Args root
    "args": "A launcher for the Forge 1.12.2 server community: installs the game, its "
        "loader and the community mods, then starts it.",
    "args.main_dir": "Set the main directory where libraries, assets and versions are "
        "installed, defaults to the CUBICLAUNCHER_DIR environment variable or the "
        "platform's application data directory.",
    "args.work_dir": "Set the working directory where the game run and place for examples "
        "saves, screenshots and mods, it also stores runtime binaries, accounts and "
        "the mods catalog. Defaults to the main directory.",
    "args.timeout": "Set a global timeout (in decimal seconds) for network requests.",
    "args.output": "Set the output format of the launcher, defaults to human-color.",
    "args.verbose": "Enable verbose output, -v for informative logs and -vv for debug logs.",
    # Args common
    "args.common.loader": "Install the loader variant of the version, for example 'forge'.",
    "args.common.version": "Version identifier, or release|snapshot alias (default to release).",
    # Args search
    "args.search": "Search for versions.",
    "args.search.kind": "Select the kind of search to operate.",
    # Args install
    "args.install": "Install a version without starting it, repairing any invalid file.",
    # Args start
    "args.start": "Install and start a version.",
    "args.start.dry": "Simulate game starting.",
    "args.start.demo": "Start game in demo mode.",
    "args.start.resolution": "Set a custom start resolution (<width>x<height>).",
    "args.start.resolution.invalid": "Invalid resolution {given}, expected <width>x<height>.",
    "args.start.jvm": f"Set a custom JVM '{jvm_bin_filename}' executable path. If this argument is omitted, "
        "the builtin Java 8 is used or a Java 8 runtime is downloaded.",
    "args.start.jvm_args": "Add custom JVM arguments, separated by spaces.",
    "args.start.min_memory": "Set the minimum memory of the JVM, for example 512M (default to 1G).",
    "args.start.max_memory": "Set the maximum memory of the JVM, for example 4G (default to 2G).",
    "args.start.username": "Start offline with the given username.",
    "args.start.login": "Start with the saved account of the given name, "
        "the current account is used by default.",
    # Args mods
    "args.mods": "Manage the mods catalog and the installed mods.",
    "args.mods.list": "List the mods of the catalog and the installed ones.",
    "args.mods.sync": "Install the mandatory and enabled mods of the catalog.",
    "args.mods.add": "Add or update a mod in the catalog.",
    "args.mods.add.name": "Display name of the mod, defaults to its identifier.",
    "args.mods.add.version": "Version of the mod.",
    "args.mods.add.description": "Description of the mod.",
    "args.mods.add.mandatory": "The mod is always installed.",
    "args.mods.add.disabled": "The mod is added disabled.",
    "args.mods.remove": "Remove a mod from the catalog and the mods directory.",
    "args.mods.enable": "Enable a mod of the catalog.",
    "args.mods.disable": "Disable a mod of the catalog and remove it from the mods directory.",
    # Args login/logout
    "args.login": "Login into an account and save it as the current account.",
    "args.login.service": "Identity service to use, offline or msa (Minecraft services access token).",
    "args.logout": "Logout and remove the saved account of the given name.",
    # Args show
    "args.show": "Show and debug various data.",
    "args.show.about": "Display authors, version and license of the launcher.",
    "args.show.accounts": "Debug the accounts database.",
    "args.show.lang": "Debug the language mappings used for messages translation.",
    # Common
    "echo": "{echo}",
    "cancelled": "Cancelled.",
    "keyboard_interrupt": "Interrupted.",
    # Errors
    "error.os": "Unexpected system error.",
    "error.http": "Request {method} {url} failed.",
    "error.resolve.version_not_found": "Version {version} not found.",
    "error.resolve.metadata_invalid": "Invalid metadata for version {version}.",
    "error.resolve.repair_failed": "Failed to repair version {version}.",
    "error.fetch.transport": "Failed to download {name}, network error.",
    "error.fetch.http": "Failed to download {name}, unexpected status.",
    "error.fetch.checksum_mismatch": "Failed to download {name}, checksum mismatch.",
    "error.fetch.invalid_size": "Failed to download {name}, invalid size.",
    "error.fetch.conflict": "Failed to download {name}, another download has the same destination.",
    "error.config.missing_identity": "Incomplete identity, missing: {detail}.",
    "error.config.invalid_memory": "Invalid memory settings: {detail}.",
    "error.auth.timeout": "The identity service did not answer in time.",
    "error.auth.outdated_token": "The access token is outdated, login again.",
    "error.auth.does_not_own_minecraft": "This account does not own Minecraft.",
    "error.auth.invalid_profile": "The identity service returned an invalid profile.",
    f"error.jvm.{JvmNotFoundError.UNSUPPORTED_PLATFORM}": "No Java 8 download was found for your platform, "
        "use --jvm argument to manually set the path to your JVM executable.",
    f"error.jvm.{JvmNotFoundError.DOWNLOAD_FAILED}": "Failed to download the Java 8 runtime.",
    f"error.jvm.{JvmNotFoundError.INVALID_RUNTIME}": "The downloaded Java 8 runtime is invalid.",
    # Search
    "search.type": "Type",
    "search.name": "Identifier",
    "search.release_date": "Release date",
    "search.last_modified": "Last modified",
    "search.loader": "Loader",
    "search.base_version": "Base version",
    "search.flags": "Flags",
    "search.flags.local": "local",
    # Start
    "start.version.loading": "Loading version {version}...",
    "start.version.fetching": "Fetching version {version}...",
    "start.version.repairing": "Repairing version {version}...",
    "start.version.loaded": "Loaded version {version}",
    "start.version.fetched": "Fetched version {version}",
    "start.jar.found": "Version JAR found for {version}",
    "start.jvm.loading": "Loading java...",
    "start.jvm.fetching": "Downloading java from {url}...",
    f"start.jvm.loaded.{JvmLoadedEvent.BUILTIN}": "Loaded builtin java {version}",
    f"start.jvm.loaded.{JvmLoadedEvent.LOCAL}": "Loaded installed java {version}",
    f"start.jvm.loaded.{JvmLoadedEvent.DOWNLOADED}": "Downloaded java {version}",
    f"start.jvm.loaded.{JvmLoadedEvent.CUSTOM}": "Using custom java",
    "start.libraries.resolved": "Resolved {class_libs_count} class libraries and {native_libs_count} native libraries",
    "start.assets.resolving": "Resolving assets index {index_version}...",
    "start.assets.resolved": "Resolved {count} assets of index {index_version}",
    "start.progress.libraries": "Installing libraries {completed}/{total} {percent}",
    "start.progress.assets": "Installing assets {completed}/{total} {percent}",
    "start.report.ok": "Version {version} ready ({count} items)",
    "start.report.failed": "Failed to install {count} items:",
    "start.report.item": "{id}: {message}",
    "start.account": "Using account {name} ({kind})",
    "start.account.not_found": "No saved account named {name}, use the login command.",
    "start.account.expired": "The account {name} has expired, use the login command.",
    "start.dry": "Dry run, version {version} is ready to start.",
    "start.run.launching": "Launching {version} as {name}",
    "start.run.natives": "Extracting native libraries...",
    "start.run.spawn": "Starting the game process...",
    "start.run.closed": "Game closed with code {code}",
    # Login
    "login.offline.missing_username": "A username is required to login offline.",
    "login.msa.enter_token": "Enter the Minecraft services access token: ",
    "login.msa.checking": "Requesting the profile...",
    "login.success": "Logged in as {name} ({kind})",
    "logout.success": "Logged out from {name}",
    "logout.unknown_account": "No saved account named {name}.",
    # Mods
    "mods.id": "Identifier",
    "mods.name": "Name",
    "mods.version": "Version",
    "mods.flags": "Flags",
    "mods.flags.mandatory": "mandatory",
    "mods.flags.enabled": "enabled",
    "mods.flags.disabled": "disabled",
    "mods.flags.installed": "installed",
    "mods.flags.untracked": "untracked",
    "mods.added": "Added mod {id} ({name})",
    "mods.removed": "Removed mod {id} ({name})",
    "mods.enabled": "Enabled mod {id}, install it with mods sync",
    "mods.disabled": "Disabled mod {id}",
    "mods.disabled.mandatory": "Disabled mod {id}, but it is mandatory and stays installed",
    "mods.unknown": "No mod {id} in the catalog.",
    "mods.syncing": "Installing mods...",
    "mods.synced": "Installed {count} mods",
    "mods.sync_failed": "Failed to install {count} mods:",
}
