from argparse import ArgumentParser, HelpFormatter, ArgumentTypeError
from pathlib import Path

from ..standard import Context
from ..auth import AccountDatabase
from ..mods import JsonCatalogStore

from .output import Output
from .lang import get as _

from typing import Optional, Type, Tuple, List


# The following classes are only used for type checking and represent a typed namespace
# as produced by the arguments registered to the argument parser.

class RootNs:
    main_dir: Optional[Path]
    work_dir: Optional[Path]
    timeout: Optional[float]
    out_kind: str
    verbose: int
    # Initialized by main function after argument parsing.
    out: Output
    context: Context
    account_database: AccountDatabase
    catalog: JsonCatalogStore

class SearchNs(RootNs):
    kind: str
    input: Optional[str]

class InstallNs(RootNs):
    loader: Optional[str]
    version: str

class StartNs(InstallNs):
    dry: bool
    demo: bool
    resolution: Optional[Tuple[int, int]]
    jvm: Optional[str]
    jvm_args: Optional[str]
    min_memory: str
    max_memory: str
    username: Optional[str]
    login: Optional[str]

class LoginNs(RootNs):
    service: str
    username: Optional[str]

class LogoutNs(RootNs):
    name: str

class ModsNs(RootNs):
    id: str

class ModsAddNs(ModsNs):
    url: str
    name: Optional[str]
    mod_version: str
    mandatory: bool
    disabled: bool
    description: str


def register_arguments() -> ArgumentParser:
    parser = ArgumentParser(allow_abbrev=False, prog="cubiclauncher", description=_("args"))
    parser.add_argument("--main-dir", help=_("args.main_dir"), type=Path)
    parser.add_argument("--work-dir", help=_("args.work_dir"), type=Path)
    parser.add_argument("--timeout", help=_("args.timeout"), type=float)
    parser.add_argument("--output", help=_("args.output"), dest="out_kind", choices=get_outputs(), default="human-color")
    parser.add_argument("-v", dest="verbose", help=_("args.verbose"), action="count", default=0)
    register_subcommands(parser.add_subparsers(title="subcommands", dest="subcommand"))
    return parser


def register_subcommands(subparsers):
    register_search_arguments(subparsers.add_parser("search", help=_("args.search")))
    register_install_arguments(subparsers.add_parser("install", help=_("args.install")))
    register_start_arguments(subparsers.add_parser("start", help=_("args.start")))
    register_mods_arguments(subparsers.add_parser("mods", help=_("args.mods")))
    register_login_arguments(subparsers.add_parser("login", help=_("args.login")))
    register_logout_arguments(subparsers.add_parser("logout", help=_("args.logout")))
    register_show_arguments(subparsers.add_parser("show", help=_("args.show")))


def register_search_arguments(parser: ArgumentParser):
    parser.add_argument("-k", "--kind", help=_("args.search.kind"), default="mojang", choices=get_search_kinds())
    parser.add_argument("input", nargs="?")


def register_version_arguments(parser: ArgumentParser):
    parser.add_argument("--loader", help=_("args.common.loader"), metavar="LOADER")
    parser.add_argument("version", nargs="?", default="release", help=_("args.common.version"))


def register_install_arguments(parser: ArgumentParser):
    register_version_arguments(parser)


def register_start_arguments(parser: ArgumentParser):
    parser.formatter_class = new_help_formatter_class(40)
    parser.add_argument("--dry", help=_("args.start.dry"), action="store_true")
    parser.add_argument("--demo", help=_("args.start.demo"), action="store_true")
    parser.add_argument("--resolution", help=_("args.start.resolution"), type=resolution_from_str)
    parser.add_argument("--jvm", help=_("args.start.jvm"))
    parser.add_argument("--jvm-args", help=_("args.start.jvm_args"), metavar="ARGS")
    parser.add_argument("--min-memory", help=_("args.start.min_memory"), default="1G", metavar="SIZE")
    parser.add_argument("--max-memory", help=_("args.start.max_memory"), default="2G", metavar="SIZE")
    parser.add_argument("-u", "--username", help=_("args.start.username"), metavar="NAME")
    parser.add_argument("-l", "--login", help=_("args.start.login"), metavar="NAME")
    register_version_arguments(parser)


def register_mods_arguments(parser: ArgumentParser):
    subparsers = parser.add_subparsers(title="subcommands", dest="mods_subcommand")
    subparsers.required = True
    subparsers.add_parser("list", help=_("args.mods.list"))
    subparsers.add_parser("sync", help=_("args.mods.sync"))
    add_parser = subparsers.add_parser("add", help=_("args.mods.add"))
    add_parser.add_argument("--name", help=_("args.mods.add.name"))
    add_parser.add_argument("--version", dest="mod_version", help=_("args.mods.add.version"), default="")
    add_parser.add_argument("--description", help=_("args.mods.add.description"), default="")
    add_parser.add_argument("--mandatory", help=_("args.mods.add.mandatory"), action="store_true")
    add_parser.add_argument("--disabled", help=_("args.mods.add.disabled"), action="store_true")
    add_parser.add_argument("id")
    add_parser.add_argument("url")
    for name in ("remove", "enable", "disable"):
        subparsers.add_parser(name, help=_(f"args.mods.{name}")).add_argument("id")


def register_login_arguments(parser: ArgumentParser):
    parser.add_argument("--service", help=_("args.login.service"), default="offline", choices=get_login_services())
    parser.add_argument("username", nargs="?")


def register_logout_arguments(parser: ArgumentParser):
    parser.add_argument("name")


def register_show_arguments(parser: ArgumentParser):
    subparsers = parser.add_subparsers(title="subcommands", dest="show_subcommand")
    subparsers.required = True
    subparsers.add_parser("about", help=_("args.show.about"))
    subparsers.add_parser("accounts", help=_("args.show.accounts"))
    subparsers.add_parser("lang", help=_("args.show.lang"))


def new_help_formatter_class(max_help_position: int) -> Type[HelpFormatter]:

    class CustomHelpFormatter(HelpFormatter):
        def __init__(self, prog):
            super().__init__(prog, max_help_position=max_help_position)

    return CustomHelpFormatter


def get_outputs() -> List[str]:
    return ["human-color", "human", "machine"]


def get_search_kinds() -> List[str]:
    return ["mojang", "local", "loader"]


def get_login_services() -> List[str]:
    return ["offline", "msa"]


def resolution_from_str(s: str) -> Tuple[int, int]:
    parts = s.split("x")
    try:
        if len(parts) == 2:
            width, height = int(parts[0]), int(parts[1])
            if width > 0 and height > 0:
                return (width, height)
    except ValueError:
        pass
    raise ArgumentTypeError(_("args.start.resolution.invalid", given=s))
