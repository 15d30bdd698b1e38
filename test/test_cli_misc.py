from argparse import ArgumentTypeError
import pytest


def run_main(tmp_path, capsys, *args: str):
    """Run the CLI with the machine output in a temporary main directory, returning
    the exit code and the printed lines.
    """

    from cubiclauncher.cli import main

    with pytest.raises(SystemExit) as exc_info:
        main(["--main-dir", str(tmp_path), "--output", "machine", *args])

    return exc_info.value.code, capsys.readouterr().out.splitlines()


def test_parse_arguments():

    from cubiclauncher.cli.parse import register_arguments

    parser = register_arguments()

    ns = parser.parse_args(["-vv", "start", "--dry", "--resolution", "800x600", "-u", "Steve", "1.12.2"])
    assert ns.subcommand == "start"
    assert ns.verbose == 2
    assert ns.dry
    assert ns.resolution == (800, 600)
    assert ns.username == "Steve"
    assert ns.version == "1.12.2"
    assert ns.min_memory == "1G" and ns.max_memory == "2G"
    assert ns.out_kind == "human-color"

    ns = parser.parse_args(["install"])
    assert ns.version == "release"
    assert ns.loader is None

    ns = parser.parse_args(["mods", "add", "--version", "4.16", "--mandatory", "jei", "https://example.com/jei.jar"])
    assert (ns.mods_subcommand, ns.id, ns.url, ns.mod_version, ns.mandatory, ns.disabled) == \
        ("add", "jei", "https://example.com/jei.jar", "4.16", True, False)

    ns = parser.parse_args(["login", "--service", "msa"])
    assert ns.service == "msa"
    assert ns.username is None


def test_resolution_from_str():

    from cubiclauncher.cli.parse import resolution_from_str

    assert resolution_from_str("1920x1080") == (1920, 1080)
    for invalid in ("1920", "0x10", "axb", "10x10x10", "-1x10"):
        with pytest.raises(ArgumentTypeError):
            resolution_from_str(invalid)


def test_lang():

    from cubiclauncher.cli.lang import get, lang

    assert get("mods.added", id="jei", name="JEI") == "Added mod jei (JEI)"
    assert get("unknown.key") == "unknown.key"
    assert all(isinstance(msg, str) for msg in lang.values())


def test_machine_output(capsys):

    from cubiclauncher.cli.output import MachineOutput

    assert MachineOutput.escape("a,b\nc\\d\r") == "a\\,b\\nc\\\\d\\r"

    out = MachineOutput()
    out.task("OK", "mods.added", id="jei")
    out.task("OK", "login.success", name="Steve", kind="offline")
    table = out.table()
    table.add("a", "b,c")
    table.separator()
    table.print()

    assert capsys.readouterr().out.splitlines() == [
        "task:OK,mods.added,id=jei",
        "task:OK,login.success,name=Steve,kind=offline",
        "table:2",
        "row:a,b\\,c",
        "sep:",
    ]


def test_run_watcher_jvm(capsys):

    from types import SimpleNamespace
    from cubiclauncher.cli import RunWatcher
    from cubiclauncher.cli.output import MachineOutput
    from cubiclauncher.standard import JvmLoadingEvent, JvmFetchingEvent, JvmLoadedEvent

    watcher = RunWatcher(SimpleNamespace(out=MachineOutput(), verbose=0))
    watcher.handle(JvmLoadingEvent())
    watcher.handle(JvmFetchingEvent("https://example.com/jre.tar.gz"))
    watcher.handle(JvmLoadedEvent("1.8.0_372", JvmLoadedEvent.DOWNLOADED))
    watcher.handle(JvmLoadedEvent(None, JvmLoadedEvent.CUSTOM))

    assert capsys.readouterr().out.splitlines() == [
        "task:..,start.jvm.loading",
        "task:..,start.jvm.fetching,url=https://example.com/jre.tar.gz",
        "task:OK,start.jvm.loaded.downloaded,version=1.8.0_372",
        "task:OK,start.jvm.loaded.custom,version=",
    ]


def test_human_table(capsys, monkeypatch):

    from cubiclauncher.cli.output import HumanOutput

    out = HumanOutput(False)
    monkeypatch.setattr(out, "get_term_width", lambda: 30)

    table = out.table()
    table.add("Name", "Description")
    table.separator()
    table.add("short", "a very long description that cannot fit")
    table.print()

    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 5
    assert all(len(line) <= 30 for line in lines)
    assert lines[3].rstrip().endswith("... │")


def test_cli_mods(tmp_path, capsys):

    code, lines = run_main(tmp_path, capsys, "mods", "add", "--name", "JEI", "jei", "https://example.com/files/jei.jar")
    assert code == 0
    assert lines == ["task:OK,mods.added,id=jei,name=JEI"]

    code, lines = run_main(tmp_path, capsys, "mods", "add", "--mandatory", "core", "https://example.com/files/core.jar")
    assert code == 0

    mods_dir = tmp_path / "mods"
    mods_dir.mkdir()
    (mods_dir / "jei.jar").write_bytes(b"jei")
    (mods_dir / "core.jar").write_bytes(b"core")
    (mods_dir / "other.jar").write_bytes(b"other")

    code, lines = run_main(tmp_path, capsys, "mods", "list")
    assert code == 0
    assert lines == [
        "table:5",
        "row:Identifier,Name,Version,Flags",
        "sep:",
        "row:core,core,,mandatory\\, installed",
        "row:jei,JEI,,enabled\\, installed",
        "row:,other.jar,,untracked",
    ]

    code, lines = run_main(tmp_path, capsys, "mods", "disable", "jei")
    assert code == 0
    assert lines == ["task:OK,mods.disabled,id=jei"]
    assert not (mods_dir / "jei.jar").exists()

    code, lines = run_main(tmp_path, capsys, "mods", "disable", "core")
    assert code == 0
    assert lines == ["task:WARN,mods.disabled.mandatory,id=core"]
    assert (mods_dir / "core.jar").exists()

    code, lines = run_main(tmp_path, capsys, "mods", "enable", "jei")
    assert code == 0

    code, lines = run_main(tmp_path, capsys, "mods", "remove", "core")
    assert code == 0
    assert not (mods_dir / "core.jar").exists()

    code, lines = run_main(tmp_path, capsys, "mods", "remove", "core")
    assert code == 1
    assert lines == ["task:FAILED,mods.unknown,id=core"]


def test_cli_accounts(tmp_path, capsys):

    code, lines = run_main(tmp_path, capsys, "login", "Steve")
    assert code == 0
    assert lines == ["task:OK,login.success,name=Steve,kind=offline"]

    code, lines = run_main(tmp_path, capsys, "login")
    assert code == 1
    assert lines == ["task:FAILED,login.offline.missing_username"]

    code, lines = run_main(tmp_path, capsys, "show", "accounts")
    assert code == 0
    assert lines[-1].startswith("row:offline,Steve,")
    assert lines[-1].endswith(",-,*")

    code, lines = run_main(tmp_path, capsys, "start", "--dry", "-l", "Alex")
    assert code == 1
    assert lines == ["task:FAILED,start.account.not_found,name=Alex"]

    code, lines = run_main(tmp_path, capsys, "logout", "steve")
    assert code == 0
    assert lines == ["task:OK,logout.success,name=Steve"]

    code, lines = run_main(tmp_path, capsys, "logout", "Steve")
    assert code == 1


def test_cli_search_local(tmp_path, capsys):

    for version_id in ("1.12.2", "1.12.2-forge-14.23.5.2860"):
        version_dir = tmp_path / "versions" / version_id
        version_dir.mkdir(parents=True)
        (version_dir / f"{version_id}.json").write_text("{}")
    (tmp_path / "versions" / "empty").mkdir()

    code, lines = run_main(tmp_path, capsys, "search", "-k", "local")
    assert code == 0
    assert lines[0] == "table:4"
    assert [line.split(",")[0] for line in lines[3:]] == ["row:1.12.2", "row:1.12.2-forge-14.23.5.2860"]

    code, lines = run_main(tmp_path, capsys, "search", "-k", "local", "forge")
    assert [line.split(",")[0] for line in lines[3:]] == ["row:1.12.2-forge-14.23.5.2860"]


def test_cli_search_loader(tmp_path, capsys):

    from cubiclauncher.forge import FORGE_1_12_2

    code, lines = run_main(tmp_path, capsys, "search", "-k", "loader")
    assert code == 0
    assert lines[-1] == f"row:{FORGE_1_12_2.id},forge {FORGE_1_12_2.loader_version},1.12.2,"


def test_cli_show(tmp_path, capsys):

    code, lines = run_main(tmp_path, capsys, "show", "about")
    assert code == 0
    assert lines[0] == "Version: 1.0.0"

    code, lines = run_main(tmp_path, capsys, "show", "lang")
    assert code == 0
    assert lines[0].startswith("table:")
