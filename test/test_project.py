
def test_project_version():

    from cubiclauncher import LAUNCHER_VERSION
    from pathlib import Path
    import re

    setup_file = Path(__file__).parent.parent / "setup.py"
    match = re.search(r'version="([^"]+)"', setup_file.read_text())

    assert match is not None
    assert match[1] == LAUNCHER_VERSION, "incoherent version"
