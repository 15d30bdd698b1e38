"""Mods catalog collaborator and manager of the mods directory of the game.
"""

from pathlib import Path
import urllib.parse
import posixpath
import logging
import json

from .download import DownloadEntry, DownloadList, Fetcher
from .standard import Context

from typing import Optional, Dict, List


__all__ = ["ModEntry", "CatalogStore", "JsonCatalogStore", "ModManager", "ModInstallReport"]

logger = logging.getLogger(__name__)


class ModEntry:
    """A mod of the catalog. Mandatory mods are always installed, other mods only when
    they are enabled.
    """

    fields = "id", "name", "url", "version", "enabled", "mandatory", "description"

    __slots__ = fields

    def __init__(self, id: str, name: str, url: str, version: str = "", *,
        enabled: bool = True,
        mandatory: bool = False,
        description: str = ""
    ) -> None:
        self.id = id
        self.name = name
        self.url = url
        self.version = version
        self.enabled = enabled
        self.mandatory = mandatory
        self.description = description

    @property
    def installable(self) -> bool:
        return self.mandatory or self.enabled

    def file_name(self) -> str:
        """Name of the mod's file in the mods directory, taken from its URL.
        """
        name = posixpath.basename(urllib.parse.unquote(urllib.parse.urlparse(self.url).path))
        if not name:
            name = f"{self.id}.jar"
        return name

    def to_dict(self) -> dict:
        return {field: getattr(self, field) for field in ModEntry.fields}

    @classmethod
    def from_dict(cls, data: dict) -> "ModEntry":
        for field in ("id", "name", "url"):
            if not isinstance(data.get(field), str):
                raise ValueError(f"catalog: /{field} must be a string")
        return cls(data["id"], data["name"], data["url"], str(data.get("version") or ""),
            enabled=bool(data.get("enabled", True)),
            mandatory=bool(data.get("mandatory", False)),
            description=str(data.get("description") or ""))

    def __eq__(self, other) -> bool:
        return isinstance(other, ModEntry) and self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"<ModEntry {self.id} {self.name}>"


class CatalogStore:
    """Base class for the mods catalog, storing mod entries by id.
    """

    def list_mods(self) -> List[ModEntry]:
        raise NotImplementedError

    def get_mod(self, id: str) -> Optional[ModEntry]:
        raise NotImplementedError

    def put_mod(self, mod: ModEntry) -> None:
        raise NotImplementedError

    def set_enabled(self, id: str, enabled: bool) -> bool:
        """Enable or disable a mod, returning false if the mod is unknown.
        """
        raise NotImplementedError

    def remove_mod(self, id: str) -> bool:
        raise NotImplementedError


class JsonCatalogStore(CatalogStore):
    """Catalog store persisted in a JSON file, every modification is saved immediately.
    """

    def __init__(self, file: Path) -> None:
        self.file = file
        self.mods: Dict[str, ModEntry] = {}
        self._loaded = False

    def load(self) -> None:

        self.mods.clear()
        self._loaded = True

        try:
            with self.file.open("rt") as fp:
                data = json.load(fp)
        except FileNotFoundError:
            return
        except (OSError, json.JSONDecodeError) as error:
            logger.warning("Ignoring unreadable catalog %s: %s", self.file, error)
            return

        for mod_data in data.get("mods", []) if isinstance(data, dict) else []:
            try:
                mod = ModEntry.from_dict(mod_data)
            except (ValueError, AttributeError) as error:
                logger.warning("Ignoring invalid catalog entry: %s", error)
                continue
            self.mods[mod.id] = mod

    def save(self) -> None:
        self.file.parent.mkdir(parents=True, exist_ok=True)
        with self.file.open("wt") as fp:
            json.dump({"mods": [mod.to_dict() for mod in self.mods.values()]}, fp, indent=2)

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def list_mods(self) -> List[ModEntry]:
        self._ensure_loaded()
        return sorted(self.mods.values(), key=lambda mod: mod.name.casefold())

    def get_mod(self, id: str) -> Optional[ModEntry]:
        self._ensure_loaded()
        return self.mods.get(id)

    def put_mod(self, mod: ModEntry) -> None:
        self._ensure_loaded()
        self.mods[mod.id] = mod
        self.save()

    def set_enabled(self, id: str, enabled: bool) -> bool:
        self._ensure_loaded()
        mod = self.mods.get(id)
        if mod is None:
            return False
        mod.enabled = enabled
        self.save()
        return True

    def remove_mod(self, id: str) -> bool:
        self._ensure_loaded()
        if self.mods.pop(id, None) is None:
            return False
        self.save()
        return True


class ModInstallReport:
    """Report of a mods installation, failures are given per mod id.
    """

    __slots__ = "installed", "failed"

    def __init__(self) -> None:
        self.installed: List[str] = []
        self.failed: Dict[str, BaseException] = {}

    @property
    def ok(self) -> bool:
        return not self.failed


class ModManager:
    """Manager of the mods directory of the game's working directory.
    """

    def __init__(self, context: Context, fetcher: Fetcher, *, concurrency: int = 4) -> None:
        self.context = context
        self.fetcher = fetcher
        self.concurrency = concurrency

    @property
    def mods_dir(self) -> Path:
        return self.context.mods_dir

    def list_installed(self) -> List[str]:
        """List file names of installed mods.
        """
        if not self.mods_dir.is_dir():
            return []
        return sorted(path.name for path in self.mods_dir.iterdir() if path.is_file() and path.name.endswith(".jar"))

    def remove(self, file_name: str) -> bool:
        """Remove an installed mod given its file name, returning false if absent.
        """
        path = self.mods_dir / file_name
        if path.parent != self.mods_dir:
            raise ValueError(f"invalid mod file name: {file_name}")
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Removed mod %s", file_name)
        return True

    async def install(self, mods: List[ModEntry]) -> ModInstallReport:
        """Download the given mods into the mods directory, a failed mod never aborts
        the others. Mods already present are not downloaded again.
        """

        report = ModInstallReport()
        dl = DownloadList()
        by_name: Dict[str, ModEntry] = {}

        for mod in mods:
            mod_file = self.mods_dir / mod.file_name()
            if mod_file.is_file() and mod_file.stat().st_size > 0:
                report.installed.append(mod.id)
                continue
            by_name[mod.id] = mod
            dl.add(DownloadEntry(mod.url, mod_file, name=mod.id))

        if dl.count:
            self.mods_dir.mkdir(parents=True, exist_ok=True)
            result = await dl.download(self.fetcher, concurrency=self.concurrency)
            report.installed.extend(result.succeeded)
            for entry, error in result.failed:
                logger.warning("Failed to install mod %s: %s", by_name[entry.name].name, error)
                report.failed[entry.name] = error

        report.installed.sort()
        return report

    async def sync(self, store: CatalogStore) -> ModInstallReport:
        """Install the mandatory and enabled mods of the catalog.
        """
        return await self.install([mod for mod in store.list_mods() if mod.installable])
