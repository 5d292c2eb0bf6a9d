"""Steam scanner — reads library folders and app manifests."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import vdf
from loguru import logger

from gameshelf.models.scan_result import GameSource, ScanResult, ScanStatus, SteamScanResult
from gameshelf.scanners.base import SourceScanner
from gameshelf.utils import format_size

_MANIFEST_RE = re.compile(r"^appmanifest_(\d+)\.acf$", re.IGNORECASE)

# StateFlags bit set once an app is fully installed.
_STATE_FULLY_INSTALLED = 4

# Tools Steam installs alongside games.
_NON_GAME_APP_IDS = frozenset({"228980", "1070560", "1391110", "1628350"})
_NON_GAME_PREFIXES = ("proton ", "steam linux runtime", "steamworks common")


def _read_vdf(path: Path) -> dict[str, Any] | None:
    try:
        with open(path, encoding="utf-8", errors="ignore") as f:
            return vdf.load(f)
    except (OSError, SyntaxError, ValueError) as e:
        logger.warning(f"Failed to parse {path.name}: {e}")
        return None


def _lookup(section: dict[str, Any], key: str, default: Any = None) -> Any:
    """Case-insensitive key lookup (manifest casing varies across Steam versions)."""
    if key in section:
        return section[key]
    lower = key.lower()
    for k, v in section.items():
        if k.lower() == lower:
            return v
    return default


class SteamScanner(SourceScanner):
    """Steam client installation scanner (manifest-only, no executable walk)."""

    @property
    def source(self) -> GameSource:
        return GameSource.STEAM

    @property
    def display_name(self) -> str:
        return "Steam"

    def _scan(self, root: Path) -> list[ScanResult]:
        results: list[ScanResult] = []
        seen_ids: set[str] = set()
        for library in self.library_folders(root):
            for result in self._scan_library(library):
                if result.source_app_id in seen_ids:
                    continue
                seen_ids.add(result.source_app_id or "")
                results.append(result)
        return results

    def library_folders(self, root: Path) -> list[Path]:
        """All Steam library folders: the client root plus those in libraryfolders.vdf."""
        folders: list[Path] = [root]
        manifest = root / "steamapps" / "libraryfolders.vdf"
        if not manifest.exists():
            logger.debug(f"libraryfolders.vdf not found at {manifest}, using root only")
            return folders

        data = _read_vdf(manifest)
        if not data:
            return folders
        section = _lookup(data, "libraryfolders", {}) or {}
        for key, value in section.items():
            if not key.isdigit():
                continue  # e.g. "contentstatsid"
            raw = _lookup(value, "path") if isinstance(value, dict) else value
            if not raw:
                continue
            path = Path(str(raw).replace("\\\\", "\\"))
            if path not in folders:
                folders.append(path)
        return folders

    def _scan_library(self, library: Path) -> list[ScanResult]:
        steamapps = library / "steamapps"
        if not steamapps.is_dir():
            return []
        results: list[ScanResult] = []
        try:
            manifests = sorted(steamapps.glob("*.acf"))
        except OSError as e:
            logger.debug(f"Cannot list {steamapps}: {e}")
            return results

        for manifest in manifests:
            match = _MANIFEST_RE.match(manifest.name)
            if not match:
                continue
            result = self._parse_manifest(manifest, library, match.group(1))
            if result is not None:
                results.append(result)
        return results

    def _parse_manifest(self, manifest: Path, library: Path, file_app_id: str) -> ScanResult | None:
        data = _read_vdf(manifest)
        if data is None:
            return None
        state = _lookup(data, "AppState", data) or {}

        app_id = str(_lookup(state, "appid", "") or file_app_id)
        name = str(_lookup(state, "name", "") or "")
        install_dir = str(_lookup(state, "installdir", "") or name)
        try:
            state_flags = int(_lookup(state, "StateFlags", 0) or 0)
        except (TypeError, ValueError):
            state_flags = 0
        try:
            size_on_disk = int(_lookup(state, "SizeOnDisk", 0) or 0)
        except (TypeError, ValueError):
            size_on_disk = 0

        if not name:
            name = install_dir or f"Steam App {app_id}"
        if app_id in _NON_GAME_APP_IDS or name.lower().startswith(_NON_GAME_PREFIXES):
            return None
        if state_flags and not state_flags & _STATE_FULLY_INSTALLED:
            logger.debug(f"Skipping partially installed Steam app {app_id} ({name})")
            return None

        logger.debug(f"Steam app {app_id}: {name} ({format_size(size_on_disk)})")
        return SteamScanResult(
            original_name=name,
            install_path=str(library / "steamapps" / "common" / install_dir),
            title=name,
            exe_path=None,  # launched through the client
            source_app_id=app_id,
            status=ScanStatus.READY,
            library_path=str(library),
            state_flags=state_flags,
            size_on_disk=size_on_disk,
        )
