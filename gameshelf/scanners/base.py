"""Abstract base class for install-source scanners.

Every scanner turns one filesystem root into a list of ``ScanResult`` objects.
A missing or unreadable root is never an error — it simply yields nothing.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable

from loguru import logger

from gameshelf.models.scan_result import SCAN_RESULT_TYPES, GameSource, ScanResult, ScanStatus
from gameshelf.utils import normalize_path, normalize_title

DEFAULT_MAX_DEPTH = 3

EXECUTABLE_SUFFIXES = (".exe",)

# Filename substrings that mark helper binaries rather than games.
DENY_SUBSTRINGS: tuple[str, ...] = (
    "installer",
    "uninstall",
    "unins0",
    "setup",
    "updater",
    "bootstrapper",
    "gamelaunchhelper",
    "launcher",
    "crashreport",
    "crashhandler",
    "redist",
    "dxsetup",
    "dotnetfx",
    "ue4prereq",
    "easyanticheat",
    "battleye",
)


def is_denied(filename: str, extra_deny: Iterable[str] = ()) -> bool:
    lower = filename.lower()
    return any(s in lower for s in DENY_SUBSTRINGS) or any(s in lower for s in extra_deny)


def find_executables(
    root: str | Path,
    max_depth: int = DEFAULT_MAX_DEPTH,
    extra_deny: Iterable[str] = (),
) -> list[Path]:
    """
    Walk *root* up to *max_depth* levels below it, collecting candidate executables.

    Files whose name contains a deny-listed substring are skipped.  When the
    same filename appears at several depths, the shallowest copy wins (ties
    broken by lexical path order).  Unreadable directories are skipped.
    Result is ordered by depth, then path.
    """
    extra = tuple(s.lower() for s in extra_deny)
    found: list[tuple[int, str, Path]] = []

    def _walk(directory: Path, depth: int) -> None:
        try:
            entries = list(os.scandir(directory))
        except OSError as e:
            logger.debug(f"Skipping unreadable directory {directory}: {e}")
            return
        for entry in entries:
            try:
                if entry.is_file():
                    name = entry.name
                    if name.lower().endswith(EXECUTABLE_SUFFIXES) and not is_denied(name, extra):
                        found.append((depth, entry.path, Path(entry.path)))
                elif entry.is_dir() and depth < max_depth:
                    _walk(Path(entry.path), depth + 1)
            except OSError:
                continue

    root_path = Path(root)
    if not root_path.is_dir():
        return []
    _walk(root_path, 0)

    found.sort(key=lambda item: (item[0], item[1]))
    seen_names: set[str] = set()
    unique: list[Path] = []
    for _depth, _path_str, path in found:
        key = path.name.lower()
        if key in seen_names:
            continue
        seen_names.add(key)
        unique.append(path)
    return unique


def pick_main_executable(folder: Path, candidates: list[Path]) -> Path | None:
    """Prefer an exe named like its game folder, else the shallowest candidate."""
    if not candidates:
        return None
    folder_key = normalize_title(folder.name).replace(" ", "")
    for exe in candidates:
        stem_key = normalize_title(exe.stem).replace(" ", "")
        if stem_key and folder_key and (stem_key in folder_key or folder_key in stem_key):
            return exe
    return candidates[0]


def merge_by_install_path(
    manifest_results: list[ScanResult], walk_results: list[ScanResult]
) -> list[ScanResult]:
    """Manifest-derived results win; walk results for a known install path are dropped."""
    merged = list(manifest_results)
    seen = {normalize_path(r.install_path) for r in manifest_results}
    for result in walk_results:
        key = normalize_path(result.install_path)
        if key in seen:
            continue
        seen.add(key)
        merged.append(result)
    return merged


class SourceScanner(ABC):
    """Abstract interface for one install source (Steam, Epic, GOG …)."""

    # Filename substrings excluded in addition to DENY_SUBSTRINGS.
    extra_deny: tuple[str, ...] = ()
    # Child folders of the games root that never hold a game.
    skip_dirs: frozenset[str] = frozenset()
    max_depth: int = DEFAULT_MAX_DEPTH

    @property
    @abstractmethod
    def source(self) -> GameSource:
        """Source tag of the results this scanner emits."""
        ...

    @property
    def display_name(self) -> str:
        return self.source.value.capitalize()

    def scan(self, root: str | Path) -> list[ScanResult]:
        """Scan *root*.  Never raises for a missing or unreadable root."""
        root_path = Path(root) if root else None
        if root_path is None or not root_path.is_dir():
            logger.debug(f"{self.display_name}: root does not exist: {root}")
            return []
        try:
            results = self._scan(root_path)
        except OSError as e:
            logger.warning(f"{self.display_name}: cannot read {root_path}: {e}")
            return []
        logger.debug(f"{self.display_name}: found {len(results)} game(s) at {root_path}")
        return results

    @abstractmethod
    def _scan(self, root: Path) -> list[ScanResult]:
        """Source-specific scan of an existing root directory."""
        ...

    # ── Shared helpers ──

    def find_executables(self, folder: Path) -> list[Path]:
        return find_executables(folder, self.max_depth, self.extra_deny)

    def scan_game_folders(self, games_root: Path) -> list[ScanResult]:
        """One result per child folder of *games_root* holding a candidate executable."""
        results: list[ScanResult] = []
        try:
            children = sorted(p for p in games_root.iterdir() if p.is_dir())
        except OSError as e:
            logger.debug(f"{self.display_name}: cannot list {games_root}: {e}")
            return results

        for folder in children:
            if folder.name.lower() in self.skip_dirs:
                continue
            exe = pick_main_executable(folder, self.find_executables(folder))
            if exe is None:
                continue
            results.append(self.make_result(folder, exe))
        return results

    def make_result(
        self,
        install_path: Path,
        exe_path: Path | None,
        name: str | None = None,
        app_id: str | None = None,
        **extra: object,
    ) -> ScanResult:
        """Build this scanner's ScanResult variant."""
        cls = SCAN_RESULT_TYPES[self.source]
        display = name or install_path.name
        return cls(
            original_name=display,
            install_path=str(install_path),
            title=display,
            exe_path=str(exe_path) if exe_path else None,
            source_app_id=app_id,
            status=ScanStatus.AMBIGUOUS,
            **extra,
        )
