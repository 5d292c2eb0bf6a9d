"""Reconciliation — classify scan results against the persisted library."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Callable, Iterable

from loguru import logger

from gameshelf.models.library_entry import LibraryEntry
from gameshelf.models.scan_result import ScanResult
from gameshelf.utils import is_strict_subpath, normalize_path


class MatchRule(StrEnum):
    """Which identity rule tied a scan result to an existing entry (highest first)."""

    ID = "id"
    EXE_PATH = "exe_path"
    INSTALL_DIR = "install_dir"


@dataclass
class KnownGame:
    scan_result: ScanResult
    entry: LibraryEntry
    rule: MatchRule


@dataclass
class ReconciliationResult:
    new_games: list[ScanResult] = field(default_factory=list)
    missing_games: list[LibraryEntry] = field(default_factory=list)
    known: list[KnownGame] = field(default_factory=list)


def shares_install_identity(exe: str, other_exe: str) -> bool:
    """
    Whether two records in the same install directory may be the same game.

    Both arguments are normalized executable paths.  When both records name
    an executable, the directory only ties them together if the executable
    file names agree (a moved exe); loose executables side by side in one
    folder are separate games.
    """
    if not exe or not other_exe:
        return True
    return exe.rsplit("/", 1)[-1] == other_exe.rsplit("/", 1)[-1]


class LibraryIndex:
    """Lookup tables over existing entries for the three identity rules."""

    def __init__(self, entries: Iterable[LibraryEntry]) -> None:
        self._by_id: dict[str, LibraryEntry] = {}
        self._by_exe: dict[str, LibraryEntry] = {}
        self._install_dirs: list[tuple[str, str, LibraryEntry]] = []
        for entry in entries:
            self._by_id.setdefault(entry.id, entry)
            exe = normalize_path(entry.exe_path)
            if exe:
                self._by_exe.setdefault(exe, entry)
            install = normalize_path(entry.install_dir)
            if install:
                self._install_dirs.append((install, exe, entry))

    def match(self, scan_result: ScanResult) -> tuple[LibraryEntry, MatchRule] | None:
        entry_id = scan_result.entry_id()
        if entry_id and entry_id in self._by_id:
            return self._by_id[entry_id], MatchRule.ID

        exe = normalize_path(scan_result.exe_path)
        if exe and exe in self._by_exe:
            return self._by_exe[exe], MatchRule.EXE_PATH

        install = normalize_path(scan_result.install_path)
        if install:
            for existing_dir, existing_exe, entry in self._install_dirs:
                if not shares_install_identity(exe, existing_exe):
                    continue
                if install == existing_dir or is_strict_subpath(install, existing_dir):
                    return entry, MatchRule.INSTALL_DIR
        return None


def _batch_keys(scan_result: ScanResult) -> set[str]:
    keys = set()
    entry_id = scan_result.entry_id()
    if entry_id:
        keys.add(f"id:{entry_id}")
    exe = normalize_path(scan_result.exe_path)
    if exe:
        keys.add(f"exe:{exe}")
    return keys


class Reconciler:
    """
    Decides, for each scan result, whether it is new or already in the
    library, and which library entries no longer exist on disk.

    Identity rules in priority order: deterministic id, normalized
    executable path, then install directory (equal, or the scanned path
    strictly inside an existing install directory).  The install-directory
    rule does not tie together two records whose executables differ by name.
    """

    def __init__(self, path_exists: Callable[[str], bool] = os.path.exists) -> None:
        self._path_exists = path_exists

    def match_existing(
        self, scan_result: ScanResult, existing: Iterable[LibraryEntry] | LibraryIndex
    ) -> tuple[LibraryEntry, MatchRule] | None:
        index = existing if isinstance(existing, LibraryIndex) else LibraryIndex(existing)
        return index.match(scan_result)

    def reconcile(
        self,
        scan_results: list[ScanResult],
        existing: Iterable[LibraryEntry],
        scanned_sources: Iterable[str] | None = None,
    ) -> ReconciliationResult:
        entries = list(existing)
        index = LibraryIndex(entries)
        result = ReconciliationResult()

        seen: set[str] = set()
        seen_dirs: dict[str, list[str]] = {}
        for scan_result in scan_results:
            keys = _batch_keys(scan_result)
            exe = normalize_path(scan_result.exe_path)
            install = normalize_path(scan_result.install_path)
            same_dir = any(shares_install_identity(exe, other) for other in seen_dirs.get(install, ()))
            if keys & seen or same_dir:
                logger.debug(f"Dropping duplicate scan result: {scan_result.title} ({scan_result.install_path})")
                continue
            seen |= keys
            if install:
                seen_dirs.setdefault(install, []).append(exe)

            matched = index.match(scan_result)
            if matched is None:
                result.new_games.append(scan_result)
            else:
                entry, rule = matched
                result.known.append(KnownGame(scan_result, entry, rule))

        sources = (
            {str(s) for s in scanned_sources}
            if scanned_sources is not None
            else {r.source.value for r in scan_results}
        )
        result.missing_games = self.find_missing(entries, scan_results, sources)

        logger.info(
            f"Reconciled {len(scan_results)} scan result(s): {len(result.new_games)} new, "
            f"{len(result.known)} known, {len(result.missing_games)} missing"
        )
        return result

    def find_missing(
        self,
        entries: Iterable[LibraryEntry],
        scan_results: list[ScanResult],
        scanned_sources: set[str],
    ) -> list[LibraryEntry]:
        """
        Entries whose game is gone.

        Entries with an executable are checked on disk.  Entries without one
        (Steam and other launcher-started games) are checked against this
        scan's app ids for their source, but only when that source was
        scanned.  Anything else cannot be checked and is never flagged.
        """
        scanned_ids: dict[str, set[str]] = {}
        for r in scan_results:
            if r.source_app_id:
                scanned_ids.setdefault(r.source.value, set()).add(str(r.source_app_id))

        missing: list[LibraryEntry] = []
        for entry in entries:
            if entry.exe_path:
                if not self._path_exists(entry.exe_path):
                    missing.append(entry)
            elif entry.source_app_id and entry.source in scanned_sources:
                if str(entry.source_app_id) not in scanned_ids.get(entry.source, set()):
                    missing.append(entry)
        return missing
