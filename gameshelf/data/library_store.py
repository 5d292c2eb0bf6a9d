"""Library store — JSON-backed game library."""

from __future__ import annotations

import json
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator

from loguru import logger

from gameshelf.core.reconciler import LibraryIndex, Reconciler, shares_install_identity
from gameshelf.models.library_entry import LOCKABLE_FIELDS, LibraryEntry, make_custom_id
from gameshelf.models.scan_result import ScanResult
from gameshelf.utils import is_strict_subpath, normalize_path

_ENTRY_FIELDS = frozenset(f.name for f in fields(LibraryEntry))

# Fields a rescan may refresh on an existing entry
_SCAN_OWNED_FIELDS = ("exe_path", "install_dir")
# Fields a rescan only fills in when the entry has none yet
_SCAN_FILL_FIELDS = ("title", "source", "source_app_id")


@dataclass
class MergePolicy:
    add_new: bool = True
    update_existing: bool = True
    force: bool = False  # also overwrite locked fields


@dataclass
class MergeReport:
    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)


def _now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def entry_from_scan(scan_result: ScanResult, **overrides: Any) -> LibraryEntry:
    """A new library entry for a confirmed scan result."""
    entry = LibraryEntry(
        id=scan_result.entry_id() or make_custom_id(),
        title=scan_result.title or scan_result.original_name,
        source=scan_result.source.value,
        source_app_id=scan_result.source_app_id,
        exe_path=scan_result.exe_path,
        install_dir=scan_result.install_path or None,
        added_at=_now(),
    )
    for name, value in overrides.items():
        if name in _ENTRY_FIELDS:
            setattr(entry, name, value)
    return entry


class LibraryStore:
    """
    Game library manager — reads/writes library.json.

    File structure::

        {"version": 1, "games": {"steam-220": {...LibraryEntry...}, ...}}

    The store is the only writer of the library file.
    """

    def __init__(self, data_dir: Path, reconciler: Reconciler | None = None) -> None:
        self._data_dir = data_dir
        self._path = data_dir / "library.json"
        self._games: dict[str, LibraryEntry] = {}
        self._version = 1
        self._reconciler = reconciler or Reconciler()
        self._lock = threading.RLock()
        self._defer_save = False

    def load(self) -> None:
        """Load library from disk."""
        with self._lock:
            self._games.clear()
            if not self._path.exists():
                return
            try:
                with open(self._path, encoding="utf-8") as f:
                    data = json.load(f)
                self._version = data.get("version", 1)
                for key, game_data in data.get("games", {}).items():
                    try:
                        entry = LibraryEntry.from_dict(game_data)
                    except (TypeError, KeyError, AttributeError) as e:
                        logger.warning(f"Skipping malformed library entry '{key}': {e}")
                        continue
                    self._games[entry.id] = entry
            except (json.JSONDecodeError, OSError) as e:
                logger.error(f"Failed to load library: {e}")

    def save(self) -> None:
        """Persist library to disk."""
        if self._defer_save:
            return
        with self._lock:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            data = {
                "version": self._version,
                "games": {key: entry.to_dict() for key, entry in self._games.items()},
            }
            tmp = self._path.with_suffix(".tmp")
            try:
                with open(tmp, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False, indent=2)
                tmp.replace(self._path)
            except OSError as e:
                logger.error(f"Failed to save library: {e}")
                tmp.unlink(missing_ok=True)

    @contextmanager
    def batch_update(self) -> Iterator[None]:
        """Coalesce several mutations into a single write."""
        with self._lock:
            outer = self._defer_save
            self._defer_save = True
            try:
                yield
            finally:
                self._defer_save = outer
                if not outer:
                    self.save()

    # ── Queries ──

    def get_all(self) -> list[LibraryEntry]:
        return list(self._games.values())

    def get(self, entry_id: str) -> LibraryEntry | None:
        return self._games.get(entry_id)

    @property
    def count(self) -> int:
        return len(self._games)

    # ── Mutations ──

    def upsert(self, entry: LibraryEntry, previous_id: str | None = None) -> LibraryEntry:
        """
        Insert or replace *entry*.

        Any other row for the same logical game (the explicit *previous_id*,
        or a row sharing the executable path or install directory) is
        removed in the same write, so an id change never leaves a duplicate.
        Rows sharing only a directory but naming a differently named
        executable are separate games and stay.
        """
        with self._lock:
            if not entry.added_at:
                entry.added_at = _now()
            stale = {previous_id} if previous_id and previous_id != entry.id else set()
            exe = normalize_path(entry.exe_path)
            install = normalize_path(entry.install_dir)
            for other in self._games.values():
                if other.id == entry.id:
                    continue
                other_exe = normalize_path(other.exe_path)
                if (exe and other_exe == exe) or (
                    install
                    and normalize_path(other.install_dir) == install
                    and shares_install_identity(exe, other_exe)
                ):
                    stale.add(other.id)
            for stale_id in stale:
                if self._games.pop(stale_id, None) is not None:
                    logger.info(f"Replaced library entry {stale_id} with {entry.id}")
            self._games[entry.id] = entry
            self.save()
            return entry

    def delete(self, entry_id: str) -> bool:
        with self._lock:
            if self._games.pop(entry_id, None) is None:
                return False
            self.save()
            return True

    def delete_many(self, entry_ids: Iterable[str]) -> int:
        with self._lock:
            removed = sum(1 for i in set(entry_ids) if self._games.pop(i, None) is not None)
            if removed:
                self.save()
            return removed

    def merge_from_scan(
        self, results: Iterable[ScanResult], policy: MergePolicy | None = None
    ) -> MergeReport:
        """
        Merge scan results into the library.  Idempotent.

        Existing rows are found with the reconciler's identity rules; only
        changed, unlocked (unless forced) fields are written.
        """
        policy = policy or MergePolicy()
        report = MergeReport()
        with self._lock:
            index = LibraryIndex(self._games.values())
            for scan_result in results:
                matched = self._reconciler.match_existing(scan_result, index)
                if matched is None:
                    if not policy.add_new:
                        continue
                    entry = entry_from_scan(scan_result)
                    self._games[entry.id] = entry
                    report.added.append(entry.id)
                    index = LibraryIndex(self._games.values())
                    continue

                entry, _rule = matched
                if not policy.update_existing:
                    report.unchanged.append(entry.id)
                    continue
                changed = self._merge_fields(entry, scan_result, policy.force)
                if changed:
                    report.updated.append(entry.id)
                    index = LibraryIndex(self._games.values())
                elif entry.id not in report.unchanged:
                    report.unchanged.append(entry.id)
            if report.added or report.updated:
                self.save()
        logger.info(
            f"Merged scan: {len(report.added)} added, {len(report.updated)} updated, "
            f"{len(report.unchanged)} unchanged"
        )
        return report

    @staticmethod
    def _merge_fields(entry: LibraryEntry, scan_result: ScanResult, force: bool) -> list[str]:
        values = {
            "exe_path": scan_result.exe_path,
            "install_dir": scan_result.install_path or None,
            "title": scan_result.title,
            "source": scan_result.source.value,
            "source_app_id": scan_result.source_app_id,
        }
        changed: list[str] = []
        for name in _SCAN_OWNED_FIELDS + _SCAN_FILL_FIELDS:
            new = values[name]
            current = getattr(entry, name)
            if not new or new == current:
                continue
            if name in _SCAN_OWNED_FIELDS and (
                normalize_path(new) == normalize_path(current) or is_strict_subpath(new, current)
            ):
                continue
            if name in _SCAN_FILL_FIELDS and current:
                continue
            if entry.is_locked(name) and not force:
                continue
            setattr(entry, name, new)
            changed.append(name)
        return changed

    def apply_metadata(self, entry_id: str, values: dict[str, Any], force: bool = False) -> list[str]:
        """Write resolved metadata, skipping locked fields unless *force*.  Returns changed names."""
        with self._lock:
            entry = self._games.get(entry_id)
            if entry is None:
                raise KeyError(entry_id)
            changed: list[str] = []
            for name, value in values.items():
                if name not in _ENTRY_FIELDS or name in ("id", "locked_fields"):
                    logger.debug(f"Ignoring unknown metadata field '{name}'")
                    continue
                if entry.is_locked(name) and not force:
                    continue
                if getattr(entry, name) == value:
                    continue
                setattr(entry, name, value)
                changed.append(name)
            if changed:
                self.save()
            return changed

    def lock_fields(self, entry_id: str, names: Iterable[str]) -> None:
        self._set_locks(entry_id, names, lock=True)

    def unlock_fields(self, entry_id: str, names: Iterable[str]) -> None:
        self._set_locks(entry_id, names, lock=False)

    def _set_locks(self, entry_id: str, names: Iterable[str], lock: bool) -> None:
        names = set(names)
        unknown = names - LOCKABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be locked: {', '.join(sorted(unknown))}")
        with self._lock:
            entry = self._games.get(entry_id)
            if entry is None:
                raise KeyError(entry_id)
            before = set(entry.locked_fields)
            if lock:
                entry.locked_fields |= names
            else:
                entry.locked_fields -= names
            if entry.locked_fields != before:
                self.save()
