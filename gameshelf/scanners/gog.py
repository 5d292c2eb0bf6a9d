"""GOG Galaxy scanner."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from loguru import logger

from gameshelf.models.scan_result import GameSource, GogScanResult, ScanResult, ScanStatus
from gameshelf.scanners.base import SourceScanner, merge_by_install_path


class GogScanner(SourceScanner):
    """
    GOG Galaxy scanner.

    Games live in ``{root}/Games`` (or ``{root}/Galaxy/Games``, or the root
    itself when it already is the games folder).  A ``goggame-<id>.info``
    file inside a game folder carries the product id and primary play task.
    """

    @property
    def source(self) -> GameSource:
        return GameSource.GOG

    @property
    def display_name(self) -> str:
        return "GOG"

    def games_folder(self, root: Path) -> Path | None:
        if root.name.lower() == "games":
            return root
        for candidate in (root / "Games", root / "Galaxy" / "Games"):
            if candidate.is_dir():
                return candidate
        return None

    def _scan(self, root: Path) -> list[ScanResult]:
        games_root = self.games_folder(root)
        if games_root is None:
            logger.warning(f"GOG games folder not found under {root}")
            return []

        manifest_results: list[ScanResult] = []
        for folder in sorted(p for p in games_root.iterdir() if p.is_dir()):
            result = self._scan_manifest(folder)
            if result is not None:
                manifest_results.append(result)
        return merge_by_install_path(manifest_results, self.scan_game_folders(games_root))

    def _scan_manifest(self, folder: Path) -> ScanResult | None:
        try:
            info_files = sorted(folder.glob("goggame-*.info"))
        except OSError:
            return None
        if not info_files:
            return None

        info_file = info_files[0]
        try:
            with open(info_file, encoding="utf-8") as f:
                info: dict[str, Any] = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Error parsing GOG manifest {info_file}: {e}")
            return None

        name = info.get("name") or folder.name
        game_id = str(info.get("gameId") or info_file.stem.removeprefix("goggame-"))
        exe = self._primary_task_path(folder, info.get("playTasks") or [])
        if exe is None:
            candidates = self.find_executables(folder)
            exe = candidates[0] if candidates else None

        return GogScanResult(
            original_name=name,
            install_path=str(folder),
            title=name,
            exe_path=str(exe) if exe else None,
            source_app_id=game_id,
            status=ScanStatus.AMBIGUOUS,
            manifest_path=str(info_file),
        )

    @staticmethod
    def _primary_task_path(folder: Path, tasks: list[dict[str, Any]]) -> Path | None:
        ordered = sorted(tasks, key=lambda t: not t.get("isPrimary", False))
        for task in ordered:
            if task.get("type", "FileTask") != "FileTask" or not task.get("path"):
                continue
            path = folder / str(task["path"]).replace("\\", "/")
            if path.is_file():
                return path
        return None
