"""Manual folder scanner — any user-chosen directory of games."""

from __future__ import annotations

from pathlib import Path

from gameshelf.models.scan_result import GameSource, ScanResult
from gameshelf.scanners.base import SourceScanner, pick_main_executable


class ManualScanner(SourceScanner):
    """
    Treats each child folder holding an executable as one game.

    Executables lying directly in the root become games of their own, with
    the root as install path.
    """

    @property
    def source(self) -> GameSource:
        return GameSource.MANUAL

    @property
    def display_name(self) -> str:
        return "Manual"

    def _scan(self, root: Path) -> list[ScanResult]:
        folder_results = self.scan_game_folders(root)
        loose: list[ScanResult] = []
        for exe in self.find_executables(root):
            if exe.parent != root:
                continue
            loose.append(self.make_result(root, exe, name=exe.stem))
        return folder_results + loose

    def scan_folder(self, folder: str | Path) -> ScanResult | None:
        """Single-game import of one folder."""
        path = Path(folder)
        if not path.is_dir():
            return None
        exe = pick_main_executable(path, self.find_executables(path))
        if exe is None:
            return None
        return self.make_result(path, exe)
