"""Rockstar Games Launcher scanner."""

from __future__ import annotations

from pathlib import Path

from gameshelf.models.scan_result import GameSource, ScanResult
from gameshelf.scanners.base import SourceScanner


class RockstarScanner(SourceScanner):
    """Each child folder of the Rockstar Games root is one game."""

    extra_deny = ("socialclub", "playgtav")
    skip_dirs = frozenset({"launcher", "social club", "redistributables"})

    @property
    def source(self) -> GameSource:
        return GameSource.ROCKSTAR

    @property
    def display_name(self) -> str:
        return "Rockstar Games"

    def _scan(self, root: Path) -> list[ScanResult]:
        return self.scan_game_folders(root)
