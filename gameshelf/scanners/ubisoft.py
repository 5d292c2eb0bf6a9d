"""Ubisoft Connect scanner."""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from gameshelf.models.scan_result import GameSource, ScanResult
from gameshelf.scanners.base import SourceScanner


class UbisoftScanner(SourceScanner):
    """Scans ``{root}/games`` (or the root itself when it is the games folder)."""

    extra_deny = ("uplay", "ubisoft")

    @property
    def source(self) -> GameSource:
        return GameSource.UBISOFT

    @property
    def display_name(self) -> str:
        return "Ubisoft Connect"

    def _scan(self, root: Path) -> list[ScanResult]:
        games_root = root if root.name.lower().endswith("games") else root / "games"
        if not games_root.is_dir():
            logger.warning(f"Ubisoft games folder not found: {games_root}")
            return []
        return self.scan_game_folders(games_root)
