"""Scan result models — one variant per install source."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import ClassVar


class GameSource(StrEnum):
    """Install source a scan result was discovered in."""

    STEAM = "steam"
    EPIC = "epic"
    GOG = "gog"
    XBOX = "xbox"
    UBISOFT = "ubisoft"
    ROCKSTAR = "rockstar"
    MANUAL = "manual"


class ScanStatus(StrEnum):
    """Progress of a scan result through matching."""

    PENDING = "pending"
    SCANNING = "scanning"
    MATCHED = "matched"
    AMBIGUOUS = "ambiguous"
    READY = "ready"
    ERROR = "error"


@dataclass
class ScanResult:
    """
    A discovered, not yet confirmed, installed game.

    Never persisted.  Concrete variants set ``source`` as a class-level tag
    and add the fields only meaningful for that source.
    """

    source: ClassVar[GameSource]

    original_name: str
    install_path: str
    title: str = ""
    exe_path: str | None = None
    source_app_id: str | None = None
    status: ScanStatus = ScanStatus.PENDING
    error: str | None = None

    def __post_init__(self) -> None:
        if not self.title:
            self.title = self.original_name

    def entry_id(self) -> str | None:
        """Deterministic library id, or None when the source gave no app id."""
        if self.source_app_id:
            return f"{self.source.value}-{self.source_app_id}"
        return None


@dataclass
class SteamScanResult(ScanResult):
    source: ClassVar[GameSource] = GameSource.STEAM

    library_path: str = ""
    state_flags: int = 0
    size_on_disk: int = 0


@dataclass
class EpicScanResult(ScanResult):
    source: ClassVar[GameSource] = GameSource.EPIC

    catalog_namespace: str = ""
    manifest_path: str = ""


@dataclass
class GogScanResult(ScanResult):
    source: ClassVar[GameSource] = GameSource.GOG

    manifest_path: str = ""


@dataclass
class XboxScanResult(ScanResult):
    source: ClassVar[GameSource] = GameSource.XBOX

    package_name: str = ""


@dataclass
class UbisoftScanResult(ScanResult):
    source: ClassVar[GameSource] = GameSource.UBISOFT


@dataclass
class RockstarScanResult(ScanResult):
    source: ClassVar[GameSource] = GameSource.ROCKSTAR


@dataclass
class ManualScanResult(ScanResult):
    source: ClassVar[GameSource] = GameSource.MANUAL


SCAN_RESULT_TYPES: dict[GameSource, type[ScanResult]] = {
    GameSource.STEAM: SteamScanResult,
    GameSource.EPIC: EpicScanResult,
    GameSource.GOG: GogScanResult,
    GameSource.XBOX: XboxScanResult,
    GameSource.UBISOFT: UbisoftScanResult,
    GameSource.ROCKSTAR: RockstarScanResult,
    GameSource.MANUAL: ManualScanResult,
}
