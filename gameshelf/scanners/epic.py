"""Epic Games scanner — launcher manifests first, directory walk second."""

from __future__ import annotations

import json
from pathlib import Path

from loguru import logger

from gameshelf.models.scan_result import EpicScanResult, GameSource, ScanResult, ScanStatus
from gameshelf.scanners.base import SourceScanner, merge_by_install_path

_MANIFEST_SUBDIR = Path("Epic Games Launcher") / "Data" / "Manifests"


class EpicScanner(SourceScanner):
    """Epic Games Launcher scanner."""

    skip_dirs = frozenset({"epic games launcher", "unrealengine", "launcher", "directxredist"})

    @property
    def source(self) -> GameSource:
        return GameSource.EPIC

    @property
    def display_name(self) -> str:
        return "Epic Games"

    def _scan(self, root: Path) -> list[ScanResult]:
        manifest_results = self._scan_manifests(root / _MANIFEST_SUBDIR)
        walk_results = self.scan_game_folders(root)
        return merge_by_install_path(manifest_results, walk_results)

    def _scan_manifests(self, manifests_dir: Path) -> list[ScanResult]:
        if not manifests_dir.is_dir():
            return []
        results: list[ScanResult] = []
        try:
            manifest_files = sorted(manifests_dir.glob("*.item"))
        except OSError as e:
            logger.debug(f"Cannot list Epic manifests: {e}")
            return results

        for manifest_file in manifest_files:
            result = self._parse_manifest(manifest_file)
            if result is not None:
                results.append(result)
        return results

    def _parse_manifest(self, manifest_file: Path) -> ScanResult | None:
        try:
            with open(manifest_file, encoding="utf-8") as f:
                manifest = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Error parsing Epic manifest {manifest_file.name}: {e}")
            return None

        install_location = manifest.get("InstallLocation") or ""
        if not install_location or not Path(install_location).is_dir():
            return None
        install_dir = Path(install_location)

        name = (
            manifest.get("DisplayName")
            or manifest.get("AppName")
            or Path(manifest.get("LaunchExecutable") or "").stem
            or install_dir.name
        )
        exe = self._find_launch_executable(install_dir, manifest.get("LaunchExecutable"), name)
        app_id = manifest.get("CatalogItemId") or manifest_file.stem

        return EpicScanResult(
            original_name=name,
            install_path=str(install_dir),
            title=name,
            exe_path=str(exe) if exe else None,
            source_app_id=app_id,
            status=ScanStatus.AMBIGUOUS,
            catalog_namespace=manifest.get("CatalogNamespace") or "",
            manifest_path=str(manifest_file),
        )

    def _find_launch_executable(
        self, install_dir: Path, launch_executable: str | None, name: str
    ) -> Path | None:
        if launch_executable:
            candidate = install_dir / launch_executable
            if candidate.is_file():
                return candidate
        for candidate in (
            install_dir / f"{name}.exe",
            install_dir / "Binaries" / "Win64" / f"{name}.exe",
            install_dir / "Binaries" / "Win32" / f"{name}.exe",
        ):
            if candidate.is_file():
                return candidate
        found = self.find_executables(install_dir)
        return found[0] if found else None
