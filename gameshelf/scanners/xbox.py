"""Xbox / PC Game Pass scanner."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path

from loguru import logger

from gameshelf.models.scan_result import GameSource, ScanResult, ScanStatus, XboxScanResult
from gameshelf.scanners.base import SourceScanner, merge_by_install_path

_CONFIG_NAME = "MicrosoftGame.config"


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _find(root: ET.Element, name: str) -> ET.Element | None:
    for element in root.iter():
        if _local(element.tag) == name:
            return element
    return None


class XboxScanner(SourceScanner):
    """
    Scanner for an ``XboxGames`` install root.

    Each game folder normally holds ``Content/MicrosoftGame.config`` naming the
    package identity, display name and executable.  The executable's folder
    is reported as the install path.
    """

    extra_deny = ("gamelaunchhelper", "xboxpcapp")

    @property
    def source(self) -> GameSource:
        return GameSource.XBOX

    @property
    def display_name(self) -> str:
        return "Xbox"

    def _scan(self, root: Path) -> list[ScanResult]:
        manifest_results: list[ScanResult] = []
        walk_results: list[ScanResult] = []
        for folder in sorted(p for p in root.iterdir() if p.is_dir()):
            result = self._scan_config(folder)
            if result is not None:
                manifest_results.append(result)
                continue
            content = folder / "Content"
            exes = self.find_executables(content if content.is_dir() else folder)
            if exes:
                exe = exes[0]
                walk_results.append(self.make_result(exe.parent, exe, name=folder.name))
        return merge_by_install_path(manifest_results, walk_results)

    def _scan_config(self, folder: Path) -> ScanResult | None:
        config_path = next(
            (p for p in (folder / "Content" / _CONFIG_NAME, folder / _CONFIG_NAME) if p.is_file()),
            None,
        )
        if config_path is None:
            return None
        try:
            tree = ET.parse(config_path)
        except (ET.ParseError, OSError) as e:
            logger.warning(f"Error parsing {config_path}: {e}")
            return None

        root = tree.getroot()
        identity = _find(root, "Identity")
        visuals = _find(root, "ShellVisuals")
        executable = _find(root, "Executable")

        package_name = identity.get("Name", "") if identity is not None else ""
        name = (visuals.get("DefaultDisplayName", "") if visuals is not None else "") or folder.name
        exe_path: Path | None = None
        if executable is not None and executable.get("Name"):
            exe_path = config_path.parent / executable.get("Name", "").replace("\\", "/")
            if not exe_path.is_file():
                exe_path = None
        if exe_path is None:
            candidates = self.find_executables(config_path.parent)
            exe_path = candidates[0] if candidates else None
        if exe_path is None:
            return None

        return XboxScanResult(
            original_name=name,
            install_path=str(exe_path.parent),
            title=name,
            exe_path=str(exe_path),
            source_app_id=None,
            status=ScanStatus.AMBIGUOUS,
            package_name=package_name,
        )
