"""Scanner auto-discovery — one SourceScanner per install source."""

from __future__ import annotations

import importlib
import pkgutil
from pathlib import Path

from loguru import logger

from gameshelf.models.scan_result import GameSource
from gameshelf.scanners.base import SourceScanner


class ScannerManager:
    """
    Auto-discovers ``SourceScanner`` subclasses from ``gameshelf/scanners/*.py``.

    Usage::

        sm = ScannerManager()
        sm.discover_scanners()
        sm.get_scanner("steam")      # → SteamScanner
    """

    _SKIP_MODULES = frozenset({"base", "manager"})

    def __init__(self) -> None:
        self._scanners: dict[GameSource, SourceScanner] = {}

    @property
    def scanners(self) -> list[SourceScanner]:
        return list(self._scanners.values())

    def discover_scanners(self) -> None:
        """Import every scanner module and register concrete scanners found in it."""
        self._scanners.clear()
        scanners_dir = Path(__file__).parent

        for module_info in pkgutil.iter_modules([str(scanners_dir)]):
            if module_info.ispkg or module_info.name in self._SKIP_MODULES:
                continue
            module_name = f"gameshelf.scanners.{module_info.name}"
            try:
                module = importlib.import_module(module_name)
            except ImportError as e:
                logger.debug(f"Skipping scanner module '{module_info.name}': {e}")
                continue

            for attr_name in dir(module):
                attr = getattr(module, attr_name)
                if (
                    isinstance(attr, type)
                    and issubclass(attr, SourceScanner)
                    and attr is not SourceScanner
                    and not getattr(attr, "__abstractmethods__", None)
                ):
                    self._register(attr, attr_name)

    def _register(self, cls: type[SourceScanner], class_name: str) -> None:
        try:
            instance = cls()
        except Exception as e:
            logger.error(f"Failed to instantiate scanner '{class_name}': {e}")
            return
        if instance.source not in self._scanners:
            self._scanners[instance.source] = instance
            logger.debug(f"Loaded scanner: {instance.display_name} ({instance.source})")

    def register(self, scanner: SourceScanner) -> None:
        """Register (or replace) a scanner instance explicitly."""
        self._scanners[scanner.source] = scanner

    def get_scanner(self, source: str | GameSource) -> SourceScanner | None:
        try:
            return self._scanners.get(GameSource(source))
        except ValueError:
            return None
