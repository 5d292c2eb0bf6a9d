"""Import orchestrator — runs every enabled source scanner concurrently."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Mapping, Protocol

from loguru import logger

from gameshelf.models.scan_result import GameSource, ScanResult

if TYPE_CHECKING:
    from gameshelf.config import SourceConfig
    from gameshelf.scanners.base import SourceScanner
    from gameshelf.scanners.manager import ScannerManager


class ProgressObserver(Protocol):
    """Receives human-readable progress messages, synchronously."""

    def on_progress(self, message: str) -> None: ...


def notify(progress: ProgressObserver | None, message: str) -> None:
    """Best-effort progress report; observer errors are logged, never raised."""
    if progress is None:
        return
    try:
        progress.on_progress(message)
    except Exception as e:
        logger.warning(f"Progress observer failed: {e}")


class ImportOrchestrator:
    """
    Fans a scan out to every enabled source and gathers the results.

    A failing scanner contributes nothing; the others still report.
    """

    def __init__(self, scanner_manager: ScannerManager) -> None:
        self._scanners = scanner_manager

    async def scan_all_sources(
        self,
        enabled_configs: Mapping[str, SourceConfig],
        progress: ProgressObserver | None = None,
    ) -> list[ScanResult]:
        """Scan every enabled, configured source.  Results follow config order."""
        jobs: list[tuple[SourceScanner, str]] = []
        for source_id, conf in enabled_configs.items():
            if not conf.enabled or not conf.path:
                continue
            scanner = self._scanners.get_scanner(source_id)
            if scanner is None:
                logger.warning(f"No scanner for source '{source_id}', skipping")
                continue
            jobs.append((scanner, conf.path))

        if not jobs:
            notify(progress, "No sources enabled")
            return []

        notify(progress, f"Scanning {len(jobs)} source(s)...")
        outcomes = await asyncio.gather(
            *(self._run(scanner, path, progress) for scanner, path in jobs),
            return_exceptions=True,
        )

        results: list[ScanResult] = []
        for (scanner, path), outcome in zip(jobs, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"{scanner.display_name} scan of {path} failed: {outcome!r}")
                continue
            results.extend(outcome)

        notify(progress, f"Found {len(results)} game(s)")
        logger.info(f"Scan complete: {len(results)} game(s) from {len(jobs)} source(s)")
        return results

    async def _run(
        self, scanner: SourceScanner, path: str, progress: ProgressObserver | None
    ) -> list[ScanResult]:
        notify(progress, f"Scanning {scanner.display_name}...")
        results = await asyncio.to_thread(scanner.scan, path)
        notify(progress, f"{scanner.display_name}: {len(results)} game(s)")
        return results

    async def scan_source(self, source: str | GameSource, path: str) -> list[ScanResult]:
        """Run a single scanner on *path* (e.g. a user-picked folder)."""
        scanner = self._scanners.get_scanner(source)
        if scanner is None:
            logger.warning(f"No scanner for source '{source}'")
            return []
        try:
            return await asyncio.to_thread(scanner.scan, path)
        except Exception as e:
            logger.error(f"{scanner.display_name} scan of {path} failed: {e!r}")
            return []
