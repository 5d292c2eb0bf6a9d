"""Application context — service container for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from gameshelf.config import Config
    from gameshelf.core.asset_cache import AssetCache
    from gameshelf.core.importer import ImportOrchestrator
    from gameshelf.core.metadata import MetadataResolver
    from gameshelf.core.pipeline import LibraryPipeline
    from gameshelf.core.reconciler import Reconciler
    from gameshelf.core.scheduler import BackgroundScanScheduler
    from gameshelf.data.library_store import LibraryStore
    from gameshelf.scanners.manager import ScannerManager


@dataclass
class AppContext:
    """
    Central service container.

    Built once by ``main.create_context`` and handed to whatever front end
    drives the library.
    """

    config: Config
    http_client: httpx.AsyncClient
    scanner_manager: ScannerManager

    orchestrator: ImportOrchestrator
    reconciler: Reconciler
    resolver: MetadataResolver
    asset_cache: AssetCache
    library_store: LibraryStore
    pipeline: LibraryPipeline

    scheduler: BackgroundScanScheduler | None = None
