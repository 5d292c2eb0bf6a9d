"""Library pipeline — scan, reconcile, match, resolve, cache and store."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Iterable

from loguru import logger

from gameshelf.core.importer import notify
from gameshelf.data.library_store import entry_from_scan
from gameshelf.models.cached_asset import AssetType
from gameshelf.models.candidate import MatchResult, ProviderCandidate
from gameshelf.models.library_entry import ASSET_URL_FIELDS, LibraryEntry
from gameshelf.models.scan_result import SCAN_RESULT_TYPES, GameSource, ScanResult, ScanStatus

if TYPE_CHECKING:
    from gameshelf.config import Config
    from gameshelf.core.asset_cache import AssetCache
    from gameshelf.core.importer import ImportOrchestrator, ProgressObserver
    from gameshelf.core.metadata import MetadataResolver
    from gameshelf.core.reconciler import ReconciliationResult, Reconciler
    from gameshelf.data.library_store import LibraryStore


@dataclass
class PendingMatch:
    """A scanned game that needs a manual decision before import."""

    scan_result: ScanResult
    match: MatchResult


@dataclass
class ImportReport:
    imported: list[LibraryEntry] = field(default_factory=list)
    pending: list[PendingMatch] = field(default_factory=list)
    already_known: list[str] = field(default_factory=list)


def scan_result_for(entry: LibraryEntry) -> ScanResult:
    """A synthetic scan result describing an existing entry, for re-matching."""
    try:
        source = GameSource(entry.source)
    except ValueError:
        source = GameSource.MANUAL
    return SCAN_RESULT_TYPES[source](
        original_name=entry.title,
        install_path=entry.install_dir or "",
        title=entry.title,
        exe_path=entry.exe_path,
        source_app_id=entry.source_app_id,
    )


class LibraryPipeline:
    """High-level library operations built on the individual services."""

    def __init__(
        self,
        config: Config,
        orchestrator: ImportOrchestrator,
        reconciler: Reconciler,
        resolver: MetadataResolver,
        asset_cache: AssetCache,
        store: LibraryStore,
    ) -> None:
        self._config = config
        self._orchestrator = orchestrator
        self._reconciler = reconciler
        self._resolver = resolver
        self._cache = asset_cache
        self._store = store

    async def scan(self, progress: ProgressObserver | None = None) -> ReconciliationResult:
        """Scan every enabled source and classify the results against the library."""
        sources = self._config.sources
        results = await self._orchestrator.scan_all_sources(sources, progress)
        scanned = {source for source, conf in sources.items() if conf.enabled and conf.path}
        return self._reconciler.reconcile(results, self._store.get_all(), scanned)

    async def import_games(
        self, scan_results: Iterable[ScanResult], progress: ProgressObserver | None = None
    ) -> ImportReport:
        """
        Match and import scanned games.

        Confident matches are resolved, their art cached and the entry
        stored.  Ambiguous and unmatched games come back as pending.
        ProviderUnavailableError aborts the import.
        """
        report = ImportReport()
        for scan_result in scan_results:
            known = self._reconciler.match_existing(scan_result, self._store.get_all())
            if known is not None:
                report.already_known.append(known[0].id)
                continue

            notify(progress, f"Matching {scan_result.title}...")
            scan_result.status = ScanStatus.SCANNING
            match = await self._resolver.match_best(scan_result)
            if not match.is_matched or match.best is None:
                scan_result.status = ScanStatus.AMBIGUOUS
                report.pending.append(PendingMatch(scan_result, match))
                logger.info(f"Needs manual match: {scan_result.title} ({match.state})")
                continue

            scan_result.status = ScanStatus.MATCHED
            entry = await self._import(scan_result, match.best, match)
            scan_result.status = ScanStatus.READY
            report.imported.append(entry)

        logger.info(
            f"Import finished: {len(report.imported)} imported, {len(report.pending)} pending, "
            f"{len(report.already_known)} already in library"
        )
        return report

    async def accept_match(self, scan_result: ScanResult, candidate: ProviderCandidate) -> LibraryEntry:
        """Import a scan result with a user-chosen candidate."""
        known = self._reconciler.match_existing(scan_result, self._store.get_all())
        if known is not None:
            logger.info(f"{scan_result.title} is already in the library as {known[0].id}")
            return known[0]
        entry = await self._import(scan_result, candidate, [candidate])
        scan_result.status = ScanStatus.READY
        return entry

    async def _import(
        self,
        scan_result: ScanResult,
        candidate: ProviderCandidate,
        match_or_candidates: MatchResult | list[ProviderCandidate],
    ) -> LibraryEntry:
        entry = entry_from_scan(
            scan_result, title=candidate.title or scan_result.title, metadata_source=candidate.provider
        )
        values = await self._resolved_fields(entry, match_or_candidates)
        for name, value in values.items():
            setattr(entry, name, value)
        self._store.upsert(entry)
        logger.info(f"Imported {entry.title} as {entry.id}")
        return entry

    async def refresh_metadata(self, entry_id: str, force: bool = False) -> list[str]:
        """Re-resolve metadata and art for an entry.  Locked fields are kept unless *force*."""
        entry = self._require(entry_id)
        match = await self._resolver.match_best(scan_result_for(entry))
        if match.best is None:
            logger.info(f"No candidates found while refreshing {entry.title}")
            return []
        values = await self._resolved_fields(entry, match, force=force, refetch=True)
        changed = self._store.apply_metadata(entry_id, values, force=force)
        logger.info(f"Refreshed {entry.title}: {len(changed)} field(s) changed")
        return changed

    async def fix_match(self, entry_id: str, query: str) -> LibraryEntry:
        """
        Re-match an entry against *query*.

        A numeric query is taken as a Steam app id: the entry's id becomes
        ``steam-{query}``, the old row is replaced and cached art re-keyed.
        """
        entry = self._require(entry_id)
        query = query.strip()
        if not query:
            raise ValueError("Empty match query")

        new_entry = replace(entry, locked_fields=set(entry.locked_fields))
        if query.isdigit():
            new_entry.id = f"steam-{query}"
            new_entry.source_app_id = query
            if not entry.exe_path:
                new_entry.source = GameSource.STEAM.value
            scan = SCAN_RESULT_TYPES[GameSource.STEAM](
                original_name=entry.title,
                install_path=entry.install_dir or "",
                exe_path=entry.exe_path,
                source_app_id=query,
            )
            match = await self._resolver.match_best(scan)
            best = next(
                (c for c in [match.best, *match.alternatives] if c and c.steam_app_id == query),
                match.best,
            )
        else:
            match = await self._resolver.match_best(scan_result_for(entry), title=query)
            best = match.best
        if best is None:
            raise LookupError(f"No match found for '{query}'")

        if new_entry.id != entry.id:
            for asset_type, locator in self._cache.rekey(entry.id, new_entry.id).items():
                url_field = ASSET_URL_FIELDS[asset_type.value]
                if self._cache.is_locator(getattr(new_entry, url_field)):
                    setattr(new_entry, url_field, locator)

        ordered = [best, *(c for c in [match.best, *match.alternatives] if c is not None and c is not best)]
        values = await self._resolved_fields(new_entry, ordered, refetch=True)
        values["title"] = best.title
        values["metadata_source"] = best.provider
        for name, value in values.items():
            if not new_entry.is_locked(name):
                setattr(new_entry, name, value)

        self._store.upsert(new_entry, previous_id=entry.id)
        logger.info(f"Fixed match for {entry.id} -> {new_entry.id} ({best.title})")
        return new_entry

    def remove_missing(self, entry_ids: Iterable[str]) -> int:
        """Delete entries (and their cached art) the user confirmed as gone."""
        ids = list(entry_ids)
        removed = self._store.delete_many(ids)
        for entry_id in ids:
            self._cache.delete_entity(entry_id)
        return removed

    # ── Helpers ──

    def _require(self, entry_id: str) -> LibraryEntry:
        entry = self._store.get(entry_id)
        if entry is None:
            raise KeyError(entry_id)
        return entry

    async def _resolved_fields(
        self,
        entry: LibraryEntry,
        match_or_candidates: MatchResult | list[ProviderCandidate],
        force: bool = False,
        refetch: bool = False,
    ) -> dict[str, Any]:
        """Resolved metadata as entry fields, with art replaced by cache locators."""
        metadata = await self._resolver.resolve_metadata(match_or_candidates)
        values = metadata.as_entry_fields()
        if not self._config.store_assets_locally or not metadata.assets:
            return values

        assets: dict[AssetType, str] = {
            asset_type: url
            for asset_type, url in metadata.assets.items()
            if force or not entry.is_locked(ASSET_URL_FIELDS[asset_type.value])
        }
        cached = await self._cache.cache_many(assets, entry.id, refresh=refetch)
        for asset_type, value in cached.items():
            values[ASSET_URL_FIELDS[asset_type.value]] = value
        return values
