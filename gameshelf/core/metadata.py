"""Metadata resolution — multi-provider search, ranking and per-field merge."""

from __future__ import annotations

import asyncio
from dataclasses import fields as dataclass_fields
from typing import TYPE_CHECKING, Any, Iterable

from loguru import logger

from gameshelf.core.matcher import GameMatcher
from gameshelf.models.cached_asset import AssetType
from gameshelf.models.candidate import (
    GameDescription,
    MatchResult,
    MatchState,
    ProviderCandidate,
    ProviderKind,
    ResolvedMetadata,
)
from gameshelf.models.scan_result import GameSource, ScanResult
from gameshelf.providers.base import MetadataProvider, ProviderUnavailableError
from gameshelf.utils import normalize_title

if TYPE_CHECKING:
    from gameshelf.config import Config

# Band base per provider kind.  Only the ordering is load-bearing.
BAND_BASE: dict[ProviderKind, int] = {
    ProviderKind.FIRST_PARTY_STORE: 3000,
    ProviderKind.CURATED_ART: 2000,
    ProviderKind.GENERAL_DATABASE: 1000,
    ProviderKind.OPEN_DATABASE: 500,
}
MAX_RANK_BONUS = 100
EXACT_TITLE_BONUS = 200

_DESCRIPTION_FIELDS = tuple(f.name for f in dataclass_fields(GameDescription))


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == []


class MetadataResolver:
    """
    Searches every configured provider, ranks the union of candidates by
    provider band, picks the best match for a scanned game, and merges
    artwork and descriptions field by field.
    """

    def __init__(
        self,
        providers: Iterable[MetadataProvider],
        matcher: GameMatcher | None = None,
        provider_timeout: float = 20.0,
        mandatory_timeout: float = 10.0,
        master_timeout: float = 30.0,
        confidence_threshold: float = 0.6,
        field_priority: dict[str, list[str]] | None = None,
    ) -> None:
        self._providers: dict[str, MetadataProvider] = {p.name: p for p in providers}
        self._matcher = matcher or GameMatcher()
        self._provider_timeout = provider_timeout
        self._mandatory_timeout = mandatory_timeout
        self._master_timeout = master_timeout
        self._confidence_threshold = confidence_threshold
        self._field_priority = field_priority or {}

    @classmethod
    def from_config(cls, config: Config, providers: Iterable[MetadataProvider]) -> MetadataResolver:
        return cls(
            providers,
            provider_timeout=config.provider_timeout,
            mandatory_timeout=config.mandatory_timeout,
            master_timeout=config.master_timeout,
            confidence_threshold=config.confidence_threshold,
            field_priority=config.field_priority,
        )

    @property
    def providers(self) -> dict[str, MetadataProvider]:
        return dict(self._providers)

    def register_provider(self, provider: MetadataProvider) -> None:
        self._providers[provider.name] = provider

    # ── Search ──

    async def search(self, title: str, known_id: str | None = None) -> list[ProviderCandidate]:
        """
        Query all available providers concurrently and return scored candidates.

        Raises ProviderUnavailableError when the mandatory provider is missing,
        unconfigured, rejects our credentials, fails or times out.  Optional
        providers that fail contribute nothing; those still running at the
        master deadline are cancelled.
        """
        mandatory = next((p for p in self._providers.values() if p.mandatory), None)
        if mandatory is None or not mandatory.is_available():
            raise ProviderUnavailableError("Curated art provider is not configured")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._master_timeout

        optional = [p for p in self._providers.values() if not p.mandatory and p.is_available()]
        optional_tasks = {
            asyncio.create_task(self._search_optional(p, title, known_id)): p for p in optional
        }

        try:
            mandatory_candidates = await asyncio.wait_for(
                mandatory.search(title, known_id),
                timeout=min(self._mandatory_timeout, self._master_timeout),
            )
        except Exception as e:
            await self._cancel(optional_tasks)
            logger.error(f"{mandatory.display_name} unavailable for '{title}': {e!r}")
            if isinstance(e, ProviderUnavailableError):
                raise
            raise ProviderUnavailableError(f"{mandatory.display_name} unavailable: {e!r}") from e

        candidates: list[ProviderCandidate] = list(mandatory_candidates)
        if optional_tasks:
            remaining = max(0.0, deadline - loop.time())
            done, pending = await asyncio.wait(optional_tasks, timeout=remaining)
            if pending:
                names = ", ".join(optional_tasks[t].display_name for t in pending)
                logger.warning(f"Master deadline reached for '{title}', dropping: {names}")
                await self._cancel({t: optional_tasks[t] for t in pending})
            # Keep provider registration order for a deterministic union
            for task, _provider in optional_tasks.items():
                if task in done:
                    candidates.extend(task.result())

        return self.score_candidates(candidates, title)

    async def _search_optional(
        self, provider: MetadataProvider, title: str, known_id: str | None
    ) -> list[ProviderCandidate]:
        try:
            return await asyncio.wait_for(provider.search(title, known_id), timeout=self._provider_timeout)
        except Exception as e:
            logger.warning(f"{provider.display_name} search failed for '{title}': {e!r}")
            return []

    @staticmethod
    async def _cancel(tasks: dict[asyncio.Task, MetadataProvider]) -> None:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ── Ranking ──

    @staticmethod
    def score_candidates(candidates: list[ProviderCandidate], title: str) -> list[ProviderCandidate]:
        """
        Assign band scores and sort descending (stable).

        score = band base + rank bonus (provider relevance order, at most
        MAX_RANK_BONUS) + EXACT_TITLE_BONUS on a case-insensitive title match.
        """
        wanted = title.strip().casefold()
        for candidate in candidates:
            score = BAND_BASE[candidate.provider_kind]
            score += MAX_RANK_BONUS - min(max(candidate.rank, 0), MAX_RANK_BONUS)
            if candidate.title.strip().casefold() == wanted:
                score += EXACT_TITLE_BONUS
            candidate.score = float(score)
        return sorted(candidates, key=lambda c: c.score, reverse=True)

    async def match_best(self, scan_result: ScanResult, title: str | None = None) -> MatchResult:
        """Search for *scan_result* and pick the most confident candidate."""
        query = title or scan_result.title
        known_id = scan_result.source_app_id if scan_result.source == GameSource.STEAM else None
        candidates = await self.search(query, known_id)
        if not candidates:
            logger.info(f"No candidates for '{query}'")
            return MatchResult(best=None, confidence=0.0, state=MatchState.UNMATCHED)

        ranked = self._matcher.rank(scan_result, candidates, query)
        best, best_score = ranked[0]
        state = (
            MatchState.MATCHED
            if best_score.confidence >= self._confidence_threshold
            else MatchState.AMBIGUOUS
        )
        logger.debug(
            f"Best match for '{query}': {best.title} ({best.provider}) "
            f"confidence={best_score.confidence:.2f} {state}"
        )
        return MatchResult(
            best=best,
            confidence=best_score.confidence,
            alternatives=[c for c, _ in ranked[1:]],
            state=state,
            reasons=best_score.reasons,
        )

    # ── Merge ──

    async def resolve_metadata(
        self, match_or_candidates: MatchResult | list[ProviderCandidate]
    ) -> ResolvedMetadata:
        """
        Fetch assets and descriptions from each provider's best agreeing
        candidate and merge them field by field.
        """
        if isinstance(match_or_candidates, MatchResult):
            if match_or_candidates.best is None:
                return ResolvedMetadata()
            ordered = [match_or_candidates.best, *match_or_candidates.alternatives]
        else:
            ordered = list(match_or_candidates)
        chosen = self._per_provider(ordered)
        if not chosen:
            return ResolvedMetadata()

        outcomes = await asyncio.gather(*(self._fetch(c) for c in chosen))
        assets_by_provider: dict[str, dict[AssetType, str]] = {}
        descriptions: dict[str, GameDescription] = {}
        for candidate, (assets, description) in zip(chosen, outcomes):
            assets_by_provider[candidate.provider] = assets
            if description is not None:
                descriptions[candidate.provider] = description

        band_order = [
            c.provider for c in sorted(chosen, key=lambda c: BAND_BASE[c.provider_kind], reverse=True)
        ]
        merged = ResolvedMetadata()
        for asset_type in AssetType:
            for provider_name in self._priority(asset_type.value, band_order):
                url = assets_by_provider.get(provider_name, {}).get(asset_type)
                if url:
                    merged.assets[asset_type] = url
                    merged.sources[asset_type.value] = provider_name
                    break
        for field_name in _DESCRIPTION_FIELDS:
            for provider_name in self._priority(field_name, band_order):
                description = descriptions.get(provider_name)
                value = getattr(description, field_name, None) if description else None
                if not _is_empty(value):
                    merged.fields[field_name] = value
                    merged.sources[field_name] = provider_name
                    break
        return merged

    def _priority(self, field_name: str, band_order: list[str]) -> list[str]:
        """Configured priority for *field_name*, then the remaining providers by band."""
        configured = [p for p in self._field_priority.get(field_name, []) if p in band_order]
        return configured + [p for p in band_order if p not in configured]

    def _per_provider(self, ordered: list[ProviderCandidate]) -> list[ProviderCandidate]:
        """The first candidate of each provider that agrees with the overall best."""
        best = ordered[0]
        best_title = normalize_title(best.title)
        chosen: dict[str, ProviderCandidate] = {best.provider: best}
        for candidate in ordered[1:]:
            if candidate.provider in chosen or candidate.provider not in self._providers:
                continue
            same_app = bool(best.steam_app_id) and candidate.steam_app_id == best.steam_app_id
            if same_app or normalize_title(candidate.title) == best_title:
                chosen[candidate.provider] = candidate
        return [c for c in chosen.values() if c.provider in self._providers]

    async def _fetch(
        self, candidate: ProviderCandidate
    ) -> tuple[dict[AssetType, str], GameDescription | None]:
        provider = self._providers[candidate.provider]
        assets, description = await asyncio.gather(
            asyncio.wait_for(provider.fetch_assets(candidate), timeout=self._provider_timeout),
            asyncio.wait_for(provider.fetch_description(candidate), timeout=self._provider_timeout),
            return_exceptions=True,
        )
        if isinstance(assets, BaseException):
            logger.warning(f"{provider.display_name} assets failed for {candidate.title}: {assets!r}")
            assets = {}
        if isinstance(description, BaseException):
            logger.warning(
                f"{provider.display_name} description failed for {candidate.title}: {description!r}"
            )
            description = None
        return assets, description
