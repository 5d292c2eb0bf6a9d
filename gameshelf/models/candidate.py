"""Metadata candidate and match-result models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from gameshelf.models.cached_asset import AssetType
from gameshelf.models.library_entry import ASSET_URL_FIELDS


class ProviderKind(StrEnum):
    """Provider category — also its fixed priority band."""

    FIRST_PARTY_STORE = "first_party_store"
    CURATED_ART = "curated_art"
    GENERAL_DATABASE = "general_database"
    OPEN_DATABASE = "open_database"


class MatchState(StrEnum):
    MATCHED = "matched"
    AMBIGUOUS = "ambiguous"
    UNMATCHED = "unmatched"


@dataclass
class ProviderCandidate:
    """A possible match for a title, as returned by one provider."""

    id: str
    title: str
    provider_kind: ProviderKind
    provider: str = ""
    external_id: str | None = None
    score: float = 0.0
    year: int | None = None
    platform_hint: str | None = None
    steam_app_id: str | None = None
    rank: int = 0  # position in the provider's own result list


@dataclass
class MatchResult:
    """Outcome of picking the best candidate for one scanned game."""

    best: ProviderCandidate | None
    confidence: float
    alternatives: list[ProviderCandidate] = field(default_factory=list)
    state: MatchState = MatchState.UNMATCHED
    reasons: list[str] = field(default_factory=list)

    @property
    def is_matched(self) -> bool:
        return self.state == MatchState.MATCHED


@dataclass
class GameDescription:
    """Descriptive metadata from one provider."""

    description: str = ""
    release_date: str = ""
    genres: list[str] = field(default_factory=list)
    developers: list[str] = field(default_factory=list)
    publishers: list[str] = field(default_factory=list)
    age_rating: str = ""
    user_score: float | None = None
    critic_score: float | None = None
    community_score: float | None = None


@dataclass
class ResolvedMetadata:
    """Per-field merge of assets and descriptions across providers."""

    assets: dict[AssetType, str] = field(default_factory=dict)
    fields: dict[str, object] = field(default_factory=dict)
    sources: dict[str, str] = field(default_factory=dict)  # field → provider

    def as_entry_fields(self) -> dict[str, object]:
        """Flatten into LibraryEntry attribute names."""
        out: dict[str, object] = dict(self.fields)
        for asset_type, url in self.assets.items():
            out[ASSET_URL_FIELDS[asset_type.value]] = url
        return out
