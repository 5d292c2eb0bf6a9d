"""RAWG provider — open game database."""

from __future__ import annotations

from typing import Any

import httpx

from gameshelf.models.cached_asset import AssetType
from gameshelf.models.candidate import GameDescription, ProviderCandidate, ProviderKind
from gameshelf.providers.base import MetadataProvider

_API_BASE = "https://api.rawg.io/api"


def _names(items: Any) -> list[str]:
    return [i["name"] for i in items or [] if isinstance(i, dict) and i.get("name")]


class RAWGProvider(MetadataProvider):
    """RAWG: title search plus per-game details."""

    def __init__(
        self,
        api_key: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 20.0,
        proxy: str | None = None,
    ) -> None:
        super().__init__(client=client, timeout=timeout, proxy=proxy)
        self._api_key = api_key
        self._results: dict[str, dict[str, Any]] = {}

    @property
    def name(self) -> str:
        return "rawg"

    @property
    def display_name(self) -> str:
        return "RAWG"

    @property
    def kind(self) -> ProviderKind:
        return ProviderKind.OPEN_DATABASE

    def is_available(self) -> bool:
        return bool(self._api_key)

    async def search(self, title: str, known_id: str | None = None) -> list[ProviderCandidate]:
        data = await self._get_json(
            f"{_API_BASE}/games",
            params={"key": self._api_key, "search": title, "page_size": "10"},
            not_found={},
        )
        candidates: list[ProviderCandidate] = []
        for rank, game in enumerate(data.get("results", []) if isinstance(data, dict) else []):
            if not isinstance(game, dict) or not game.get("id"):
                continue
            game_id = str(game["id"])
            self._results[game_id] = game
            released = game.get("released") or ""
            platforms = {
                (p.get("platform") or {}).get("slug", "")
                for p in game.get("platforms") or []
                if isinstance(p, dict)
            }
            candidates.append(
                self.make_candidate(
                    game_id,
                    game.get("name", ""),
                    rank,
                    year=int(released[:4]) if released[:4].isdigit() else None,
                    platform_hint="pc" if "pc" in platforms else None,
                )
            )
        return candidates

    async def fetch_assets(self, candidate: ProviderCandidate) -> dict[AssetType, str]:
        game = self._results.get(candidate.external_id or "")
        if game is None:
            game = await self._details(candidate)
        background = (game or {}).get("background_image")
        return {AssetType.HERO: background} if background else {}

    async def fetch_description(self, candidate: ProviderCandidate) -> GameDescription | None:
        details = await self._details(candidate)
        if not details:
            return None
        rating = details.get("rating")
        esrb = details.get("esrb_rating") or {}
        return GameDescription(
            description=details.get("description_raw", ""),
            release_date=details.get("released") or "",
            genres=_names(details.get("genres")),
            developers=_names(details.get("developers")),
            publishers=_names(details.get("publishers")),
            age_rating=esrb.get("name", "") if isinstance(esrb, dict) else "",
            critic_score=details.get("metacritic"),
            community_score=round(rating * 20, 1) if rating else None,
        )

    async def _details(self, candidate: ProviderCandidate) -> dict[str, Any] | None:
        if not candidate.external_id:
            return None
        data = await self._get_json(
            f"{_API_BASE}/games/{candidate.external_id}", params={"key": self._api_key}
        )
        return data if isinstance(data, dict) else None
