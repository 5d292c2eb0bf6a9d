"""SteamGridDB provider — curated artwork, the mandatory provider."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger

from gameshelf.models.cached_asset import AssetType
from gameshelf.models.candidate import ProviderCandidate, ProviderKind
from gameshelf.providers.base import MetadataProvider, ProviderError

_API_BASE = "https://www.steamgriddb.com/api/v2"

# (endpoint, query params) per asset type
_ASSET_ENDPOINTS: dict[AssetType, tuple[str, dict[str, str]]] = {
    AssetType.BOXART: ("grids", {"dimensions": "600x900,342x482,660x930"}),
    AssetType.BANNER: ("grids", {"dimensions": "460x215,920x430"}),
    AssetType.HERO: ("heroes", {}),
    AssetType.LOGO: ("logos", {}),
    AssetType.ICON: ("icons", {}),
}


def _pick_best(images: list[dict[str, Any]]) -> str | None:
    """Highest-scored image that is not flagged nsfw, humor or epilepsy."""
    safe = [
        img for img in images
        if isinstance(img, dict)
        and img.get("url")
        and not img.get("nsfw")
        and not img.get("humor")
        and not img.get("epilepsy")
    ]
    if not safe:
        return None
    return max(safe, key=lambda img: img.get("score") or 0)["url"]


def _year(timestamp: Any) -> int | None:
    if not timestamp:
        return None
    try:
        return datetime.fromtimestamp(int(timestamp), tz=timezone.utc).year
    except (TypeError, ValueError, OverflowError, OSError):
        return None


class SteamGridDBProvider(MetadataProvider):
    """SteamGridDB: search by title or Steam app id, artwork by game id."""

    mandatory = True

    def __init__(
        self,
        api_key: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        proxy: str | None = None,
    ) -> None:
        super().__init__(client=client, timeout=timeout, proxy=proxy)
        self._api_key = api_key

    @property
    def name(self) -> str:
        return "steamgriddb"

    @property
    def display_name(self) -> str:
        return "SteamGridDB"

    @property
    def kind(self) -> ProviderKind:
        return ProviderKind.CURATED_ART

    def is_available(self) -> bool:
        return bool(self._api_key)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    async def _api(self, path: str, params: dict[str, str] | None = None) -> Any:
        payload = await self._get_json(
            f"{_API_BASE}/{path}", params=params, headers=self._headers(), not_found={}
        )
        if not isinstance(payload, dict):
            raise ProviderError(f"SteamGridDB returned unexpected payload for {path}")
        if payload and not payload.get("success", False):
            raise ProviderError(f"SteamGridDB error for {path}: {payload.get('errors')}")
        return payload.get("data")

    async def search(self, title: str, known_id: str | None = None) -> list[ProviderCandidate]:
        if known_id and known_id.isdigit():
            game = await self._api(f"games/steam/{known_id}")
            if isinstance(game, dict) and game.get("id"):
                return [
                    self.make_candidate(
                        game["id"],
                        game.get("name", title),
                        0,
                        steam_app_id=known_id,
                        year=_year(game.get("release_date")),
                    )
                ]
            logger.debug(f"SteamGridDB has no game for Steam app {known_id}, searching by title")

        games = await self._api(f"search/autocomplete/{quote(title, safe='')}")
        return [
            self.make_candidate(
                game["id"],
                game.get("name", ""),
                rank,
                year=_year(game.get("release_date")),
            )
            for rank, game in enumerate(games or [])
            if isinstance(game, dict) and game.get("id")
        ]

    async def fetch_assets(self, candidate: ProviderCandidate) -> dict[AssetType, str]:
        if not candidate.external_id:
            return {}
        game_id = candidate.external_id
        asset_types = list(_ASSET_ENDPOINTS)
        outcomes = await asyncio.gather(
            *(self._fetch_one(game_id, asset) for asset in asset_types),
            return_exceptions=True,
        )
        assets: dict[AssetType, str] = {}
        for asset, outcome in zip(asset_types, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"SteamGridDB {asset} lookup failed for {game_id}: {outcome}")
            elif outcome:
                assets[asset] = outcome
        return assets

    async def _fetch_one(self, game_id: str, asset: AssetType) -> str | None:
        endpoint, params = _ASSET_ENDPOINTS[asset]
        images = await self._api(f"{endpoint}/game/{game_id}", params=params or None)
        return _pick_best(images or [])
