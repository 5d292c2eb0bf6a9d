"""Steam store provider — first-party store metadata and CDN artwork."""

from __future__ import annotations

from typing import Any

from loguru import logger

from gameshelf.models.cached_asset import AssetType
from gameshelf.models.candidate import GameDescription, ProviderCandidate, ProviderKind
from gameshelf.providers.base import MetadataProvider, ProviderError

_STORE_API = "https://store.steampowered.com/api"
_CDN_BASE = "https://cdn.cloudflare.steamstatic.com/steam/apps"

# CDN file name per asset type
_CDN_ASSETS: dict[AssetType, str] = {
    AssetType.BOXART: "library_600x900.jpg",
    AssetType.BANNER: "header.jpg",
    AssetType.HERO: "library_hero.jpg",
    AssetType.LOGO: "logo.png",
}


class SteamStoreProvider(MetadataProvider):
    """Steam storefront: search by title, exact lookup by numeric app id."""

    @property
    def name(self) -> str:
        return "steam"

    @property
    def display_name(self) -> str:
        return "Steam"

    @property
    def kind(self) -> ProviderKind:
        return ProviderKind.FIRST_PARTY_STORE

    async def search(self, title: str, known_id: str | None = None) -> list[ProviderCandidate]:
        if known_id and known_id.isdigit():
            return [
                self.make_candidate(
                    known_id, title, 0, steam_app_id=known_id, platform_hint="windows"
                )
            ]

        data = await self._get_json(
            f"{_STORE_API}/storesearch/",
            params={"term": title, "cc": "us", "l": "en"},
            not_found={},
        )
        items = data.get("items", []) if isinstance(data, dict) else []
        candidates: list[ProviderCandidate] = []
        for rank, item in enumerate(items):
            if not isinstance(item, dict) or item.get("type", "app") != "app":
                continue
            app_id = str(item.get("id", ""))
            if not app_id:
                continue
            platforms = item.get("platforms") or {}
            candidates.append(
                self.make_candidate(
                    app_id,
                    item.get("name", ""),
                    rank,
                    steam_app_id=app_id,
                    platform_hint="windows" if platforms.get("windows", True) else None,
                )
            )
        return candidates

    async def fetch_assets(self, candidate: ProviderCandidate) -> dict[AssetType, str]:
        app_id = candidate.steam_app_id or candidate.external_id
        if not app_id:
            return {}
        return {asset: f"{_CDN_BASE}/{app_id}/{filename}" for asset, filename in _CDN_ASSETS.items()}

    async def fetch_description(self, candidate: ProviderCandidate) -> GameDescription | None:
        app_id = candidate.steam_app_id or candidate.external_id
        if not app_id:
            return None
        data = await self._get_json(
            f"{_STORE_API}/appdetails", params={"appids": app_id, "l": "english"}, not_found={}
        )
        entry = data.get(str(app_id), {}) if isinstance(data, dict) else {}
        if not entry.get("success"):
            logger.debug(f"Steam appdetails has no data for {app_id}")
            return None
        details = entry.get("data")
        if not isinstance(details, dict):
            raise ProviderError(f"Steam appdetails payload malformed for {app_id}")
        return self._parse_details(details)

    @staticmethod
    def _parse_details(details: dict[str, Any]) -> GameDescription:
        metacritic = details.get("metacritic") or {}
        release = details.get("release_date") or {}
        required_age = details.get("required_age")
        return GameDescription(
            description=details.get("short_description") or details.get("about_the_game") or "",
            release_date=release.get("date", "") if isinstance(release, dict) else "",
            genres=[g.get("description", "") for g in details.get("genres", []) if isinstance(g, dict)],
            developers=list(details.get("developers") or []),
            publishers=list(details.get("publishers") or []),
            age_rating=f"{required_age}+" if required_age and str(required_age) != "0" else "",
            critic_score=metacritic.get("score"),
        )
