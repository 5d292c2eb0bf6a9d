"""IGDB provider — uses Twitch/IGDB API for game metadata."""

from __future__ import annotations

import re
import time
from datetime import datetime, timezone
from typing import Any

import httpx
from loguru import logger

from gameshelf.models.cached_asset import AssetType
from gameshelf.models.candidate import GameDescription, ProviderCandidate, ProviderKind
from gameshelf.providers.base import MetadataProvider, ProviderAuthError, ProviderError

_TOKEN_URL = "https://id.twitch.tv/oauth2/token"
_API_BASE = "https://api.igdb.com/v4"
_IGDB_IMAGE_BASE = "https://images.igdb.com/igdb/image/upload"

_PC_PLATFORM_ID = 6  # PC (Windows)

_GAME_FIELDS = (
    "fields name, summary, genres.name, first_release_date, "
    "involved_companies.company.name, involved_companies.publisher, "
    "involved_companies.developer, cover.image_id, artworks.image_id, "
    "screenshots.image_id, rating, aggregated_rating, platforms, "
    "external_games.category, external_games.uid, age_ratings.rating; "
)

_STEAM_EXTERNAL_CATEGORY = 1

# IGDB age_ratings.rating enum → label
_AGE_RATINGS: dict[int, str] = {
    1: "PEGI 3", 2: "PEGI 7", 3: "PEGI 12", 4: "PEGI 16", 5: "PEGI 18",
    6: "ESRB RP", 7: "ESRB EC", 8: "ESRB E", 9: "ESRB E10+", 10: "ESRB T",
    11: "ESRB M", 12: "ESRB AO",
}


class IGDBProvider(MetadataProvider):
    """IGDB game metadata provider using Twitch API authentication."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 20.0,
        proxy: str | None = None,
    ) -> None:
        super().__init__(client=client, timeout=timeout, proxy=proxy)
        self._client_id = client_id
        self._client_secret = client_secret
        self._access_token: str | None = None
        self._token_expires_at: float = 0
        self._games: dict[str, dict[str, Any]] = {}

    @property
    def name(self) -> str:
        return "igdb"

    @property
    def display_name(self) -> str:
        return "IGDB"

    @property
    def kind(self) -> ProviderKind:
        return ProviderKind.GENERAL_DATABASE

    def is_available(self) -> bool:
        return bool(self._client_id and self._client_secret)

    async def _ensure_token(self) -> str:
        """Obtain or refresh Twitch OAuth token."""
        if self._access_token and time.time() < self._token_expires_at:
            return self._access_token

        resp = await self._request(
            "POST",
            _TOKEN_URL,
            params={
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "grant_type": "client_credentials",
            },
        )
        if resp.is_error:
            raise ProviderAuthError(f"IGDB auth failed: HTTP {resp.status_code}")
        data = resp.json()
        self._access_token = data["access_token"]
        self._token_expires_at = time.time() + data.get("expires_in", 3600) - 60
        return self._access_token

    async def _api_request(self, endpoint: str, body: str) -> list[dict[str, Any]]:
        """Make an IGDB API request."""
        token = await self._ensure_token()
        resp = await self._request(
            "POST",
            f"{_API_BASE}/{endpoint}",
            content=body,
            headers={
                "Client-ID": self._client_id,
                "Authorization": f"Bearer {token}",
            },
        )
        if resp.is_error:
            raise ProviderError(f"IGDB {endpoint} returned HTTP {resp.status_code}")
        data = resp.json()
        return data if isinstance(data, list) else []

    @staticmethod
    def _clean_query(raw: str) -> str:
        """Normalise a title for use in IGDB wildcard queries.

        Strips separator characters (``- : –``), collapses whitespace, and
        escapes double-quotes so the result is safe to embed in an Apicalypse
        ``where`` clause.
        """
        cleaned = raw.replace("-", " ").replace(":", " ").replace("–", " ")
        cleaned = re.sub(r"\s+", " ", cleaned).strip()
        return cleaned.replace('"', '\\"')

    async def search(self, title: str, known_id: str | None = None) -> list[ProviderCandidate]:
        """Wildcard match on ``name`` and ``alternative_names.name``, PC only."""
        safe = self._clean_query(title)
        body = (
            f"{_GAME_FIELDS}"
            f'where (name ~ *"{safe}"* '
            f'| alternative_names.name ~ *"{safe}"*) '
            f"& platforms = ({_PC_PLATFORM_ID}); "
            f"limit 10;"
        )
        games = await self._api_request("games", body)
        candidates: list[ProviderCandidate] = []
        for rank, game in enumerate(games):
            if not game.get("id"):
                continue
            game_id = str(game["id"])
            self._games[game_id] = game
            candidates.append(
                self.make_candidate(
                    game_id,
                    game.get("name", ""),
                    rank,
                    year=self._year(game.get("first_release_date")),
                    platform_hint="pc" if _PC_PLATFORM_ID in (game.get("platforms") or []) else None,
                    steam_app_id=self._steam_app_id(game),
                )
            )
        return candidates

    async def _game(self, candidate: ProviderCandidate) -> dict[str, Any] | None:
        game_id = candidate.external_id
        if not game_id:
            return None
        if game_id in self._games:
            return self._games[game_id]
        games = await self._api_request("games", f"{_GAME_FIELDS}where id = {int(game_id)};")
        if not games:
            logger.debug(f"IGDB game {game_id} not found")
            return None
        self._games[game_id] = games[0]
        return games[0]

    async def fetch_assets(self, candidate: ProviderCandidate) -> dict[AssetType, str]:
        game = await self._game(candidate)
        if game is None:
            return {}
        assets: dict[AssetType, str] = {}
        cover = game.get("cover", {})
        if isinstance(cover, dict) and cover.get("image_id"):
            assets[AssetType.BOXART] = f"{_IGDB_IMAGE_BASE}/t_cover_big/{cover['image_id']}.jpg"
        for key in ("artworks", "screenshots"):
            images = [i for i in game.get(key, []) if isinstance(i, dict) and i.get("image_id")]
            if images:
                assets[AssetType.HERO] = f"{_IGDB_IMAGE_BASE}/t_1080p/{images[0]['image_id']}.jpg"
                break
        return assets

    async def fetch_description(self, candidate: ProviderCandidate) -> GameDescription | None:
        game = await self._game(candidate)
        if game is None:
            return None

        publishers: list[str] = []
        developers: list[str] = []
        for ic in game.get("involved_companies", []):
            company_name = ic.get("company", {}).get("name", "")
            if not company_name:
                continue
            if ic.get("publisher"):
                publishers.append(company_name)
            if ic.get("developer"):
                developers.append(company_name)

        release_date = ""
        ts = game.get("first_release_date")
        if ts:
            release_date = datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d")

        age_rating = ""
        for rating in game.get("age_ratings", []):
            label = _AGE_RATINGS.get(rating.get("rating")) if isinstance(rating, dict) else None
            if label:
                age_rating = label
                break

        return GameDescription(
            description=game.get("summary", ""),
            release_date=release_date,
            genres=[g["name"] for g in game.get("genres", []) if isinstance(g, dict) and g.get("name")],
            developers=developers,
            publishers=publishers,
            age_rating=age_rating,
            user_score=game.get("rating"),
            critic_score=game.get("aggregated_rating"),
        )

    @staticmethod
    def _year(timestamp: int | None) -> int | None:
        if not timestamp:
            return None
        return datetime.fromtimestamp(timestamp, tz=timezone.utc).year

    @staticmethod
    def _steam_app_id(game: dict[str, Any]) -> str | None:
        for ext in game.get("external_games", []):
            if isinstance(ext, dict) and ext.get("category") == _STEAM_EXTERNAL_CATEGORY and ext.get("uid"):
                return str(ext["uid"])
        return None
