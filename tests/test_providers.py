"""Tests for metadata providers against mocked HTTP endpoints."""

from __future__ import annotations

from typing import Callable

import httpx
import pytest

from gameshelf.models.cached_asset import AssetType
from gameshelf.models.candidate import ProviderKind
from gameshelf.providers.base import ProviderAuthError, ProviderError
from gameshelf.providers.igdb import IGDBProvider
from gameshelf.providers.rawg import RAWGProvider
from gameshelf.providers.steam import SteamStoreProvider
from gameshelf.providers.steamgriddb import SteamGridDBProvider


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestSteamStoreProvider:
    @pytest.mark.asyncio
    async def test_search_parses_store_results(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/storesearch/"
            assert request.url.params["term"] == "Portal"
            return httpx.Response(200, json={
                "total": 3,
                "items": [
                    {"type": "app", "id": 400, "name": "Portal", "platforms": {"windows": True}},
                    {"type": "sub", "id": 7, "name": "Portal Bundle"},
                    {"type": "app", "id": 620, "name": "Portal 2", "platforms": {"windows": False}},
                ],
            })

        results = await SteamStoreProvider(client=_client(handler)).search("Portal")
        assert [(c.id, c.rank) for c in results] == [("steam:400", 0), ("steam:620", 2)]
        assert results[0].steam_app_id == "400"
        assert results[0].platform_hint == "windows"
        assert results[1].platform_hint is None
        assert results[0].provider_kind == ProviderKind.FIRST_PARTY_STORE

    @pytest.mark.asyncio
    async def test_known_app_id_skips_network(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        results = await SteamStoreProvider(client=_client(handler)).search("Half-Life 2", "220")
        assert len(results) == 1
        assert results[0].steam_app_id == "220"

    @pytest.mark.asyncio
    async def test_assets_and_description(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={
                "220": {
                    "success": True,
                    "data": {
                        "short_description": "Gordon returns",
                        "release_date": {"date": "16 Nov, 2004"},
                        "genres": [{"description": "Action"}],
                        "developers": ["Valve"],
                        "publishers": ["Valve"],
                        "required_age": 0,
                        "metacritic": {"score": 96},
                    },
                }
            })

        provider = SteamStoreProvider(client=_client(handler))
        candidate = (await provider.search("Half-Life 2", "220"))[0]
        assets = await provider.fetch_assets(candidate)
        assert assets[AssetType.BOXART].endswith("/220/library_600x900.jpg")
        assert AssetType.ICON not in assets

        description = await provider.fetch_description(candidate)
        assert description.description == "Gordon returns"
        assert description.genres == ["Action"]
        assert description.age_rating == ""
        assert description.critic_score == 96

    @pytest.mark.asyncio
    async def test_server_error_raises(self) -> None:
        provider = SteamStoreProvider(client=_client(lambda r: httpx.Response(500)))
        with pytest.raises(ProviderError):
            await provider.search("Portal")


class TestSteamGridDBProvider:
    def test_unavailable_without_key(self) -> None:
        assert not SteamGridDBProvider("").is_available()
        assert SteamGridDBProvider("key").is_available()
        assert SteamGridDBProvider("key").mandatory

    @pytest.mark.asyncio
    async def test_search_by_steam_app_id(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer secret"
            assert request.url.path == "/api/v2/games/steam/220"
            return httpx.Response(200, json={
                "success": True,
                "data": {"id": 5000, "name": "Half-Life 2", "release_date": 1100563200},
            })

        results = await SteamGridDBProvider("secret", client=_client(handler)).search("HL2", "220")
        assert [(c.id, c.title, c.year, c.steam_app_id) for c in results] == [
            ("steamgriddb:5000", "Half-Life 2", 2004, "220")
        ]

    @pytest.mark.asyncio
    async def test_title_search_fallback(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.startswith("/api/v2/games/steam/"):
                return httpx.Response(404)
            assert request.url.path == "/api/v2/search/autocomplete/Half-Life 2"
            return httpx.Response(200, json={
                "success": True,
                "data": [{"id": 5000, "name": "Half-Life 2"}, {"id": 5001, "name": "Half-Life 2: Lost Coast"}],
            })

        results = await SteamGridDBProvider("secret", client=_client(handler)).search("Half-Life 2", "999")
        assert [c.external_id for c in results] == ["5000", "5001"]

    @pytest.mark.asyncio
    async def test_rejected_key(self) -> None:
        provider = SteamGridDBProvider("bad", client=_client(lambda r: httpx.Response(401)))
        with pytest.raises(ProviderAuthError):
            await provider.search("Portal")

    @pytest.mark.asyncio
    async def test_api_error_payload(self) -> None:
        provider = SteamGridDBProvider(
            "key", client=_client(lambda r: httpx.Response(200, json={"success": False, "errors": ["nope"]}))
        )
        with pytest.raises(ProviderError):
            await provider.search("Portal")

    @pytest.mark.asyncio
    async def test_assets_skip_flagged_images(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            if path.startswith("/api/v2/grids/"):
                if "600x900" in request.url.params["dimensions"]:
                    return httpx.Response(200, json={"success": True, "data": [
                        {"url": "https://img/nsfw.png", "score": 99, "nsfw": True},
                        {"url": "https://img/low.png", "score": 1},
                        {"url": "https://img/best.png", "score": 10},
                    ]})
                return httpx.Response(200, json={"success": True, "data": []})
            if path.startswith("/api/v2/heroes/"):
                return httpx.Response(200, json={"success": True, "data": [
                    {"url": "https://img/funny.png", "score": 5, "humor": True},
                ]})
            if path.startswith("/api/v2/logos/"):
                return httpx.Response(500)
            return httpx.Response(200, json={"success": True, "data": [{"url": "https://img/icon.png"}]})

        provider = SteamGridDBProvider("key", client=_client(handler))
        candidate = provider.make_candidate(5000, "Half-Life 2", 0)
        assets = await provider.fetch_assets(candidate)
        assert assets == {AssetType.BOXART: "https://img/best.png", AssetType.ICON: "https://img/icon.png"}


class TestRAWGProvider:
    @pytest.mark.asyncio
    async def test_search_assets_description(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["key"] == "rawg-key"
            if request.url.path == "/api/games":
                return httpx.Response(200, json={"results": [{
                    "id": 4200,
                    "name": "Portal 2",
                    "released": "2011-04-18",
                    "background_image": "https://media.rawg.io/portal2.jpg",
                    "platforms": [{"platform": {"slug": "pc"}}],
                }]})
            assert request.url.path == "/api/games/4200"
            return httpx.Response(200, json={
                "description_raw": "Puzzles",
                "released": "2011-04-18",
                "genres": [{"name": "Puzzle"}],
                "developers": [{"name": "Valve"}],
                "publishers": [{"name": "Valve"}],
                "esrb_rating": {"name": "Everyone 10+"},
                "metacritic": 95,
                "rating": 4.5,
            })

        provider = RAWGProvider("rawg-key", client=_client(handler))
        [candidate] = await provider.search("Portal 2")
        assert candidate.year == 2011
        assert candidate.platform_hint == "pc"
        assert await provider.fetch_assets(candidate) == {AssetType.HERO: "https://media.rawg.io/portal2.jpg"}

        description = await provider.fetch_description(candidate)
        assert description.genres == ["Puzzle"]
        assert description.age_rating == "Everyone 10+"
        assert description.community_score == 90.0


class TestIGDBProvider:
    @pytest.mark.asyncio
    async def test_token_then_search(self) -> None:
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.host)
            if request.url.host == "id.twitch.tv":
                return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
            assert request.headers["Authorization"] == "Bearer tok"
            assert b'name ~ *"Half Life 2"*' in request.content
            return httpx.Response(200, json=[{
                "id": 233,
                "name": "Half-Life 2",
                "first_release_date": 1100563200,
                "platforms": [6],
                "summary": "Gordon returns",
                "cover": {"image_id": "co1abc"},
                "external_games": [{"category": 1, "uid": "220"}],
                "age_ratings": [{"rating": 11}],
                "involved_companies": [{"company": {"name": "Valve"}, "developer": True, "publisher": True}],
            }])

        provider = IGDBProvider("id", "secret", client=_client(handler))
        [candidate] = await provider.search("Half-Life: 2")
        await provider.search("Half-Life: 2")
        assert calls.count("id.twitch.tv") == 1
        assert candidate.steam_app_id == "220"
        assert candidate.platform_hint == "pc"

        assets = await provider.fetch_assets(candidate)
        assert assets[AssetType.BOXART].endswith("/t_cover_big/co1abc.jpg")
        description = await provider.fetch_description(candidate)
        assert description.age_rating == "ESRB M"
        assert description.developers == ["Valve"]
        assert description.release_date == "2004-11-16"

    @pytest.mark.asyncio
    async def test_auth_failure(self) -> None:
        provider = IGDBProvider("id", "secret", client=_client(lambda r: httpx.Response(400)))
        with pytest.raises(ProviderAuthError):
            await provider.search("Portal")
