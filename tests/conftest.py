"""Shared fixtures: in-memory metadata providers."""

from __future__ import annotations

import asyncio
from typing import Callable

import pytest

from gameshelf.models.cached_asset import AssetType
from gameshelf.models.candidate import GameDescription, ProviderCandidate, ProviderKind
from gameshelf.providers.base import MetadataProvider


class FakeProvider(MetadataProvider):
    """Serves canned titles, assets and descriptions, optionally slowly or failing."""

    def __init__(
        self,
        name: str,
        kind: ProviderKind,
        titles: list[str] | None = None,
        mandatory: bool = False,
        available: bool = True,
        delay: float = 0.0,
        error: Exception | None = None,
        steam_app_id: str | None = None,
        assets: dict[AssetType, str] | None = None,
        description: GameDescription | None = None,
        asset_error: Exception | None = None,
    ) -> None:
        super().__init__()
        self._name = name
        self._kind = kind
        self.titles = titles or []
        self.mandatory = mandatory
        self._available = available
        self._delay = delay
        self._error = error
        self._steam_app_id = steam_app_id
        self.assets = assets or {}
        self.description = description
        self._asset_error = asset_error
        self.calls: list[tuple[str, str | None]] = []
        self.cancelled = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def display_name(self) -> str:
        return self._name.title()

    @property
    def kind(self) -> ProviderKind:
        return self._kind

    def is_available(self) -> bool:
        return self._available

    async def search(self, title: str, known_id: str | None = None) -> list[ProviderCandidate]:
        self.calls.append((title, known_id))
        if self._delay:
            try:
                await asyncio.sleep(self._delay)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        if self._error is not None:
            raise self._error
        return [
            self.make_candidate(rank, t, rank, steam_app_id=self._steam_app_id)
            for rank, t in enumerate(self.titles)
        ]

    async def fetch_assets(self, candidate: ProviderCandidate) -> dict[AssetType, str]:
        if self._asset_error is not None:
            raise self._asset_error
        return dict(self.assets)

    async def fetch_description(self, candidate: ProviderCandidate) -> GameDescription | None:
        return self.description


@pytest.fixture
def make_provider() -> Callable[..., FakeProvider]:
    return FakeProvider
