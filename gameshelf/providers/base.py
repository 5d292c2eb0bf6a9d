"""Abstract base class for metadata providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import httpx
from loguru import logger

from gameshelf.models.cached_asset import AssetType
from gameshelf.models.candidate import GameDescription, ProviderCandidate, ProviderKind


class ProviderError(Exception):
    """A provider request failed (network error, bad status, bad payload)."""


class ProviderAuthError(ProviderError):
    """The provider rejected our credentials (HTTP 401/403)."""


class ProviderUnavailableError(ProviderError):
    """
    The mandatory provider could not be consulted.

    Raised instead of returning an empty result so callers can tell
    "provider down" apart from "no matches".
    """


class MetadataProvider(ABC):
    """
    Abstract interface for one external metadata source.

    Every provider shares the injected ``httpx.AsyncClient`` when one is given;
    otherwise each request opens a short-lived client of its own.
    """

    # The resolver refuses to search without this provider.
    mandatory: bool = False

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = 20.0,
        proxy: str | None = None,
    ) -> None:
        self._client = client
        self._timeout = timeout
        self._proxy = proxy or None

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier (e.g. 'steam', 'steamgriddb')."""
        ...

    @property
    @abstractmethod
    def display_name(self) -> str:
        ...

    @property
    @abstractmethod
    def kind(self) -> ProviderKind:
        """Provider category; decides its score band."""
        ...

    def is_available(self) -> bool:
        """Whether the provider is configured well enough to be queried."""
        return True

    @abstractmethod
    async def search(self, title: str, known_id: str | None = None) -> list[ProviderCandidate]:
        """Candidates for *title*, in the provider's own relevance order."""
        ...

    @abstractmethod
    async def fetch_assets(self, candidate: ProviderCandidate) -> dict[AssetType, str]:
        """Remote artwork URLs for a candidate this provider returned."""
        ...

    async def fetch_description(self, candidate: ProviderCandidate) -> GameDescription | None:
        """Descriptive metadata. Optional."""
        return None

    # ── Helpers ──

    def make_candidate(
        self,
        external_id: str | int,
        title: str,
        rank: int,
        **extra: Any,
    ) -> ProviderCandidate:
        return ProviderCandidate(
            id=f"{self.name}:{external_id}",
            title=title,
            provider_kind=self.kind,
            provider=self.name,
            external_id=str(external_id),
            rank=rank,
            **extra,
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Issue a request, mapping transport and status failures to ProviderError."""
        try:
            if self._client is not None:
                resp = await self._client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient(
                    timeout=self._timeout, follow_redirects=True, proxy=self._proxy
                ) as client:
                    resp = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.display_name} request failed: {e}") from e

        if resp.status_code in (401, 403):
            raise ProviderAuthError(f"{self.display_name} rejected credentials ({resp.status_code})")
        return resp

    async def _get_json(self, url: str, not_found: Any = None, **kwargs: Any) -> Any:
        """GET *url* and decode JSON.  A 404 yields *not_found*."""
        resp = await self._request("GET", url, **kwargs)
        if resp.status_code == 404:
            logger.debug(f"{self.display_name}: not found: {url}")
            return not_found
        if resp.is_error:
            raise ProviderError(f"{self.display_name} returned HTTP {resp.status_code} for {url}")
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError(f"{self.display_name} returned invalid JSON: {e}") from e
