"""Cached asset models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from gameshelf.utils import sanitize_entity_id


class AssetType(StrEnum):
    """Cacheable artwork kinds."""

    BOXART = "boxart"
    BANNER = "banner"
    LOGO = "logo"
    HERO = "hero"
    ICON = "icon"


@dataclass(frozen=True)
class AssetKey:
    """(entity id, asset type) — at most one cached file exists per key."""

    entity_id: str
    asset_type: AssetType

    @property
    def stem(self) -> str:
        return f"{sanitize_entity_id(self.entity_id)}-{self.asset_type.value}"


@dataclass
class CachedAsset:
    key: AssetKey
    path: Path


@dataclass
class ResolvedAsset:
    """Bytes served for a resource locator."""

    key: AssetKey
    path: Path
    data: bytes
    content_type: str
