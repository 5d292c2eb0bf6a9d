"""Library entry model — one persisted game."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any
from uuid import uuid4

# Fields a bulk metadata overwrite may touch (and therefore may be locked).
LOCKABLE_FIELDS: frozenset[str] = frozenset({
    "title",
    "exe_path",
    "install_dir",
    "box_art_url",
    "banner_url",
    "logo_url",
    "hero_url",
    "icon_url",
    "description",
    "release_date",
    "genres",
    "developers",
    "publishers",
    "age_rating",
    "user_score",
    "critic_score",
    "community_score",
})

ASSET_URL_FIELDS: dict[str, str] = {
    "boxart": "box_art_url",
    "banner": "banner_url",
    "logo": "logo_url",
    "hero": "hero_url",
    "icon": "icon_url",
}


def make_custom_id() -> str:
    """Opaque id for games with no source app id."""
    return f"custom-{uuid4().hex[:16]}"


@dataclass
class LibraryEntry:
    """Game record — stored in library.json."""

    id: str
    title: str
    platform_tag: str = "pc"
    source: str = ""
    source_app_id: str | None = None
    exe_path: str | None = None
    install_dir: str | None = None

    # Artwork (remote URL or cached-asset locator)
    box_art_url: str = ""
    banner_url: str = ""
    logo_url: str = ""
    hero_url: str = ""
    icon_url: str = ""

    # Descriptive metadata
    description: str = ""
    release_date: str = ""
    genres: list[str] = field(default_factory=list)
    developers: list[str] = field(default_factory=list)
    publishers: list[str] = field(default_factory=list)
    age_rating: str = ""
    user_score: float | None = None
    critic_score: float | None = None
    community_score: float | None = None

    # User state
    playtime: int | None = None  # minutes
    last_played: str | None = None
    favorite: bool = False
    categories: list[str] = field(default_factory=list)
    hidden: bool = False
    locked_fields: set[str] = field(default_factory=set)

    added_at: str = ""
    metadata_source: str = ""

    def is_locked(self, field_name: str) -> bool:
        return field_name in self.locked_fields

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["locked_fields"] = sorted(self.locked_fields)
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LibraryEntry:
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        kwargs["locked_fields"] = set(kwargs.get("locked_fields") or [])
        return cls(**kwargs)
