"""Asset cache — downloads artwork once and serves it through resource locators.

Files live in one flat directory as ``{sanitizedEntityId}-{assetType}.{ext}``.
The presentation layer refers to them by locator,
``{scheme}://{entityId}-{assetType}``, which never embeds a filesystem path.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable
from urllib.parse import quote, unquote, urlparse

import httpx
from loguru import logger

from gameshelf.models.cached_asset import AssetKey, AssetType, CachedAsset, ResolvedAsset

EXTENSION_PROBE_ORDER = (".jpg", ".jpeg", ".png", ".webp", ".gif", ".webm", ".mp4")

CONTENT_TYPES: dict[str, str] = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".webm": "video/webm",
    ".mp4": "video/mp4",
}

_EXTENSIONS_BY_TYPE: dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "video/webm": ".webm",
    "video/mp4": ".mp4",
}

_TYPE_ALTERNATION = "|".join(t.value for t in AssetType)
_CURRENT_RE = re.compile(rf"^(?P<entity>.+)-(?P<type>{_TYPE_ALTERNATION})$")
# Older cache files carried a URL-derived hash: {entity}-{type}-{hash}.{ext}
_HASHED_RE = re.compile(
    rf"^(?P<entity>.+)-(?P<type>{_TYPE_ALTERNATION})-(?P<hash>[A-Za-z0-9]{{1,32}})(?:\.\w+)?$"
)
_DRIVE_RE = re.compile(r"^[A-Za-z]:[\\/]")
# What may follow a key's stem in a file name still owned by that key
_OWNED_SUFFIX_RE = re.compile(r"^(?:-(?P<hash>[A-Za-z0-9]{1,32}))?\.\w+$")
_ASSET_TYPE_VALUES = frozenset(t.value for t in AssetType)


@dataclass(frozen=True)
class ParsedLocator:
    """What a locator payload points at: a cache key and, for legacy forms, a file."""

    key: AssetKey
    legacy_path: Path | None = None


LocatorParser = Callable[[str], "ParsedLocator | None"]


def _is_absolute(path_str: str) -> bool:
    return path_str.startswith(("/", "\\")) or bool(_DRIVE_RE.match(path_str))


def parse_current(payload: str) -> ParsedLocator | None:
    """``{entityId}-{assetType}``, right-anchored so ids may contain '-'."""
    if _is_absolute(payload):
        return None
    m = _CURRENT_RE.match(payload)
    if not m:
        return None
    return ParsedLocator(AssetKey(m["entity"], AssetType(m["type"])))


def parse_hashed_filename(payload: str) -> ParsedLocator | None:
    """Legacy ``{entityId}-{assetType}-{hash}.{ext}`` file name."""
    m = _HASHED_RE.match(Path(payload).name)
    if not m:
        return None
    return ParsedLocator(AssetKey(m["entity"], AssetType(m["type"])))


def _parse_path(path_str: str) -> ParsedLocator | None:
    if not _is_absolute(path_str):
        return None
    path = Path(path_str)
    stem = path.stem if path.suffix.lower() in CONTENT_TYPES else path.name
    parsed = parse_current(stem) or parse_hashed_filename(path.name)
    if parsed is None:
        return None
    return ParsedLocator(parsed.key, legacy_path=path)


def parse_encoded_path(payload: str) -> ParsedLocator | None:
    """Legacy locator carrying a (URL-decoded) absolute file path."""
    return _parse_path(payload)


def parse_base64_path(payload: str) -> ParsedLocator | None:
    """Legacy locator carrying a URL-safe base64 absolute file path."""
    padded = payload + "=" * (-len(payload) % 4)
    try:
        decoded = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError):
        return None
    return _parse_path(decoded)


LOCATOR_PARSERS: tuple[LocatorParser, ...] = (
    parse_current,
    parse_encoded_path,
    parse_hashed_filename,
    parse_base64_path,
)


def _is_owned_suffix(rest: str) -> bool:
    """
    True when *rest*, the part of a file name after a key's stem, is a plain
    extension or a legacy hash plus extension.  A ``-{assetType}`` tail marks
    another entity's file (entity ``x`` vs ``x-boxart``) and is rejected.
    """
    if rest.endswith(".tmp"):
        return False
    m = _OWNED_SUFFIX_RE.match(rest)
    if not m:
        return False
    return m["hash"] is None or m["hash"].lower() not in _ASSET_TYPE_VALUES


def content_type_for(path: Path) -> str:
    return CONTENT_TYPES.get(path.suffix.lower(), "application/octet-stream")


class AssetCache:
    """
    Flat on-disk artwork cache keyed by (entity id, asset type).

    At most one file exists per key; writing a key replaces any copy with a
    different extension.  Locators that keep failing to resolve are marked
    broken after ``broken_threshold`` failures; a broken locator skips the
    directory listing and only checks the exact file names, so the mark
    clears once the file is back.
    """

    def __init__(
        self,
        cache_dir: Path,
        client: httpx.AsyncClient | None = None,
        scheme: str = "gameshelf-asset",
        broken_threshold: int = 2,
        timeout: float = 30.0,
        proxy: str | None = None,
    ) -> None:
        self._cache_dir = cache_dir
        self._client = client
        self._scheme = scheme
        self._broken_threshold = broken_threshold
        self._timeout = timeout
        self._proxy = proxy or None
        self._failures: dict[str, int] = {}

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    # ── Locators ──

    def locator_for(self, entity_id: str, asset_type: AssetType | str) -> str:
        asset_type = AssetType(asset_type)
        return f"{self._scheme}://{quote(entity_id, safe='')}-{asset_type.value}"

    def is_locator(self, value: str | None) -> bool:
        return bool(value) and value.startswith(f"{self._scheme}:")

    def _payload(self, locator: str) -> str:
        payload = locator[len(self._scheme) + 1:].lstrip("/")
        payload = payload.split("?", 1)[0].split("#", 1)[0].rstrip("/")
        return unquote(payload)

    def parse_locator(self, locator: str) -> ParsedLocator | None:
        """Run the parser chain; first success wins."""
        if not self.is_locator(locator):
            return None
        payload = self._payload(locator)
        if not payload:
            return None
        for parser in LOCATOR_PARSERS:
            parsed = parser(payload)
            if parsed is not None:
                return parsed
        return None

    def is_known_broken(self, locator: str) -> bool:
        return self._failures.get(locator, 0) > self._broken_threshold

    def _record_failure(self, locator: str) -> None:
        count = self._failures.get(locator, 0) + 1
        self._failures[locator] = count
        if count == self._broken_threshold + 1:
            logger.warning(f"Asset locator marked broken after {count} failures: {locator}")

    def _clear_failures(self, key: AssetKey) -> None:
        prefix = f"{self._scheme}://"
        for locator in [loc for loc in self._failures if loc.startswith(prefix)]:
            parsed = self.parse_locator(locator)
            if parsed is not None and parsed.key == key:
                del self._failures[locator]

    # ── Files ──

    def _exact_files(self, key: AssetKey) -> list[Path]:
        """Files named exactly ``{stem}{ext}``, in probe order.  No directory listing."""
        found: list[Path] = []
        for ext in EXTENSION_PROBE_ORDER:
            path = self._cache_dir / f"{key.stem}{ext}"
            if path.is_file():
                found.append(path)
        return found

    def _files_for(self, key: AssetKey) -> list[Path]:
        """Every cached file for *key*: exact stem in probe order, then legacy hashed names."""
        stem = key.stem
        found = self._exact_files(key)
        if not self._cache_dir.is_dir():
            return found
        try:
            extra = sorted(
                p for p in self._cache_dir.iterdir()
                if p.is_file()
                and p not in found
                and p.name.startswith(stem)
                and _is_owned_suffix(p.name[len(stem):])
            )
        except OSError as e:
            logger.warning(f"Cannot list asset cache {self._cache_dir}: {e}")
            return found
        return found + extra

    def find(self, entity_id: str, asset_type: AssetType | str) -> CachedAsset | None:
        key = AssetKey(entity_id, AssetType(asset_type))
        files = self._files_for(key)
        return CachedAsset(key, files[0]) if files else None

    # ── Caching ──

    async def cache(
        self, remote_url: str, entity_id: str, asset_type: AssetType | str, refresh: bool = False
    ) -> str:
        """
        Cache *remote_url* for (entity_id, asset_type) and return its locator.

        Empty URLs and existing locators are returned unchanged.  An already
        cached key is not fetched again unless *refresh* is set; a refresh
        downloads first and only then replaces the existing file.  On any
        failure the remote URL is returned so the caller can still display
        it, except that a key which still has a cached file keeps its locator.
        """
        if not remote_url or not remote_url.strip() or self.is_locator(remote_url):
            return remote_url
        key = AssetKey(entity_id, AssetType(asset_type))
        locator = self.locator_for(entity_id, key.asset_type)

        if not refresh and self._files_for(key):
            self._clear_failures(key)
            return locator

        try:
            data, content_type = await self._download(remote_url)
            self._write(key, data, self._extension(remote_url, content_type))
        except (httpx.HTTPError, OSError) as e:
            logger.warning(f"Failed to cache {key.asset_type} for {entity_id} from {remote_url}: {e}")
            if refresh and self._files_for(key):
                return locator
            return remote_url

        self._clear_failures(key)
        logger.debug(f"Cached {key.asset_type} for {entity_id}")
        return locator

    async def cache_many(
        self, urls: dict[AssetType, str], entity_id: str, refresh: bool = False
    ) -> dict[AssetType, str]:
        """Cache several asset types of one entity concurrently."""
        asset_types = list(urls)
        results = await asyncio.gather(
            *(self.cache(urls[t], entity_id, t, refresh=refresh) for t in asset_types)
        )
        return dict(zip(asset_types, results))

    async def _download(self, url: str) -> tuple[bytes, str]:
        if self._client is not None:
            resp = await self._client.get(url)
        else:
            async with httpx.AsyncClient(
                timeout=self._timeout, follow_redirects=True, proxy=self._proxy
            ) as client:
                resp = await client.get(url)
        resp.raise_for_status()
        if not resp.content:
            raise httpx.HTTPError(f"Empty response body from {url}")
        content_type = resp.headers.get("content-type", "").split(";", 1)[0].strip().lower()
        return resp.content, content_type

    @staticmethod
    def _extension(url: str, content_type: str) -> str:
        if content_type in _EXTENSIONS_BY_TYPE:
            return _EXTENSIONS_BY_TYPE[content_type]
        suffix = Path(urlparse(url).path).suffix.lower()
        if suffix in CONTENT_TYPES:
            return ".jpg" if suffix == ".jpeg" else suffix
        return ".jpg"

    def _write(self, key: AssetKey, data: bytes, ext: str) -> Path:
        self._cache_dir.mkdir(parents=True, exist_ok=True)
        path = self._cache_dir / f"{key.stem}{ext}"
        tmp = path.with_name(path.name + ".tmp")
        try:
            tmp.write_bytes(data)
            tmp.replace(path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise
        for other in self._files_for(key):
            if other != path:
                other.unlink(missing_ok=True)
        return path

    # ── Serving ──

    def resolve(self, locator: str) -> ResolvedAsset | None:
        """Bytes and content type behind *locator*, or None when not found."""
        parsed = self.parse_locator(locator)
        if self.is_known_broken(locator):
            if parsed is None or not self._exact_files(parsed.key):
                return None
            logger.debug(f"Asset reappeared, clearing broken mark: {locator}")
            self._failures.pop(locator, None)

        if parsed is None:
            logger.debug(f"Unparseable asset locator: {locator}")
            self._record_failure(locator)
            return None

        path = self._locate(parsed)
        if path is None:
            self._record_failure(locator)
            return None
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.warning(f"Cannot read cached asset {path}: {e}")
            self._record_failure(locator)
            return None

        self._failures.pop(locator, None)
        return ResolvedAsset(parsed.key, path, data, content_type_for(path))

    def _locate(self, parsed: ParsedLocator) -> Path | None:
        if parsed.legacy_path is not None and parsed.legacy_path.is_file():
            return parsed.legacy_path
        files = self._files_for(parsed.key)
        return files[0] if files else None

    # ── Maintenance ──

    def delete_cached_asset(self, entity_id: str, asset_type: AssetType | str) -> int:
        """Remove every file for the key.  Idempotent; returns files removed."""
        key = AssetKey(entity_id, AssetType(asset_type))
        removed = 0
        for path in self._files_for(key):
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
        return removed

    def delete_entity(self, entity_id: str) -> int:
        return sum(self.delete_cached_asset(entity_id, t) for t in AssetType)

    def rekey(self, old_id: str, new_id: str) -> dict[AssetType, str]:
        """Move an entity's cached files under *new_id*; returns the new locators."""
        moved: dict[AssetType, str] = {}
        if old_id == new_id:
            return moved
        for asset_type in AssetType:
            cached = self.find(old_id, asset_type)
            if cached is None:
                continue
            new_key = AssetKey(new_id, asset_type)
            ext = cached.path.suffix.lower() if cached.path.suffix.lower() in CONTENT_TYPES else ".jpg"
            try:
                self._write(new_key, cached.path.read_bytes(), ext)
            except OSError as e:
                logger.warning(f"Failed to re-key {asset_type} from {old_id} to {new_id}: {e}")
                continue
            self.delete_cached_asset(old_id, asset_type)
            self._clear_failures(new_key)
            moved[asset_type] = self.locator_for(new_id, asset_type)
        return moved

    def clear(self) -> int:
        """Remove every cached file and forget all failure counts."""
        self._failures.clear()
        if not self._cache_dir.is_dir():
            return 0
        removed = 0
        for path in self._cache_dir.iterdir():
            if path.is_file():
                path.unlink(missing_ok=True)
                removed += 1
        logger.info(f"Cleared {removed} cached asset(s)")
        return removed
