"""Application configuration — JSON-based, with file locking and batch update support."""

from __future__ import annotations

import json
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

from loguru import logger

_instance: "Config | None" = None

# Default data directory
_DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "gameshelf"

SOURCE_IDS = ("steam", "epic", "gog", "xbox", "ubisoft", "rockstar", "manual")


def get_config() -> Config:
    """Module-level factory — single global Config instance."""
    global _instance
    if _instance is None:
        _instance = Config()
    return _instance


def reset_config() -> None:
    """Reset the global config instance (for testing)."""
    global _instance
    _instance = None


@dataclass
class SourceConfig:
    """Per-source scanner input: an enabled flag and one root path."""

    enabled: bool = False
    path: str = ""


class Config:
    """JSON-based application configuration with file locking."""

    _DEFAULTS: dict[str, Any] = {
        "sources": {source: {"enabled": False, "path": ""} for source in SOURCE_IDS},
        "metadata": {
            "proxy_protocol": "http",
            "proxy_host": "",
            "proxy_port": "",
            "steamgriddb_api_key": "",
            "igdb_client_id": "",
            "igdb_client_secret": "",
            "rawg_api_key": "",
            "provider_timeout": 20.0,
            "mandatory_timeout": 10.0,
            "master_timeout": 30.0,
            "confidence_threshold": 0.6,
            "field_priority": {
                "description": ["steam", "igdb", "rawg"],
                "release_date": ["steam", "igdb", "rawg"],
                "genres": ["steam", "igdb", "rawg"],
                "developers": ["steam", "igdb", "rawg"],
                "publishers": ["steam", "igdb", "rawg"],
                "age_rating": ["igdb", "rawg", "steam"],
                "critic_score": ["steam", "igdb", "rawg"],
                "community_score": ["rawg", "igdb"],
                "boxart": ["steamgriddb", "steam", "igdb", "rawg"],
                "banner": ["steam", "steamgriddb", "igdb", "rawg"],
                "logo": ["steamgriddb", "steam"],
                "hero": ["steamgriddb", "steam", "rawg"],
                "icon": ["steamgriddb"],
            },
        },
        "cache": {
            "image_dir": "",
            "store_locally": True,
            "broken_threshold": 2,
            "scheme": "gameshelf-asset",
        },
        "background_scan": {
            "enabled": False,
            "interval_minutes": 60,
        },
    }

    def __init__(self, config_dir: Path | None = None) -> None:
        self._data: dict[str, Any] = {}
        self._dir = config_dir or _DEFAULT_DATA_DIR
        self._path = self._dir / "config.json"
        self._lock = threading.Lock()
        self._defer_save = False
        self._load()

    def _load(self) -> None:
        """Load config from disk, merging with defaults."""
        self._data = json.loads(json.dumps(self._DEFAULTS))  # deep copy defaults
        if self._path.exists():
            try:
                with open(self._path, encoding="utf-8") as f:
                    user_data = json.load(f)
                self._deep_merge(self._data, user_data)
            except (json.JSONDecodeError, OSError) as e:
                logger.warning(f"Failed to load config, using defaults: {e}")

    def _deep_merge(self, base: dict, override: dict) -> None:
        """Recursively merge override into base."""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def _save(self) -> None:
        """Persist config to disk with file locking."""
        if self._defer_save:
            return
        with self._lock:
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(".tmp")
            try:
                with open(tmp_path, "w", encoding="utf-8") as f:
                    json.dump(self._data, f, ensure_ascii=False, indent=2)
                tmp_path.replace(self._path)
            except OSError as e:
                logger.error(f"Failed to save config: {e}")
                if tmp_path.exists():
                    tmp_path.unlink(missing_ok=True)

    @contextmanager
    def batch_update(self) -> Iterator[None]:
        """Context manager for batching multiple config changes into a single write."""
        outer = self._defer_save
        self._defer_save = True
        try:
            yield
        finally:
            self._defer_save = outer
            if not outer:
                self._save()

    # ── Generic access ──

    def get(self, key: str, default: Any = None) -> Any:
        """Get a config value by dot-separated key path."""
        parts = key.split(".")
        node = self._data
        for part in parts:
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node

    def set(self, key: str, value: Any) -> None:
        """Set a config value by dot-separated key path."""
        parts = key.split(".")
        node = self._data
        for part in parts[:-1]:
            if part not in node or not isinstance(node[part], dict):
                node[part] = {}
            node = node[part]
        node[parts[-1]] = value
        self._save()

    # ── Typed properties ──

    @property
    def data_dir(self) -> Path:
        return self._dir

    @property
    def sources(self) -> dict[str, SourceConfig]:
        raw = self._data.get("sources", {})
        return {
            source: SourceConfig(
                enabled=bool(conf.get("enabled", False)),
                path=str(conf.get("path", "") or ""),
            )
            for source, conf in raw.items()
            if isinstance(conf, dict)
        }

    def set_source(self, source: str, enabled: bool, path: str) -> None:
        with self.batch_update():
            self.set(f"sources.{source}.enabled", enabled)
            self.set(f"sources.{source}.path", path)

    @property
    def metadata_config(self) -> dict[str, Any]:
        return self._data.get("metadata", {})

    @property
    def provider_timeout(self) -> float:
        return float(self.metadata_config.get("provider_timeout", 20.0))

    @property
    def mandatory_timeout(self) -> float:
        return float(self.metadata_config.get("mandatory_timeout", 10.0))

    @property
    def master_timeout(self) -> float:
        return float(self.metadata_config.get("master_timeout", 30.0))

    @property
    def confidence_threshold(self) -> float:
        return float(self.metadata_config.get("confidence_threshold", 0.6))

    @property
    def field_priority(self) -> dict[str, list[str]]:
        return self.metadata_config.get("field_priority", {})

    @property
    def proxy_url(self) -> str:
        """Assemble proxy URL from config fields (protocol/host/port)."""
        host = self.metadata_config.get("proxy_host", "")
        if not host:
            return ""
        proto = self.metadata_config.get("proxy_protocol", "http")
        port = self.metadata_config.get("proxy_port", "")
        return f"{proto}://{host}:{port}" if port else f"{proto}://{host}"

    @property
    def cache_config(self) -> dict[str, Any]:
        return self._data.get("cache", {})

    @property
    def image_cache_dir(self) -> Path:
        raw = self.cache_config.get("image_dir", "")
        if raw:
            return Path(raw)
        return self._dir / "cache" / "images"

    @property
    def store_assets_locally(self) -> bool:
        return bool(self.cache_config.get("store_locally", True))

    @property
    def broken_threshold(self) -> int:
        return int(self.cache_config.get("broken_threshold", 2))

    @property
    def locator_scheme(self) -> str:
        return str(self.cache_config.get("scheme", "gameshelf-asset"))

    @property
    def background_scan_enabled(self) -> bool:
        return bool(self.get("background_scan.enabled", False))

    @property
    def background_scan_interval(self) -> float:
        """Interval in seconds."""
        return float(self.get("background_scan.interval_minutes", 60)) * 60
