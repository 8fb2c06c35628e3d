"""URL-keyed cache of branding assets (logos, background images).

Design decisions:
- Primary key: absolute source URL
- Only refresh() overwrites an entry; fetch() returns whatever is cached
- Concurrent misses for one URL share a single download
- Entries are never expired by age; the memory tier is bounded by
  ASSET_CACHE_MAX_ENTRIES and evicts least recently used entries
- Optional disk mirror (VCF_ASSET_CACHE_DIR), content-addressed by SHA-256
  of the URL, consulted on a memory miss so assets survive restarts and
  memory evictions
- Disk reads and writes run in a worker thread
"""

import asyncio
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import httpx

from app.core.config import (
    ASSET_CACHE_DIR,
    ASSET_CACHE_MAX_ENTRIES,
    ASSET_MAX_BYTES,
    OCA_FETCH_TIMEOUT_SECONDS,
    OCA_MAX_REDIRECTS,
)

from .exceptions import AssetFetchError

log = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass
class AssetCacheMetrics:
    hits: int = 0
    misses: int = 0
    disk_hits: int = 0
    downloads: int = 0
    failures: int = 0
    evictions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        return {
            "hits": self.hits,
            "misses": self.misses,
            "disk_hits": self.disk_hits,
            "downloads": self.downloads,
            "failures": self.failures,
            "evictions": self.evictions,
            "hit_rate": round(self.hits / total, 4) if total else 0.0,
        }


@dataclass(frozen=True)
class CachedAsset:
    """Downloaded asset bytes with their HTTP metadata.

    Attributes:
        source_url: URL the asset was fetched from (cache key).
        content: Full response body.
        content_type: Content-Type (parameters stripped).
        size: len(content).
        fetched_at: Unix timestamp of the download.
        local_path: Disk mirror file, when mirroring is enabled.
    """

    source_url: str
    content: bytes
    content_type: str
    size: int
    fetched_at: float
    local_path: Optional[str] = None


class AssetCache:
    """In-memory asset cache guarded by an asyncio.Lock."""

    def __init__(
        self,
        max_entries: int = ASSET_CACHE_MAX_ENTRIES,
        max_bytes: int = ASSET_MAX_BYTES,
        cache_dir: Optional[str] = ASSET_CACHE_DIR,
        timeout: float = OCA_FETCH_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._entries: Dict[str, CachedAsset] = {}
        self._access_order: list[str] = []
        self._inflight: Dict[str, "asyncio.Future[CachedAsset]"] = {}
        self._max_entries = max_entries
        self._max_bytes = max_bytes
        self._cache_dir = Path(cache_dir) if cache_dir else None
        self._timeout = timeout
        self._clock = clock
        self._lock = asyncio.Lock()
        self._metrics = AssetCacheMetrics()

    async def get(self, url: str) -> Optional[CachedAsset]:
        """Cached asset or None. Never touches the network."""
        async with self._lock:
            asset = self._entries.get(url)
            if asset is not None:
                self._update_access_order(url)
                return asset

        asset = await asyncio.to_thread(self._load_from_disk, url)
        if asset is not None:
            await self._store(asset)
        return asset

    async def fetch(self, url: str) -> CachedAsset:
        """Cached asset, downloading it on a miss.

        Raises:
            AssetFetchError: Unreachable host, non-200 status or oversized body.
        """
        async with self._lock:
            asset = self._entries.get(url)
            if asset is not None:
                self._update_access_order(url)
                self._metrics.hits += 1
                return asset
            self._metrics.misses += 1

            future = self._inflight.get(url)
            owner = future is None
            if owner:
                future = asyncio.get_running_loop().create_future()
                self._inflight[url] = future

        if not owner:
            return await asyncio.shield(future)

        try:
            asset = await asyncio.to_thread(self._load_from_disk, url)
            if asset is not None:
                self._metrics.disk_hits += 1
            else:
                asset = await self._download(url)
            await self._store(asset)
        except asyncio.CancelledError:
            self._inflight.pop(url, None)
            future.cancel()
            raise
        except Exception as e:
            async with self._lock:
                self._inflight.pop(url, None)
            future.set_exception(e)
            future.exception()
            raise

        async with self._lock:
            self._inflight.pop(url, None)
        future.set_result(asset)
        return asset

    async def refresh(self, url: str) -> CachedAsset:
        """Download url again and overwrite the cached entry."""
        asset = await self._download(url)
        await self._store(asset)
        log.info(f"Asset refreshed: {url[:80]}")
        return asset

    async def invalidate(self, url: str) -> bool:
        async with self._lock:
            if url not in self._entries:
                return False
            self._remove_entry(url)
            return True

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
            self._access_order.clear()
            log.info("Asset cache cleared")

    @property
    def size(self) -> int:
        return len(self._entries)

    def metrics(self) -> AssetCacheMetrics:
        return self._metrics

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _download(self, url: str) -> CachedAsset:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                max_redirects=OCA_MAX_REDIRECTS,
                follow_redirects=True,
            ) as client:
                response = await client.get(url)
        except httpx.TimeoutException:
            self._metrics.failures += 1
            raise AssetFetchError(f"Timeout after {self._timeout}s fetching {url}")
        except httpx.RequestError as e:
            self._metrics.failures += 1
            raise AssetFetchError(f"Request failed for {url}: {e}")

        if response.status_code != 200:
            self._metrics.failures += 1
            raise AssetFetchError(f"HTTP {response.status_code} fetching {url}")

        content = response.content
        if len(content) > self._max_bytes:
            self._metrics.failures += 1
            raise AssetFetchError(
                f"Asset size {len(content)} bytes exceeds limit of {self._max_bytes} bytes"
            )

        content_type = response.headers.get("content-type", DEFAULT_CONTENT_TYPE)
        asset = CachedAsset(
            source_url=url,
            content=content,
            content_type=content_type.split(";")[0].strip().lower() or DEFAULT_CONTENT_TYPE,
            size=len(content),
            fetched_at=self._clock(),
        )
        self._metrics.downloads += 1
        log.info(f"Asset downloaded: {url[:80]} ({asset.size} bytes, {asset.content_type})")
        return await asyncio.to_thread(self._save_to_disk, asset)

    async def _store(self, asset: CachedAsset) -> None:
        async with self._lock:
            if asset.source_url not in self._entries and len(self._entries) >= self._max_entries:
                self._evict_lru()
            self._entries[asset.source_url] = asset
            self._update_access_order(asset.source_url)

    def _disk_paths(self, url: str) -> Optional[tuple[Path, Path]]:
        if self._cache_dir is None:
            return None
        digest = hashlib.sha256(url.encode("utf-8")).hexdigest()
        return self._cache_dir / f"{digest}.bin", self._cache_dir / f"{digest}.json"

    def _save_to_disk(self, asset: CachedAsset) -> CachedAsset:
        paths = self._disk_paths(asset.source_url)
        if paths is None:
            return asset
        data_path, meta_path = paths
        try:
            self._cache_dir.mkdir(parents=True, exist_ok=True)
            data_path.write_bytes(asset.content)
            meta_path.write_text(json.dumps({
                "source_url": asset.source_url,
                "content_type": asset.content_type,
                "fetched_at": asset.fetched_at,
            }))
        except OSError as e:
            log.warning(f"Could not mirror asset to disk: {e}")
            return asset
        return CachedAsset(
            source_url=asset.source_url,
            content=asset.content,
            content_type=asset.content_type,
            size=asset.size,
            fetched_at=asset.fetched_at,
            local_path=str(data_path),
        )

    def _load_from_disk(self, url: str) -> Optional[CachedAsset]:
        paths = self._disk_paths(url)
        if paths is None:
            return None
        data_path, meta_path = paths
        if not data_path.exists() or not meta_path.exists():
            return None
        try:
            meta = json.loads(meta_path.read_text())
            content = data_path.read_bytes()
        except (OSError, ValueError) as e:
            log.warning(f"Unreadable mirrored asset for {url[:80]}: {e}")
            return None
        if meta.get("source_url") != url:
            return None
        return CachedAsset(
            source_url=url,
            content=content,
            content_type=meta.get("content_type") or DEFAULT_CONTENT_TYPE,
            size=len(content),
            fetched_at=float(meta.get("fetched_at") or 0.0),
            local_path=str(data_path),
        )

    def _remove_entry(self, url: str) -> None:
        """Remove entry from all indexes (caller must hold lock)."""
        self._entries.pop(url, None)
        if url in self._access_order:
            self._access_order.remove(url)

    def _update_access_order(self, url: str) -> None:
        """Move url to end of access order (caller must hold lock)."""
        if url in self._access_order:
            self._access_order.remove(url)
        self._access_order.append(url)

    def _evict_lru(self) -> None:
        """Evict least recently used entry (caller must hold lock).

        Only the memory copy goes; a mirrored asset is reloaded from disk.
        """
        if self._access_order:
            lru_url = self._access_order[0]
            self._remove_entry(lru_url)
            self._metrics.evictions += 1
            log.debug(f"Asset cache LRU eviction: {lru_url[:80]}")
