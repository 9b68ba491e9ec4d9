"""
cache.py — Cache-then-revalidate layer for local model discovery.

Tier 1 — PERSISTENT cache
  Keys: ``local-models-cache`` (JSON DiscoveryResult) and
        ``local-models-cache-expiry`` (JSON epoch seconds)
  Backend: diskcache.Cache (survives restarts, shared by every client process)
  TTL: 5 minutes by default
  Use: the first view after start-up is served from here, instantly

Tier 2 — FRESHNESS tracking
  Backend: cachetools.TTLCache keyed on the injected clock
  Use: decides when a background refetch is due

When the resolved model list is empty the static fallback catalog is shown
instead, so a picker never ends up with zero options.

Dependencies:
  diskcache      — pip install diskcache
  cachetools     — pip install cachetools
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple

import diskcache
from cachetools import TTLCache

from llm_catalog.config import (
    CACHE_EXPIRY_KEY,
    DEFAULT_PROVIDER_LABEL,
    DOWNLOADABLE_MODEL_NAMES,
    MODELS_CACHE_KEY,
    settings,
)
from llm_catalog.discovery import DiscoveryError, LocalModelDiscovery
from llm_catalog.models import DiscoveredModel, DiscoveryResult, LocalProvider

logger = logging.getLogger(__name__)

DOWNLOADABLE_MODELS: Tuple[DiscoveredModel, ...] = tuple(
    DiscoveredModel.for_provider(LocalProvider.OLLAMA, name) for name in DOWNLOADABLE_MODEL_NAMES
)
# Shown when discovery finds nothing; same list as the suggestions for now
FALLBACK_MODELS: Tuple[DiscoveredModel, ...] = DOWNLOADABLE_MODELS

_LIVE_KEY = "local-models"


class KeyValueStorage(Protocol):
    """The slice of ``diskcache.Cache`` the client state needs."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> Any: ...


def open_storage(directory: Optional[str] = None) -> diskcache.Cache:
    directory = directory or settings.cache_dir
    os.makedirs(directory, exist_ok=True)
    logger.info("Client state: diskcache at %s", directory)
    return diskcache.Cache(directory, eviction_policy="least-recently-used")


# ══════════════════════════════════════════════════════════════════════════════
# DiscoveryCache — persisted last result + expiry
# ══════════════════════════════════════════════════════════════════════════════


class DiscoveryCache:
    """
    Persists the most recent DiscoveryResult together with its expiry.

    Usage::

        cache = DiscoveryCache(storage, clock=time.time)
        cache.store(result)
        hit = cache.load()   # None once the TTL has passed
    """

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        ttl: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage if storage is not None else open_storage()
        self._ttl = float(settings.models_cache_ttl if ttl is None else ttl)
        self._clock = clock

    @property
    def ttl(self) -> float:
        return self._ttl

    def load(self) -> Optional[DiscoveryResult]:
        """Return the cached result if present and unexpired; corrupt data is a miss."""
        try:
            cached = self._storage.get(MODELS_CACHE_KEY)
            expiry = self._storage.get(CACHE_EXPIRY_KEY)
            if cached is None or expiry is None:
                return None
            if self._clock() >= float(json.loads(expiry)):
                return None
            return DiscoveryResult.from_payload(json.loads(cached))
        except Exception as exc:
            logger.debug("Ignoring unreadable models cache: %s", exc)
            return None

    def store(self, result: DiscoveryResult) -> None:
        """Best-effort write; storage errors are logged and dropped."""
        try:
            self._storage.set(MODELS_CACHE_KEY, json.dumps(result.to_dict()))
            self._storage.set(CACHE_EXPIRY_KEY, json.dumps(self._clock() + self._ttl))
        except Exception as exc:
            logger.warning("Failed to persist local models cache: %s", exc)


# ══════════════════════════════════════════════════════════════════════════════
# LocalModelsService — what a model picker reads
# ══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class LocalModelsView:
    local_models: List[DiscoveredModel]
    downloadable_models: List[DiscoveredModel]
    show_downloadable: bool
    provider_label: str
    command: Optional[str]
    is_loading: bool
    is_initial_load: bool
    errors: Dict[str, str] = field(default_factory=dict)


class LocalModelsService:
    """
    Serves local models cache-first and revalidates in the background.

    Usage::

        service = LocalModelsService()
        view = await service.get()          # waits only if nothing is cached
        view = service.snapshot()           # never waits; schedules a refetch
        await service.refresh(force=True)   # on-demand refetch
    """

    def __init__(
        self,
        discovery: Optional[LocalModelDiscovery] = None,
        cache: Optional[DiscoveryCache] = None,
        clock: Callable[[], float] = time.time,
        ttl: Optional[float] = None,
        retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        threshold: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._ttl = float(settings.models_cache_ttl if ttl is None else ttl)
        self.discovery = discovery or LocalModelDiscovery()
        self.cache = cache or DiscoveryCache(ttl=self._ttl, clock=clock)
        self._fresh: TTLCache = TTLCache(maxsize=1, ttl=self._ttl, timer=clock)
        self._retries = settings.discovery_retries if retries is None else retries
        self._retry_delay = settings.discovery_retry_delay if retry_delay is None else retry_delay
        self._threshold = settings.downloadable_threshold if threshold is None else threshold
        self._sleep = sleep

        self._data: Optional[DiscoveryResult] = None
        self._loaded = False
        self._is_loading = False
        self._views_served = 0
        self._refresh_lock = asyncio.Lock()
        self._refresh_task: Optional[asyncio.Task] = None

    # ── Public interface ───────────────────────────────────────────────────────

    @property
    def is_stale(self) -> bool:
        return _LIVE_KEY not in self._fresh

    def snapshot(self) -> LocalModelsView:
        """Current view without waiting; schedules a refetch when stale."""
        self._ensure_loaded()
        self.refresh_if_stale()
        return self._view()

    async def get(self) -> LocalModelsView:
        """Current view; waits for discovery only when nothing is known yet."""
        self._ensure_loaded()
        if self._data is None:
            await self.refresh()
        else:
            self.refresh_if_stale()
        return self._view()

    def refresh_if_stale(self) -> None:
        """Non-blocking refresh — only acts when TTL has elapsed."""
        if not self.is_stale:
            return
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop: the caller refreshes explicitly
            return
        self._refresh_task = loop.create_task(self.refresh())

    async def refresh(self, force: bool = False) -> Optional[DiscoveryResult]:
        """Run one discovery cycle (with retry) unless the data is still fresh."""
        async with self._refresh_lock:
            if not force and not self.is_stale and self._data is not None:
                return self._data
            self._is_loading = True
            try:
                result = await self._discover_with_retry()
            finally:
                self._is_loading = False
            if result is None:
                return self._data
            self._data = result
            self._fresh[_LIVE_KEY] = result
            self.cache.store(result)
            return result

    async def drain(self) -> None:
        """Wait for a scheduled background refresh, if any."""
        task = self._refresh_task
        if task is not None:
            await task

    # ── Internal ───────────────────────────────────────────────────────────────

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        cached = self.cache.load()
        if cached is not None:
            self._data = cached
            logger.debug("Serving %d cached local models", len(cached.models))

    async def _discover_with_retry(self) -> Optional[DiscoveryResult]:
        attempts = self._retries + 1
        for attempt in range(attempts):
            try:
                result = await self.discovery.discover()
                if result.all_sources_failed:
                    raise DiscoveryError("local", "; ".join(f"{k}: {v}" for k, v in result.errors.items()))
                return result
            except Exception as exc:
                if attempt < attempts - 1:
                    logger.debug(
                        "Local discovery attempt %d/%d failed, retrying in %.1fs: %s",
                        attempt + 1,
                        attempts,
                        self._retry_delay,
                        exc,
                    )
                    await self._sleep(self._retry_delay)
                else:
                    logger.warning(
                        "Local discovery failed after %d attempts (%s) — keeping last known models",
                        attempts,
                        exc,
                    )
        return None

    def _view(self) -> LocalModelsView:
        data = self._data
        models = list(data.models) if data is not None and data.models else list(FALLBACK_MODELS)
        show_downloadable = len(models) < self._threshold
        pending = self._refresh_task is not None and not self._refresh_task.done()
        is_initial_load = self._views_served == 0
        self._views_served += 1
        return LocalModelsView(
            local_models=models,
            downloadable_models=list(DOWNLOADABLE_MODELS) if show_downloadable else [],
            show_downloadable=show_downloadable,
            provider_label=data.provider_label if data is not None else DEFAULT_PROVIDER_LABEL,
            command=data.command if data is not None else None,
            is_loading=self._is_loading or pending,
            is_initial_load=is_initial_load,
            errors=dict(data.errors) if data is not None else {},
        )
