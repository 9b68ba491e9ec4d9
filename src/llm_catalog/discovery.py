"""
discovery.py — Live discovery of models served by local providers.

Responsibilities:
  • Query an Ollama-like source (the /local-models boundary, or a server's
    /api/tags directly) and an LM-Studio-like source (/v1/models) concurrently
  • Parse provider-specific response shapes into canonical DiscoveredModel objects
  • Absorb every per-source failure into a SourceResult so one unreachable
    server never hides the other's models
  • Provide the server-side /api/tags fetch used by the /local-models endpoint

Dependencies: httpx (async HTTP), standard library only
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from llm_catalog.config import DEFAULT_PROVIDER_LABEL, settings
from llm_catalog.local_config import format_display_name
from llm_catalog.models import (
    DiscoveredModel,
    DiscoveryResult,
    LocalProvider,
    LocalProviderConfig,
)

logger = logging.getLogger(__name__)


class DiscoveryError(Exception):
    """A single source could not produce a model list."""

    def __init__(self, source: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.source = source
        self.status_code = status_code


@dataclass
class SourceResult:
    """Outcome of one source query: models on success, the error otherwise."""
    source: LocalProvider
    models: List[DiscoveredModel] = field(default_factory=list)
    error: Optional[DiscoveryError] = None
    provider_label: Optional[str] = None
    command: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, source: LocalProvider, error: DiscoveryError) -> "SourceResult":
        return cls(source=source, error=error)


# ══════════════════════════════════════════════════════════════════════════════
# Per-provider response parsers
# ══════════════════════════════════════════════════════════════════════════════


def _parse_ollama_models(data: Any) -> List[DiscoveredModel]:
    """Ollama /api/tags (and the /local-models boundary) — ``{"models": [{"name"}]}``."""
    if not isinstance(data, dict) or not isinstance(data.get("models"), list):
        raise ValueError("Expected an object with a 'models' list")
    return [
        DiscoveredModel.for_provider(LocalProvider.OLLAMA, item["name"])
        for item in data["models"]
        if isinstance(item, dict) and isinstance(item.get("name"), str) and item["name"]
    ]


def _parse_lmstudio_models(data: Any) -> List[DiscoveredModel]:
    """OpenAI-compatible /v1/models — ``{"data": [{"id"}]}``."""
    if not isinstance(data, dict) or not isinstance(data.get("data"), list):
        raise ValueError("Expected an object with a 'data' list")
    return [
        DiscoveredModel.for_provider(LocalProvider.LMSTUDIO, item["id"])
        for item in data["data"]
        if isinstance(item, dict) and isinstance(item.get("id"), str) and item["id"]
    ]


def _payload_label(data: Dict[str, Any]) -> Optional[str]:
    label = data.get("providerLabel")
    if isinstance(label, str) and label.strip():
        return label.strip()
    provider_id = data.get("providerId")
    if isinstance(provider_id, str):
        return format_display_name(provider_id) or None
    return None


def _payload_command(data: Dict[str, Any]) -> Optional[str]:
    config = data.get("config")
    if not isinstance(config, dict):
        return None
    command = config.get("command")
    # Older boundary versions nested the command as {"models": "..."}
    if isinstance(command, dict):
        command = command.get("models")
    return command if isinstance(command, str) else None


async def fetch_ollama_tags(client: httpx.AsyncClient, http_url: str) -> List[str]:
    """Return model names from ``{http_url}/api/tags``; raises on any failure."""
    r = await client.get(f"{http_url.rstrip('/')}/api/tags")
    if r.is_error:
        raise DiscoveryError(
            LocalProvider.OLLAMA.value,
            f"Failed to fetch models: {r.status_code} {r.reason_phrase}",
            status_code=r.status_code,
        )
    return [m.name for m in _parse_ollama_models(r.json())]


# ══════════════════════════════════════════════════════════════════════════════
# Sources
# ══════════════════════════════════════════════════════════════════════════════


class _HttpSource:
    provider: LocalProvider

    def __init__(
        self,
        url: Optional[str],
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self._timeout = settings.discovery_timeout if timeout is None else timeout
        self._transport = transport

    async def fetch(self) -> SourceResult:
        """Never raises; failures come back as ``SourceResult.error``."""
        try:
            return await self._fetch()
        except DiscoveryError as exc:
            return self._failed(exc)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            message = str(exc) or exc.__class__.__name__
            return self._failed(DiscoveryError(self.provider.value, message))

    async def _fetch(self) -> SourceResult:
        raise NotImplementedError

    def _failed(self, exc: DiscoveryError) -> SourceResult:
        logger.debug("%s not available at %s: %s", self.provider.value, self.url, exc)
        return SourceResult.failure(self.provider, exc)

    async def _get_json(self) -> Any:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            r = await client.get(self.url)
        if r.is_error:
            raise DiscoveryError(
                self.provider.value,
                f"{r.status_code} {r.reason_phrase}",
                status_code=r.status_code,
            )
        return r.json()


class OllamaSource(_HttpSource):
    """Ollama-like source.

    ``url`` is either the /local-models boundary (payload carries label,
    command and an in-band error) or a server's /api/tags.  ``None`` means no
    server address is known and the source contributes nothing.
    """

    provider = LocalProvider.OLLAMA

    def __init__(
        self,
        url: Optional[str],
        label: Optional[str] = None,
        command: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(url, timeout=timeout, transport=transport)
        self._label = label
        self._command = command

    async def _fetch(self) -> SourceResult:
        if not self.url:
            return SourceResult(
                source=self.provider,
                provider_label=self._label or DEFAULT_PROVIDER_LABEL,
                command=self._command,
            )
        data = await self._get_json()
        models = _parse_ollama_models(data)
        error = None
        if isinstance(data.get("error"), str) and data["error"]:
            error = DiscoveryError(self.provider.value, data["error"])
            logger.debug("Local models boundary reported: %s", data["error"])
        return SourceResult(
            source=self.provider,
            models=models,
            error=error,
            provider_label=_payload_label(data) or self._label or DEFAULT_PROVIDER_LABEL,
            command=_payload_command(data) if "config" in data else self._command,
        )


class LMStudioSource(_HttpSource):
    provider = LocalProvider.LMSTUDIO

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        base = (base_url or settings.lmstudio_base_url).rstrip("/")
        super().__init__(f"{base}/v1/models", timeout=timeout, transport=transport)

    async def _fetch(self) -> SourceResult:
        data = await self._get_json()
        return SourceResult(source=self.provider, models=_parse_lmstudio_models(data))


# ══════════════════════════════════════════════════════════════════════════════
# LocalModelDiscovery — the main class
# ══════════════════════════════════════════════════════════════════════════════


class LocalModelDiscovery:
    """
    Queries every local source concurrently and merges what answered.

    Usage::

        discovery = LocalModelDiscovery()
        result = await discovery.discover()
        for model in result.models:
            print(model.id, model.provider)
    """

    def __init__(
        self,
        ollama: Optional[OllamaSource] = None,
        lmstudio: Optional[LMStudioSource] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.ollama = ollama or OllamaSource(
            settings.local_models_url, timeout=timeout, transport=transport
        )
        self.lmstudio = lmstudio or LMStudioSource(timeout=timeout, transport=transport)

    @classmethod
    def for_local_config(
        cls,
        cfg: LocalProviderConfig,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "LocalModelDiscovery":
        """Query the configured server's /api/tags directly, bypassing the boundary."""
        url = f"{cfg.http_url.rstrip('/')}/api/tags" if cfg.http_url else None
        return cls(
            ollama=OllamaSource(
                url,
                label=cfg.display_name,
                command=cfg.models_command,
                timeout=timeout,
                transport=transport,
            ),
            timeout=timeout,
            transport=transport,
        )

    async def discover(self) -> DiscoveryResult:
        """Run both sources in parallel; always returns a well-formed result."""
        sources = (self.ollama, self.lmstudio)
        outcomes = await asyncio.gather(*(s.fetch() for s in sources), return_exceptions=True)
        ollama_res, lmstudio_res = (
            self._absorb(source, outcome) for source, outcome in zip(sources, outcomes)
        )

        errors = {
            res.source.value: str(res.error)
            for res in (ollama_res, lmstudio_res)
            if res.error is not None
        }
        result = DiscoveryResult(
            models=[*ollama_res.models, *lmstudio_res.models],
            provider_label=ollama_res.provider_label or DEFAULT_PROVIDER_LABEL,
            command=ollama_res.command,
            errors=errors,
        )
        logger.info(
            "Local discovery complete — %d models (%d %s, %d %s)%s",
            len(result.models),
            len(ollama_res.models),
            ollama_res.source.value,
            len(lmstudio_res.models),
            lmstudio_res.source.value,
            f"; unavailable: {', '.join(errors)}" if errors else "",
        )
        return result

    @staticmethod
    def _absorb(source: _HttpSource, outcome: Any) -> SourceResult:
        if isinstance(outcome, SourceResult):
            return outcome
        if isinstance(outcome, Exception):
            logger.warning("Unexpected %s discovery failure: %s", source.provider.value, outcome)
            return SourceResult.failure(
                source.provider, DiscoveryError(source.provider.value, str(outcome) or repr(outcome))
            )
        # KeyboardInterrupt, CancelledError and friends are not ours to absorb
        raise outcome
