"""
models.py — Pydantic schemas and runtime dataclasses for the model catalog.

Two layers:
  1. Configuration / API schemas (FastAPI i/o, immutable snapshots)
  2. Runtime discovery objects (DiscoveredModel, DiscoveryResult, SelectedModel)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

from llm_catalog.config import DEFAULT_PROVIDER_LABEL


# ══════════════════════════════════════════════════════════════════════════════
# Enumerations
# ══════════════════════════════════════════════════════════════════════════════


class LocalProvider(str, Enum):
    OLLAMA   = "ollama"     # /api/tags  → {"models": [{"name": ...}]}
    LMSTUDIO = "lmstudio"   # /v1/models → {"data": [{"id": ...}]}


class ImageModelSource(str, Enum):
    REMOTE = "remote"
    LOCAL  = "local"


# ══════════════════════════════════════════════════════════════════════════════
# Configuration schemas (camelCase on the wire, frozen in memory)
# ══════════════════════════════════════════════════════════════════════════════


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


class LocalProviderConfig(_Snapshot):
    """Connection data for one local provider, parsed from its conf file."""

    provider_id: str
    display_name: str
    config_path: str
    server: Optional[str] = None          # raw value from the conf file
    http_url: Optional[str] = None        # normalized, reachable
    models_command: Optional[str] = None


class RemoteTextConfig(_Snapshot):
    provider: str
    display_name: str
    is_configured: bool = True


class ImageModelOption(_Snapshot):
    id: str
    label: str
    source: ImageModelSource


class ImageConfig(_Snapshot):
    models: Tuple[ImageModelOption, ...] = ()
    remote_model_id: Optional[str] = None
    local_model_id: Optional[str] = None

    @model_validator(mode="after")
    def _selection_in_catalog(self) -> "ImageConfig":
        ids = [m.id for m in self.models]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Duplicate image model ids in catalog: {ids}")
        if ids:
            for selected in (self.remote_model_id, self.local_model_id):
                if selected is not None and selected not in ids:
                    raise ValueError(f"Image model '{selected}' is not in the catalog")
        return self


class LLMConfig(_Snapshot):
    remote: Optional[RemoteTextConfig] = None
    local: Optional[LocalProviderConfig] = None


class AppConfig(_Snapshot):
    """Everything the UI needs to render model pickers, built in one step."""

    llm: LLMConfig
    image: ImageConfig


# ── /local-models boundary payload ───────────────────────────────────────────


class LocalModelEntry(_Snapshot):
    name: str


class LocalModelsConfigPayload(_Snapshot):
    server: Optional[str] = None
    http_url: Optional[str] = None
    config_path: Optional[str] = None
    command: Optional[str] = None

    @classmethod
    def from_local_config(cls, cfg: LocalProviderConfig) -> "LocalModelsConfigPayload":
        return cls(
            server=cfg.server,
            http_url=cfg.http_url,
            config_path=cfg.config_path,
            command=cfg.models_command,
        )


class LocalModelsResponse(_Snapshot):
    provider_id: Optional[str] = None
    provider_label: str = DEFAULT_PROVIDER_LABEL
    config: LocalModelsConfigPayload
    models: List[LocalModelEntry] = []
    # Upstream failures are reported in-band; the HTTP status stays 200
    error: Optional[str] = None


# ══════════════════════════════════════════════════════════════════════════════
# Runtime discovery objects
# ══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class DiscoveredModel:
    """A single model as reported by a local provider."""
    id: str                  # provider-prefixed, e.g. "ollama-llama3"
    name: str                # bare name as the provider knows it
    provider: LocalProvider

    @classmethod
    def for_provider(cls, provider: LocalProvider, name: str) -> "DiscoveredModel":
        return cls(id=f"{provider.value}-{name}", name=name, provider=provider)

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name, "provider": self.provider.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiscoveredModel":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            provider=LocalProvider(data["provider"]),
        )


@dataclass
class DiscoveryResult:
    """Merged outcome of one discovery cycle across all local sources."""
    models: List[DiscoveredModel] = field(default_factory=list)
    provider_label: str = DEFAULT_PROVIDER_LABEL
    command: Optional[str] = None
    # source name → human-readable failure, only for sources that failed
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def all_sources_failed(self) -> bool:
        """No models and every local source reported an error."""
        return not self.models and set(self.errors) >= {p.value for p in LocalProvider}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "models": [m.to_dict() for m in self.models],
            "providerLabel": self.provider_label,
            "command": self.command,
            "errors": dict(self.errors),
        }

    @classmethod
    def from_payload(cls, data: Any) -> "DiscoveryResult":
        """Rebuild from a cached payload; raises ValueError on bad shapes.

        Older caches stored a bare list of models.
        """
        if isinstance(data, list):
            data = {"models": data}
        if not isinstance(data, dict) or not isinstance(data.get("models"), list):
            raise ValueError("Cached discovery payload has no model list")
        try:
            models = [DiscoveredModel.from_dict(m) for m in data["models"]]
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Malformed cached model entry: {exc}") from exc
        label = data.get("providerLabel")
        command = data.get("command")
        errors = data.get("errors") or {}
        return cls(
            models=models,
            provider_label=label if isinstance(label, str) and label else DEFAULT_PROVIDER_LABEL,
            command=command if isinstance(command, str) else None,
            errors={str(k): str(v) for k, v in errors.items()} if isinstance(errors, dict) else {},
        )


@dataclass(frozen=True)
class SelectedModel:
    """The user's last explicit (provider, model) choice."""
    model_provider: str
    model_id: str

    def to_dict(self) -> Dict[str, str]:
        return {"modelProvider": self.model_provider, "modelId": self.model_id}

    @classmethod
    def from_dict(cls, data: Any) -> "SelectedModel":
        if not isinstance(data, dict):
            raise ValueError("Selected model must be an object")
        provider = data.get("modelProvider")
        model_id = data.get("modelId")
        if not isinstance(provider, str) or not isinstance(model_id, str):
            raise ValueError("Selected model requires string modelProvider and modelId")
        return cls(model_provider=provider, model_id=model_id)
