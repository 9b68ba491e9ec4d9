"""
config.py — Centralised configuration for the local model catalog

Server knobs, discovery endpoints, cache tuning and the static model
catalogs live here.  Application inputs (which local provider, which remote
text provider, which image models) are resolved through ``ConfigSources`` so
the precedence between explicit overrides, the process environment and a
``.env`` file is a data table rather than nested conditionals.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any, Optional

from dotenv import dotenv_values


def _env_bool(key: str, default: bool) -> bool:
    val = os.getenv(key, "").lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no"):
        return False
    return default


class Settings:
    """
    Simple settings object populated from environment variables.
    Values are read once at import time; tests override attributes directly.
    """

    # Server
    host: str = os.getenv("CATALOG_HOST", "0.0.0.0")
    port: int = int(os.getenv("CATALOG_PORT", "7544"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    debug: bool = _env_bool("DEBUG", False)

    # Discovery
    discovery_timeout: float = float(os.getenv("DISCOVERY_TIMEOUT", "5"))
    # One retry per refresh cycle, fixed backoff
    discovery_retries: int = int(os.getenv("DISCOVERY_RETRIES", "1"))
    discovery_retry_delay: float = float(os.getenv("DISCOVERY_RETRY_DELAY", "1.0"))
    local_models_url: str = os.getenv("LOCAL_MODELS_URL", "http://127.0.0.1:7544/local-models")
    lmstudio_base_url: str = os.getenv("LMSTUDIO_BASE_URL", "http://localhost:1234")

    # Cache
    cache_dir: str = os.getenv("CACHE_DIR", "/tmp/llm_catalog_cache")
    models_cache_ttl: int = int(os.getenv("MODELS_CACHE_TTL", "300"))
    downloadable_threshold: int = int(os.getenv("DOWNLOADABLE_THRESHOLD", "10"))

    # Local provider config files live at <local_config_root>/<provider>/conf
    local_config_root: str = os.getenv("LOCAL_CONFIG_ROOT", os.path.join(".envator", "local"))
    dotenv_path: str = os.getenv("DOTENV_PATH", ".env")

    # Public URL of this service, used by clients fetching /config
    app_config_url: str = os.getenv("APP_CONFIG_URL", "http://127.0.0.1:7544/config")

    # CORS
    cors_allowed_origins: str = os.getenv("CORS_ALLOWED_ORIGINS", "")
    cors_allow_all: bool = _env_bool("CORS_ALLOW_ALL", True)

    @property
    def cors_origins(self) -> list:
        """Return a list of allowed CORS origins. Empty list means none.

        The environment variable `CORS_ALLOWED_ORIGINS` may contain a
        comma-separated list of origins. In production you should set
        `CORS_ALLOW_ALL=false` and provide a list of allowed origins.
        """
        if self.cors_allow_all:
            return ["*"]
        raw = (self.cors_allowed_origins or "").strip()
        if not raw:
            return []
        return [o.strip() for o in raw.split(",") if o.strip()]


settings = Settings()


# ══════════════════════════════════════════════════════════════════════════════
# Configuration sources — ordered, first non-blank wins
# ══════════════════════════════════════════════════════════════════════════════

# Application inputs, all optional strings
LOCAL_LLM_ENV = "LOC_LLM_NAME"
REMOTE_LLM_ENV = "RMT_LLM_NAME"
REMOTE_IMAGE_ENV = "RMT_IM_NAME"
LOCAL_IMAGE_ENV = "LOC_IM_NAME"


def _clean(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


class ConfigSources:
    """
    Ordered lookup over configuration layers.

    ``get(key)`` walks the layers in order and returns the first value that
    is non-blank after trimming.  A blank value in an earlier layer does not
    shadow a real value in a later one.

    Usage::

        sources = ConfigSources.default()
        provider = sources.get(LOCAL_LLM_ENV)
    """

    def __init__(self, *layers: Mapping[str, Any]) -> None:
        self._layers: list[Mapping[str, Any]] = list(layers)

    @classmethod
    def default(
        cls,
        overrides: Optional[Mapping[str, Any]] = None,
        dotenv_path: Optional[str] = None,
    ) -> "ConfigSources":
        """Overrides → process environment → ``.env`` file."""
        layers: list[Mapping[str, Any]] = []
        if overrides:
            layers.append(overrides)
        layers.append(os.environ)
        layers.append(dotenv_values(dotenv_path or settings.dotenv_path))
        return cls(*layers)

    def get(self, key: str) -> Optional[str]:
        for layer in self._layers:
            value = _clean(layer.get(key))
            if value is not None:
                return value
        return None

    def __len__(self) -> int:
        return len(self._layers)


# ══════════════════════════════════════════════════════════════════════════════
# Static catalogs
# ══════════════════════════════════════════════════════════════════════════════

DEFAULT_LOCAL_PROVIDER_ID = "ollama"
DEFAULT_PROVIDER_LABEL = "Ollama"

# Remote text providers are reached through an OpenAI-compatible API
REMOTE_TEXT_PROVIDER = "openai"

# Used when neither RMT_IM_NAME nor LOC_IM_NAME is configured; first entry
# is the default remote selection.
DEFAULT_IMAGE_MODELS: list[dict[str, str]] = [
    {
        "id": "black-forest-labs/FLUX.1-schnell-Free",
        "label": "FLUX Fast",
        "source": "remote",
    },
    {
        "id": "black-forest-labs/FLUX.1-dev",
        "label": "FLUX Developer",
        "source": "remote",
    },
    {
        "id": "black-forest-labs/FLUX1.1-pro",
        "label": "FLUX Premium",
        "source": "remote",
    },
]

# Popular models that can be pulled into an Ollama-like server.  Shown as
# suggestions next to a short local list and as the fallback when discovery
# finds nothing at all.
DOWNLOADABLE_MODEL_NAMES: list[str] = [
    "llama3.1:8b",
    "llama3.1:70b",
    "llama3.2:3b",
    "llama3.2:8b",
    "mistral:7b",
    "codellama:7b",
    "qwen2.5:7b",
    "gemma2:9b",
    "phi3:3.8b",
    "neural-chat:7b",
]

# Persisted client state keys (values are JSON-encoded)
MODELS_CACHE_KEY = "local-models-cache"
CACHE_EXPIRY_KEY = "local-models-cache-expiry"
SELECTED_MODEL_KEY = "selected-model"
