"""
app_config.py — Assemble the application configuration snapshot.

Responsibilities:
  • Resolve the remote text provider (present only when actually configured)
  • Resolve the image model catalog, falling back to the built-in FLUX list
  • Compose both with the local provider config into one frozen AppConfig,
    substituting a default local provider so ``llm.local`` is never null
  • Client side: fetch the /config boundary and fall back to the default
    snapshot when the service is unreachable
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import httpx

from llm_catalog.config import (
    DEFAULT_IMAGE_MODELS,
    DEFAULT_LOCAL_PROVIDER_ID,
    DEFAULT_PROVIDER_LABEL,
    LOCAL_IMAGE_ENV,
    REMOTE_IMAGE_ENV,
    REMOTE_LLM_ENV,
    REMOTE_TEXT_PROVIDER,
    ConfigSources,
    settings,
)
from llm_catalog.local_config import load_local_provider_config, local_config_path
from llm_catalog.models import (
    AppConfig,
    ImageConfig,
    ImageModelOption,
    ImageModelSource,
    LLMConfig,
    LocalProviderConfig,
    RemoteTextConfig,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageCatalog:
    models: Tuple[ImageModelOption, ...]
    remote_model_id: Optional[str]
    local_model_id: Optional[str]


def _default_image_models() -> Tuple[ImageModelOption, ...]:
    return tuple(ImageModelOption.model_validate(m) for m in DEFAULT_IMAGE_MODELS)


def resolve_image_models(sources: Optional[ConfigSources] = None) -> ImageCatalog:
    if sources is None:
        sources = ConfigSources.default()
    remote_model_id = sources.get(REMOTE_IMAGE_ENV)
    local_model_id = sources.get(LOCAL_IMAGE_ENV)

    configured: list[ImageModelOption] = []
    if remote_model_id:
        configured.append(
            ImageModelOption(id=remote_model_id, label=remote_model_id, source=ImageModelSource.REMOTE)
        )
    # Same id for both roles is listed once, as the remote entry
    if local_model_id and local_model_id != remote_model_id:
        configured.append(
            ImageModelOption(id=local_model_id, label=local_model_id, source=ImageModelSource.LOCAL)
        )

    if not configured:
        defaults = _default_image_models()
        return ImageCatalog(
            models=defaults,
            remote_model_id=defaults[0].id if defaults else None,
            local_model_id=None,
        )

    return ImageCatalog(
        models=tuple(configured),
        remote_model_id=remote_model_id,
        local_model_id=local_model_id,
    )


def resolve_remote_text_config(sources: Optional[ConfigSources] = None) -> Optional[RemoteTextConfig]:
    """Return the remote text provider, or ``None`` — never a half-filled object."""
    if sources is None:
        sources = ConfigSources.default()
    name = sources.get(REMOTE_LLM_ENV)
    if not name:
        return None
    return RemoteTextConfig(provider=REMOTE_TEXT_PROVIDER, display_name=name, is_configured=True)


def default_local_provider_config(root: Optional[str] = None) -> LocalProviderConfig:
    return LocalProviderConfig(
        provider_id=DEFAULT_LOCAL_PROVIDER_ID,
        display_name=DEFAULT_PROVIDER_LABEL,
        config_path=str(local_config_path(DEFAULT_LOCAL_PROVIDER_ID, root)),
    )


def get_app_config(
    sources: Optional[ConfigSources] = None,
    root: Optional[str] = None,
) -> AppConfig:
    """Build one AppConfig snapshot from the configured sources."""
    if sources is None:
        sources = ConfigSources.default()
    local = load_local_provider_config(sources, root) or default_local_provider_config(root)
    image = resolve_image_models(sources)

    return AppConfig(
        llm=LLMConfig(remote=resolve_remote_text_config(sources), local=local),
        image=ImageConfig(
            models=image.models,
            remote_model_id=image.remote_model_id,
            local_model_id=image.local_model_id,
        ),
    )


def default_app_config() -> AppConfig:
    """The snapshot produced when nothing at all is configured."""
    return get_app_config(ConfigSources())


async def fetch_app_config(
    url: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AppConfig:
    """Fetch AppConfig from the /config boundary; default snapshot on any failure."""
    target = url or settings.app_config_url
    try:
        async with httpx.AsyncClient(timeout=settings.discovery_timeout, transport=transport) as client:
            r = await client.get(target)
            r.raise_for_status()
            return AppConfig.model_validate(r.json())
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
        logger.warning("Failed to load app configuration from %s (%s) — using defaults", target, exc)
        return default_app_config()
