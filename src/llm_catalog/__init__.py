"""Public package surface for llm_catalog.

Expose the primary entry points used by consumers of the package.
"""

__version__ = "0.1.0"

from llm_catalog.app_config import get_app_config, resolve_image_models, resolve_remote_text_config
from llm_catalog.cache import DiscoveryCache, LocalModelsService, LocalModelsView
from llm_catalog.config import ConfigSources, settings
from llm_catalog.discovery import DiscoveryError, LocalModelDiscovery
from llm_catalog.local_config import load_local_provider_config, normalize_server_address
from llm_catalog.models import (
    AppConfig,
    DiscoveredModel,
    DiscoveryResult,
    LocalProvider,
    LocalProviderConfig,
    SelectedModel,
)
from llm_catalog.selection import SelectionMemory

__all__ = [
    "AppConfig",
    "ConfigSources",
    "DiscoveredModel",
    "DiscoveryCache",
    "DiscoveryError",
    "DiscoveryResult",
    "LocalModelDiscovery",
    "LocalModelsService",
    "LocalModelsView",
    "LocalProvider",
    "LocalProviderConfig",
    "SelectedModel",
    "SelectionMemory",
    "__version__",
    "get_app_config",
    "load_local_provider_config",
    "normalize_server_address",
    "resolve_image_models",
    "resolve_remote_text_config",
    "settings",
]
