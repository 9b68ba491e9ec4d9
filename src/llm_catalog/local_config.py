"""
local_config.py — Loader for the on-disk local provider configuration.

The provider is selected by ``LOC_LLM_NAME``; its settings live in a
line-oriented file at ``<local_config_root>/<provider>/conf``::

    server = "0.0.0.0:11434"
    models = "ollama list"

Only ``server`` and ``models`` are meaningful.  A missing or unreadable file
is logged and treated as empty; the loader never raises.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

from llm_catalog.config import LOCAL_LLM_ENV, ConfigSources, settings
from llm_catalog.models import LocalProviderConfig

logger = logging.getLogger(__name__)

_SERVER_RE = re.compile(r'server\s*=\s*"(?P<value>[^"]*)"')
_MODELS_RE = re.compile(r'models\s*=\s*"(?P<value>[^"]*)"')
_SEGMENT_SPLIT_RE = re.compile(r"[-_\s]+")

_ALL_INTERFACES = "0.0.0.0"
_LOOPBACK = "127.0.0.1"


def format_display_name(value: Optional[str]) -> str:
    """``"lm-studio"`` → ``"Lm Studio"``; empty input gives ``""``."""
    if not value:
        return ""
    parts = [p for p in _SEGMENT_SPLIT_RE.split(value) if p]
    return " ".join(p[0].upper() + p[1:] for p in parts)


def normalize_server_address(server: Optional[str]) -> Optional[str]:
    """Turn a raw ``server`` value into a URL a client on this host can reach.

    Pure and idempotent: no network access, and normalizing an already
    normalized address returns it unchanged.
    """
    if not server:
        return None
    trimmed = server.strip()
    if not trimmed:
        return None
    sanitized = trimmed.replace(_ALL_INTERFACES, _LOOPBACK)
    if sanitized.startswith(("http://", "https://")):
        return sanitized
    return f"http://{sanitized}"


def resolve_config_root(root: Optional[str] = None) -> Path:
    base = Path(root or settings.local_config_root)
    if not base.is_absolute():
        base = Path.cwd() / base
    return base


def local_config_path(provider_id: str, root: Optional[str] = None) -> Path:
    return resolve_config_root(root) / provider_id / "conf"


def _read_config_file(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Unable to read local LLM config at %s: %s", path, exc)
        return None


def _match(pattern: re.Pattern, content: Optional[str]) -> Optional[str]:
    if content is None:
        return None
    m = pattern.search(content)
    return m.group("value") if m else None


def load_local_provider_config(
    sources: Optional[ConfigSources] = None,
    root: Optional[str] = None,
) -> Optional[LocalProviderConfig]:
    """Load the configured local provider, or ``None`` when none is selected."""
    if sources is None:
        sources = ConfigSources.default()
    provider_id = sources.get(LOCAL_LLM_ENV)
    if not provider_id:
        return None

    path = local_config_path(provider_id, root)
    content = _read_config_file(path)
    server = _match(_SERVER_RE, content)

    cfg = LocalProviderConfig(
        provider_id=provider_id,
        display_name=format_display_name(provider_id) or provider_id,
        config_path=str(path),
        server=server,
        http_url=normalize_server_address(server),
        models_command=_match(_MODELS_RE, content),
    )
    logger.debug("Loaded local provider config %s (http_url=%s)", provider_id, cfg.http_url)
    return cfg
