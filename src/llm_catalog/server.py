"""
server.py — FastAPI application exposing the model catalog.

Endpoints:
  GET  /               — liveness probe
  GET  /health         — readiness + configured local provider
  GET  /config         — full AppConfig snapshot
  GET  /local-models   — models of the configured local provider (errors in-band)
  POST /local-models   — model command dispatch (not implemented, 501)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import Depends, FastAPI  # type: ignore[import]
from fastapi.middleware.cors import CORSMiddleware  # type: ignore[import]
from fastapi.responses import JSONResponse  # type: ignore[import]

from llm_catalog.app_config import default_local_provider_config, get_app_config
from llm_catalog.config import ConfigSources, settings
from llm_catalog.discovery import DiscoveryError, fetch_ollama_tags
from llm_catalog.local_config import load_local_provider_config
from llm_catalog.models import (
    LocalModelEntry,
    LocalModelsConfigPayload,
    LocalModelsResponse,
)

logger = logging.getLogger(__name__)

COMMAND_DISPATCH_MESSAGE = (
    "Local model command dispatch is not yet implemented. "
    "Connect the tty WebSocket service to enable live model listing."
)


# ══════════════════════════════════════════════════════════════════════════════
# Dependencies
# ══════════════════════════════════════════════════════════════════════════════


def get_config_sources() -> ConfigSources:
    """Configuration layers for one request (overridden in tests)."""
    return ConfigSources.default()


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=settings.discovery_timeout) as client:
        yield client


# ══════════════════════════════════════════════════════════════════════════════
# FastAPI lifespan (startup / shutdown)
# ══════════════════════════════════════════════════════════════════════════════


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    local = load_local_provider_config()
    if local is None:
        logger.info("No local provider configured — serving defaults")
    else:
        logger.info("Local provider %s (%s)", local.provider_id, local.http_url or "no server address")
    yield
    logger.info("LLM catalog stopped")


# ══════════════════════════════════════════════════════════════════════════════
# App
# ══════════════════════════════════════════════════════════════════════════════

app = FastAPI(
    title="LLM Catalog",
    version="0.1.0",
    description=(
        "Reports which text and image models are available to the application:"
        " configured remote providers, the local provider's config file and"
        " live discovery of locally running model servers."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "User-Agent"],
)


# ══════════════════════════════════════════════════════════════════════════════
# Routes
# ══════════════════════════════════════════════════════════════════════════════


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    """Lightweight health endpoint for probes / browser check."""
    return {"status": "ok", "service": "LLM Catalog"}


@app.get("/health", tags=["Observability"])
async def health(sources: ConfigSources = Depends(get_config_sources)) -> dict[str, Any]:
    local = load_local_provider_config(sources)
    return {
        "status": "healthy",
        "local_provider": local.provider_id if local else None,
    }


@app.get("/config", tags=["Config"])
async def app_config(sources: ConfigSources = Depends(get_config_sources)) -> dict[str, Any]:
    return get_app_config(sources).model_dump(by_alias=True, mode="json")


@app.get("/local-models", tags=["Discovery"])
async def local_models(
    sources: ConfigSources = Depends(get_config_sources),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> dict[str, Any]:
    """List the local provider's models; upstream failures go in ``error`` with a 200."""
    local = load_local_provider_config(sources)

    if local is None:
        fallback = default_local_provider_config()
        payload = LocalModelsResponse(
            provider_id=fallback.provider_id,
            provider_label=fallback.display_name,
            config=LocalModelsConfigPayload.from_local_config(fallback),
        )
        return payload.model_dump(by_alias=True, mode="json")

    models: list[LocalModelEntry] = []
    error: str | None = None

    if local.http_url:
        try:
            names = await fetch_ollama_tags(client, local.http_url)
            models = [LocalModelEntry(name=n) for n in names]
        except DiscoveryError as exc:
            error = str(exc)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            error = str(exc) or "Unknown error fetching local models"
        if error:
            logger.warning("Local models unavailable from %s: %s", local.http_url, error)

    payload = LocalModelsResponse(
        provider_id=local.provider_id,
        provider_label=local.display_name,
        config=LocalModelsConfigPayload.from_local_config(local),
        models=models,
        error=error,
    )
    return payload.model_dump(by_alias=True, mode="json")


@app.post("/local-models", tags=["Discovery"])
async def dispatch_local_model_command(
    sources: ConfigSources = Depends(get_config_sources),
) -> JSONResponse:
    local = load_local_provider_config(sources)
    return JSONResponse(
        status_code=501,
        content={
            "success": False,
            "message": COMMAND_DISPATCH_MESSAGE,
            "config": local.model_dump(by_alias=True, mode="json") if local else None,
        },
    )


def main():
    import argparse

    import uvicorn  # type: ignore[import]
    from dotenv import load_dotenv  # type: ignore[import]

    load_dotenv(settings.dotenv_path, override=False)

    parser = argparse.ArgumentParser(description="Start the LLM catalog server.")
    parser.add_argument("--host", default=settings.host, help="Host to bind to")
    parser.add_argument("--port", type=int, default=settings.port, help="Port to bind to")
    parser.add_argument(
        "--debug",
        action="store_true",
        default=settings.debug,
        help="Enable reload/debug mode",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    uvicorn.run(
        "llm_catalog.server:app",
        host=args.host,
        port=args.port,
        reload=args.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
