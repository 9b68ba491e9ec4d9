import asyncio

import httpx
import pytest

from llm_catalog.discovery import (
    DiscoveryError,
    LMStudioSource,
    LocalModelDiscovery,
    OllamaSource,
    fetch_ollama_tags,
)
from llm_catalog.models import DiscoveredModel, LocalProvider, LocalProviderConfig

BOUNDARY_URL = "http://catalog.test/local-models"
LMSTUDIO_BASE = "http://lmstudio.test"


def _transport(ollama, lmstudio):
    """Route catalog.test to ``ollama`` and everything else to ``lmstudio``.

    Each outcome is an httpx.Response or an exception to raise.
    """

    def handler(request):
        outcome = ollama if request.url.host == "catalog.test" else lmstudio
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return httpx.MockTransport(handler)


def _discovery(transport):
    return LocalModelDiscovery(
        ollama=OllamaSource(BOUNDARY_URL, transport=transport),
        lmstudio=LMStudioSource(LMSTUDIO_BASE, transport=transport),
    )


class TestMultiSourceDiscovery:
    @pytest.mark.asyncio
    async def test_both_sources_up(self):
        transport = _transport(
            httpx.Response(
                200,
                json={
                    "providerId": "ollama",
                    "providerLabel": "Ollama",
                    "config": {"command": "ollama list"},
                    "models": [{"name": "llama3.1:8b"}, {"name": "mistral:7b"}],
                    "error": None,
                },
            ),
            httpx.Response(200, json={"data": [{"id": "qwen2.5-7b-instruct"}]}),
        )

        result = await _discovery(transport).discover()

        assert [m.id for m in result.models] == [
            "ollama-llama3.1:8b",
            "ollama-mistral:7b",
            "lmstudio-qwen2.5-7b-instruct",
        ]
        assert result.models[2].provider is LocalProvider.LMSTUDIO
        assert result.models[2].name == "qwen2.5-7b-instruct"
        assert result.provider_label == "Ollama"
        assert result.command == "ollama list"
        assert result.errors == {}

    @pytest.mark.asyncio
    async def test_lmstudio_timeout_keeps_ollama_models(self):
        transport = _transport(
            httpx.Response(200, json={"models": [{"name": "llama3.1:8b"}]}),
            httpx.ReadTimeout("timed out"),
        )

        result = await _discovery(transport).discover()

        assert result.models == [
            DiscoveredModel(id="ollama-llama3.1:8b", name="llama3.1:8b", provider=LocalProvider.OLLAMA)
        ]
        assert result.provider_label == "Ollama"
        assert list(result.errors) == ["lmstudio"]

    @pytest.mark.asyncio
    async def test_ollama_failure_keeps_lmstudio_models(self):
        transport = _transport(
            httpx.Response(500),
            httpx.Response(200, json={"data": [{"id": "phi-3"}]}),
        )

        result = await _discovery(transport).discover()

        assert [m.id for m in result.models] == ["lmstudio-phi-3"]
        assert list(result.errors) == ["ollama"]
        assert "500" in result.errors["ollama"]
        assert result.provider_label == "Ollama"
        assert result.command is None

    @pytest.mark.asyncio
    async def test_both_down_is_empty_not_an_error(self):
        transport = _transport(
            httpx.ConnectError("connection refused"),
            httpx.ConnectError("connection refused"),
        )

        result = await _discovery(transport).discover()

        assert result.models == []
        assert set(result.errors) == {"ollama", "lmstudio"}
        assert result.provider_label == "Ollama"

    @pytest.mark.asyncio
    async def test_shape_mismatch_degrades_per_source(self):
        transport = _transport(
            httpx.Response(200, text="<html>not json</html>"),
            httpx.Response(200, json={"data": "nope"}),
        )

        result = await _discovery(transport).discover()

        assert result.models == []
        assert set(result.errors) == {"ollama", "lmstudio"}

    @pytest.mark.asyncio
    async def test_entries_without_names_are_dropped(self):
        transport = _transport(
            httpx.Response(
                200,
                json={"models": [{"name": "a"}, {"size": 1}, {"name": 5}, "x", {"name": ""}]},
            ),
            httpx.Response(200, json={"data": [{"id": "m"}, {"id": None}, {}]}),
        )

        result = await _discovery(transport).discover()

        assert [m.id for m in result.models] == ["ollama-a", "lmstudio-m"]
        assert result.errors == {}

    @pytest.mark.asyncio
    async def test_in_band_boundary_error_is_scoped_to_ollama(self):
        transport = _transport(
            httpx.Response(
                200,
                json={
                    "providerId": "lm-studio",
                    "config": {"command": None},
                    "models": [],
                    "error": "Failed to fetch models: 503 Service Unavailable",
                },
            ),
            httpx.Response(200, json={"data": [{"id": "m"}]}),
        )

        result = await _discovery(transport).discover()

        assert result.errors == {"ollama": "Failed to fetch models: 503 Service Unavailable"}
        assert result.provider_label == "Lm Studio"
        assert [m.id for m in result.models] == ["lmstudio-m"]

    @pytest.mark.asyncio
    async def test_nested_command_shape(self):
        transport = _transport(
            httpx.Response(
                200,
                json={"providerLabel": "  ", "config": {"command": {"models": "ollama list"}}, "models": []},
            ),
            httpx.Response(200, json={"data": []}),
        )

        result = await _discovery(transport).discover()

        assert result.command == "ollama list"
        assert result.provider_label == "Ollama"

    @pytest.mark.asyncio
    async def test_sources_run_concurrently(self):
        started = set()
        both_started = asyncio.Event()

        async def handler(request):
            started.add(request.url.host)
            if len(started) == 2:
                both_started.set()
            # A sequential implementation never gets here for the first source
            await asyncio.wait_for(both_started.wait(), timeout=1)
            if request.url.host == "catalog.test":
                return httpx.Response(200, json={"models": [{"name": "a"}]})
            return httpx.Response(200, json={"data": [{"id": "b"}]})

        result = await _discovery(httpx.MockTransport(handler)).discover()

        assert result.errors == {}
        assert [m.id for m in result.models] == ["ollama-a", "lmstudio-b"]

    @pytest.mark.asyncio
    async def test_unexpected_source_exception_is_absorbed(self):
        class ExplodingSource(LMStudioSource):
            async def fetch(self):
                raise RuntimeError("boom")

        transport = _transport(httpx.Response(200, json={"models": [{"name": "a"}]}), None)
        discovery = LocalModelDiscovery(
            ollama=OllamaSource(BOUNDARY_URL, transport=transport),
            lmstudio=ExplodingSource(LMSTUDIO_BASE),
        )

        result = await discovery.discover()

        assert [m.id for m in result.models] == ["ollama-a"]
        assert result.errors == {"lmstudio": "boom"}


class TestForLocalConfig:
    def _cfg(self, http_url):
        return LocalProviderConfig(
            provider_id="ollama",
            display_name="Ollama Box",
            config_path="/etc/ollama/conf",
            server="0.0.0.0:11434" if http_url else None,
            http_url=http_url,
            models_command="ollama list",
        )

    @pytest.mark.asyncio
    async def test_queries_tags_directly(self):
        def handler(request):
            if request.url.host == "ollama.test":
                assert request.url.path == "/api/tags"
                return httpx.Response(200, json={"models": [{"name": "llama3"}]})
            raise httpx.ConnectError("connection refused", request=request)

        discovery = LocalModelDiscovery.for_local_config(
            self._cfg("http://ollama.test:11434"), transport=httpx.MockTransport(handler)
        )
        result = await discovery.discover()

        assert [m.id for m in result.models] == ["ollama-llama3"]
        assert result.provider_label == "Ollama Box"
        assert result.command == "ollama list"
        assert list(result.errors) == ["lmstudio"]

    @pytest.mark.asyncio
    async def test_malformed_server_address_is_a_source_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"data": [{"id": "m"}]}))

        result = await LocalModelDiscovery.for_local_config(
            self._cfg("http://localhost:abc"), transport=transport
        ).discover()

        assert [m.id for m in result.models] == ["lmstudio-m"]
        assert list(result.errors) == ["ollama"]

    @pytest.mark.asyncio
    async def test_no_server_address_contributes_nothing(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"data": [{"id": "m"}]}))

        result = await LocalModelDiscovery.for_local_config(self._cfg(None), transport=transport).discover()

        assert [m.id for m in result.models] == ["lmstudio-m"]
        assert result.errors == {}
        assert result.provider_label == "Ollama Box"


class TestFetchOllamaTags:
    @pytest.mark.asyncio
    async def test_returns_names(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"models": [{"name": "a"}, {"name": "b"}]})
        )
        async with httpx.AsyncClient(transport=transport) as client:
            assert await fetch_ollama_tags(client, "http://ollama.test/") == ["a", "b"]

    @pytest.mark.asyncio
    async def test_non_2xx_raises_discovery_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(DiscoveryError) as excinfo:
                await fetch_ollama_tags(client, "http://ollama.test")

        assert excinfo.value.status_code == 503
        assert excinfo.value.source == "ollama"
        assert str(excinfo.value) == "Failed to fetch models: 503 Service Unavailable"
