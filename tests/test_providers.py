import httpx
import pytest
import yaml
from pydantic import ValidationError

from conftest import make_settings
from summarize_this.providers.base import ProviderCallError
from summarize_this.providers.catalog import (
    ProviderCatalog,
    ProviderProfile,
    build_client,
    build_provider_pool,
    catalog_from_settings,
    load_catalog,
)
from summarize_this.providers.clients import OllamaProvider


def test_load_catalog_from_yaml(tmp_path):
    path = tmp_path / "providers.yaml"
    path.write_text(
        "providers:\n"
        "  - name: local\n"
        "    kind: ollama\n"
        "    model: mistral\n"
        "    max_concurrency: 2\n"
    )
    catalog = load_catalog(path)
    assert [p.name for p in catalog.providers] == ["local"]
    assert catalog.providers[0].max_concurrency == 2


def test_empty_catalog_file_yields_no_providers(tmp_path):
    path = tmp_path / "providers.yaml"
    path.write_text("")
    assert load_catalog(path).providers == []


def test_duplicate_provider_names_are_rejected(tmp_path):
    path = tmp_path / "providers.yaml"
    path.write_text(
        "providers:\n"
        "  - {name: local, kind: ollama}\n"
        "  - {name: local, kind: openai}\n"
    )
    with pytest.raises(ValidationError):
        load_catalog(path)


def test_invalid_provider_name_is_rejected():
    with pytest.raises(ValidationError):
        ProviderProfile(name="Bad Name", kind="ollama")


def test_openai_profile_without_key_is_skipped(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    settings = make_settings(openai_api_key=None)
    assert build_client(ProviderProfile(name="default", kind="openai"), settings) is None


def test_catalog_from_settings_follows_llm_provider():
    assert catalog_from_settings(make_settings()).providers == []
    catalog = catalog_from_settings(make_settings(llm_provider="ollama", llm_model="phi3"))
    assert catalog.providers[0].name == "default"
    assert catalog.providers[0].model == "phi3"


def test_pool_limits_fall_back_to_settings():
    settings = make_settings(provider_max_concurrency=3, breaker_failure_threshold=7)
    catalog = load_catalog_text(
        "providers:\n  - {name: default, kind: ollama, rate_capacity: 4}\n"
    )
    pool = build_provider_pool(settings, sink=lambda record: None, catalog=catalog)
    slot = pool.slot("default")
    assert isinstance(slot.client, OllamaProvider)
    assert slot.client.base_url == settings.ollama_base_url
    assert slot.bucket.capacity == 4
    assert slot.breaker.failure_threshold == 7


def load_catalog_text(text):
    return ProviderCatalog.model_validate(yaml.safe_load(text))


def _ollama_with(handler):
    provider = OllamaProvider(model="llama3.2", base_url="http://ollama.test")
    provider._client = httpx.AsyncClient(
        base_url=provider.base_url, transport=httpx.MockTransport(handler)
    )
    return provider


@pytest.mark.anyio
async def test_ollama_maps_response_and_usage():
    def handler(request):
        assert request.url.path == "/api/generate"
        return httpx.Response(
            200,
            json={"response": " Short summary. ", "prompt_eval_count": 30, "eval_count": 4},
        )

    provider = _ollama_with(handler)
    response = await provider.summarize("Summarize this", 50, 5.0)
    await provider.close()
    assert response.text == "Short summary."
    assert response.tokens_used == 34
    assert response.model == "llama3.2"


@pytest.mark.anyio
@pytest.mark.parametrize(
    "status_code, kind",
    [(429, "rate_limited"), (400, "invalid_input"), (503, "upstream_error")],
)
async def test_ollama_maps_http_errors(status_code, kind):
    provider = _ollama_with(lambda request: httpx.Response(status_code, json={}))
    with pytest.raises(ProviderCallError) as excinfo:
        await provider.summarize("Summarize this", 50, 5.0)
    await provider.close()
    assert excinfo.value.kind == kind
