import asyncio

import httpx
import pytest

from raremd.config.config import Settings
from raremd.services.phenotype_catalog import MAX_SEARCH_RESULTS, PhenotypeCatalog


@pytest.fixture
def catalog() -> PhenotypeCatalog:
    catalog = PhenotypeCatalog(Settings(hpo_remote_enabled=False))
    catalog.load_bundled_terms()
    return catalog


def test_load_uses_bundled_terms_when_remote_disabled():
    catalog = PhenotypeCatalog(Settings(hpo_remote_enabled=False))

    count = asyncio.run(catalog.load())

    assert count == len(catalog) > 0
    assert catalog.source == "bundled"
    assert catalog.get_by_id("HP:0001250").label == "Seizures"


def test_load_prefers_remote_terms():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/hpo/terms"
        return httpx.Response(200, json={"terms": [
            {"id": "HP:9000001", "label": "Remote term", "synonyms": ["Far away"]},
        ]})

    catalog = PhenotypeCatalog(
        Settings(hpo_remote_enabled=True, hpo_api_url="https://hpo.example.org/api/hpo"),
        transport=httpx.MockTransport(handler),
    )

    assert asyncio.run(catalog.load()) == 1
    assert catalog.source == "remote"
    assert catalog.search("far")[0].id == "HP:9000001"


@pytest.mark.parametrize("response", [
    httpx.Response(503, text="unavailable"),
    httpx.Response(200, text="not json"),
    httpx.Response(200, json={"terms": []}),
])
def test_load_falls_back_to_bundled_terms(response):
    catalog = PhenotypeCatalog(
        Settings(hpo_remote_enabled=True),
        transport=httpx.MockTransport(lambda request: response),
    )

    asyncio.run(catalog.load())

    assert catalog.source == "bundled"
    assert catalog.get_by_id("HP:0001744") is not None


def test_load_falls_back_on_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    catalog = PhenotypeCatalog(Settings(hpo_remote_enabled=True), transport=httpx.MockTransport(handler))

    asyncio.run(catalog.load())

    assert catalog.source == "bundled"


def test_search_matches_label_case_insensitively(catalog):
    labels = [term.label for term in catalog.search("SPLENO")]
    assert labels == ["Splenomegaly"]


def test_search_matches_id_and_synonyms(catalog):
    assert [t.label for t in catalog.search("hp:0001744")] == ["Splenomegaly"]
    assert [t.label for t in catalog.search("floppy")] == ["Muscular hypotonia"]


def test_search_skips_obsolete_terms(catalog):
    assert catalog.get_by_id("HP:0001257").is_obsolete
    assert catalog.search("spastic") == []
    assert all(not t.is_obsolete for t in catalog.get_all())
    assert len(catalog.get_all()) == len(catalog) - 1


def test_search_is_capped(catalog):
    results = catalog.search("hp:")
    assert len(results) == MAX_SEARCH_RESULTS


def test_search_without_match(catalog):
    assert catalog.search("zzzz") == []


def test_get_by_id_unknown(catalog):
    assert catalog.get_by_id("HP:0000000") is None
