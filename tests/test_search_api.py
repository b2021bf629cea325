import pytest
from fastapi.testclient import TestClient

from medtour.api.main import app
from medtour.api.routes.search import get_aggregator, get_index_gateway
from medtour.api.schemas.search import parse_sorting
from medtour.core.db import get_db
from medtour.search.aggregator import ResultAggregator
from medtour.search.schemas import EntityType


@pytest.fixture
def gateway(make_gateway):
    return make_gateway({EntityType.OBJECT: {1: 1.0, 2: 2.0}, EntityType.CITY: {1: 5.0}})


@pytest.fixture
def client(db, session_factory, gateway):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_index_gateway] = lambda: gateway
    app.dependency_overrides[get_aggregator] = lambda: ResultAggregator(session_factory, gateway, max_workers=2)
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200


def test_search_all(client):
    resp = client.get("/api/en/search/all", params={"q": "spa"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 3
    assert [(item["type"], item["id"]) for item in data["items"]] == [("city", 1), ("object", 2), ("object", 1)]
    assert data["maxScore"] == 5.0


def test_search_all_without_keyword(client):
    data = client.get("/api/ru/search/all").json()
    assert data["total"] == 0
    assert data["items"] == []


def test_unsupported_locale(client):
    resp = client.get("/api/de/search/all", params={"q": "spa"})
    assert resp.status_code == 422
    assert resp.json()["error"] == "UnsupportedLocale"


def test_entity_search(client):
    resp = client.get("/api/en/search/objects", params={"q": "spa"})
    assert resp.status_code == 200
    assert [item["id"] for item in resp.json()["items"]] == [2, 1]
    assert client.get("/api/en/search/publications").status_code == 404


def test_listing_by_url(client):
    resp = client.get("/api/en/search/by-url", params={"url": "russia/cardio"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 3
    assert data["customSeo"]["title"] == "Cardiology in Russia"
    assert data["filterResponse"]["country"]["alias"] == "russia"


def test_listing_with_sorting(client):
    resp = client.get("/api/en/search/by-url", params={"url": "", "sort": "title:desc"})
    assert [item["id"] for item in resp.json()["items"]] == [3, 4, 2, 1]
    resp = client.get("/api/en/search/by-url", params={"url": "", "sort": "distance:asc"})
    assert resp.status_code == 422
    assert resp.json()["error"] == "InvalidSorting"


def test_listing_path_errors(client):
    resp = client.get("/api/en/search/by-url", params={"url": "stars-1/discount"})
    assert resp.status_code == 404
    body = resp.json()
    assert body["error"] == "FilterOrderError"
    assert body["context"]["kind"] == "discount"

    resp = client.get("/api/en/search/by-url", params={"url": "beside-news"})
    assert resp.status_code == 500
    assert resp.json()["error"] == "UnsupportedAnchorType"


def test_multiple_geography(client):
    resp = client.get("/api/en/search/geography/region/1")
    assert resp.status_code == 200
    assert [row["alias"] for row in resp.json()] == ["moscow-region", "krasnodar-krai"]
    assert client.get("/api/en/search/geography/district/1").status_code == 422


def test_geography_search(client):
    resp = client.get("/api/en/search/geography", params={"q": "sochi"})
    assert resp.status_code == 200
    assert [(row["type"], row["alias"]) for row in resp.json()] == [("city", "sochi")]


def test_parse_sorting():
    assert parse_sorting(None) is None
    assert parse_sorting("price:asc, title:DESC") == {"price": "asc", "title": "desc"}
    assert parse_sorting("popular") == {"popular": "asc"}
