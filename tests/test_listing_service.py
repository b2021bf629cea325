import pytest

from medtour.search.errors import FilterOrderError, NotFound, UnsupportedGeographyType
from medtour.search.service import SearchService, create_search_service


@pytest.fixture
def service(db, make_gateway):
    return SearchService(db, make_gateway())


def test_listing_with_custom_seo(service):
    result = service.object_search_by_url("russia/cardio", 10, "en")
    assert result["total"] == 3
    assert [item["id"] for item in result["items"]] == [1, 2, 3]
    assert result["customSeo"]["title"] == "Cardiology in Russia"
    assert result["templates"] is None

    response = result["filterResponse"]
    assert response["country"] == {"id": 1, "name": "Russia", "alias": "russia"}
    assert response["medical_profiles"] == [{"id": 1, "name": "Cardiology", "alias": "cardio"}]
    assert response["therapies"] == []
    assert response["city"] is None
    assert response["block_order"] == ["discount", "aliases", "beside", "stars", "moods"]
    assert response["multiple_geography"] == [{"id": 1, "name": "Russia", "alias": "russia"}]

    data = result["filterData"]
    assert data["objectIds"] == [1, 2, 3]
    assert data["stars"] == [3, 4, 5]
    assert data["medical_profiles"] == [1, 2]
    assert data["services"] == [1]
    # Georgia has no objects
    assert [row["alias"] for row in data["multiple_geography"]] == ["russia"]


def test_region_listing_with_stars_and_templates(service):
    result = service.object_search_by_url("moscow-region/stars-3/stars-4", 10, "en")
    assert result["total"] == 2
    assert result["filterResponse"]["stars"] == [3, 4]
    assert result["customSeo"] is None
    assert set(result["templates"]) == {"stars", "region"}
    siblings = result["filterData"]["multiple_geography"]
    assert [row["alias"] for row in siblings] == ["moscow-region", "krasnodar-krai"]


def test_requested_stars_pruned_to_result(service):
    result = service.object_search_by_url("moscow-region/stars-3/stars-5", 10, "en")
    assert result["total"] == 1
    assert result["filterResponse"]["stars"] == [3]


def test_city_siblings(service):
    result = service.object_search_by_url("zvenigorod", 10, "en")
    assert [item["id"] for item in result["items"]] == [2]
    siblings = result["filterData"]["multiple_geography"]
    assert {row["alias"] for row in siblings} == {"moscow", "zvenigorod"}
    assert "cities_of_region" not in result["filterData"]


def test_mood_listing_offers_moods_of_unfiltered_result(service):
    result = service.object_search_by_url("cardio/mood-active", 10, "en")
    assert [item["id"] for item in result["items"]] == [1, 3]
    assert result["filterResponse"]["moods"][0]["alias"] == "active"
    assert result["filterData"]["moods"] == [1, 2]


def test_moods_alone_offer_no_mood_choice(service):
    result = service.object_search_by_url("mood-relax", 10, "en")
    assert [item["id"] for item in result["items"]] == [2, 3]
    assert result["filterData"]["moods"] is None
    assert result["filterData"]["cities_of_region"] is None


def test_discount_listing(service):
    result = service.object_search_by_url("discount", 10, "ru")
    assert [item["id"] for item in result["items"]] == [1]
    assert result["filterResponse"]["discount"] is True
    assert result["filterData"]["in_action"] is True
    assert "discount" in result["templates"]
    assert result["templates"]["discount"]["title"] == "discount ru"


def test_beside_listing(service):
    result = service.object_search_by_url("beside-sanatorium-alpha", 10, "en")
    assert [item["id"] for item in result["items"]] == [2, 3]
    assert all("distance_m" in item for item in result["items"])
    response = result["filterResponse"]
    assert response["beside"]["type"] == "object"
    assert (response["latitude"], response["longitude"]) == (55.76, 37.63)
    assert "beside" in result["templates"]


def test_caller_coordinates_echoed_without_anchor(service):
    result = service.object_search_by_url("", 10, "en", lat=55.70, lon=36.80)
    assert result["filterResponse"]["latitude"] == 55.70
    assert [item["id"] for item in result["items"]] == [2, 1, 3]
    assert result["templates"] == {}


def test_listing_errors(service):
    with pytest.raises(FilterOrderError):
        service.object_search_by_url("stars-1/discount", 10, "en")
    with pytest.raises(NotFound):
        service.object_search_by_url("atlantis", 10, "en")


def test_multiple_geography(service):
    cities = service.get_multiple_geography(3, "en", "city")
    assert [row["alias"] for row in cities] == ["sochi"]
    with pytest.raises(NotFound):
        service.get_multiple_geography(99, "en", "region")
    with pytest.raises(UnsupportedGeographyType):
        service.get_multiple_geography(1, "en", "district")


def test_geography_search(db):
    service = create_search_service(db)
    items = service.geography_search(10, "mo", "en")
    assert [(row["type"], row["alias"]) for row in items] == [("city", "moscow"), ("region", "moscow-region")]
    items = service.geography_search(10, None, "en", country_ids=[1, 2], city_ids=[], region_ids=[])
    assert [row["alias"] for row in items] == ["russia", "georgia"]
    assert items[0]["description"] == "Country"
    items = service.geography_search(10, None, "en", object_ids=[3])
    assert [(row["type"], row["alias"]) for row in items] == [
        ("city", "sochi"), ("region", "krasnodar-krai"), ("country", "russia"),
    ]
