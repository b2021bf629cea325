from medtour.catalog.models import SeoTemplate
from medtour.search.seo import SeoTemplateSelector, active_template_kinds


def filter_response(**overrides):
    response = {
        "discount": None,
        "stars": None,
        "beside": None,
        "country": None,
        "region": None,
        "city": None,
        "therapies": [],
        "medical_profiles": [],
        "diseases": [],
        "services": [],
    }
    response.update(overrides)
    return response


def test_active_kinds():
    response = filter_response(
        discount=True,
        stars=[],
        city={"id": 1},
        therapies=[{"id": 1}],
        medical_profiles=[{"id": 1}, {"id": 2}],
    )
    assert active_template_kinds(response) == ["discount", "city", "therapies"]


def test_no_active_kinds():
    assert active_template_kinds(filter_response()) == []


def test_select_skips_kinds_without_template(db):
    selector = SeoTemplateSelector(db)
    response = filter_response(discount=True, city={"id": 1}, therapies=[{"id": 1}])
    templates = selector.select(response, "en")
    assert set(templates) == {"discount", "city"}
    assert templates["city"] == {
        "for": "city",
        "title": "city en",
        "meta_description": "city meta en",
        "text": "city text en",
    }


def test_select_first_template_per_kind(db):
    db.add(SeoTemplate(for_="stars", title_ru="второй", title_en="second"))
    db.commit()
    templates = SeoTemplateSelector(db).select(filter_response(stars=[4]), "ru")
    assert templates["stars"]["title"] == "stars ru"


def test_custom_seo_for_literal_url(db):
    selector = SeoTemplateSelector(db)
    custom = selector.custom_seo("russia/cardio", "en")
    assert custom == {
        "url": "russia/cardio",
        "title": "Cardiology in Russia",
        "description": "Custom description",
        "text": "Custom text",
    }
    assert selector.custom_seo("cardio", "en") is None
    assert selector.custom_seo(None, "en") is None
