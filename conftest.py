import os

# Keep module-level engine creation away from PostgreSQL during tests
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from medtour.core.db import Base  # noqa: E402
from medtour.catalog.models import (  # noqa: E402
    City,
    Country,
    Disease,
    MedicalObject,
    MedicalProfile,
    Mood,
    Region,
    SeoFilterUrl,
    SeoInformation,
    SeoTemplate,
    Service,
    Therapy,
    object_medical_profile_exclude_diseases,
)
from medtour.search.errors import IndexUnavailable  # noqa: E402
from medtour.search.localization import ensure_locale  # noqa: E402
from medtour.search.schemas import IndexHit, IndexHits  # noqa: E402


class FakeGateway:
    """In-memory index: {entity_type: {id: score or (score, highlight)}}"""

    def __init__(self, hits_by_type=None, fail=False):
        self.hits_by_type = hits_by_type or {}
        self.fail = fail
        self.calls = []

    def search(self, entity, locale, keyword):
        ensure_locale(locale)
        self.calls.append((entity, locale, keyword))
        if self.fail:
            raise IndexUnavailable("index down")
        if not keyword:
            return IndexHits()
        result = IndexHits()
        for entity_id, value in self.hits_by_type.get(entity, {}).items():
            score, highlight = value if isinstance(value, tuple) else (value, {})
            result.ids.append(entity_id)
            result.hits[entity_id] = IndexHit(score=score, highlight=highlight)
        scores = [hit.score for hit in result.hits.values() if hit.score is not None]
        result.max_score = max(scores) if scores else None
        return result


@pytest.fixture
def make_gateway():
    return FakeGateway


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'medtour.db'}",
        connect_args={"check_same_thread": False},
        future=True,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def empty_db(session_factory):
    db = session_factory()
    yield db
    db.close()


def seed_catalog(db):
    """Small catalog: two countries, two regions, three cities, six objects"""
    db.add_all([
        Country(id=1, name_ru="Россия", name_en="Russia", alias="russia", latitude=55.75, longitude=37.61,
                viewing_count=100, description_ru="Страна", description_en="Country"),
        Country(id=2, name_ru="Грузия", name_en="Georgia", alias="georgia", latitude=41.7, longitude=44.8,
                viewing_count=50),
    ])
    db.add_all([
        Region(id=1, country_id=1, name_ru="Подмосковье", name_en="Moscow region", alias="moscow-region",
               latitude=55.5, longitude=37.5, viewing_count=40),
        Region(id=2, country_id=1, name_ru="Краснодарский край", name_en="Krasnodar krai", alias="krasnodar-krai",
               latitude=45.0, longitude=39.0, viewing_count=30),
    ])
    db.add_all([
        City(id=1, country_id=1, region_id=1, name_ru="Москва", name_en="Moscow", alias="moscow",
             latitude=55.75, longitude=37.62, viewing_count=90),
        City(id=2, country_id=1, region_id=1, name_ru="Звенигород", name_en="Zvenigorod", alias="zvenigorod",
             latitude=55.73, longitude=36.85, viewing_count=20),
        City(id=3, country_id=1, region_id=2, name_ru="Сочи", name_en="Sochi", alias="sochi",
             latitude=43.6, longitude=39.73, viewing_count=80),
    ])
    db.flush()

    cardio = MedicalProfile(id=1, name_ru="Кардиология", name_en="Cardiology", alias="cardio", basic=True,
                            viewing_count=10, description_en="Heart")
    neuro = MedicalProfile(id=2, name_ru="Неврология", name_en="Neurology", alias="neuro", viewing_count=5)
    retired = MedicalProfile(id=3, name_ru="Старый", name_en="Retired", alias="retired", active=False)
    hypertension = Disease(id=1, name_ru="Гипертония", name_en="Hypertension", alias="hypertension",
                           viewing_count=3, medical_profiles=[cardio])
    migraine = Disease(id=2, name_ru="Мигрень", name_en="Migraine", alias="migraine",
                       viewing_count=2, medical_profiles=[neuro])
    mud = Therapy(id=1, name_ru="Грязелечение", name_en="Mud therapy", alias="mud", viewing_count=4)
    water = Therapy(id=2, name_ru="Минеральные воды", name_en="Mineral water", alias="mineral-water",
                    viewing_count=1)
    pool = Service(id=1, name_ru="Бассейн", name_en="Pool", alias="pool", is_filter=True)
    wifi = Service(id=2, name_ru="Вайфай", name_en="Wi-Fi", alias="wifi", is_filter=False)
    active = Mood(id=1, name_ru="Активный", name_en="Active", alias="active", image="active.png")
    relax = Mood(id=2, name_ru="Отдых", name_en="Relax", alias="relax", image="relax.png")
    db.add_all([cardio, neuro, retired, hypertension, migraine, mud, water, pool, wifi, active, relax])

    db.add_all([
        MedicalObject(id=1, title_ru="Санаторий <i>Альфа</i>", title_en="Alpha Spa", alias="sanatorium-alpha",
                      stars=3, country_id=1, region_id=1, city_id=1, lat=55.76, lon=37.63, in_action=True,
                      priority_of_showing=5, viewing_count=10, min_price=100.0,
                      medical_profiles=[cardio, neuro], therapies=[mud], services=[pool], moods=[active]),
        MedicalObject(id=2, title_ru="Бета Спа", title_en="Beta Spa", alias="beta-spa",
                      stars=4, country_id=1, region_id=1, city_id=2, lat=55.70, lon=36.90,
                      priority_of_showing=3, viewing_count=30, min_price=50.0,
                      medical_profiles=[cardio], therapies=[mud, water], services=[pool, wifi], moods=[relax]),
        MedicalObject(id=3, title_ru="Гамма Резорт", title_en="Gamma Resort", alias="gamma-resort",
                      stars=5, country_id=1, region_id=2, city_id=3, lat=43.59, lon=39.72, expensive=True,
                      priority_of_showing=1, viewing_count=20, min_price=200.0,
                      medical_profiles=[cardio, neuro], therapies=[water], moods=[active, relax]),
        MedicalObject(id=4, title_ru="Дельта Клиника", title_en="Delta Clinic", alias="delta-clinic",
                      stars=4, country_id=1, region_id=2, city_id=3, lat=None, lon=None,
                      priority_of_showing=2, viewing_count=5,
                      medical_profiles=[neuro]),
        MedicalObject(id=5, title_ru="Скрытый", title_en="Hidden Spa", alias="hidden", stars=3,
                      country_id=1, region_id=1, city_id=1, lat=55.75, lon=37.6, is_visible=False,
                      medical_profiles=[cardio]),
        MedicalObject(id=6, title_ru="Удалённый", title_en="Deleted Spa", alias="deleted", stars=3,
                      country_id=1, region_id=1, city_id=1, lat=55.75, lon=37.6, is_deleted=True,
                      medical_profiles=[cardio]),
    ])
    db.flush()
    # Gamma Resort does not treat hypertension although it offers cardiology
    db.execute(object_medical_profile_exclude_diseases.insert().values(
        object_id=3, medical_profile_id=1, disease_id=1))

    db.add_all([
        SeoInformation(url="russia", order=1, for_="country", country_id=1),
        SeoInformation(url="moscow-region", order=2, for_="region", region_id=1),
        SeoInformation(url="krasnodar-krai", order=2, for_="region", region_id=2),
        SeoInformation(url="moscow", order=3, for_="city", city_id=1),
        SeoInformation(url="zvenigorod", order=3, for_="city", city_id=2),
        SeoInformation(url="sochi", order=3, for_="city", city_id=3),
        SeoInformation(url="cardio", order=4, for_="medical_profile", medical_profile_id=1),
        SeoInformation(url="neuro", order=4, for_="medical_profile", medical_profile_id=2),
        SeoInformation(url="hypertension", order=5, for_="disease", disease_id=1),
        SeoInformation(url="migraine", order=5, for_="disease", disease_id=2),
        SeoInformation(url="mud", order=6, for_="therapy", therapy_id=1),
        SeoInformation(url="mineral-water", order=6, for_="therapy", therapy_id=2),
        SeoInformation(url="pool", order=7, for_="service", service_id=1),
        SeoInformation(url="sanatorium-alpha", order=None, for_="object", object_id=1),
        SeoInformation(url="news", order=None, for_="publication"),
        SeoInformation(url="ghost-city", order=None, for_="city", city_id=99),
    ])
    db.add_all([
        SeoTemplate(for_=kind, title_ru=f"{kind} ru", title_en=f"{kind} en",
                    meta_description_ru=f"{kind} meta ru", meta_description_en=f"{kind} meta en",
                    text_ru=f"{kind} text ru", text_en=f"{kind} text en")
        for kind in ("discount", "stars", "beside", "city", "region", "country", "medical_profiles")
    ])
    db.add(SeoFilterUrl(url="russia/cardio", title_ru="Кардиология в России", title_en="Cardiology in Russia",
                        description_en="Custom description", text_en="Custom text"))
    db.commit()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    seed_catalog(session)
    yield session
    session.close()
