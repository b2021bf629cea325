import math
from sqlalchemy import Boolean, Column, Integer, String, Text, Float, ForeignKey, Table
from sqlalchemy.orm import relationship
from medtour.core.db import Base


# Association tables (object <-> facet value)
object_medical_profiles = Table(
    "object_medical_profiles",
    Base.metadata,
    Column("object_id", Integer, ForeignKey("objects.id", ondelete="CASCADE"), primary_key=True),
    Column("medical_profile_id", Integer, ForeignKey("medical_profiles.id", ondelete="CASCADE"), primary_key=True),
)

object_therapies = Table(
    "object_therapies",
    Base.metadata,
    Column("object_id", Integer, ForeignKey("objects.id", ondelete="CASCADE"), primary_key=True),
    Column("therapy_id", Integer, ForeignKey("therapies.id", ondelete="CASCADE"), primary_key=True),
)

object_services = Table(
    "object_services",
    Base.metadata,
    Column("object_id", Integer, ForeignKey("objects.id", ondelete="CASCADE"), primary_key=True),
    Column("service_id", Integer, ForeignKey("services.id", ondelete="CASCADE"), primary_key=True),
)

object_moods = Table(
    "object_moods",
    Base.metadata,
    Column("object_id", Integer, ForeignKey("objects.id", ondelete="CASCADE"), primary_key=True),
    Column("mood_id", Integer, ForeignKey("moods.id", ondelete="CASCADE"), primary_key=True),
)

# Global disease <-> medical profile association
disease_medical_profile = Table(
    "disease_medical_profile",
    Base.metadata,
    Column("disease_id", Integer, ForeignKey("diseases.id", ondelete="CASCADE"), primary_key=True),
    Column("medical_profile_id", Integer, ForeignKey("medical_profiles.id", ondelete="CASCADE"), primary_key=True),
)

# Per-object override: disease removed from an otherwise associated medical profile
object_medical_profile_exclude_diseases = Table(
    "object_medical_profile_exclude_diseases",
    Base.metadata,
    Column("object_id", Integer, ForeignKey("objects.id", ondelete="CASCADE"), primary_key=True),
    Column("medical_profile_id", Integer, ForeignKey("medical_profiles.id", ondelete="CASCADE"), primary_key=True),
    Column("disease_id", Integer, ForeignKey("diseases.id", ondelete="CASCADE"), primary_key=True),
)


class Country(Base):
    __tablename__ = "countries"

    id = Column(Integer, primary_key=True, index=True)
    name_ru = Column(Text)
    name_en = Column(Text)
    description_ru = Column(Text, nullable=True)
    description_en = Column(Text, nullable=True)
    crop_image = Column(Text, nullable=True)
    alias = Column(String(255), index=True)
    is_visible = Column(Boolean, default=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    viewing_count = Column(Integer, default=0)

    regions = relationship("Region", back_populates="country")


class Region(Base):
    __tablename__ = "regions"

    id = Column(Integer, primary_key=True, index=True)
    country_id = Column(Integer, ForeignKey("countries.id"), nullable=True)
    name_ru = Column(Text)
    name_en = Column(Text)
    description_ru = Column(Text, nullable=True)
    description_en = Column(Text, nullable=True)
    crop_image = Column(Text, nullable=True)
    alias = Column(String(255), index=True)
    is_visible = Column(Boolean, default=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    viewing_count = Column(Integer, default=0)

    country = relationship("Country", back_populates="regions")
    cities = relationship("City", back_populates="region")


class City(Base):
    __tablename__ = "cities"

    id = Column(Integer, primary_key=True, index=True)
    country_id = Column(Integer, ForeignKey("countries.id"), nullable=True)
    region_id = Column(Integer, ForeignKey("regions.id"), nullable=True)
    name_ru = Column(Text)
    name_en = Column(Text)
    description_ru = Column(Text, nullable=True)
    description_en = Column(Text, nullable=True)
    crop_image = Column(Text, nullable=True)
    alias = Column(String(255), index=True)
    is_visible = Column(Boolean, default=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    viewing_count = Column(Integer, default=0)

    region = relationship("Region", back_populates="cities")
    country = relationship("Country")


class MedicalObject(Base):
    """Medical-tourism facility (sanatorium, clinic, resort hotel)"""
    __tablename__ = "objects"

    id = Column(Integer, primary_key=True, index=True)
    title_ru = Column(Text)
    title_en = Column(Text)
    description_ru = Column(Text, nullable=True)
    description_en = Column(Text, nullable=True)
    alias = Column(String(255), index=True)
    stars = Column(Integer, nullable=True)  # 1..5

    # Geography
    country_id = Column(Integer, ForeignKey("countries.id"), nullable=True)
    region_id = Column(Integer, ForeignKey("regions.id"), nullable=True)
    city_id = Column(Integer, ForeignKey("cities.id"), nullable=True)
    lat = Column(Float, nullable=True)
    lon = Column(Float, nullable=True)

    # Visibility and listing
    is_deleted = Column(Boolean, default=False)
    is_visible = Column(Boolean, default=True)
    in_action = Column(Boolean, default=False)  # discount running
    on_main_page = Column(Boolean, default=False)
    priority_of_showing = Column(Integer, default=0)
    viewing_count = Column(Integer, default=0)

    # Ratings and prices
    full_rating = Column(Float, nullable=True)
    min_price = Column(Float, nullable=True)
    expensive = Column(Boolean, default=False)
    street_view_link = Column(Text, nullable=True)

    country = relationship("Country")
    region = relationship("Region")
    city = relationship("City")
    medical_profiles = relationship("MedicalProfile", secondary=object_medical_profiles, back_populates="objects")
    therapies = relationship("Therapy", secondary=object_therapies, back_populates="objects")
    services = relationship("Service", secondary=object_services, back_populates="objects")
    moods = relationship("Mood", secondary=object_moods)

    def has_coordinates(self) -> bool:
        """Coordinates are present and finite"""
        if self.lat is None or self.lon is None:
            return False
        return not (math.isnan(self.lat) or math.isnan(self.lon) or
                    math.isinf(self.lat) or math.isinf(self.lon))


class MedicalProfile(Base):
    __tablename__ = "medical_profiles"

    id = Column(Integer, primary_key=True, index=True)
    name_ru = Column(Text)
    name_en = Column(Text)
    description_ru = Column(Text, nullable=True)
    description_en = Column(Text, nullable=True)
    alias = Column(String(255), index=True)
    active = Column(Boolean, default=True)
    basic = Column(Boolean, default=False)
    viewing_count = Column(Integer, default=0)

    objects = relationship("MedicalObject", secondary=object_medical_profiles, back_populates="medical_profiles")
    diseases = relationship("Disease", secondary=disease_medical_profile, back_populates="medical_profiles")


class Disease(Base):
    __tablename__ = "diseases"

    id = Column(Integer, primary_key=True, index=True)
    name_ru = Column(Text)
    name_en = Column(Text)
    description_ru = Column(Text, nullable=True)
    description_en = Column(Text, nullable=True)
    alias = Column(String(255), index=True)
    active = Column(Boolean, default=True)
    viewing_count = Column(Integer, default=0)

    medical_profiles = relationship("MedicalProfile", secondary=disease_medical_profile, back_populates="diseases")


class Therapy(Base):
    __tablename__ = "therapies"

    id = Column(Integer, primary_key=True, index=True)
    name_ru = Column(Text)
    name_en = Column(Text)
    description_ru = Column(Text, nullable=True)
    description_en = Column(Text, nullable=True)
    alias = Column(String(255), index=True)
    active = Column(Boolean, default=True)
    viewing_count = Column(Integer, default=0)

    objects = relationship("MedicalObject", secondary=object_therapies, back_populates="therapies")


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    name_ru = Column(Text)
    name_en = Column(Text)
    alias = Column(String(255), index=True)
    is_filter = Column(Boolean, default=False)  # offered as a listing filter

    objects = relationship("MedicalObject", secondary=object_services, back_populates="services")


class Mood(Base):
    __tablename__ = "moods"

    id = Column(Integer, primary_key=True, index=True)
    name_ru = Column(Text)
    name_en = Column(Text)
    alias = Column(String(255), index=True)
    image = Column(Text, nullable=True)


class SeoInformation(Base):
    """SEO alias dictionary: alias -> entity + ordering rank"""
    __tablename__ = "seo_information"

    id = Column(Integer, primary_key=True, index=True)
    url = Column(String(255), index=True)  # the alias used in filter paths
    order = Column(Integer, nullable=True)  # rank of the alias inside a filter path
    for_ = Column("for", String(50), nullable=True)  # entity kind label
    title_ru = Column(Text, nullable=True)
    title_en = Column(Text, nullable=True)

    country_id = Column(Integer, ForeignKey("countries.id"), nullable=True)
    region_id = Column(Integer, ForeignKey("regions.id"), nullable=True)
    city_id = Column(Integer, ForeignKey("cities.id"), nullable=True)
    object_id = Column(Integer, ForeignKey("objects.id"), nullable=True)
    medical_profile_id = Column(Integer, ForeignKey("medical_profiles.id"), nullable=True)
    disease_id = Column(Integer, ForeignKey("diseases.id"), nullable=True)
    therapy_id = Column(Integer, ForeignKey("therapies.id"), nullable=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)


class SeoTemplate(Base):
    """Per-facet SEO text template for filtered listings"""
    __tablename__ = "seo_templates"

    id = Column(Integer, primary_key=True, index=True)
    for_ = Column("for", String(50), nullable=True)  # facet kind
    title_ru = Column(Text, nullable=True)
    title_en = Column(Text, nullable=True)
    meta_description_ru = Column(Text, nullable=True)
    meta_description_en = Column(Text, nullable=True)
    text_ru = Column(Text, nullable=True)
    text_en = Column(Text, nullable=True)


class SeoFilterUrl(Base):
    """Custom SEO metadata registered for one literal filter URL"""
    __tablename__ = "seo_filter_urls"

    id = Column(Integer, primary_key=True, index=True)
    url = Column(Text, index=True)
    title_ru = Column(Text, nullable=True)
    title_en = Column(Text, nullable=True)
    description_ru = Column(Text, nullable=True)
    description_en = Column(Text, nullable=True)
    text_ru = Column(Text, nullable=True)
    text_en = Column(Text, nullable=True)
