#!/usr/bin/env python3
"""Per-entity keyword search over the index and the relational store"""

import logging
from typing import Any, Dict, List, Optional
from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Query, Session
from medtour.core.config import settings
from medtour.catalog.models import (
    City,
    Country,
    Disease,
    MedicalObject,
    MedicalProfile,
    Region,
    Service,
    Therapy,
    object_medical_profile_exclude_diseases,
    object_medical_profiles,
    object_services,
    object_therapies,
)
from medtour.search.errors import IndexUnavailable, InvalidSorting
from medtour.search.facets import FacetRepository
from medtour.search.index_gateway import IndexGateway
from medtour.search.localization import LocalizedProjection
from medtour.search.schemas import EntityType, IndexHits, Page, SearchQuery, score_sort_key
from medtour.search.text import like_pattern, normalize_keyword, strip_tags

logger = logging.getLogger(__name__)

SORT_DIRECTIONS = ("asc", "desc")


def visible_objects():
    """Predicates of objects shown to visitors"""
    return and_(MedicalObject.is_visible.is_(True), MedicalObject.is_deleted.is_(False))


def ref(row: Any, projection: LocalizedProjection) -> Optional[Dict[str, Any]]:
    """Compact {id, name} reference to a related geography row"""
    if row is None:
        return None
    return {"id": row.id, "name": projection.value(row, "name"), "alias": row.alias}


class EntitySearcher:
    """Keyword search for one entity type.

    With a keyword the candidate ids come from the full-text index, the
    relational query is restricted to them, and the page is re-sorted by index
    score. Without a keyword only the relational filters apply.
    """

    entity_type: EntityType = None
    model = None
    display_field = "name"
    has_description = True

    def __init__(self, db: Session, gateway: Optional[IndexGateway] = None,
                 failure_mode: Optional[str] = None):
        self.db = db
        self.gateway = gateway or IndexGateway()
        self.failure_mode = failure_mode or settings.index_failure_mode

    def search(self, page: int, page_size: int, keyword: Optional[str], locale: str,
               extended: bool = False, **filters) -> Page:
        projection = LocalizedProjection(locale)
        search_query = SearchQuery(normalize_keyword(keyword), locale, page, page_size)

        query = self.base_query()
        hits = None
        if search_query.keyword is not None:
            query, hits = self.apply_keyword(query, search_query, projection)
        query = self.apply_filters(query, projection, **filters)

        total = query.count()
        rows = (
            self.order(query, projection, filters.get("sorting"))
            .offset(search_query.offset)
            .limit(search_query.page_size)
            .all()
        )
        items = [self.serialize(row, projection, hits, extended, filters) for row in rows]
        items.sort(key=score_sort_key)
        logger.debug("%s search %r: %d of %d", self.entity_type.value, search_query.keyword, len(items), total)
        return Page(page, page_size, total, items, hits.max_score if hits else None)

    # query building

    def base_query(self) -> Query:
        return self.db.query(self.model)

    def apply_keyword(self, query: Query, search_query: SearchQuery, projection: LocalizedProjection):
        try:
            hits = self.gateway.search(self.entity_type, search_query.locale, search_query.keyword)
        except IndexUnavailable:
            if self.failure_mode != "degrade":
                raise
            logger.warning(
                "Index unavailable; %s search degrades to substring match for %r",
                self.entity_type.value, search_query.keyword,
            )
            return query.filter(self.substring_filter(search_query.keyword)), None
        return query.filter(self.model.id.in_(hits.ids)), hits

    def substring_filter(self, keyword: str):
        pattern = like_pattern(keyword)
        return or_(*[
            func.lower(column).like(pattern, escape="\\")
            for column in LocalizedProjection.all_columns(self.model, self.display_field)
        ])

    def apply_filters(self, query: Query, projection: LocalizedProjection, **filters) -> Query:
        return query

    def sort_columns(self, projection: LocalizedProjection) -> Dict[str, Any]:
        """Columns accepted by the `sorting` filter"""
        return {}

    def order(self, query: Query, projection: LocalizedProjection,
              sorting: Optional[Dict[str, str]] = None) -> Query:
        if sorting:
            columns = self.sort_columns(projection)
            for key, direction in sorting.items():
                if key not in columns or str(direction).lower() not in SORT_DIRECTIONS:
                    raise InvalidSorting(key)
                column = columns[key]
                query = query.order_by(column.asc() if direction.lower() == "asc" else column.desc())
        return query.order_by(self.model.viewing_count.desc(), self.model.id.asc())

    # serialization

    def serialize(self, row: Any, projection: LocalizedProjection, hits: Optional[IndexHits],
                  extended: bool, filters: Dict[str, Any]) -> Dict[str, Any]:
        def text(field_name: str) -> Optional[str]:
            highlighted = hits.highlight(row.id, field_name) if hits else None
            return highlighted or strip_tags(projection.value(row, field_name))

        item = {
            "id": row.id,
            self.display_field: text(self.display_field),
            "alias": row.alias,
            "score": hits.score(row.id) if hits else None,
        }
        item.update(self.extra_fields(row, projection, extended))
        if extended and self.has_description:
            item["description"] = text("description")
            count = self.count_objects(row, filters)
            if count is not None:
                item["count_objects"] = count
        return item

    def extra_fields(self, row: Any, projection: LocalizedProjection, extended: bool) -> Dict[str, Any]:
        return {}

    def count_objects(self, row: Any, filters: Dict[str, Any]) -> Optional[int]:
        return None

    def count_linked_objects(self, table, value_column: str, value_id: int, *criteria) -> int:
        """Visible objects linked to one facet value"""
        return (
            self.db.query(func.count(func.distinct(table.c.object_id)))
            .select_from(table)
            .join(MedicalObject, MedicalObject.id == table.c.object_id)
            .filter(table.c[value_column] == value_id, visible_objects(), *criteria)
            .scalar()
        ) or 0


class GeoSearcher(EntitySearcher):
    """Shared filters of countries, regions and cities"""

    object_fk: str = None  # objects column pointing at this entity

    @property
    def object_column(self):
        return getattr(MedicalObject, self.object_fk)

    def apply_filters(self, query: Query, projection: LocalizedProjection, ids: Optional[List[int]] = None,
                      aliases: Optional[List[str]] = None, has_objects: Optional[bool] = None,
                      country_id: Optional[int] = None, sorting: Optional[Dict[str, str]] = None) -> Query:
        if ids is not None:
            query = query.filter(self.model.id.in_(ids))
        if aliases is not None:
            query = query.filter(self.model.alias.in_(aliases))
        else:
            query = query.filter(self.model.is_visible.is_(True))
        if has_objects:
            query = query.filter(self.model.id.in_(select(self.object_column).where(visible_objects())))
        if country_id:
            if not hasattr(self.model, "country_id"):
                raise TypeError(f"{self.entity_type.value} search has no country_id filter")
            query = query.filter(self.model.country_id == int(country_id))
        return query

    def sort_columns(self, projection: LocalizedProjection) -> Dict[str, Any]:
        return {
            "name": projection.column(self.model, "name"),
            "viewing_count": self.model.viewing_count,
            "id": self.model.id,
        }

    def count_objects(self, row: Any, filters: Dict[str, Any]) -> Optional[int]:
        return (
            self.db.query(func.count(MedicalObject.id))
            .filter(self.object_column == row.id, visible_objects())
            .scalar()
        ) or 0

    def extra_fields(self, row: Any, projection: LocalizedProjection, extended: bool) -> Dict[str, Any]:
        fields = {"viewing_count": row.viewing_count}
        if extended:
            fields["image"] = row.crop_image
        return fields


class CitySearcher(GeoSearcher):
    entity_type = EntityType.CITY
    model = City
    object_fk = "city_id"

    def extra_fields(self, row: Any, projection: LocalizedProjection, extended: bool) -> Dict[str, Any]:
        fields = super().extra_fields(row, projection, extended)
        fields.update({
            "country_id": row.country_id,
            "region_id": row.region_id,
            "region": ref(row.region, projection),
            "country": ref(row.country, projection),
        })
        return fields


class RegionSearcher(GeoSearcher):
    entity_type = EntityType.REGION
    model = Region
    object_fk = "region_id"

    def extra_fields(self, row: Any, projection: LocalizedProjection, extended: bool) -> Dict[str, Any]:
        fields = super().extra_fields(row, projection, extended)
        fields.update({"country_id": row.country_id, "country": ref(row.country, projection)})
        return fields


class CountrySearcher(GeoSearcher):
    entity_type = EntityType.COUNTRY
    model = Country
    object_fk = "country_id"


class MedicalProfileSearcher(EntitySearcher):
    entity_type = EntityType.MEDICAL_PROFILE
    model = MedicalProfile

    def base_query(self) -> Query:
        return self.db.query(MedicalProfile).filter(MedicalProfile.active.is_(True))

    def apply_filters(self, query: Query, projection: LocalizedProjection, aliases: Optional[List[str]] = None,
                      basic: Optional[bool] = None, object_ids: Optional[List[int]] = None,
                      city_id: Optional[int] = None, region_id: Optional[int] = None,
                      country_id: Optional[int] = None) -> Query:
        if aliases is not None:
            query = query.filter(MedicalProfile.alias.in_(aliases))
        if basic is not None:
            query = query.filter(MedicalProfile.basic.is_(bool(basic)))

        scope = self._geography_scope(city_id, region_id, country_id)
        if object_ids is not None:
            scope = [MedicalObject.id.in_(object_ids)]
        if scope:
            linked = (
                select(object_medical_profiles.c.medical_profile_id)
                .join(MedicalObject, MedicalObject.id == object_medical_profiles.c.object_id)
                .where(visible_objects(), *scope)
            )
            query = query.filter(MedicalProfile.id.in_(linked))
        return query

    @staticmethod
    def _geography_scope(city_id=None, region_id=None, country_id=None) -> list:
        scope = []
        if city_id is not None:
            scope.append(MedicalObject.city_id == city_id)
        if region_id is not None:
            scope.append(MedicalObject.region_id == region_id)
        if country_id is not None:
            scope.append(MedicalObject.country_id == country_id)
        return scope

    def count_objects(self, row: Any, filters: Dict[str, Any]) -> Optional[int]:
        scope = self._geography_scope(filters.get("city_id"), filters.get("region_id"), filters.get("country_id"))
        return self.count_linked_objects(object_medical_profiles, "medical_profile_id", row.id, *scope)


class DiseaseSearcher(EntitySearcher):
    entity_type = EntityType.DISEASE
    model = Disease

    def base_query(self) -> Query:
        return self.db.query(Disease).filter(Disease.active.is_(True))

    def apply_filters(self, query: Query, projection: LocalizedProjection, aliases: Optional[List[str]] = None,
                      object_ids: Optional[List[int]] = None) -> Query:
        if aliases is not None:
            query = query.filter(Disease.alias.in_(aliases))
        if object_ids is not None:
            if not object_ids:
                return query.filter(Disease.id.in_([]))
            table = object_medical_profile_exclude_diseases
            excluded = select(table.c.disease_id).where(table.c.object_id.in_(object_ids)).distinct()
            query = query.filter(~Disease.id.in_(excluded))
        return query

    def count_objects(self, row: Any, filters: Dict[str, Any]) -> Optional[int]:
        object_ids = FacetRepository(self.db).disease_object_ids([row.id])
        if not object_ids:
            return 0
        return (
            self.db.query(func.count(MedicalObject.id))
            .filter(MedicalObject.id.in_(object_ids), visible_objects())
            .scalar()
        ) or 0


class TherapySearcher(EntitySearcher):
    entity_type = EntityType.THERAPY
    model = Therapy

    def base_query(self) -> Query:
        return self.db.query(Therapy).filter(Therapy.active.is_(True))

    def apply_filters(self, query: Query, projection: LocalizedProjection, ids: Optional[List[int]] = None,
                      aliases: Optional[List[str]] = None, object_ids: Optional[List[int]] = None) -> Query:
        if ids is not None:
            query = query.filter(Therapy.id.in_(ids))
        if aliases is not None:
            query = query.filter(Therapy.alias.in_(aliases))
        if object_ids is not None:
            linked = (
                select(object_therapies.c.therapy_id)
                .join(MedicalObject, MedicalObject.id == object_therapies.c.object_id)
                .where(object_therapies.c.object_id.in_(object_ids), visible_objects())
            )
            query = query.filter(Therapy.id.in_(linked))
        return query

    def count_objects(self, row: Any, filters: Dict[str, Any]) -> Optional[int]:
        return self.count_linked_objects(object_therapies, "therapy_id", row.id)


class ServiceSearcher(EntitySearcher):
    """Amenities; not indexed, so keywords match names in the store"""

    entity_type = EntityType.SERVICE
    model = Service
    has_description = False

    def apply_keyword(self, query: Query, search_query: SearchQuery, projection: LocalizedProjection):
        if not search_query.keyword:
            return query, None
        column = projection.column(Service, "name")
        return query.filter(func.lower(column).like(like_pattern(search_query.keyword), escape="\\")), None

    def apply_filters(self, query: Query, projection: LocalizedProjection, aliases: Optional[List[str]] = None,
                      object_ids: Optional[List[int]] = None) -> Query:
        if aliases is not None:
            query = query.filter(Service.alias.in_(aliases))
        if object_ids is not None:
            linked = (
                select(object_services.c.service_id)
                .join(MedicalObject, MedicalObject.id == object_services.c.object_id)
                .where(object_services.c.object_id.in_(object_ids), visible_objects())
            )
            query = query.filter(Service.id.in_(linked), Service.is_filter.is_(True))
        return query

    def order(self, query: Query, projection: LocalizedProjection,
              sorting: Optional[Dict[str, str]] = None) -> Query:
        return query.order_by(Service.id.asc())


SEARCHERS = {
    EntityType.CITY: CitySearcher,
    EntityType.REGION: RegionSearcher,
    EntityType.COUNTRY: CountrySearcher,
    EntityType.MEDICAL_PROFILE: MedicalProfileSearcher,
    EntityType.DISEASE: DiseaseSearcher,
    EntityType.THERAPY: TherapySearcher,
    EntityType.SERVICE: ServiceSearcher,
}


def build_searcher(entity_type: EntityType, db: Session, gateway: Optional[IndexGateway] = None,
                   failure_mode: Optional[str] = None) -> EntitySearcher:
    """Searcher for one entity type bound to a session"""
    if entity_type == EntityType.OBJECT:
        from medtour.search.object_search import ObjectSearcher
        return ObjectSearcher(db, gateway, failure_mode)
    try:
        searcher_class = SEARCHERS[entity_type]
    except KeyError:
        raise ValueError(f"No searcher for entity type {entity_type!r}")
    return searcher_class(db, gateway, failure_mode)
