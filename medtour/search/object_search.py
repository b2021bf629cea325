#!/usr/bin/env python3
"""Object search: keyword search and the filtered, optionally nearby-ranked listing"""

import logging
from typing import Any, Dict, List, Optional
from sqlalchemy import or_
from sqlalchemy.orm import Query, Session
from medtour.core.config import settings
from medtour.core.config_cache import load_config_section
from medtour.catalog.models import MedicalObject
from medtour.search.entity_search import EntitySearcher, ref, visible_objects
from medtour.search.errors import InvalidSorting
from medtour.search.facets import FacetIntersectionEngine, FacetRepository, FacetSelection
from medtour.search.geo import distance_meters
from medtour.search.index_gateway import IndexGateway
from medtour.search.localization import LocalizedProjection
from medtour.search.schemas import Anchor, EntityType, Page, SearchQuery
from medtour.search.text import like_pattern, normalize_keyword, strip_tags

logger = logging.getLogger(__name__)

DEFAULT_SORTING_CONFIG = {
    "sorting": {
        "popular": {"column": "viewing_count"},
        "title": {"column": "title_{locale}"},
        "rating": {"column": "full_rating"},
        "price": {"column": "min_price"},
        "stars": {"column": "stars"},
        "expensive": {"filter": "expensive"},
    }
}


def load_sorting_rules() -> Dict[str, Dict[str, str]]:
    return load_config_section(settings.sorting_config_path, "sorting", default=DEFAULT_SORTING_CONFIG)


class SortPlan:
    """Validated sort keys of the filtered listing"""

    def __init__(self, sorting: Optional[Dict[str, str]], locale: str):
        rules = load_sorting_rules()
        self.orderings: List[tuple] = []  # (column name, descending)
        self.filters: List[str] = []
        for key, direction in (sorting or {}).items():
            rule = rules.get(key)
            if not rule:
                raise InvalidSorting(key)
            if "filter" in rule:
                self.filters.append(rule["filter"])
                continue
            direction = str(direction or "asc").lower()
            if direction not in ("asc", "desc"):
                raise InvalidSorting(key)
            self.orderings.append((rule["column"].format(locale=locale), direction == "desc"))


class ObjectSearcher(EntitySearcher):
    entity_type = EntityType.OBJECT
    model = MedicalObject
    display_field = "title"

    def __init__(self, db: Session, gateway: Optional[IndexGateway] = None,
                 failure_mode: Optional[str] = None, engine: Optional[FacetIntersectionEngine] = None):
        super().__init__(db, gateway, failure_mode)
        self.engine = engine or FacetIntersectionEngine(FacetRepository(db))

    def base_query(self) -> Query:
        return self.db.query(MedicalObject).filter(visible_objects())

    def extra_fields(self, row: Any, projection: LocalizedProjection, extended: bool) -> Dict[str, Any]:
        return {
            "country_id": row.country_id,
            "region_id": row.region_id,
            "city_id": row.city_id,
            "viewing_count": row.viewing_count,
            "street_view_link": row.street_view_link,
            "country": ref(row.country, projection),
            "region": ref(row.region, projection),
            "city": ref(row.city, projection),
        }

    def search_filtered(self, page: int, page_size: int, locale: str,
                        selection: Optional[FacetSelection] = None, keyword: Optional[str] = None,
                        discount: Optional[bool] = None, on_main_page: Optional[bool] = None,
                        sorting: Optional[Dict[str, str]] = None, ids: Optional[List[int]] = None,
                        lat: Optional[float] = None, lon: Optional[float] = None) -> Page:
        """Faceted listing of visible objects.

        With an origin point (the anchor's coordinates, else lat/lon) every
        match is loaded, ranked by distance unless sorting is given, and the
        page is sliced in memory.
        """
        projection = LocalizedProjection(locale)
        search_query = SearchQuery(normalize_keyword(keyword), locale, page, page_size)
        selection = selection or FacetSelection()
        plan = SortPlan(sorting, locale)

        query = self.base_query()
        if search_query.keyword:
            column = projection.column(MedicalObject, "title")
            query = query.filter(column.ilike(like_pattern(search_query.keyword), escape="\\"))
        if discount:
            query = query.filter(MedicalObject.in_action.is_(True))
        if selection.stars is not None:
            query = query.filter(MedicalObject.stars.in_(selection.stars))
        if selection.country_ids is not None:
            query = query.filter(MedicalObject.country_id.in_(selection.country_ids))
        if selection.region_ids is not None:
            query = query.filter(MedicalObject.region_id.in_(selection.region_ids))
        if selection.city_ids is not None:
            query = query.filter(MedicalObject.city_id.in_(selection.city_ids))
        if ids is not None:
            query = query.filter(MedicalObject.id.in_(ids))
        for flag in plan.filters:
            query = query.filter(getattr(MedicalObject, flag).is_(True))

        eligible = self.engine.eligible_object_ids(selection)
        if eligible is not None:
            query = query.filter(MedicalObject.id.in_(eligible))

        anchor = selection.anchor
        origin = None
        if anchor is not None and anchor.latitude is not None and anchor.longitude is not None:
            origin = (anchor.latitude, anchor.longitude)
        elif lat is not None and lon is not None:
            origin = (lat, lon)

        if origin is not None:
            if anchor is not None:
                query = self._exclude_anchor(query, anchor)
            query = query.filter(MedicalObject.lat.isnot(None), MedicalObject.lon.isnot(None))
            rows, total = self._nearby(query, origin, plan, search_query)
        else:
            rows, total = self._ordered(query, plan, on_main_page, search_query)
            rows = [(row, None) for row in rows]

        items = [self.listing_item(row, projection, distance) for row, distance in rows]
        page_result = Page(page, page_size, total, items)
        page_result.response_data = self._response_data(query)
        return page_result

    def _ordered(self, query: Query, plan: SortPlan, on_main_page: Optional[bool], search_query: SearchQuery):
        ordered = query
        if plan.orderings:
            for column_name, descending in plan.orderings:
                column = getattr(MedicalObject, column_name)
                ordered = ordered.order_by(column.desc() if descending else column.asc())
        elif on_main_page is not None:
            ordered = ordered.order_by(MedicalObject.on_main_page.desc(), MedicalObject.priority_of_showing.desc())
        else:
            ordered = ordered.order_by(MedicalObject.priority_of_showing.desc())
        ordered = ordered.order_by(MedicalObject.id.asc())
        total = query.count()
        return ordered.offset(search_query.offset).limit(search_query.page_size).all(), total

    def _nearby(self, query: Query, origin, plan: SortPlan, search_query: SearchQuery):
        candidates = [
            (row, distance_meters(origin[0], origin[1], row.lat, row.lon))
            for row in query.order_by(MedicalObject.id.asc()).all()
            if row.has_coordinates()
        ]
        if plan.orderings:
            # stable sorts applied last key first so the first key dominates
            for column_name, descending in reversed(plan.orderings):
                present = [c for c in candidates if getattr(c[0], column_name) is not None]
                missing = [c for c in candidates if getattr(c[0], column_name) is None]
                present.sort(key=lambda c: getattr(c[0], column_name), reverse=descending)
                candidates = present + missing
        else:
            candidates.sort(key=lambda c: c[1])
        total = len(candidates)
        logger.debug("Nearby listing from %s: %d candidates", origin, total)
        return candidates[search_query.offset:search_query.offset + search_query.page_size], total

    def _exclude_anchor(self, query: Query, anchor: Anchor) -> Query:
        """Drop the anchor itself, or every object inside the anchor geography"""
        if anchor.type == "object":
            return query.filter(MedicalObject.id != anchor.id)
        column = {
            "country": MedicalObject.country_id,
            "region": MedicalObject.region_id,
            "city": MedicalObject.city_id,
        }[anchor.type]
        return query.filter(or_(column != anchor.id, column.is_(None)))

    def _response_data(self, query: Query) -> Dict[str, Any]:
        rows = query.with_entities(MedicalObject.id, MedicalObject.stars, MedicalObject.in_action) \
            .order_by(MedicalObject.id.asc()).all()
        stars = sorted({row.stars for row in rows if row.stars is not None})
        return {
            "objectIds": [row.id for row in rows],
            "stars": stars,
            "in_action": any(bool(row.in_action) for row in rows),
        }

    def listing_item(self, row: MedicalObject, projection: LocalizedProjection,
                     distance: Optional[float] = None) -> Dict[str, Any]:
        item = {
            "id": row.id,
            "title": strip_tags(projection.value(row, "title")),
            "alias": row.alias,
            "stars": row.stars,
            "country_id": row.country_id,
            "region_id": row.region_id,
            "city_id": row.city_id,
            "lat": row.lat,
            "lon": row.lon,
            "full_rating": row.full_rating,
            "min_price": row.min_price,
            "in_action": bool(row.in_action),
            "country": ref(row.country, projection),
            "region": ref(row.region, projection),
            "city": ref(row.city, projection),
            "medical_profiles": [
                {"id": p.id, "name": projection.value(p, "name"), "alias": p.alias}
                for p in sorted(row.medical_profiles, key=lambda p: p.id) if p.active
            ],
            "moods": [
                {"id": m.id, "name": projection.value(m, "name"), "alias": m.alias, "image": m.image}
                for m in sorted(row.moods, key=lambda m: m.id)
            ],
        }
        if distance is not None:
            item["distance_m"] = distance
        return item
