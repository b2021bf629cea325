#!/usr/bin/env python3
"""Filtered object listing by SEO filter path, and geography lookups"""

import logging
from typing import Any, Dict, List, Optional
from sqlalchemy import and_, select
from sqlalchemy.orm import Session
from medtour.catalog.models import City, Country, MedicalObject, Region
from medtour.search.entity_search import (
    CitySearcher,
    CountrySearcher,
    MedicalProfileSearcher,
    RegionSearcher,
    ServiceSearcher,
    visible_objects,
)
from medtour.search.errors import NotFound, UnsupportedGeographyType
from medtour.search.facets import FacetRepository
from medtour.search.filter_url import BLOCK_ORDER, FilterUrlResolver, ResolvedFilterState
from medtour.search.index_gateway import IndexGateway
from medtour.search.localization import LocalizedProjection
from medtour.search.object_search import ObjectSearcher
from medtour.search.seo import SeoTemplateSelector
from medtour.search.text import like_pattern, normalize_keyword

logger = logging.getLogger(__name__)

# page size for the unpaginated dictionary lookups
LOOKUP_PAGE_SIZE = 100000


def _first(rows: Optional[List[Dict[str, Any]]]) -> Optional[Dict[str, Any]]:
    return rows[0] if rows else None


class SearchService:
    """Filtered listing orchestration: resolve the path, search, echo the filter state"""

    def __init__(self, db: Session, gateway: Optional[IndexGateway] = None,
                 failure_mode: Optional[str] = None):
        self.db = db
        self.gateway = gateway or IndexGateway()
        self.failure_mode = failure_mode
        self.repository = FacetRepository(db)
        self.resolver = FilterUrlResolver(db, self.repository)
        self.objects = ObjectSearcher(db, self.gateway, failure_mode)
        self.seo = SeoTemplateSelector(db)

    def _searcher(self, searcher_class):
        return searcher_class(self.db, self.gateway, self.failure_mode)

    def object_search_by_url(self, url: Optional[str], page_size: int, locale: str,
                             lat: Optional[float] = None, lon: Optional[float] = None, page: int = 1,
                             sorting: Optional[Dict[str, str]] = None, on_main_page: Optional[bool] = None,
                             ids: Optional[List[int]] = None) -> Dict[str, Any]:
        state = self.resolver.resolve(url, locale, on_main_page)
        filter_response = self.filter_response(state, sorting, page, lat, lon)

        listing = self.objects.search_filtered(
            page, page_size, locale, state.selection,
            discount=state.discount, on_main_page=on_main_page, sorting=sorting, ids=ids,
            lat=filter_response["latitude"], lon=filter_response["longitude"],
        )
        response_data = listing.response_data

        if filter_response["stars"] is not None:
            filter_response["stars"] = [s for s in filter_response["stars"] if s in response_data["stars"]]

        filter_data = self.filter_data(state, response_data, page_size, locale, sorting, ids,
                                       filter_response["latitude"], filter_response["longitude"])

        custom_seo = self.seo.custom_seo(url, locale)
        templates = None if custom_seo is not None else self.seo.select(filter_response, locale)
        logger.info("Listing %r (%s): %d objects", url, locale, listing.total)

        result = listing.to_dict()
        result.update({
            "filterResponse": filter_response,
            "filterData": filter_data,
            "templates": templates,
            "customSeo": custom_seo,
        })
        return result

    def filter_response(self, state: ResolvedFilterState, sorting: Optional[Dict[str, str]], page: int,
                        lat: Optional[float], lon: Optional[float]) -> Dict[str, Any]:
        """Echo of the resolved filter state for the client"""
        anchor = state.anchor
        latitude = anchor.latitude if anchor is not None and anchor.latitude is not None else lat
        longitude = anchor.longitude if anchor is not None and anchor.longitude is not None else lon

        geography = (state.cities or []) + (state.regions or []) + (state.countries or [])
        return {
            "therapies": state.therapies or [],
            "medical_profiles": state.medical_profiles or [],
            "diseases": state.diseases or [],
            "services": state.services or [],
            "country": _first(state.countries),
            "region": _first(state.regions),
            "city": _first(state.cities),
            "discount": state.discount,
            "beside": anchor.to_dict() if anchor is not None else None,
            "stars": state.stars,
            "sorting": sorting,
            "page": page,
            "latitude": latitude,
            "longitude": longitude,
            "block_order": list(BLOCK_ORDER),
            "moods": state.mood_rows,
            "multiple_geography": geography or None,
        }

    def filter_data(self, state: ResolvedFilterState, response_data: Dict[str, Any], page_size: int,
                    locale: str, sorting: Optional[Dict[str, str]], ids: Optional[List[int]],
                    lat: Optional[float], lon: Optional[float]) -> Dict[str, Any]:
        """Facet values still available for the current result"""
        object_ids = response_data["objectIds"]
        filter_data: Dict[str, Any] = {
            "stars": response_data["stars"],
            "in_action": response_data["in_action"],
            "moods": self.available_moods(state, locale, sorting, ids, lat, lon),
        }

        if state.cities:
            filter_data["multiple_geography"] = self.get_multiple_geography(state.cities[0]["id"], locale, "city")
        elif state.regions:
            filter_data["multiple_geography"] = self.get_multiple_geography(state.regions[0]["id"], locale, "region")
        elif state.countries:
            filter_data["multiple_geography"] = self.get_multiple_geography(state.countries[0]["id"], locale, "country")
        else:
            filter_data["cities_of_region"] = None

        profiles = self._searcher(MedicalProfileSearcher).search(
            1, LOOKUP_PAGE_SIZE, None, locale, object_ids=object_ids)
        services = self._searcher(ServiceSearcher).search(
            1, LOOKUP_PAGE_SIZE, None, locale, object_ids=object_ids)
        filter_data["medical_profiles"] = [item["id"] for item in profiles.items] or None
        filter_data["services"] = [item["id"] for item in services.items] or None
        filter_data["objectIds"] = object_ids
        return filter_data

    def available_moods(self, state: ResolvedFilterState, locale: str, sorting: Optional[Dict[str, str]],
                        ids: Optional[List[int]], lat: Optional[float], lon: Optional[float]) -> Optional[List[int]]:
        """Moods offered by the result when the mood facet is dropped"""
        if not state.has_filters():
            return None
        without_moods = self.objects.search_filtered(
            1, 1, locale, state.selection.without_moods(),
            discount=state.discount, on_main_page=state.on_main_page, sorting=sorting, ids=ids,
            lat=lat, lon=lon,
        )
        moods = sorted(self.repository.mood_ids_for_objects(without_moods.response_data["objectIds"]))
        if state.mood_picked and state.mood_rows:
            picked = state.mood_rows[0]["id"]
            if picked not in moods:
                moods.append(picked)
        return moods

    def get_multiple_geography(self, geography_id: int, locale: str, geography_type: str) -> List[Dict[str, Any]]:
        """Sibling geography of one entity, limited to entries with visible objects"""
        if geography_type == "city":
            city = self.db.get(City, geography_id)
            if city is None:
                raise NotFound(f"City {geography_id} does not exist", {"id": geography_id})
            siblings = city.region.cities if city.region is not None else [city]
            searcher, aliases = self._searcher(CitySearcher), [c.alias for c in siblings]
        elif geography_type == "region":
            region = self.db.get(Region, geography_id)
            if region is None:
                raise NotFound(f"Region {geography_id} does not exist", {"id": geography_id})
            siblings = region.country.regions if region.country is not None else [region]
            searcher, aliases = self._searcher(RegionSearcher), [r.alias for r in siblings]
        elif geography_type == "country":
            searcher, aliases = self._searcher(CountrySearcher), None
        else:
            raise UnsupportedGeographyType(geography_type)

        return searcher.search(1, LOOKUP_PAGE_SIZE, None, locale, aliases=aliases, has_objects=True).items

    def geography_search(self, page_size: int, keyword: Optional[str], locale: str,
                         country_ids: Optional[List[int]] = None, region_ids: Optional[List[int]] = None,
                         city_ids: Optional[List[int]] = None,
                         object_ids: Optional[List[int]] = None) -> List[Dict[str, Any]]:
        """Cities, regions and countries matching a name substring, tagged with `type`"""
        projection = LocalizedProjection(locale)
        keyword = normalize_keyword(keyword)
        items: List[Dict[str, Any]] = []
        for geography_type, model, ids, object_column in (
            ("city", City, city_ids, MedicalObject.city_id),
            ("region", Region, region_ids, MedicalObject.region_id),
            ("country", Country, country_ids, MedicalObject.country_id),
        ):
            query = self.db.query(model).filter(model.alias.isnot(None))
            with_description = ids is not None
            if ids is None:
                query = query.filter(model.id.in_(select(object_column).where(object_column.isnot(None))))
            else:
                query = query.filter(model.id.in_(ids), model.is_visible.is_(True))
            if object_ids is not None:
                query = query.filter(model.id.in_(
                    select(object_column).where(and_(MedicalObject.id.in_(object_ids), visible_objects()))
                ))
            if keyword:
                name = projection.column(model, "name")
                query = query.filter(name.ilike(like_pattern(keyword), escape="\\"))

            for row in query.order_by(model.id.asc()).limit(page_size).all():
                item = {
                    "id": row.id,
                    "name": projection.value(row, "name"),
                    "alias": row.alias,
                    "type": geography_type,
                }
                if hasattr(row, "region_id"):
                    item["region_id"] = row.region_id
                if hasattr(row, "country_id"):
                    item["country_id"] = row.country_id
                if with_description:
                    item["description"] = projection.value(row, "description")
                    item["image"] = row.crop_image
                items.append(item)
        return items


def create_search_service(db: Session) -> SearchService:
    """Create search service bound to a session"""
    return SearchService(db)
