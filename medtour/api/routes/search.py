#!/usr/bin/env python3
"""Search endpoints: merged search, per-entity search and filtered listings"""

import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from medtour.core.config import settings
from medtour.core.db import get_db
from medtour.search.aggregator import ResultAggregator
from medtour.search.entity_search import build_searcher
from medtour.search.index_gateway import IndexGateway
from medtour.search.localization import ensure_locale
from medtour.search.schemas import EntityType
from medtour.search.service import SearchService
from medtour.api.schemas.search import (
    GeographyItem,
    ListingResponse,
    MainSearchResponse,
    PageResponse,
    parse_sorting,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/{locale}/search", tags=["search"])

# URL name -> entity type of the per-entity endpoints
ENTITY_ROUTES = {
    "objects": EntityType.OBJECT,
    "cities": EntityType.CITY,
    "regions": EntityType.REGION,
    "countries": EntityType.COUNTRY,
    "medical-profiles": EntityType.MEDICAL_PROFILE,
    "diseases": EntityType.DISEASE,
    "therapies": EntityType.THERAPY,
    "services": EntityType.SERVICE,
}


@lru_cache(maxsize=1)
def get_index_gateway() -> IndexGateway:
    return IndexGateway()


def get_aggregator(gateway: IndexGateway = Depends(get_index_gateway)) -> ResultAggregator:
    return ResultAggregator(gateway=gateway)


def get_search_service(db: Session = Depends(get_db),
                       gateway: IndexGateway = Depends(get_index_gateway)) -> SearchService:
    return SearchService(db, gateway)


def valid_locale(locale: str) -> str:
    return ensure_locale(locale)


@router.get("/all", response_model=PageResponse)
def search_all(
    locale: str = Depends(valid_locale),
    q: Optional[str] = Query(None, max_length=200, description="Search keyword"),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=100),
    aggregator: ResultAggregator = Depends(get_aggregator),
):
    """Every entity type merged into one page ordered by relevance"""
    return aggregator.search_all(page, page_size, q, locale).to_dict()


@router.get("/resort", response_model=PageResponse)
def search_resort(
    locale: str = Depends(valid_locale),
    q: Optional[str] = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=100),
    aggregator: ResultAggregator = Depends(get_aggregator),
):
    return aggregator.search_resort(page, page_size, q, locale).to_dict()


@router.get("/main", response_model=MainSearchResponse)
def main_search(
    locale: str = Depends(valid_locale),
    q: Optional[str] = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=100),
    aggregator: ResultAggregator = Depends(get_aggregator),
):
    return aggregator.main_search(page, page_size, q, locale)


@router.get("/by-url", response_model=ListingResponse)
def object_search_by_url(
    locale: str = Depends(valid_locale),
    url: str = Query("", description="Filter path, e.g. discount/moscow/stars-4"),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=100),
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lon: Optional[float] = Query(None, ge=-180, le=180),
    sort: Optional[str] = Query(None, description="Sort keys, e.g. price:asc,title:desc"),
    on_main_page: Optional[bool] = Query(None),
    service: SearchService = Depends(get_search_service),
):
    """Filtered object listing for an SEO filter path"""
    return service.object_search_by_url(
        url, page_size, locale, lat=lat, lon=lon, page=page,
        sorting=parse_sorting(sort), on_main_page=on_main_page,
    )


@router.get("/geography", response_model=List[GeographyItem])
def geography_search(
    locale: str = Depends(valid_locale),
    q: Optional[str] = Query(None, max_length=200),
    page_size: int = Query(settings.default_page_size, ge=1, le=100),
    country_ids: Optional[List[int]] = Query(None),
    region_ids: Optional[List[int]] = Query(None),
    city_ids: Optional[List[int]] = Query(None),
    object_ids: Optional[List[int]] = Query(None),
    service: SearchService = Depends(get_search_service),
):
    return service.geography_search(page_size, q, locale, country_ids, region_ids, city_ids, object_ids)


@router.get("/geography/{geography_type}/{geography_id}")
def multiple_geography(
    geography_type: str,
    geography_id: int,
    locale: str = Depends(valid_locale),
    service: SearchService = Depends(get_search_service),
) -> List[Dict[str, Any]]:
    """Sibling cities, regions of the same country, or all countries with objects"""
    return service.get_multiple_geography(geography_id, locale, geography_type)


@router.get("/{entity}", response_model=PageResponse)
def entity_search(
    entity: str,
    locale: str = Depends(valid_locale),
    q: Optional[str] = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=100),
    extended: bool = Query(False),
    db: Session = Depends(get_db),
    gateway: IndexGateway = Depends(get_index_gateway),
):
    """Keyword search within one entity type"""
    entity_type = ENTITY_ROUTES.get(entity)
    if entity_type is None:
        raise HTTPException(status_code=404, detail=f"Unknown search entity: {entity}")
    searcher = build_searcher(entity_type, db, gateway)
    return searcher.search(page, page_size, q, locale, extended=extended).to_dict()
