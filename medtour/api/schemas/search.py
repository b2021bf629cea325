"""Pydantic schemas for search endpoints"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class PageResponse(BaseModel):
    """One page of search results"""
    page: int
    pageSize: int
    total: int
    items: List[Dict[str, Any]]
    maxScore: Optional[float] = None


class ListingResponse(PageResponse):
    """Filtered object listing with echoed filter state"""
    filterResponse: Dict[str, Any]
    filterData: Dict[str, Any]
    templates: Optional[Dict[str, Any]] = None
    customSeo: Optional[Dict[str, Any]] = None


class MainSearchResponse(BaseModel):
    """One page per entity type"""
    objects: PageResponse
    geo: Dict[str, PageResponse]
    medical_profile: PageResponse
    disease: PageResponse
    therapy: PageResponse


class GeographyItem(BaseModel):
    id: int
    name: Optional[str] = None
    alias: Optional[str] = None
    type: str
    region_id: Optional[int] = None
    country_id: Optional[int] = None
    description: Optional[str] = None
    image: Optional[str] = None


class ErrorResponse(BaseModel):
    detail: str
    error: str
    context: Dict[str, Any] = Field(default_factory=dict)


def parse_sorting(raw: Optional[str]) -> Optional[Dict[str, str]]:
    """Parse `price:asc,title:desc` into {"price": "asc", "title": "desc"}; a bare key sorts ascending"""
    if not raw:
        return None
    sorting: Dict[str, str] = {}
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        key, _, direction = part.partition(":")
        sorting[key.strip()] = (direction.strip() or "asc").lower()
    return sorting or None
