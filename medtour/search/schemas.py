"""
Request-scoped value objects of the search engine.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from medtour.search.localization import ensure_locale


class EntityType(str, Enum):
    """Searchable entity types; the value doubles as the result `type` tag."""
    OBJECT = "object"
    COUNTRY = "country"
    REGION = "region"
    CITY = "city"
    MEDICAL_PROFILE = "medical_profile"
    DISEASE = "disease"
    THERAPY = "therapy"
    SERVICE = "service"


@dataclass
class SearchQuery:
    """Keyword query with pagination."""
    keyword: Optional[str]
    locale: str
    page: int = 1
    page_size: int = 10

    def __post_init__(self):
        ensure_locale(self.locale)
        if self.page < 1:
            raise ValueError(f"page must be >= 1, got {self.page}")
        if self.page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {self.page_size}")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass
class IndexHit:
    score: Optional[float]
    highlight: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class IndexHits:
    """Candidates returned by the full-text index for one entity type."""
    ids: List[int] = field(default_factory=list)
    hits: Dict[int, IndexHit] = field(default_factory=dict)
    max_score: Optional[float] = None

    def score(self, entity_id: int) -> Optional[float]:
        hit = self.hits.get(entity_id)
        return hit.score if hit else None

    def highlight(self, entity_id: int, field_name: str) -> Optional[str]:
        hit = self.hits.get(entity_id)
        if not hit:
            return None
        snippets = hit.highlight.get(field_name) or []
        return snippets[0] if snippets else None


@dataclass
class Anchor:
    """Entity whose coordinates are the origin of "nearby" ranking."""
    type: str  # country | region | city | object
    id: int
    name: Optional[str]
    alias: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "alias": self.alias,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }


@dataclass
class Page:
    """One page of results; `total` counts every match, not just this page."""
    page: int
    page_size: int
    total: int
    items: List[Dict[str, Any]]
    max_score: Optional[float] = None
    response_data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "pageSize": self.page_size,
            "total": self.total,
            "items": self.items,
            "maxScore": self.max_score,
        }


def score_sort_key(item: Dict[str, Any]):
    """Descending score with null scores last; use with a stable sort."""
    score = item.get("score")
    return (score is None, -(score or 0.0))
