"""SEO template selection for filtered object listings"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from medtour.catalog.models import SeoFilterUrl, SeoTemplate
from medtour.search.localization import LocalizedProjection

logger = logging.getLogger(__name__)

FLAG_KINDS = ("discount", "stars", "beside")
GEOGRAPHY_KINDS = ("country", "region", "city")
SINGLE_VALUE_KINDS = ("therapies", "medical_profiles", "diseases", "services")


@dataclass
class SeoTemplateFragment:
    facet_kind: str
    title: Optional[str]
    meta_description: Optional[str]
    text: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "for": self.facet_kind,
            "title": self.title,
            "meta_description": self.meta_description,
            "text": self.text,
        }


def active_template_kinds(filter_response: Dict[str, Any]) -> List[str]:
    """Facet kinds whose template applies to the echoed filter state.

    Flags count when truthy, geography when present, list facets only with
    exactly one value.
    """
    kinds = []
    for kind in FLAG_KINDS:
        if filter_response.get(kind):
            kinds.append(kind)
    for kind in GEOGRAPHY_KINDS:
        if filter_response.get(kind) is not None:
            kinds.append(kind)
    for kind in SINGLE_VALUE_KINDS:
        values = filter_response.get(kind)
        if values is not None and len(values) == 1:
            kinds.append(kind)
    return kinds


class SeoTemplateSelector:
    def __init__(self, db: Session):
        self.db = db

    def select(self, filter_response: Dict[str, Any], locale: str) -> Dict[str, Dict[str, Any]]:
        projection = LocalizedProjection(locale)
        kinds = active_template_kinds(filter_response)
        if not kinds:
            return {}
        rows = (
            self.db.query(SeoTemplate)
            .filter(SeoTemplate.for_.in_(kinds))
            .order_by(SeoTemplate.id.asc())
            .all()
        )
        first_by_kind: Dict[str, SeoTemplate] = {}
        for row in rows:
            first_by_kind.setdefault(row.for_, row)

        templates = {}
        for kind in kinds:
            row = first_by_kind.get(kind)
            if row is None:
                continue
            templates[kind] = SeoTemplateFragment(
                kind,
                projection.value(row, "title"),
                projection.value(row, "meta_description"),
                projection.value(row, "text"),
            ).to_dict()
        logger.debug("SEO templates for %s: %s", kinds, list(templates))
        return templates

    def custom_seo(self, url: Optional[str], locale: str) -> Optional[Dict[str, Any]]:
        """Override registered for the literal request URL"""
        projection = LocalizedProjection(locale)
        if url is None:
            return None
        row = self.db.query(SeoFilterUrl).filter(SeoFilterUrl.url == url).order_by(SeoFilterUrl.id).first()
        if row is None:
            return None
        return {
            "url": row.url,
            "title": projection.value(row, "title"),
            "description": projection.value(row, "description"),
            "text": projection.value(row, "text"),
        }
