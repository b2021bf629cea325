#!/usr/bin/env python3
"""Full-text index client (Elasticsearch-compatible HTTP API)"""

import time
import logging
import threading
import requests
from typing import Optional, Dict, Any, List
from collections import Counter
from medtour.core.config import settings
from medtour.search.errors import IndexUnavailable, IndexQueryError
from medtour.search.localization import ensure_locale
from medtour.search.schemas import EntityType, IndexHit, IndexHits

logger = logging.getLogger(__name__)

# Searchable fields per entity type (without locale suffix)
INDEX_FIELDS: Dict[EntityType, List[str]] = {
    EntityType.OBJECT: ["title", "description"],
    EntityType.COUNTRY: ["name", "description"],
    EntityType.REGION: ["name", "description"],
    EntityType.CITY: ["name", "description"],
    EntityType.MEDICAL_PROFILE: ["name", "description"],
    EntityType.DISEASE: ["name", "description"],
    EntityType.THERAPY: ["name", "description"],
}


class IndexGateway:
    """Queries the full-text index per entity type and locale.

    Transport errors, timeouts and 5xx responses are retried once and then
    raised as IndexUnavailable; 4xx responses raise IndexQueryError.
    """

    def __init__(self, base_url: Optional[str] = None, prefix: Optional[str] = None,
                 timeout: Optional[float] = None, max_hits: Optional[int] = None,
                 retries: int = 2, session: Optional[requests.Session] = None):
        self.base_url = (base_url or settings.index_url).rstrip("/")
        self.prefix = settings.index_prefix if prefix is None else prefix
        self.timeout = timeout or settings.index_timeout_s
        self.max_hits = max_hits or settings.index_max_hits
        self.retries = retries
        self.http = session or requests.Session()
        self.stats = Counter()
        self._stats_lock = threading.Lock()

    def _count(self, key: str) -> None:
        # one gateway is shared by the aggregator worker threads
        with self._stats_lock:
            self.stats[key] += 1

    def index_name(self, entity: EntityType) -> str:
        return f"{self.prefix}{entity.value}"

    def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST to the index with a single retry on transient failures"""
        url = f"{self.base_url}/{path}"
        attempt = 0
        while True:
            attempt += 1
            try:
                response = self.http.post(url, json=body, timeout=self.timeout)
                if response.status_code >= 500:
                    self._count("5xx")
                    raise requests.exceptions.HTTPError(
                        f"index returned {response.status_code}", response=response
                    )
                if response.status_code >= 400:
                    self._count("4xx")
                    raise IndexQueryError(
                        f"Index rejected query ({response.status_code})",
                        {"path": path, "status": response.status_code, "body": response.text[:500]},
                    )
                return response.json()
            except requests.exceptions.RequestException as e:
                self._count("transport")
                if attempt < self.retries:
                    logger.warning(f"Index request to {path} failed (attempt {attempt}): {e}; retrying")
                    time.sleep(0.1 * attempt)
                    continue
                logger.error(f"Index request to {path} failed: {e}")
                raise IndexUnavailable(f"Index unavailable: {e}", {"path": path, "attempts": attempt})

    def build_query(self, entity: EntityType, locale: str, keyword: str) -> Dict[str, Any]:
        fields = [f"{name}_{locale}" for name in INDEX_FIELDS[entity]]
        boosted = [f"{fields[0]}^3"] + fields[1:]
        return {
            "size": self.max_hits,
            "_source": False,
            "query": {
                "multi_match": {
                    "query": keyword,
                    "fields": boosted,
                    "type": "best_fields",
                    "fuzziness": "AUTO",
                }
            },
            "highlight": {
                "pre_tags": ["<b>"],
                "post_tags": ["</b>"],
                "fields": {f: {"number_of_fragments": 1} for f in fields},
            },
        }

    def search(self, entity: EntityType, locale: str, keyword: Optional[str]) -> IndexHits:
        """Candidate ids with per-id score and highlights; empty keyword -> empty hits"""
        ensure_locale(locale)
        if entity not in INDEX_FIELDS:
            raise ValueError(f"{entity.value} is not indexed")
        if not keyword or not keyword.strip():
            return IndexHits()

        data = self._post(f"{self.index_name(entity)}/_search", self.build_query(entity, locale, keyword))
        return self.parse_response(data, locale)

    @staticmethod
    def parse_response(data: Dict[str, Any], locale: str) -> IndexHits:
        suffix = f"_{locale}"
        block = data.get("hits") or {}
        result = IndexHits(max_score=block.get("max_score"))
        for raw in block.get("hits") or []:
            entity_id = int(raw["_id"])
            highlight = {}
            for field_name, snippets in (raw.get("highlight") or {}).items():
                if field_name.endswith(suffix):
                    field_name = field_name[: -len(suffix)]
                highlight[field_name] = list(snippets)
            result.ids.append(entity_id)
            result.hits[entity_id] = IndexHit(score=raw.get("_score"), highlight=highlight)
        logger.debug("Index returned %d hits (max_score=%s)", len(result.ids), result.max_score)
        return result

    def search_objects(self, locale: str, keyword: Optional[str]) -> IndexHits:
        return self.search(EntityType.OBJECT, locale, keyword)

    def search_cities(self, locale: str, keyword: Optional[str]) -> IndexHits:
        return self.search(EntityType.CITY, locale, keyword)

    def search_regions(self, locale: str, keyword: Optional[str]) -> IndexHits:
        return self.search(EntityType.REGION, locale, keyword)

    def search_countries(self, locale: str, keyword: Optional[str]) -> IndexHits:
        return self.search(EntityType.COUNTRY, locale, keyword)

    def search_medical_profiles(self, locale: str, keyword: Optional[str]) -> IndexHits:
        return self.search(EntityType.MEDICAL_PROFILE, locale, keyword)

    def search_diseases(self, locale: str, keyword: Optional[str]) -> IndexHits:
        return self.search(EntityType.DISEASE, locale, keyword)

    def search_therapies(self, locale: str, keyword: Optional[str]) -> IndexHits:
        return self.search(EntityType.THERAPY, locale, keyword)


def create_index_gateway() -> IndexGateway:
    """Create index gateway from settings"""
    return IndexGateway()
