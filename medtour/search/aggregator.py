#!/usr/bin/env python3
"""Merged "search everything" results across entity types"""

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Sequence
from sqlalchemy.orm import Session
from medtour.core.config import settings
from medtour.core.db import SessionLocal
from medtour.search.entity_search import build_searcher
from medtour.search.errors import SearchCancelled
from medtour.search.index_gateway import IndexGateway
from medtour.search.localization import ensure_locale
from medtour.search.schemas import EntityType, Page, SearchQuery, score_sort_key

logger = logging.getLogger(__name__)

# Round order; within a round hits are merged in this order before the score sort
SEARCH_ALL_TYPES = (
    EntityType.COUNTRY,
    EntityType.REGION,
    EntityType.CITY,
    EntityType.OBJECT,
    EntityType.MEDICAL_PROFILE,
    EntityType.DISEASE,
    EntityType.THERAPY,
)
RESORT_TYPES = (EntityType.COUNTRY, EntityType.REGION, EntityType.CITY)

CANCEL_POLL_S = 0.05


def takes_part(total: int, round_number: int, page_size: int) -> bool:
    """A type is fetched in a round while it may still have unseen hits"""
    return round_number * page_size <= total + page_size


class ResultAggregator:
    """Runs the entity searchers in parallel rounds and merges their pages by score"""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal,
                 gateway: Optional[IndexGateway] = None, max_workers: Optional[int] = None,
                 failure_mode: Optional[str] = None):
        self.session_factory = session_factory
        self.gateway = gateway or IndexGateway()
        self.max_workers = max_workers or settings.search_fanout_workers
        self.failure_mode = failure_mode

    def _run(self, entity_type: EntityType, page: int, page_size: int, keyword: Optional[str],
             locale: str, extended: bool) -> Page:
        db = self.session_factory()
        try:
            searcher = build_searcher(entity_type, db, self.gateway, self.failure_mode)
            return searcher.search(page, page_size, keyword, locale, extended=extended)
        finally:
            db.close()

    def _fan_out(self, executor: ThreadPoolExecutor, entity_types: Sequence[EntityType], page: int,
                 page_size: int, keyword: Optional[str], locale: str, extended: bool,
                 cancel: Optional[threading.Event]) -> Dict[EntityType, Page]:
        """One round: every type's page, returned only once all of them finished"""
        if cancel is not None and cancel.is_set():
            raise SearchCancelled("Search cancelled")
        futures: Dict[Future, EntityType] = {
            executor.submit(self._run, entity_type, page, page_size, keyword, locale, extended): entity_type
            for entity_type in entity_types
        }
        results: Dict[EntityType, Page] = {}
        pending = set(futures)
        try:
            while pending:
                done, pending = wait(pending, timeout=CANCEL_POLL_S, return_when=FIRST_COMPLETED)
                for future in done:
                    results[futures[future]] = future.result()
                if cancel is not None and cancel.is_set():
                    raise SearchCancelled("Search cancelled", {"pending": [futures[f].value for f in pending]})
        except BaseException:
            for future in pending:
                future.cancel()
            raise
        return results

    def _merged(self, entity_types: Sequence[EntityType], page: int, page_size: int,
                keyword: Optional[str], locale: str, cancel: Optional[threading.Event]) -> Page:
        ensure_locale(locale)
        search_query = SearchQuery(keyword, locale, page, page_size)
        if keyword is None:
            return Page(page, page_size, 0, [])

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="search") as executor:
            first = self._fan_out(executor, entity_types, page, page_size, keyword, locale, False, cancel)
            totals = {entity_type: first[entity_type].total for entity_type in entity_types}
            scores = [p.max_score for p in first.values() if p.max_score is not None]
            logger.debug("Search totals for %r: %s", keyword, {t.value: n for t, n in totals.items()})

            collected: List[dict] = []
            round_number = 1
            while True:
                active = [t for t in entity_types if takes_part(totals[t], round_number, page_size)]
                if not active:
                    break
                pages = self._fan_out(executor, active, round_number, page_size, keyword, locale, True, cancel)
                for entity_type in active:
                    for item in pages[entity_type].items:
                        item["type"] = entity_type.value
                        collected.append(item)
                round_number += 1

        collected.sort(key=score_sort_key)
        window = collected[search_query.offset:search_query.offset + page_size]
        logger.info("Merged search %r: %d hits, %d rounds", keyword, len(collected), round_number - 1)
        return Page(page, page_size, sum(totals.values()), window, max(scores) if scores else None)

    def search_all(self, page: int, page_size: int, keyword: Optional[str], locale: str,
                   cancel: Optional[threading.Event] = None) -> Page:
        """Every entity type merged into one relevance-ordered page"""
        return self._merged(SEARCH_ALL_TYPES, page, page_size, keyword, locale, cancel)

    def search_resort(self, page: int, page_size: int, keyword: Optional[str], locale: str,
                      cancel: Optional[threading.Event] = None) -> Page:
        """Countries, regions and cities merged into one page"""
        return self._merged(RESORT_TYPES, page, page_size, keyword, locale, cancel)

    def main_search(self, page: int, page_size: int, keyword: Optional[str], locale: str,
                    cancel: Optional[threading.Event] = None) -> Dict[str, object]:
        """One page per entity type, not merged"""
        ensure_locale(locale)
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="search") as executor:
            pages = self._fan_out(executor, SEARCH_ALL_TYPES, page, page_size, keyword, locale, False, cancel)
        return {
            "objects": pages[EntityType.OBJECT].to_dict(),
            "geo": {
                "city": pages[EntityType.CITY].to_dict(),
                "region": pages[EntityType.REGION].to_dict(),
                "country": pages[EntityType.COUNTRY].to_dict(),
            },
            "medical_profile": pages[EntityType.MEDICAL_PROFILE].to_dict(),
            "disease": pages[EntityType.DISEASE].to_dict(),
            "therapy": pages[EntityType.THERAPY].to_dict(),
        }


def create_result_aggregator(session_factory: Callable[[], Session] = SessionLocal) -> ResultAggregator:
    """Create aggregator from settings"""
    return ResultAggregator(session_factory=session_factory)
