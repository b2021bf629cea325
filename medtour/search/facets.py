#!/usr/bin/env python3
"""Facet id-set queries and their intersection"""

import logging
from dataclasses import dataclass, replace
from typing import Callable, Iterable, List, Optional, Set, Tuple
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from medtour.catalog.models import (
    Mood,
    disease_medical_profile,
    object_medical_profiles,
    object_medical_profile_exclude_diseases,
    object_moods,
    object_services,
    object_therapies,
)
from medtour.search.schemas import Anchor

logger = logging.getLogger(__name__)


@dataclass
class FacetSelection:
    """Active facets of a listing request.

    None means the facet was not requested; an empty list means it was
    requested and matches nothing.
    """
    medical_profiles: Optional[List[int]] = None
    therapies: Optional[List[int]] = None
    diseases: Optional[List[int]] = None
    services: Optional[List[int]] = None
    moods: Optional[List[int]] = None
    stars: Optional[List[int]] = None
    country_ids: Optional[List[int]] = None
    region_ids: Optional[List[int]] = None
    city_ids: Optional[List[int]] = None
    anchor: Optional[Anchor] = None

    def has_id_facets(self) -> bool:
        return any(
            getattr(self, name) is not None
            for name in ("medical_profiles", "moods", "services", "therapies", "diseases")
        )

    def without_moods(self) -> "FacetSelection":
        return replace(self, moods=None)


class FacetRepository:
    """Relational lookups returning object-id sets per facet value list"""

    def __init__(self, db: Session):
        self.db = db

    def objects_with_all(self, table, value_column: str, values: Iterable[int]) -> Set[int]:
        """Objects linked to every one of the given values"""
        wanted = set(values)
        if not wanted:
            return set()
        column = table.c[value_column]
        rows = (
            self.db.query(table.c.object_id)
            .filter(column.in_(wanted))
            .group_by(table.c.object_id)
            .having(func.count(func.distinct(column)) == len(wanted))
            .all()
        )
        return {row[0] for row in rows}

    def medical_profile_object_ids(self, profile_ids: Iterable[int]) -> Set[int]:
        return self.objects_with_all(object_medical_profiles, "medical_profile_id", profile_ids)

    def therapy_object_ids(self, therapy_ids: Iterable[int]) -> Set[int]:
        return self.objects_with_all(object_therapies, "therapy_id", therapy_ids)

    def service_object_ids(self, service_ids: Iterable[int]) -> Set[int]:
        return self.objects_with_all(object_services, "service_id", service_ids)

    def mood_object_ids(self, mood_ids: Iterable[int]) -> Set[int]:
        """Objects linked to any of the moods"""
        wanted = set(mood_ids)
        if not wanted:
            return set()
        rows = (
            self.db.query(object_moods.c.object_id)
            .filter(object_moods.c.mood_id.in_(wanted))
            .distinct()
            .all()
        )
        return {row[0] for row in rows}

    def mood_ids_for_aliases(self, aliases: Iterable[str]) -> List[int]:
        wanted = list(dict.fromkeys(aliases))
        if not wanted:
            return []
        rows = self.db.query(Mood.id).filter(Mood.alias.in_(wanted)).order_by(Mood.id).all()
        return [row[0] for row in rows]

    def disease_object_ids(self, disease_ids: Iterable[int]) -> Set[int]:
        """Objects treating any of the diseases.

        An object qualifies through a medical profile that is linked to one of
        the diseases, unless the object excludes one of the diseases.
        """
        wanted = set(disease_ids)
        if not wanted:
            return set()
        profile_ids = (
            select(disease_medical_profile.c.medical_profile_id)
            .where(disease_medical_profile.c.disease_id.in_(wanted))
        )
        linked = {
            row[0] for row in
            self.db.query(object_medical_profiles.c.object_id)
            .filter(object_medical_profiles.c.medical_profile_id.in_(profile_ids))
            .distinct()
            .all()
        }
        if not linked:
            return set()
        excluded = self.objects_excluding_diseases(wanted)
        return linked - excluded

    def objects_excluding_diseases(self, disease_ids: Iterable[int]) -> Set[int]:
        table = object_medical_profile_exclude_diseases
        rows = (
            self.db.query(table.c.object_id)
            .filter(table.c.disease_id.in_(set(disease_ids)))
            .distinct()
            .all()
        )
        return {row[0] for row in rows}

    def excluded_disease_ids(self, object_ids: Iterable[int]) -> Set[int]:
        """Diseases excluded by at least one of the objects"""
        wanted = set(object_ids)
        if not wanted:
            return set()
        table = object_medical_profile_exclude_diseases
        rows = (
            self.db.query(table.c.disease_id)
            .filter(table.c.object_id.in_(wanted))
            .distinct()
            .all()
        )
        return {row[0] for row in rows}

    def mood_ids_for_objects(self, object_ids: Iterable[int]) -> Set[int]:
        wanted = set(object_ids)
        if not wanted:
            return set()
        rows = (
            self.db.query(object_moods.c.mood_id)
            .filter(object_moods.c.object_id.in_(wanted))
            .distinct()
            .all()
        )
        return {row[0] for row in rows}


class FacetIntersectionEngine:
    """Combines per-facet object-id sets into one eligible set"""

    def __init__(self, repository: FacetRepository):
        self.repository = repository

    def _steps(self) -> List[Tuple[str, Callable[[Iterable[int]], Set[int]]]]:
        repo = self.repository
        return [
            ("medical_profiles", repo.medical_profile_object_ids),
            ("moods", repo.mood_object_ids),
            ("services", repo.service_object_ids),
            ("therapies", repo.therapy_object_ids),
            ("diseases", repo.disease_object_ids),
        ]

    def eligible_object_ids(self, selection: FacetSelection) -> Optional[Set[int]]:
        """Intersection of the active id-set facets; None when none is active"""
        eligible: Optional[Set[int]] = None
        for name, fetch in self._steps():
            values = getattr(selection, name)
            if values is None:
                continue
            ids = fetch(values)
            eligible = ids if eligible is None else eligible & ids
            logger.debug("Facet %s: %d ids, %d eligible", name, len(ids), len(eligible))
            if not eligible:
                return set()
        return eligible


def create_facet_engine(db: Session) -> FacetIntersectionEngine:
    """Create facet engine bound to a session"""
    return FacetIntersectionEngine(FacetRepository(db))
