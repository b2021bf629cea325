#!/usr/bin/env python3
"""Filter path parsing and resolution.

A filter path is a slash separated list of segments such as
``discount/moscow-region/beside-hotel-x/stars-3/stars-4/mood-active``.
Segment kinds must appear in canonical order:
discount, free aliases, beside-<alias>, stars-<n>, mood-<alias>.
"""

import re
import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from medtour.catalog.models import (
    City,
    Country,
    Disease,
    MedicalObject,
    MedicalProfile,
    Mood,
    Region,
    SeoInformation,
    Service,
    Therapy,
)
from medtour.search.errors import (
    FilterOrderError,
    InvalidAliasOrder,
    InvalidStarSequence,
    InvalidStarValue,
    NotFound,
    UnsupportedAnchorType,
)
from medtour.search.facets import FacetRepository, FacetSelection
from medtour.search.localization import LocalizedProjection
from medtour.search.schemas import Anchor

logger = logging.getLogger(__name__)

MAX_STARS = 5
_STAR_VALUE = re.compile(r"[0-9]+")


class BlockKind(IntEnum):
    """Segment kinds; the value is the canonical rank"""
    DISCOUNT = 0
    ALIAS = 1
    BESIDE = 2
    STARS = 3
    MOODS = 4

    @property
    def label(self) -> str:
        return self.name.lower()


BLOCK_ORDER = ["discount", "aliases", "beside", "stars", "moods"]


@dataclass(frozen=True)
class FilterUrlBlock:
    kind: BlockKind
    position: int  # 1-based index among the kept segments
    segment: str
    payload: Any = None


def classify_segment(segment: str, position: int) -> FilterUrlBlock:
    if segment == "discount":
        return FilterUrlBlock(BlockKind.DISCOUNT, position, segment, True)
    if segment.startswith("beside-"):
        return FilterUrlBlock(BlockKind.BESIDE, position, segment, segment[len("beside-"):])
    if segment.startswith("stars-"):
        raw = segment[len("stars-"):]
        if not _STAR_VALUE.fullmatch(raw):
            raise InvalidStarValue(f"Star value must be an integer, got '{raw}'", segment, position)
        value = int(raw)
        if not 1 <= value <= MAX_STARS:
            raise InvalidStarValue(f"Star value must be between 1 and {MAX_STARS}, got {value}", segment, position)
        return FilterUrlBlock(BlockKind.STARS, position, segment, value)
    if segment.startswith("mood-"):
        return FilterUrlBlock(BlockKind.MOODS, position, segment, segment[len("mood-"):])
    return FilterUrlBlock(BlockKind.ALIAS, position, segment, segment)


@dataclass
class FilterPath:
    """Validated filter path; equality ignores segment positions"""
    discount: bool = False
    aliases: List[str] = field(default_factory=list)
    beside: Optional[str] = None
    stars: List[int] = field(default_factory=list)
    moods: List[str] = field(default_factory=list)
    blocks: List[FilterUrlBlock] = field(default_factory=list, compare=False, repr=False)

    @property
    def mood_picked(self) -> bool:
        return bool(self.moods)

    @classmethod
    def parse(cls, url: Optional[str]) -> "FilterPath":
        path = cls()
        segments = [s for s in (url or "").split("/") if s]
        highest: Optional[BlockKind] = None

        for position, segment in enumerate(segments, start=1):
            block = classify_segment(segment, position)

            if block.kind == BlockKind.STARS and path.stars and block.payload <= path.stars[-1]:
                raise InvalidStarSequence(
                    f"Star values must strictly increase ({path.stars[-1]} then {block.payload})",
                    segment, position,
                )

            if highest is not None and block.kind < highest:
                raise FilterOrderError(block.kind.label, segment, position)
            highest = block.kind if highest is None else max(highest, block.kind)

            path.blocks.append(block)
            if block.kind == BlockKind.DISCOUNT:
                path.discount = True
            elif block.kind == BlockKind.ALIAS:
                path.aliases.append(block.payload)
            elif block.kind == BlockKind.BESIDE:
                path.beside = block.payload
            elif block.kind == BlockKind.STARS:
                path.stars.append(block.payload)
            else:
                path.moods.append(block.payload)

        return path

    def to_path(self) -> str:
        """Canonical serialization; parse(to_path()) == self"""
        segments: List[str] = []
        if self.discount:
            segments.append("discount")
        segments.extend(self.aliases)
        if self.beside is not None:
            segments.append(f"beside-{self.beside}")
        segments.extend(f"stars-{star}" for star in self.stars)
        segments.extend(f"mood-{mood}" for mood in self.moods)
        return "/".join(segments)


@dataclass
class ResolvedFilterState:
    path: FilterPath
    locale: str
    selection: FacetSelection
    anchor: Optional[Anchor] = None
    on_main_page: Optional[bool] = None
    mood_ids: Optional[List[int]] = None
    mood_rows: Optional[List[Dict[str, Any]]] = None
    # dictionary rows matched by the free aliases; None when nothing matched
    therapies: Optional[List[Dict[str, Any]]] = None
    medical_profiles: Optional[List[Dict[str, Any]]] = None
    diseases: Optional[List[Dict[str, Any]]] = None
    services: Optional[List[Dict[str, Any]]] = None
    countries: Optional[List[Dict[str, Any]]] = None
    regions: Optional[List[Dict[str, Any]]] = None
    cities: Optional[List[Dict[str, Any]]] = None

    @property
    def discount(self) -> Optional[bool]:
        return True if self.path.discount else None

    @property
    def stars(self) -> Optional[List[int]]:
        return list(self.path.stars) if self.path.stars else None

    @property
    def aliases(self) -> List[str]:
        return self.path.aliases

    @property
    def mood_aliases(self) -> List[str]:
        return self.path.moods

    @property
    def mood_picked(self) -> bool:
        return self.path.mood_picked

    def has_filters(self) -> bool:
        """Any filter other than moods is active"""
        selection = self.selection
        return any(value is not None for value in (
            selection.therapies, selection.medical_profiles, selection.diseases,
            selection.services, selection.country_ids, selection.region_ids,
            selection.city_ids, self.stars, self.on_main_page, self.discount,
        ))


def _ids(rows: Optional[List[Dict[str, Any]]]) -> Optional[List[int]]:
    return [row["id"] for row in rows] if rows else None


class FilterUrlResolver:
    """Resolves a filter path against the SEO alias dictionary and the catalog"""

    # dictionary name -> (model, only active rows)
    DICTIONARIES = [
        ("therapies", Therapy, True),
        ("medical_profiles", MedicalProfile, True),
        ("diseases", Disease, True),
        ("services", Service, False),
        ("countries", Country, False),
        ("regions", Region, False),
        ("cities", City, False),
    ]

    def __init__(self, db: Session, repository: Optional[FacetRepository] = None):
        self.db = db
        self.repository = repository or FacetRepository(db)

    def resolve(self, url: Optional[str], locale: str, on_main_page: Optional[bool] = None) -> ResolvedFilterState:
        projection = LocalizedProjection(locale)
        path = FilterPath.parse(url)
        logger.debug("Resolving filter path %r -> %s", url, path.to_path())

        self.check_aliases(path.aliases)
        anchor = self.resolve_anchor(path.beside, projection) if path.beside is not None else None

        matches = {
            name: self.match_dictionary(model, path.aliases, projection, active_only)
            for name, model, active_only in self.DICTIONARIES
        }

        mood_ids = mood_rows = None
        if path.moods:
            mood_ids = self.repository.mood_ids_for_aliases(path.moods)
            mood_rows = self.mood_rows(path.moods, projection)

        selection = FacetSelection(
            medical_profiles=_ids(matches["medical_profiles"]),
            therapies=_ids(matches["therapies"]),
            diseases=_ids(matches["diseases"]),
            services=_ids(matches["services"]),
            moods=mood_ids,
            stars=list(path.stars) if path.stars else None,
            country_ids=_ids(matches["countries"]),
            region_ids=_ids(matches["regions"]),
            city_ids=_ids(matches["cities"]),
            anchor=anchor,
        )
        return ResolvedFilterState(
            path=path,
            locale=locale,
            selection=selection,
            anchor=anchor,
            on_main_page=on_main_page,
            mood_ids=mood_ids,
            mood_rows=mood_rows,
            **matches,
        )

    def check_aliases(self, aliases: List[str]) -> None:
        """Every alias must be a ranked SEO alias, listed in non-decreasing rank.

        Aliases sharing a rank may come in any order among themselves.
        """
        if not aliases:
            return
        rows = (
            self.db.query(SeoInformation.url, SeoInformation.order)
            .filter(SeoInformation.url.in_(aliases), SeoInformation.order.isnot(None))
            .all()
        )
        rank: Dict[str, int] = {}
        for url, order in rows:
            rank[url] = min(order, rank.get(url, order))
        missing = [alias for alias in aliases if alias not in rank]
        if missing:
            raise NotFound("One or more aliases do not exist", {"aliases": missing})
        actual = list(aliases)
        ranks = [rank[alias] for alias in actual]
        if any(prev > cur for prev, cur in zip(ranks, ranks[1:])):
            expected = sorted(actual, key=lambda alias: rank[alias])
            raise InvalidAliasOrder(expected, actual)

    def resolve_anchor(self, alias: str, projection: LocalizedProjection) -> Anchor:
        seo = self.db.query(SeoInformation).filter(SeoInformation.url == alias).order_by(SeoInformation.id).first()
        if seo is None:
            raise NotFound(f"Unknown alias for beside: {alias}", {"alias": alias})

        if seo.country_id is not None:
            entity_type, row = "country", self.db.get(Country, seo.country_id)
        elif seo.region_id is not None:
            entity_type, row = "region", self.db.get(Region, seo.region_id)
        elif seo.city_id is not None:
            entity_type, row = "city", self.db.get(City, seo.city_id)
        elif seo.object_id is not None:
            entity_type, row = "object", self.db.get(MedicalObject, seo.object_id)
        else:
            raise UnsupportedAnchorType(seo.for_, alias)

        if row is None:
            raise NotFound(f"Anchor {entity_type} for alias {alias} does not exist", {"alias": alias})

        if entity_type == "object":
            return Anchor(entity_type, row.id, projection.value(row, "title"), row.alias, row.lat, row.lon)
        return Anchor(entity_type, row.id, projection.value(row, "name"), row.alias, row.latitude, row.longitude)

    def match_dictionary(self, model, aliases: List[str], projection: LocalizedProjection,
                         active_only: bool = False) -> Optional[List[Dict[str, Any]]]:
        """Rows of one dictionary whose alias is in the path; None for zero matches"""
        if not aliases:
            return None
        query = self.db.query(model).filter(model.alias.in_(aliases))
        if active_only:
            query = query.filter(model.active.is_(True))
        if hasattr(model, "viewing_count"):
            query = query.order_by(model.viewing_count.desc(), model.id.asc())
        else:
            query = query.order_by(model.id.asc())
        rows = query.all()
        if not rows:
            return None
        return [{"id": row.id, "name": projection.value(row, "name"), "alias": row.alias} for row in rows]

    def mood_rows(self, aliases: List[str], projection: LocalizedProjection) -> List[Dict[str, Any]]:
        rows = self.db.query(Mood).filter(Mood.alias.in_(aliases)).order_by(Mood.id).all()
        by_alias = {row.alias: row for row in rows}
        # keep the order of the path so the first picked mood comes first
        ordered = [by_alias[alias] for alias in dict.fromkeys(aliases) if alias in by_alias]
        return [
            {"id": row.id, "name": projection.value(row, "name"), "alias": row.alias, "image": row.image}
            for row in ordered
        ]


def create_filter_url_resolver(db: Session) -> FilterUrlResolver:
    """Create filter path resolver bound to a session"""
    return FilterUrlResolver(db)
