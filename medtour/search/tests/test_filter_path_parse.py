import pytest

from medtour.search.errors import FilterOrderError, InvalidStarSequence, InvalidStarValue
from medtour.search.filter_url import BLOCK_ORDER, BlockKind, FilterPath, classify_segment


def test_parse_full_path_in_canonical_order():
    path = FilterPath.parse("discount/moscow/cardio/beside-hotel-x/stars-3/stars-4/mood-active")
    assert path.discount is True
    assert path.aliases == ["moscow", "cardio"]
    assert path.beside == "hotel-x"
    assert path.stars == [3, 4]
    assert path.moods == ["active"]
    assert path.mood_picked is True
    assert [b.kind for b in path.blocks] == [
        BlockKind.DISCOUNT, BlockKind.ALIAS, BlockKind.ALIAS, BlockKind.BESIDE,
        BlockKind.STARS, BlockKind.STARS, BlockKind.MOODS,
    ]


def test_empty_and_missing_url():
    assert FilterPath.parse("") == FilterPath()
    assert FilterPath.parse(None) == FilterPath()
    assert FilterPath.parse("").to_path() == ""


def test_empty_segments_are_skipped():
    path = FilterPath.parse("/moscow//stars-2/")
    assert path.aliases == ["moscow"]
    assert path.stars == [2]
    assert path.blocks[1].position == 2
    assert path.to_path() == "moscow/stars-2"


def test_discount_after_stars_is_out_of_order():
    with pytest.raises(FilterOrderError) as exc:
        FilterPath.parse("stars-1/discount")
    assert exc.value.kind == "discount"
    assert exc.value.position == 2
    assert exc.value.status_code == 404


def test_alias_after_mood_is_out_of_order():
    with pytest.raises(FilterOrderError) as exc:
        FilterPath.parse("mood-active/russia")
    assert exc.value.kind == "alias"
    assert exc.value.segment == "russia"


def test_beside_after_stars_is_out_of_order():
    with pytest.raises(FilterOrderError):
        FilterPath.parse("stars-2/beside-hotel")


@pytest.mark.parametrize("url", ["stars-3/stars-1", "stars-3/stars-3", "stars-1/stars-4/stars-2"])
def test_stars_must_strictly_increase(url):
    with pytest.raises(InvalidStarSequence):
        FilterPath.parse(url)


@pytest.mark.parametrize("segment", ["stars-0", "stars-6", "stars-x", "stars-", "stars--1", "stars-2.5"])
def test_star_value_outside_range(segment):
    with pytest.raises(InvalidStarValue) as exc:
        FilterPath.parse(segment)
    assert isinstance(exc.value, InvalidStarSequence)
    assert exc.value.segment == segment


def test_later_beside_replaces_earlier():
    path = FilterPath.parse("beside-a/beside-b")
    assert path.beside == "b"
    assert path.to_path() == "beside-b"


def test_segment_classification():
    assert classify_segment("discount", 1).kind == BlockKind.DISCOUNT
    assert classify_segment("discounts", 1).kind == BlockKind.ALIAS
    assert classify_segment("beside-spa", 1).payload == "spa"
    assert classify_segment("stars-5", 1).payload == 5
    assert classify_segment("mood-relax", 1).payload == "relax"


@pytest.mark.parametrize("url", [
    "discount",
    "russia/cardio",
    "discount/moscow/beside-hotel/stars-1/stars-5/mood-a/mood-b",
    "beside-x/mood-relax",
    "stars-2/stars-3",
])
def test_canonical_serialization_reparses_to_same_path(url):
    path = FilterPath.parse(url)
    assert path.to_path() == url
    assert FilterPath.parse(path.to_path()) == path


def test_block_order_labels():
    assert BLOCK_ORDER == ["discount", "aliases", "beside", "stars", "moods"]
    assert BlockKind.MOODS.label == "moods"
