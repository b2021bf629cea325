"""Search error taxonomy"""

from typing import Any, Dict, Optional


class SearchError(Exception):
    """Base error for the search engine; carries an HTTP-equivalent status."""
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detail": self.message,
            "error": type(self).__name__,
            "context": self.details,
        }


class UnsupportedLocale(SearchError):
    status_code = 422

    def __init__(self, locale: Any):
        super().__init__(f"Unsupported locale: {locale!r}", {"locale": locale})
        self.locale = locale


class InvalidSorting(SearchError):
    status_code = 422

    def __init__(self, key: str):
        super().__init__(f"Unsupported sort key: {key!r}", {"sort_key": key})
        self.key = key


class FilterUrlError(SearchError):
    """Malformed filter path"""
    status_code = 404


class FilterOrderError(FilterUrlError):
    def __init__(self, kind: str, segment: str, position: int):
        super().__init__(
            f"Block {kind} is out of place (segment '{segment}' at position {position})",
            {"kind": kind, "segment": segment, "position": position},
        )
        self.kind = kind
        self.segment = segment
        self.position = position


class InvalidStarSequence(FilterUrlError):
    def __init__(self, message: str, segment: str, position: int):
        super().__init__(message, {"segment": segment, "position": position})
        self.segment = segment
        self.position = position


class InvalidStarValue(InvalidStarSequence):
    """Star segment is not an integer in 1..5"""


class InvalidAliasOrder(FilterUrlError):
    def __init__(self, expected: list, actual: list):
        super().__init__(
            "Aliases are not in canonical order",
            {"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class NotFound(SearchError):
    status_code = 404


class UnsupportedAnchorType(SearchError):
    status_code = 500

    def __init__(self, entity_type: Optional[str], alias: str):
        super().__init__(
            f"Nearby search is not supported for type: {entity_type}",
            {"type": entity_type, "alias": alias},
        )
        self.entity_type = entity_type


class IndexUnavailable(SearchError):
    """Full-text index could not be reached; safe to retry"""
    status_code = 503
    retryable = True


class IndexQueryError(SearchError):
    """Full-text index rejected the query"""
    status_code = 502


class SearchCancelled(SearchError):
    status_code = 499


class UnsupportedGeographyType(SearchError):
    status_code = 422

    def __init__(self, geography_type: Optional[str]):
        super().__init__(
            f"Unsupported geography type: {geography_type}",
            {"type": geography_type},
        )
        self.geography_type = geography_type
