"""Text cleanup for keywords and stored display values"""

from typing import Optional
from bs4 import BeautifulSoup


def strip_tags(value: Optional[str]) -> Optional[str]:
    """Drop HTML markup, keep the text"""
    if value is None:
        return None
    if "<" not in value:
        return value
    return BeautifulSoup(value, "html.parser").get_text()


def normalize_keyword(keyword: Optional[str]) -> Optional[str]:
    """Strip markup and lower-case; None stays None so "no keyword" differs from an empty one"""
    if keyword is None:
        return None
    return strip_tags(keyword).strip().lower()


def like_pattern(keyword: str) -> str:
    """Substring LIKE pattern with wildcards in the keyword escaped (escape char: backslash)"""
    escaped = keyword.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
