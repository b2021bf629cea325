"""Locale validation and localized column projection"""

from dataclasses import dataclass
from typing import Any, Optional

from medtour.search.errors import UnsupportedLocale

SUPPORTED_LOCALES = ("ru", "en")


def ensure_locale(locale: Optional[str]) -> str:
    if locale not in SUPPORTED_LOCALES:
        raise UnsupportedLocale(locale)
    return locale


@dataclass(frozen=True)
class LocalizedProjection:
    """Maps a locale to the localized column names of the catalog tables."""
    locale: str

    def __post_init__(self):
        ensure_locale(self.locale)

    @property
    def name(self) -> str:
        return f"name_{self.locale}"

    @property
    def title(self) -> str:
        return f"title_{self.locale}"

    @property
    def description(self) -> str:
        return f"description_{self.locale}"

    @property
    def meta_description(self) -> str:
        return f"meta_description_{self.locale}"

    @property
    def text(self) -> str:
        return f"text_{self.locale}"

    def column(self, model: Any, field: str):
        """Localized column of a mapped class, e.g. column(City, "name") -> City.name_ru"""
        return getattr(model, getattr(self, field))

    def value(self, row: Any, field: str) -> Any:
        """Localized attribute of a loaded row"""
        return getattr(row, getattr(self, field), None)

    @staticmethod
    def all_columns(model: Any, field: str) -> list:
        """The column in every supported locale"""
        return [getattr(model, f"{field}_{locale}") for locale in SUPPORTED_LOCALES]
