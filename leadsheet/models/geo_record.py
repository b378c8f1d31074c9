from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

"""Geo domain models used by the resolution engine.

GeoRecord: canonical city/state/country/region tuple from a mapping table.
RoleSet: lowercased value sets per role, for detecting which field a raw value belongs to.
GeoRow: per-row intermediate record threaded through the resolution steps.
MissingGeoEntry: audit row for leads still lacking country or region.
"""

__all__ = [
    "GeoField",
    "GeoRole",
    "RowState",
    "GeoRecord",
    "RoleSet",
    "GeoRow",
    "MissingGeoEntry",
    "MISSING_COUNTRY_NOTE",
    "MISSING_REGION_NOTE",
]

MISSING_COUNTRY_NOTE = "Missing Country"
MISSING_REGION_NOTE = "Missing Region"


class GeoField(Enum):
    CITY = "city"
    STATE = "state"
    COUNTRY = "country"
    REGION = "region"


class GeoRole(Enum):
    """Roles detectable by set membership. Tested in declaration order."""
    CITY = "city"
    STATE = "state"
    COUNTRY = "country"


class RowState(Enum):
    """Lifecycle of one lead row through the resolution steps.

    RAW -> ROLE_CHECKED -> (SWAPPED | UNCHANGED) -> CITY_FILLED
        -> REGION_FALLBACK_COUNTRY -> REGION_FALLBACK_STATE_COUNTRY
        -> (COMPLETE | FLAGGED_MISSING)
    """
    RAW = "raw"
    ROLE_CHECKED = "role_checked"
    SWAPPED = "swapped"
    UNCHANGED = "unchanged"
    CITY_FILLED = "city_filled"
    REGION_FALLBACK_COUNTRY = "region_fallback_country"
    REGION_FALLBACK_STATE_COUNTRY = "region_fallback_state_country"
    COMPLETE = "complete"
    FLAGGED_MISSING = "flagged_missing"


@dataclass(frozen=True)
class GeoRecord:
    city: str
    state: str
    country: str
    region: str


@dataclass
class RoleSet:
    cities: set[str] = field(default_factory=set)
    states: set[str] = field(default_factory=set)
    countries: set[str] = field(default_factory=set)

    def detect(self, value: str) -> GeoRole | None:
        """Role of a raw value; city wins over state, state over country."""
        key = value.strip().lower()
        if not key:
            return None
        if key in self.cities:
            return GeoRole.CITY
        if key in self.states:
            return GeoRole.STATE
        if key in self.countries:
            return GeoRole.COUNTRY
        return None


@dataclass(frozen=True)
class GeoRow:
    """Immutable snapshot of one row's geo fields between steps.

    `changed` holds the fields written by any step so far; only those are
    committed back to the table.
    """
    city: str
    state: str
    country: str
    region: str
    state_tag: RowState = RowState.RAW
    writes: tuple[tuple[GeoField, str], ...] = ()  # (field, step) in write order
    swapped: bool = False

    @property
    def changed(self) -> frozenset[GeoField]:
        return frozenset(f for f, _ in self.writes)

    def last_step(self, geo_field: GeoField) -> str | None:
        for f, step in reversed(self.writes):
            if f is geo_field:
                return step
        return None

    def get(self, geo_field: GeoField) -> str:
        return getattr(self, geo_field.value)

    def with_value(self, geo_field: GeoField, value: str, step: str) -> GeoRow:
        if self.get(geo_field) == value:
            return self
        return replace(self, **{geo_field.value: value}, writes=self.writes + ((geo_field, step),))

    def advance(self, state_tag: RowState, *, swapped: bool | None = None) -> GeoRow:
        return replace(self, state_tag=state_tag, swapped=self.swapped if swapped is None else swapped)


@dataclass(frozen=True)
class MissingGeoEntry:
    city: str
    state: str
    country: str
    region: str
    note: str

    def key(self) -> str:
        return missing_key(self.city, self.state, self.country, self.region)

    def as_row(self) -> list[str]:
        return [self.city, self.state, self.country, self.region, self.note]


def missing_key(city: str, state: str, country: str, region: str) -> str:
    return "||".join(v.strip().lower() for v in (city, state, country, region))
