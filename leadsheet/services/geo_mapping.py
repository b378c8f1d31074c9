from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from ..errors import ConfigurationError
from ..models.config_models import GeoColumns, MappingSource
from ..models.table import Table, cell_text

"""Builders around the canonical geo mapping tables.

build_master_mapping(): merge several mapping tables into one, keyed by city|country
extract_geo_lookup(): unique city/state/country triples out of lead data
normalize_regions(): rewrite region spellings to the standard region names
"""

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_COUNTRY_REGIONS",
    "DEFAULT_REGION_ALIASES",
    "MISSING_COUNTRY_COLOR",
    "build_master_mapping",
    "extract_geo_lookup",
    "normalize_regions",
]

MISSING_COUNTRY_COLOR = "#fff2cc"

DEFAULT_COUNTRY_REGIONS: dict[str, str] = {
    # North America
    "United States": "North America",
    "USA": "North America",
    "Canada": "North America",
    "Mexico": "Latin America",
    # Europe
    "United Kingdom": "Europe",
    "UK": "Europe",
    "Germany": "Europe",
    "France": "Europe",
    "Netherlands": "Europe",
    "Italy": "Europe",
    "Spain": "Europe",
    "Switzerland": "Europe",
    "Sweden": "Europe",
    "Denmark": "Europe",
    "Finland": "Europe",
    "Norway": "Europe",
    "Poland": "Europe",
    "Czech Republic": "Europe",
    "Hungary": "Europe",
    "Romania": "Europe",
    # Southeast Asia
    "Singapore": "Southeast Asia",
    "Indonesia": "Southeast Asia",
    "Thailand": "Southeast Asia",
    "Vietnam": "Southeast Asia",
    "Malaysia": "Southeast Asia",
    "Philippines": "Southeast Asia",
    # APAC
    "India": "Asia-Pacific",
    "Australia": "Asia-Pacific",
    "Japan": "Asia-Pacific",
    "South Korea": "Asia-Pacific",
    "China": "Asia-Pacific",
    "New Zealand": "Asia-Pacific",
    # Middle East / MENA
    "United Arab Emirates": "Middle East",
    "UAE": "Middle East",
    "Saudi Arabia": "Middle East",
    "Qatar": "Middle East",
    "Turkey": "Middle East",
    "Israel": "Middle East",
    "Egypt": "MENA",
    "Morocco": "MENA",
    "Algeria": "MENA",
    "Tunisia": "MENA",
    # LATAM
    "Brazil": "Latin America",
    "Argentina": "Latin America",
    "Chile": "Latin America",
    "Colombia": "Latin America",
    "Peru": "Latin America",
    # Africa
    "South Africa": "Africa",
    "Nigeria": "Africa",
}

# lowercased variant -> standard region
DEFAULT_REGION_ALIASES: dict[str, str] = {
    "africa": "Africa",
    "apac": "Asia-Pacific",
    "asia-pacific": "Asia-Pacific",
    "oceania": "Asia-Pacific",
    "emea": "Europe",
    "europe": "Europe",
    "latam": "Latin America",
    "latin america": "Latin America",
    "mena": "MENA",
    "middle east": "Middle East",
    "north america": "North America",
    "southeast asia": "Southeast Asia",
}


def _has_priority(new: list[str], existing: list[str], unknown_region: str) -> bool:
    """True when `new` should replace `existing` ([city, state, country, region])."""
    if new[1] and not existing[1]:
        return True
    if existing[1] and not new[1]:
        return False
    if new[3] != unknown_region and existing[3] == unknown_region:
        return True
    return False


def build_master_mapping(
    tables: Mapping[str, Table],
    sources: Sequence[MappingSource],
    *,
    output_table: str = "Master_GeoMapping",
    columns: GeoColumns | None = None,
    unknown_region: str = "Other",
) -> tuple[Table, list[str], list[str]]:
    """Merge mapping sources, in priority order, into one canonical table.

    Sources whose table is absent or lacks a city/state/country column are
    skipped, not fatal. Returns (table, used source names, skipped source names).
    """
    columns = columns or GeoColumns()
    merged: dict[str, list[str]] = {}
    used: list[str] = []
    skipped: list[str] = []

    for source in sources:
        table = tables.get(source.table)
        if table is None:
            logger.warning("mapping source table=%s not found, skipped", source.table)
            skipped.append(source.table)
            continue
        idx = [table.find_column(n) for n in (source.city, source.state, source.country)]
        if any(i is None for i in idx):
            logger.warning("mapping source table=%s lacks geo columns, skipped", source.table)
            skipped.append(source.table)
            continue
        region_idx = table.find_column(source.region) if source.region else None
        used.append(source.table)

        for row in table.rows:
            city, state, country = (cell_text(row[i]) for i in idx)
            if not (city and country):
                continue
            region = cell_text(row[region_idx]) if region_idx is not None else ""
            entry = [city, state, country, region or unknown_region]
            key = f"{city.lower()}|{country.lower()}"
            existing = merged.get(key)
            if existing is None or _has_priority(entry, existing, unknown_region):
                merged[key] = entry

    rows = sorted(merged.values(), key=lambda r: (r[0].lower(), r[1].lower()))
    logger.debug("master mapping records=%d sources=%s", len(rows), used)
    return Table(name=output_table, columns=columns.as_list(), rows=rows), used, skipped


def extract_geo_lookup(
    lead: Table,
    columns: GeoColumns,
    country_regions: Mapping[str, str] | None = None,
    *,
    output_table: str = "Geo_LookupData",
    unknown_region: str = "Other",
) -> tuple[Table, list[int]]:
    """Unique city|state|country triples of the lead table with a derived region.

    Rows without a city are ignored. Returns the lookup table and the data-row
    indices of entries without a country.
    """
    pos = lead.require_columns([columns.city, columns.state, columns.country])
    regions = {k.strip().lower(): v for k, v in (country_regions or DEFAULT_COUNTRY_REGIONS).items()}

    seen: set[str] = set()
    rows: list[list[str]] = []
    missing_country: list[int] = []
    for row in lead.rows:
        city = cell_text(row[pos[columns.city]])
        state = cell_text(row[pos[columns.state]])
        country = cell_text(row[pos[columns.country]])
        if not city:
            continue
        key = f"{city}|{state}|{country}"
        if key in seen:
            continue
        seen.add(key)
        if not country:
            missing_country.append(len(rows))
        rows.append([city, state, country, regions.get(country.lower(), unknown_region)])

    return Table(name=output_table, columns=columns.as_list(), rows=rows), missing_country


def normalize_regions(
    table: Table,
    region_column: str,
    aliases: Mapping[str, str] | None = None,
) -> tuple[Table, list[tuple[int, int]]]:
    """Rewrite region cells through the alias map (keys compared lowercased).

    Returns a new table and the (row, column) positions that changed.
    """
    idx = table.find_column(region_column)
    if idx is None:
        raise ConfigurationError([region_column], table=table.name)
    alias_map = {k.strip().lower(): v for k, v in (aliases or DEFAULT_REGION_ALIASES).items()}

    out = table.copy()
    changed: list[tuple[int, int]] = []
    for r, row in enumerate(out.rows):
        raw = cell_text(row[idx])
        normalized = alias_map.get(raw.lower())
        if normalized and normalized != raw:
            row[idx] = normalized
            changed.append((r, idx))
    return out, changed
