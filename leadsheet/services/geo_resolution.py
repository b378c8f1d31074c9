from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from ..models.config_models import GeoColumns, SwapGate
from ..models.geo_record import (
    MISSING_COUNTRY_NOTE,
    MISSING_REGION_NOTE,
    GeoField,
    GeoRecord,
    GeoRole,
    GeoRow,
    MissingGeoEntry,
    RoleSet,
    RowState,
    missing_key,
)
from ..models.processing_result import GeoResult
from ..models.table import Table, cell_text

"""Geo resolution engine: role repair, city-keyed fill and region fallbacks.

Per lead row the (city, state, country, region) tuple goes through:

  A. (once per run) indices from the mapping tables
  B. role repair: values sitting in the wrong geo column are moved back
  C. city-keyed fill: canonical state/country/region/city spelling by city
  D. region from country
  E. region from state + country
  F. audit: rows with city or state but no country or region are reported

Each step is a function GeoRow -> GeoRow; the row is written back to the
table once, after F. Every step only writes when the value differs, so a
second run over the output changes nothing.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "STEP_ROLE_REPAIR",
    "STEP_CITY_FILL",
    "STEP_COUNTRY_REGION",
    "STEP_STATE_COUNTRY_REGION",
    "STEP_TRIM",
    "GeoIndex",
    "detect_roles",
    "repair_roles",
    "fill_from_city",
    "fill_region_from_country",
    "fill_region_from_state_country",
    "audit_row",
    "resolve_row",
    "resolve_table",
    "missing_keys_from_table",
]

STEP_ROLE_REPAIR = "ROLE_REPAIR"
STEP_CITY_FILL = "CITY_FILL"
STEP_COUNTRY_REGION = "COUNTRY_REGION_FALLBACK"
STEP_STATE_COUNTRY_REGION = "STATE_COUNTRY_REGION_FALLBACK"
STEP_TRIM = "TRIM_WHITESPACE"  # 値は同じで前後の空白のみ除去

_ROLE_FIELDS = (GeoField.CITY, GeoField.STATE, GeoField.COUNTRY)
_ROLE_TO_FIELD = {
    GeoRole.CITY: GeoField.CITY,
    GeoRole.STATE: GeoField.STATE,
    GeoRole.COUNTRY: GeoField.COUNTRY,
}


def _state_country_key(state: str, country: str) -> str:
    return f"{state.lower()}|{country.lower()}"


@dataclass
class GeoIndex:
    """Lookup structures built fresh from the mapping tables on every run."""
    roles: RoleSet = field(default_factory=RoleSet)
    city_map: dict[str, GeoRecord] = field(default_factory=dict)
    country_to_region: dict[str, str] = field(default_factory=dict)
    state_country_to_region: dict[str, str] = field(default_factory=dict)

    @classmethod
    def build(cls, mapping_tables: Sequence[Table], columns: GeoColumns) -> GeoIndex:
        """Index mapping tables in priority order; earlier tables and rows win.

        Raises ConfigurationError when a mapping table lacks any geo column.
        """
        index = cls()
        for table in mapping_tables:
            pos = table.require_columns(columns.as_list())
            for row in table.rows:
                index.add(
                    cell_text(row[pos[columns.city]]),
                    cell_text(row[pos[columns.state]]),
                    cell_text(row[pos[columns.country]]),
                    cell_text(row[pos[columns.region]]),
                )
        logger.debug(
            "geo index cities=%d states=%d countries=%d city_map=%d country_regions=%d state_country_regions=%d",
            len(index.roles.cities),
            len(index.roles.states),
            len(index.roles.countries),
            len(index.city_map),
            len(index.country_to_region),
            len(index.state_country_to_region),
        )
        return index

    def add(self, city: str, state: str, country: str, region: str) -> None:
        if city:
            self.roles.cities.add(city.lower())
            if state:
                self.roles.states.add(state.lower())
            if country:
                self.roles.countries.add(country.lower())
            # canonical record needs both city and country
            if country:
                self.city_map.setdefault(city.lower(), GeoRecord(city, state, country, region))

        if country and region:
            self.country_to_region.setdefault(country.lower(), region)
        if state and country and region:
            self.state_country_to_region.setdefault(_state_country_key(state, country), region)


def detect_roles(row: GeoRow, roles: RoleSet) -> dict[GeoRole, GeoField]:
    """Detected role -> field currently holding a value of that role.

    Fields are scanned city, state, country; when two fields detect the same
    role the later field wins.
    """
    found: dict[GeoRole, GeoField] = {}
    for geo_field in _ROLE_FIELDS:
        role = roles.detect(row.get(geo_field))
        if role is not None:
            found[role] = geo_field
    return found


def repair_roles(row: GeoRow, roles: RoleSet, gate: SwapGate = SwapGate.MISPLACED) -> GeoRow:
    """Move misplaced city/state/country values back to their own columns.

    MISPLACED gate: only acts when at least two detected values are not in
    their own column; only those slots are rewritten.
    DETECTED gate (superseded): acts when at least two fields have a detected
    role and rewrites all three slots, blanking roles nobody holds.
    """
    found = detect_roles(row, roles)
    checked = row.advance(RowState.ROLE_CHECKED)
    if len(found) < 2:
        return checked.advance(RowState.UNCHANGED)

    actual = {role: row.get(src) for role, src in found.items()}
    out = checked

    if gate is SwapGate.DETECTED:
        for role, target in _ROLE_TO_FIELD.items():
            out = out.with_value(target, actual.get(role, ""), STEP_ROLE_REPAIR)
    else:
        misplaced = [role for role, value in actual.items() if row.get(_ROLE_TO_FIELD[role]) != value]
        if len(misplaced) < 2:
            return checked.advance(RowState.UNCHANGED)
        for role in misplaced:
            out = out.with_value(_ROLE_TO_FIELD[role], actual[role], STEP_ROLE_REPAIR)

    if out.writes != checked.writes:
        return out.advance(RowState.SWAPPED, swapped=True)
    return out.advance(RowState.UNCHANGED)


def fill_from_city(row: GeoRow, index: GeoIndex) -> GeoRow:
    """Overwrite state/country/region/city with the canonical record for the city.

    Fills blanks and also corrects spelling and case drift. Blank canonical
    values never erase what the row has.
    """
    record = index.city_map.get(row.city.lower()) if row.city else None
    if record is not None:
        for geo_field, canonical in (
            (GeoField.STATE, record.state),
            (GeoField.COUNTRY, record.country),
            (GeoField.REGION, record.region),
            (GeoField.CITY, record.city),
        ):
            if canonical:
                row = row.with_value(geo_field, canonical, STEP_CITY_FILL)
    return row.advance(RowState.CITY_FILLED)


def fill_region_from_country(row: GeoRow, index: GeoIndex) -> GeoRow:
    if not row.region and row.country:
        region = index.country_to_region.get(row.country.lower())
        if region:
            row = row.with_value(GeoField.REGION, region, STEP_COUNTRY_REGION)
    return row.advance(RowState.REGION_FALLBACK_COUNTRY)


def fill_region_from_state_country(row: GeoRow, index: GeoIndex) -> GeoRow:
    if not row.region and row.state and row.country:
        region = index.state_country_to_region.get(_state_country_key(row.state, row.country))
        if region:
            row = row.with_value(GeoField.REGION, region, STEP_STATE_COUNTRY_REGION)
    return row.advance(RowState.REGION_FALLBACK_STATE_COUNTRY)


def audit_row(row: GeoRow) -> tuple[GeoRow, MissingGeoEntry | None]:
    """COMPLETE when country and region are present; otherwise flag rows that
    have a city or state to look them up by."""
    if row.country and row.region:
        return row.advance(RowState.COMPLETE), None
    terminal = row.advance(RowState.FLAGGED_MISSING)
    if not (row.city or row.state):
        return terminal, None
    notes = []
    if not row.country:
        notes.append(MISSING_COUNTRY_NOTE)
    if not row.region:
        notes.append(MISSING_REGION_NOTE)
    entry = MissingGeoEntry(row.city, row.state, row.country, row.region, ", ".join(notes))
    return terminal, entry


def resolve_row(
    row: GeoRow,
    index: GeoIndex,
    gate: SwapGate = SwapGate.MISPLACED,
) -> tuple[GeoRow, MissingGeoEntry | None]:
    row = repair_roles(row, index.roles, gate)
    row = fill_from_city(row, index)
    row = fill_region_from_country(row, index)
    row = fill_region_from_state_country(row, index)
    return audit_row(row)


def resolve_table(
    table: Table,
    index: GeoIndex,
    columns: GeoColumns,
    *,
    gate: SwapGate = SwapGate.MISPLACED,
    known_missing_keys: Iterable[str] = (),
) -> GeoResult:
    """Resolve every row of a lead table.

    Returns a new table; the input is left untouched. `known_missing_keys`
    seeds the missing-entry dedup set (entries already on the audit sheet).
    rows_flagged counts every unresolved row with a city or state, including
    rows whose entry was already known; missing_entries holds only new entries.
    Raises ConfigurationError when the lead table lacks a geo column.
    """
    pos = table.require_columns(columns.as_list())
    col_of = {
        GeoField.CITY: pos[columns.city],
        GeoField.STATE: pos[columns.state],
        GeoField.COUNTRY: pos[columns.country],
        GeoField.REGION: pos[columns.region],
    }

    out = table.copy()
    changed_cells: list[tuple[int, int]] = []
    cell_steps: dict[tuple[int, int], str] = {}
    seen_missing = set(known_missing_keys)
    missing: list[MissingGeoEntry] = []
    rows_changed = 0
    rows_swapped = 0
    rows_complete = 0
    rows_flagged = 0

    for r, cells in enumerate(out.rows):
        start = GeoRow(
            city=cell_text(cells[col_of[GeoField.CITY]]),
            state=cell_text(cells[col_of[GeoField.STATE]]),
            country=cell_text(cells[col_of[GeoField.COUNTRY]]),
            region=cell_text(cells[col_of[GeoField.REGION]]),
        )
        final, entry = resolve_row(start, index, gate)

        # commit once per row; compare with the raw cell so padding is rewritten
        row_changed = False
        for geo_field in GeoField:
            c = col_of[geo_field]
            value = final.get(geo_field)
            raw = cells[c]
            if isinstance(raw, str):
                if raw == value:
                    continue
            elif value == start.get(geo_field):
                continue
            cells[c] = value
            changed_cells.append((r, c))
            cell_steps[(r, c)] = final.last_step(geo_field) or STEP_TRIM
            row_changed = True

        if row_changed:
            rows_changed += 1
        if final.swapped:
            rows_swapped += 1
        if final.state_tag is RowState.COMPLETE:
            rows_complete += 1
        if entry is not None:
            rows_flagged += 1
        if entry is not None and entry.key() not in seen_missing:
            seen_missing.add(entry.key())
            missing.append(entry)

    logger.debug(
        "geo resolve table=%s rows=%d changed=%d swapped=%d complete=%d flagged=%d missing_logged=%d",
        table.name,
        len(out.rows),
        rows_changed,
        rows_swapped,
        rows_complete,
        rows_flagged,
        len(missing),
    )
    return GeoResult(
        table=out,
        changed_cells=changed_cells,
        rows_changed=rows_changed,
        rows_swapped=rows_swapped,
        missing_entries=missing,
        rows_complete=rows_complete,
        rows_flagged=rows_flagged,
        cell_steps=cell_steps,
    )


def missing_keys_from_table(table: Table) -> set[str]:
    """Dedup keys of the rows already on a Missing_GeoMapping sheet (first four columns)."""
    keys: set[str] = set()
    for row in table.rows:
        values = [cell_text(v) for v in (list(row) + ["", "", "", ""])[:4]]
        keys.add(missing_key(*values))
    return keys
