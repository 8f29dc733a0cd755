"""
County Reference Table
=======================

Canonical list of counties loaded from a delimited (CSV) source and
indexed three ways for the rules engine:

1. ``by_slug``             exact, case-sensitive slug (``appling``)
2. ``by_name``             case-insensitive name (``Appling``, ``APPLING``)
3. ``by_name_normalized``  whitespace-collapsed, case-insensitive name

``normalize`` tries them in that order; the first hit wins. The
canonical value of a row is its slug when it has one, else its name.

A second, looser matcher (``match_mention``) serves the AI orchestrator:
it strips the word "county" and punctuation from free text and allows
a unique-prefix (FUZZY) match.

Header aliases accepted (case-insensitive):
    state:   state, state_code, state_abbrev
    name:    county_name, name
    display: county_display, display, county_display_name
    slug:    county_slug, slug
    fips:    county_fips, fips, county_fips_code

Usage:
    from lexintake.reference.counties import load_counties
    table = load_counties()                  # packaged Georgia table
    match = table.normalize("Ben  Hill")     # CountyMatch(..., "name_trimmed")
"""

from __future__ import annotations

import csv
import io
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from lexintake.config import DATA_DIR
from lexintake.errors import ReferenceDataError
from lexintake.utils import normalize_whitespace

logger = logging.getLogger("lexintake.reference.counties")

DEFAULT_COUNTIES_PATH = DATA_DIR / "counties.csv"

MatchStrategy = Literal["slug_exact", "name_exact", "name_trimmed"]
MentionMatchType = Literal["EXACT", "FUZZY", "NONE"]

_HEADER_ALIASES: dict[str, tuple[str, ...]] = {
    "state": ("state", "state_code", "state_abbrev"),
    "name": ("county_name", "name"),
    "display": ("county_display", "display", "county_display_name"),
    "slug": ("county_slug", "slug"),
    "fips": ("county_fips", "fips", "county_fips_code"),
}


@dataclass(frozen=True)
class CountyRow:
    """One canonical county."""
    name: str
    display_name: Optional[str] = None
    slug: Optional[str] = None
    fips: Optional[str] = None
    raw: dict[str, str] = field(default_factory=dict, compare=False, hash=False, repr=False)

    @property
    def canonical_value(self) -> str:
        return self.slug if self.slug else self.name


@dataclass(frozen=True)
class CountyMatch:
    """Successful lookup of a raw value in the table."""
    normalized_value: str
    match_strategy: MatchStrategy
    row: CountyRow


@dataclass(frozen=True)
class MentionMatch:
    """Result of matching a free-text county mention."""
    suggested_county: Optional[str]
    match_type: MentionMatchType


def normalize_mention(value: str) -> str:
    """Lowercase, drop the word 'county' and punctuation, collapse whitespace."""
    text = value.lower()
    text = re.sub(r"\bcounty\b", "", text)
    text = re.sub(r"[^a-z0-9\s-]", "", text)
    return normalize_whitespace(text)


class CountyTable:
    """In-memory county index. Build with ``parse_counties_csv`` or ``load_counties``."""

    def __init__(self, rows: list[CountyRow], source: str = ""):
        self.rows = list(rows)
        self.source = source
        self.by_slug: dict[str, CountyRow] = {}
        self.by_name: dict[str, CountyRow] = {}
        self.by_name_normalized: dict[str, CountyRow] = {}
        self._mention_names: dict[str, str] = {}
        self._mention_slugs: dict[str, str] = {}

        for row in self.rows:
            if row.slug:
                self.by_slug[row.slug] = row
                slug_key = normalize_mention(row.slug)
                if slug_key:
                    self._mention_slugs[slug_key] = row.canonical_value
            self.by_name[row.name.lower()] = row
            self.by_name_normalized[normalize_whitespace(row.name).lower()] = row
            name_key = normalize_mention(row.name)
            if name_key:
                self._mention_names[name_key] = row.canonical_value

        self.canonical_values = [row.canonical_value for row in self.rows]
        self._canonical_set = frozenset(self.canonical_values)

    def __len__(self) -> int:
        return len(self.rows)

    def normalize(self, raw_value: object) -> Optional[CountyMatch]:
        """
        Look a raw value up: slug (exact) → name (case-insensitive) →
        whitespace-normalized name. Returns None when nothing matches.
        """
        if not isinstance(raw_value, str):
            return None
        trimmed = raw_value.strip()
        if not trimmed:
            return None

        row = self.by_slug.get(trimmed)
        if row is not None:
            return CountyMatch(row.canonical_value, "slug_exact", row)

        row = self.by_name.get(trimmed.lower())
        if row is not None:
            return CountyMatch(row.canonical_value, "name_exact", row)

        row = self.by_name_normalized.get(normalize_whitespace(trimmed).lower())
        if row is not None:
            return CountyMatch(row.canonical_value, "name_trimmed", row)

        return None

    def is_canonical(self, value: str) -> bool:
        return value in self._canonical_set

    def match_mention(self, raw_value: object) -> MentionMatch:
        """
        Match free text such as "Fulton County," to a canonical value.

        EXACT on a normalized name or slug hit; FUZZY when exactly one
        county starts with the normalized text; otherwise NONE.
        """
        if not isinstance(raw_value, str):
            return MentionMatch(None, "NONE")
        key = normalize_mention(raw_value)
        if not key:
            return MentionMatch(None, "NONE")

        exact = self._mention_names.get(key) or self._mention_slugs.get(key)
        if exact:
            return MentionMatch(exact, "EXACT")

        candidates = {
            canonical
            for index in (self._mention_names, self._mention_slugs)
            for mention_key, canonical in index.items()
            if mention_key.startswith(key)
        }
        if len(candidates) == 1:
            return MentionMatch(candidates.pop(), "FUZZY")
        return MentionMatch(None, "NONE")


# ── Loading ────────────────────────────────────────────────────────

def _column(headers: list[str], concept: str) -> Optional[int]:
    lookup = {header.strip().lower(): idx for idx, header in enumerate(headers)}
    for alias in _HEADER_ALIASES[concept]:
        if alias in lookup:
            return lookup[alias]
    return None


def _cell(cells: list[str], idx: Optional[int]) -> str:
    if idx is None or idx >= len(cells):
        return ""
    return normalize_whitespace(cells[idx])


def parse_counties_csv(text: str, state: Optional[str] = "GA", source: str = "") -> CountyTable:
    """
    Parse CSV text into a CountyTable.

    Rows for other states are skipped when a state column exists; rows
    without a name are skipped. Cells are whitespace-normalized.

    Raises:
        ReferenceDataError: No name column, or no usable rows.
    """
    reader = csv.reader(io.StringIO(text))
    lines = [cells for cells in reader if any(cell.strip() for cell in cells)]
    if not lines:
        raise ReferenceDataError(f"County table {source or '<text>'} is empty")

    headers = [header.strip() for header in lines[0]]
    name_idx = _column(headers, "name")
    if name_idx is None:
        raise ReferenceDataError(f"County table {source or '<text>'} has no county name column")
    state_idx = _column(headers, "state")
    display_idx = _column(headers, "display")
    slug_idx = _column(headers, "slug")
    fips_idx = _column(headers, "fips")

    rows: list[CountyRow] = []
    for cells in lines[1:]:
        row_state = _cell(cells, state_idx)
        if state and row_state and row_state.upper() != state.upper():
            continue
        name = _cell(cells, name_idx)
        if not name:
            continue
        rows.append(CountyRow(
            name=name,
            display_name=_cell(cells, display_idx) or None,
            slug=_cell(cells, slug_idx) or None,
            fips=_cell(cells, fips_idx) or None,
            raw={header: (cells[idx] if idx < len(cells) else "") for idx, header in enumerate(headers)},
        ))

    if not rows:
        raise ReferenceDataError(f"County table {source or '<text>'} has no rows for state {state}")
    return CountyTable(rows, source=source)


@lru_cache(maxsize=8)
def _load_cached(resolved_path: str, state: Optional[str]) -> CountyTable:
    try:
        text = Path(resolved_path).read_text(encoding="utf-8")
    except OSError as e:
        raise ReferenceDataError(f"Cannot read county table {resolved_path}: {e}") from e
    table = parse_counties_csv(text, state=state, source=Path(resolved_path).name)
    logger.info(f"Loaded {len(table)} counties from {resolved_path}")
    return table


def load_counties(path: str | Path | None = None, state: Optional[str] = "GA") -> CountyTable:
    """Load (once per resolved path and state) the county reference table."""
    resolved = Path(path or DEFAULT_COUNTIES_PATH).resolve()
    return _load_cached(str(resolved), state)


def clear_county_cache() -> None:
    _load_cached.cache_clear()
