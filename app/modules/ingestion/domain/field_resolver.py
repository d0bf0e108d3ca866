"""
Locale-aware column lookup for raw billing rows.

Real exports label the same field in many ways ("lineItem/UnblendedCost",
"PreTaxCost", "ENCARGOS/CRÉDITOS"), so fields are resolved against ranked
candidate keyword lists instead of a fixed schema.
"""

from typing import Iterable, Mapping, Optional, Sequence

RawRow = Mapping[str, str]

CURRENCY_COLUMN_SUFFIXES = ("currency", "moeda")


def normalize_column(name: str) -> str:
    return str(name).lower().strip()


def find_value(row: RawRow, candidates: Sequence[str]) -> Optional[str]:
    """
    Return the value of the first column whose lower-cased, trimmed name contains
    a candidate or is contained by one. Candidates are tried in order, so the
    most specific belong first.
    """
    columns = [(normalize_column(k), v) for k, v in row.items()]
    columns = [(k, v) for k, v in columns if k]
    for candidate in candidates:
        for column, value in columns:
            if candidate in column or column in candidate:
                return value
    return None


def find_column(
    row: RawRow,
    candidate: str,
    excluded_suffixes: Iterable[str] = CURRENCY_COLUMN_SUFFIXES,
) -> Optional[str]:
    """
    First raw column name containing the candidate, skipping columns that end in
    one of the excluded suffixes ("ENCARGOS/CRÉDITOS CURRENCY" holds a code, not a value).
    """
    suffixes = tuple(excluded_suffixes)
    for column in row:
        lowered = normalize_column(column)
        if candidate in lowered and not lowered.endswith(suffixes):
            return column
    return None


def has_any_column(columns: Iterable[str], indicators: Iterable[str]) -> bool:
    """Bidirectional substring membership of any indicator among the column names."""
    lowered = [normalize_column(c) for c in columns]
    lowered = [c for c in lowered if c]
    return any(ind in col or col in ind for ind in indicators for col in lowered)
