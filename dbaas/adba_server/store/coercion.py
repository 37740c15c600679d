"""
Result cell coercion for tenant queries.

SQLite cells are dynamically typed. Each cell of a SELECT result is turned
into a CellValue by trying decoders in a fixed order:

    1. text        -> JSON string
    2. integer     -> JSON number (64-bit signed)
    3. real        -> JSON number (finite 64-bit float)
    4. otherwise   -> JSON null (NULL, BLOB and non-finite REAL cells)

Invariants:
    - The first decoder that accepts a cell wins
    - Text is tried first, so "42" stored as TEXT stays the string "42"
    - Booleans never reach here (sqlite3 has no bool storage class)

How to change safely:
    - Reordering DECODERS changes the wire format clients rely on
    - New kinds must be appended before the null fallback
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


class CellKind(Enum):
    """Tag of a coerced cell."""

    TEXT = "text"
    INTEGER = "integer"
    REAL = "real"
    NULL = "null"


@dataclass(frozen=True)
class CellValue:
    """Tagged cell value.

    Attributes:
        kind: Which decoder accepted the cell
        value: Python value matching the kind (None for NULL)
    """

    kind: CellKind
    value: str | int | float | None = None

    def to_json(self) -> str | int | float | None:
        return self.value


NULL = CellValue(CellKind.NULL)


def _as_text(raw: Any) -> CellValue | None:
    if isinstance(raw, str):
        return CellValue(CellKind.TEXT, raw)
    return None


def _as_integer(raw: Any) -> CellValue | None:
    if isinstance(raw, int) and not isinstance(raw, bool) and INT64_MIN <= raw <= INT64_MAX:
        return CellValue(CellKind.INTEGER, raw)
    return None


def _as_real(raw: Any) -> CellValue | None:
    if isinstance(raw, float) and math.isfinite(raw):
        return CellValue(CellKind.REAL, raw)
    return None


DECODERS: tuple[Callable[[Any], CellValue | None], ...] = (
    _as_text,
    _as_integer,
    _as_real,
)


def coerce_cell(raw: Any) -> CellValue:
    """Coerce one raw sqlite3 cell, trying DECODERS in order."""
    for decode in DECODERS:
        cell = decode(raw)
        if cell is not None:
            return cell
    return NULL


def coerce_row(columns: Sequence[str], row: Sequence[Any]) -> dict[str, Any]:
    """Build a JSON object for one result row.

    Duplicate column labels keep the last value, like a JSON object would.
    """
    return {name: coerce_cell(raw).to_json() for name, raw in zip(columns, row)}
