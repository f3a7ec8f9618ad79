# ==============================================
# MotorPredicateCompiler
# ==============================================
#
# PURPOSE:
#   Turns the sub-filter routed to the relational backend into a
#   list of normalized per-mnemonic position filters that the
#   motor store can turn into a parameterized SQL statement.
#
# INPUT KEYS:
# -----------
#   "motors"          → {"samx": 1.0, "samz": {"$lt": 2}} or "samx" or ["samx", "samz"]
#   "motors.<mne>"    → 1.0, [1.0, 2.0], {"$gt": 0, "$in": [...]}, {"$exists": true}
#
#   Both forms are flattened to (mnemonic, value) pairs first.
#
# PER-ENTRY SEMANTICS:
# --------------------
#   no value (bare mnemonic)  → mnemonic must be present
#   number                    → exact = {number}
#   list of numbers           → exact = set (SQL IN)
#   {"$eq": x}                → exact = {x}
#   {"$in": [...]}            → exact = set
#   {"$gt": a} / {"$gte": a}  → lower bound (exclusive / inclusive)
#   {"$lt": b} / {"$lte": b}  → upper bound (exclusive / inclusive)
#   {"$exists": bool}         → presence / absence of the mnemonic
#   Several operators on one entry all apply (AND): a position must
#   be in the exact set AND inside the bounds.
#   Several entries (even for the same mnemonic) are AND-ed too.
#
# DATA CLASS: MotorPositionQuery
# ------------------------------
#   - mnemonic: str
#   - exact: tuple[float, ...] | None   None = no exact-set constraint
#   - minimum / maximum: float | None
#   - min_inclusive / max_inclusive: bool
#   - present: bool                     False = scan must NOT have mnemonic
#
# ==============================================

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from specscans.errors import QueryParseError
from specscans.query.filters import (
    Compound,
    Exists,
    FilterValue,
    Literal,
    Nested,
    Operator,
    Range,
    ValueSet,
    parse_value,
)
from specscans.records.record import is_number

logger = logging.getLogger(__name__)

MOTORS_KEY = "motors"
MOTORS_PREFIX = MOTORS_KEY + "."


@dataclass
class MotorPositionQuery:
    mnemonic: str
    exact: Optional[tuple] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    min_inclusive: bool = False
    max_inclusive: bool = False
    present: bool = True

    @property
    def constrains_position(self) -> bool:
        return self.exact is not None or self.minimum is not None or self.maximum is not None

    def matches(self, motors: Mapping[str, float]) -> bool:
        """Evaluate this filter against one scan's motor mapping."""
        if self.mnemonic not in motors:
            return not self.present
        if not self.present:
            return False
        position = motors[self.mnemonic]
        if self.exact is not None and position not in self.exact:
            return False
        if self.minimum is not None:
            if position < self.minimum or (position == self.minimum and not self.min_inclusive):
                return False
        if self.maximum is not None:
            if position > self.maximum or (position == self.maximum and not self.max_inclusive):
                return False
        return True


class MotorPredicateCompiler:
    def compile(self, sub_filter: Mapping[str, Any]) -> list[MotorPositionQuery]:
        """
        Compile a relational sub-filter.

        Args:
            sub_filter: Mapping of "motors" / "motors.<mne>" keys to parsed
                FilterValue variants (raw JSON values are parsed on the fly)

        Returns:
            One MotorPositionQuery per flattened (mnemonic, value) entry

        Raises:
            QueryParseError: for keys outside "motors" or malformed values
        """
        queries = []
        for mnemonic, value in self._flatten(sub_filter):
            queries.append(self._translate(mnemonic, value))
        logger.debug("Compiled motor filters: %s", queries)
        return queries

    def _flatten(self, sub_filter: Mapping[str, Any]) -> list[tuple[str, Optional[FilterValue]]]:
        entries: list[tuple[str, Optional[FilterValue]]] = []
        for key, value in sub_filter.items():
            if not isinstance(value, (Literal, ValueSet, Range, Exists, Operator, Compound, Nested)):
                value = parse_value(value, key)
            if key == MOTORS_KEY:
                entries.extend(self._flatten_motors_value(value))
            elif key.startswith(MOTORS_PREFIX) and len(key) > len(MOTORS_PREFIX):
                entries.append((key[len(MOTORS_PREFIX):], value))
            else:
                raise QueryParseError(f"Key '{key}' is not a motors field")
        return entries

    def _flatten_motors_value(self, value: FilterValue) -> list[tuple[str, Optional[FilterValue]]]:
        if isinstance(value, Nested):
            return list(value.fields.items())
        if isinstance(value, Literal) and isinstance(value.value, str):
            return [(value.value, None)]
        if isinstance(value, ValueSet) and all(isinstance(v, str) for v in value.values):
            return [(mne, None) for mne in value.values]
        raise QueryParseError(
            f"'motors' filter must be a mnemonic, a list of mnemonics or an object, got {value.raw!r}"
        )

    def _translate(self, mnemonic: str, value: Optional[FilterValue]) -> MotorPositionQuery:
        if not mnemonic:
            raise QueryParseError("Empty motor mnemonic in filter")
        query = MotorPositionQuery(mnemonic=mnemonic)
        if value is None:
            return query
        parts = value.parts if isinstance(value, Compound) else (value,)
        for part in parts:
            self._apply(query, part)
        return query

    def _apply(self, query: MotorPositionQuery, part: FilterValue) -> None:
        mne = query.mnemonic
        if isinstance(part, Literal):
            if not is_number(part.value):
                raise QueryParseError(f"Position for motor '{mne}' must be a number, got {part.value!r}")
            self._narrow(query, (float(part.value),))
        elif isinstance(part, ValueSet):
            if not all(is_number(v) for v in part.values):
                raise QueryParseError(f"Positions for motor '{mne}' must be numbers, got {list(part.values)!r}")
            self._narrow(query, tuple(float(v) for v in part.values))
        elif isinstance(part, Range):
            for bound in (part.lower, part.upper):
                if bound is not None and not is_number(bound):
                    raise QueryParseError(f"Bound for motor '{mne}' must be a number, got {bound!r}")
            if part.lower is not None:
                query.minimum = float(part.lower)
                query.min_inclusive = part.lower_inclusive
            if part.upper is not None:
                query.maximum = float(part.upper)
                query.max_inclusive = part.upper_inclusive
        elif isinstance(part, Exists):
            query.present = part.present
        elif isinstance(part, Operator):
            raise QueryParseError(f"Operator '{part.name}' is not supported for motor '{mne}'")
        else:
            raise QueryParseError(f"Unsupported filter for motor '{mne}': {part.raw!r}")

        if not query.present and query.constrains_position:
            raise QueryParseError(f"Motor '{mne}' cannot be both absent and constrained")

    @staticmethod
    def _narrow(query: MotorPositionQuery, values: tuple) -> None:
        if query.exact is None:
            query.exact = values
        else:
            query.exact = tuple(v for v in query.exact if v in values)
