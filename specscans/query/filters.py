# ==============================================
# Filter Values
# ==============================================
#
# PURPOSE:
#   Parse a user filter expression ONCE into a small set of
#   tagged variants so downstream stages (router, motor
#   compiler, document query builder) pattern-match on types
#   instead of re-inspecting raw JSON at every step.
#
# VARIANTS:
# ---------
# - Literal(value)          scalar equality: {"beamline": "3a"}
# - ValueSet(values)        list literal or {"$in": [...]} / {"$eq": x}
# - Range(lower, upper)     {"$gt": a, "$lt": b} (+ $gte / $lte)
# - Exists(present)         {"$exists": true}
# - Operator(name, arg)     any other $-operator, document store only
# - Compound(parts)         operator object holding several of the
#                           above; every part must hold (AND)
# - Nested(fields)          sub-document: {"motors": {"samx": 1.0}}
#
# Every variant keeps the raw JSON it came from (`raw`), so a
# sub-filter routed to MongoDB is emitted in its original shape.
#
# FUNCTIONS:
# ----------
# - parse_filter(expression: dict) -> dict[str, FilterValue]
# - parse_value(raw) -> FilterValue
# - to_document_query(terms: dict[str, FilterValue]) -> dict
#
# ==============================================

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from specscans.errors import QueryParseError
from specscans.records.record import is_number

SET_OPERATORS = ("$eq", "$in")
BOUND_OPERATORS = ("$gt", "$gte", "$lt", "$lte")


def is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (str, int, float, bool))


@dataclass(frozen=True)
class Literal:
    value: Any
    raw: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ValueSet:
    values: tuple
    raw: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Range:
    lower: Any = None
    upper: Any = None
    lower_inclusive: bool = False
    upper_inclusive: bool = False
    raw: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Exists:
    present: bool = True
    raw: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Operator:
    name: str
    argument: Any
    raw: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Compound:
    parts: tuple
    raw: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Nested:
    fields: Mapping[str, Any]
    raw: Any = field(default=None, compare=False, repr=False)


FilterValue = Union[Literal, ValueSet, Range, Exists, Operator, Compound, Nested]


def parse_filter(expression: Mapping[str, Any]) -> dict[str, FilterValue]:
    """
    Parse a top-level filter expression.

    Args:
        expression: Mapping of dotted field path to literal or operator object

    Returns:
        Mapping of the same keys to parsed FilterValue variants

    Raises:
        QueryParseError: on non-mapping input or malformed operator values
    """
    if expression is None:
        return {}
    if not isinstance(expression, Mapping):
        raise QueryParseError(
            f"Filter expression must be an object, got {type(expression).__name__}"
        )
    terms = {}
    for key, raw in expression.items():
        if not isinstance(key, str) or not key:
            raise QueryParseError(f"Invalid filter key {key!r}")
        if key.startswith("$"):
            raise QueryParseError(f"Top-level operator '{key}' is not supported")
        terms[key] = parse_value(raw, key)
    return terms


def parse_value(raw: Any, path: str = "") -> FilterValue:
    if isinstance(raw, Mapping):
        keys = list(raw.keys())
        operator_keys = [k for k in keys if isinstance(k, str) and k.startswith("$")]
        if operator_keys and len(operator_keys) != len(keys):
            raise QueryParseError(
                f"Filter for '{path}' mixes operators and field names: {keys}"
            )
        if operator_keys:
            return _parse_operators(raw, path)
        fields = {}
        for key, value in raw.items():
            if not isinstance(key, str) or not key:
                raise QueryParseError(f"Invalid filter key {key!r} under '{path}'")
            fields[key] = parse_value(value, f"{path}.{key}" if path else key)
        return Nested(fields=fields, raw=raw)
    if isinstance(raw, (list, tuple)):
        if all(is_scalar(v) for v in raw):
            return ValueSet(values=tuple(raw), raw=raw)
        return Literal(value=raw, raw=raw)
    if is_scalar(raw):
        return Literal(value=raw, raw=raw)
    raise QueryParseError(f"Unsupported filter value for '{path}': {raw!r}")


def _parse_operators(raw: Mapping[str, Any], path: str) -> FilterValue:
    parts: list = []
    exact: Optional[tuple] = None
    bounds: dict[str, Any] = {}

    for op, arg in raw.items():
        if op == "$eq":
            if not is_scalar(arg):
                raise QueryParseError(f"$eq for '{path}' expects a scalar, got {arg!r}")
            exact = _intersect(exact, (arg,))
        elif op == "$in":
            if not isinstance(arg, (list, tuple)) or not all(is_scalar(v) for v in arg):
                raise QueryParseError(f"$in for '{path}' expects a list of scalars, got {arg!r}")
            exact = _intersect(exact, tuple(arg))
        elif op in BOUND_OPERATORS:
            if arg is None or not is_scalar(arg) or isinstance(arg, bool):
                raise QueryParseError(f"{op} for '{path}' expects a number or string, got {arg!r}")
            bounds[op] = arg
        elif op == "$exists":
            if not isinstance(arg, (bool, int)):
                raise QueryParseError(f"$exists for '{path}' expects a boolean, got {arg!r}")
            parts.append(Exists(present=bool(arg), raw={op: arg}))
        else:
            parts.append(Operator(name=op, argument=arg, raw={op: arg}))

    if exact is not None:
        parts.insert(0, ValueSet(values=exact, raw={k: raw[k] for k in SET_OPERATORS if k in raw}))
    if bounds:
        if "$gt" in bounds and "$gte" in bounds:
            raise QueryParseError(f"Filter for '{path}' has both $gt and $gte")
        if "$lt" in bounds and "$lte" in bounds:
            raise QueryParseError(f"Filter for '{path}' has both $lt and $lte")
        lower_op = "$gte" if "$gte" in bounds else "$gt"
        upper_op = "$lte" if "$lte" in bounds else "$lt"
        parts.insert(1 if exact is not None else 0, Range(
            lower=bounds.get(lower_op),
            upper=bounds.get(upper_op),
            lower_inclusive=lower_op == "$gte",
            upper_inclusive=upper_op == "$lte",
            raw={k: raw[k] for k in BOUND_OPERATORS if k in raw},
        ))

    if len(parts) == 1:
        # Single part keeps the whole operator object as its raw form
        only = parts[0]
        return type(only)(**{**_fields_of(only), "raw": raw})
    return Compound(parts=tuple(parts), raw=raw)


def _intersect(current: Optional[tuple], values: tuple) -> tuple:
    # $eq together with $in narrows the set instead of replacing it
    if current is None:
        return values
    return tuple(v for v in current if v in values)


def _fields_of(value: FilterValue) -> dict[str, Any]:
    return {name: getattr(value, name) for name in value.__dataclass_fields__ if name != "raw"}


def to_document_query(terms: Mapping[str, FilterValue]) -> dict[str, Any]:
    """Re-emit parsed terms in their original JSON shape for MongoDB."""
    return {key: value.raw for key, value in terms.items()}
