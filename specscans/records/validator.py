# ==============================================
# SchemaValidator
# ==============================================
#
# PURPOSE:
#   Structural check of a submitted scan record BEFORE it is
#   decomposed and written anywhere. A failure aborts that one
#   record's ingestion.
#
# TWO LAYERS:
#   1. Shape (always): record is an object; "motors", when present,
#      maps non-empty string mnemonics to finite numbers.
#   2. Schema (optional): entries loaded from a JSON schema file
#        [{"key": "did", "type": "string", "optional": false}, ...]
#      → required keys present, no unknown keys, value types match.
#
# SCHEMA TYPES:
#   string, int, float, bool, list_str, list_int, list_float, map, any
#   (aliases: str, int64, int32, float64, float32, list_string, dict, object)
#
# CLASS: SchemaValidator
# ----------------------
#   - __init__(entries: list[SchemaEntry] | None = None)
#   - load(path) -> SchemaValidator   (classmethod)
#   - validate(record: dict) -> None  raises ValidationError
#
# ==============================================

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from specscans.errors import SpecScansError, ValidationError
from specscans.records.record import is_number, is_position

logger = logging.getLogger(__name__)

_TYPE_ALIASES = {
    "string": "string", "str": "string",
    "int": "int", "int64": "int", "int32": "int", "int8": "int",
    "float": "float", "float64": "float", "float32": "float",
    "bool": "bool",
    "list_str": "list_str", "list_string": "list_str",
    "list_int": "list_int", "list_int64": "list_int",
    "list_float": "list_float", "list_float64": "list_float",
    "map": "map", "dict": "map", "object": "map",
    "any": "any",
}

# Keys the service itself manages
_RESERVED_KEYS = {"sid", "motors"}


@dataclass(frozen=True)
class SchemaEntry:
    key: str
    type: str = "any"
    optional: bool = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SchemaEntry":
        if "key" not in data:
            raise SpecScansError(f"Schema entry {dict(data)} has no 'key'")
        type_name = str(data.get("type", "any")).lower()
        if type_name not in _TYPE_ALIASES:
            raise SpecScansError(f"Schema entry '{data['key']}' has unknown type '{type_name}'")
        return cls(
            key=str(data["key"]),
            type=_TYPE_ALIASES[type_name],
            optional=bool(data.get("optional", True)),
        )


class SchemaValidator:
    def __init__(self, entries: Optional[list[SchemaEntry]] = None):
        self.entries = {entry.key: entry for entry in entries or []}

    @classmethod
    def load(cls, path: Optional[str]) -> "SchemaValidator":
        if not path:
            return cls()
        try:
            with open(Path(path), "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise SpecScansError(f"Could not load schema file {path}: {e}") from e
        if not isinstance(data, list):
            raise SpecScansError(f"Schema file {path} must hold a JSON array")
        validator = cls([SchemaEntry.from_dict(item) for item in data])
        logger.info("✓ Loaded schema %s (%d keys)", path, len(validator.entries))
        return validator

    def validate(self, record: Any) -> None:
        problems = self._check_shape(record)
        if not problems and self.entries:
            problems = self._check_schema(record)
        if problems:
            raise ValidationError(problems)

    @staticmethod
    def _check_shape(record: Any) -> list[str]:
        if not isinstance(record, Mapping):
            return [f"record must be an object, got {type(record).__name__}"]
        problems = []
        motors = record.get("motors")
        if motors is not None:
            if not isinstance(motors, Mapping):
                problems.append(f"motors must be an object, got {type(motors).__name__}")
            else:
                for mne, position in motors.items():
                    if not isinstance(mne, str) or not mne:
                        problems.append(f"invalid motor mnemonic {mne!r}")
                    elif not is_position(position):
                        problems.append(f"motor '{mne}' position must be a finite number, got {position!r}")
        return problems

    def _check_schema(self, record: Mapping[str, Any]) -> list[str]:
        problems = []
        for key, entry in self.entries.items():
            if not entry.optional and key not in record:
                problems.append(f"missing required key '{key}'")
        for key, value in record.items():
            if key in _RESERVED_KEYS and key not in self.entries:
                continue
            entry = self.entries.get(key)
            if entry is None:
                problems.append(f"unknown key '{key}'")
            elif value is not None and not self.matches_type(value, entry.type):
                problems.append(f"key '{key}' expects {entry.type}, got {type(value).__name__}")
        return problems

    @classmethod
    def matches_type(cls, value: Any, type_name: str) -> bool:
        if type_name == "any":
            return True
        if type_name == "string":
            return isinstance(value, str)
        if type_name == "bool":
            return isinstance(value, bool)
        if type_name == "int":
            return isinstance(value, int) and not isinstance(value, bool)
        if type_name == "float":
            return is_number(value)
        if type_name == "map":
            return isinstance(value, Mapping)
        if type_name.startswith("list_"):
            if not isinstance(value, list):
                return False
            item_type = {"list_str": "string", "list_int": "int", "list_float": "float"}[type_name]
            return all(cls.matches_type(item, item_type) for item in value)
        return False
