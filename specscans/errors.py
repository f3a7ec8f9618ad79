# ==============================================
# Errors
# ==============================================
#
# Exception taxonomy for the service. Every error raised on
# purpose derives from SpecScansError so callers at the
# boundary can catch one base class.
#
#   SpecScansError
#   ├── RequestDecodeError     malformed request body
#   ├── ValidationError        schema / shape violation
#   ├── QueryParseError        malformed filter expression
#   │   └── UnroutableFieldError
#   ├── RoutingTableError      service map unusable
#   ├── EditLookupError        edit target not exactly one record
#   └── StoreError             backend failure
#       ├── MotorStoreError
#       │   └── DuplicateScanError
#       └── DocumentStoreError
#
# ==============================================

from typing import Any, Optional


class SpecScansError(Exception):
    """Base error for the service."""


class RequestDecodeError(SpecScansError):
    """Raised when a request body is not a JSON object or array of objects."""


class ValidationError(SpecScansError):
    """Raised when a record fails schema or shape validation."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or "invalid record")


class QueryParseError(SpecScansError):
    """Raised when a filter expression cannot be parsed or compiled."""


class UnroutableFieldError(QueryParseError):
    """Raised under strict routing when a filter key has no owning backend."""

    def __init__(self, service: str, keys: list[str]) -> None:
        self.service = service
        self.keys = list(keys)
        super().__init__(
            f"Fields {sorted(self.keys)} are not routable for service '{service}'"
        )


class RoutingTableError(SpecScansError):
    """Raised when the service map cannot be loaded or is malformed."""


class EditLookupError(SpecScansError):
    """Raised when an edit does not resolve to exactly one existing record."""

    def __init__(self, lookup: dict, matches: int) -> None:
        self.lookup = lookup
        self.matches = matches
        super().__init__(
            f"Edit lookup {lookup} matched {matches} records, expected exactly 1"
        )


class StoreError(SpecScansError):
    """Raised when a storage backend operation fails."""


class MotorStoreError(StoreError):
    """Raised when the relational motor store fails."""


class DuplicateScanError(MotorStoreError):
    """Raised when inserting a sid that already exists."""

    def __init__(self, sid: Any, detail: Optional[str] = None) -> None:
        self.sid = sid
        message = f"Scan id {sid} already exists in motors database"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class DocumentStoreError(StoreError):
    """Raised when the document store fails."""
