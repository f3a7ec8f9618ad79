# ==============================================
# RECORDS
# ==============================================
#
# Splitting scan records across the two stores and putting
# them back together, plus pre-ingestion validation.
#
# Modules:
# --------
# - record.py     → MotorRecord, decode_records, decompose, complete
# - validator.py  → Shape + optional schema-file validation
#
# ==============================================

from .record import MotorRecord, decode_records, decompose, complete, derive_sid
from .validator import SchemaValidator, SchemaEntry

__all__ = [
    "MotorRecord",
    "decode_records",
    "decompose",
    "complete",
    "derive_sid",
    "SchemaValidator",
    "SchemaEntry",
]
