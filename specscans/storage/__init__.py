# ==============================================
# STORAGE (Motors DB + MongoDB)
# ==============================================
#
# This package handles all database operations.
#
# Modules:
# --------
# - statements.py      → Parameterized SQL for the three motor tables
# - motor_store.py     → Relational motor positions store (MySQL / SQLite)
# - document_store.py  → MongoDB connection and document operations
#
# ==============================================

from .motor_store import MotorStore
from .document_store import DocumentStore
from .statements import MotorStatementBuilder, Dialect, MYSQL, SQLITE

__all__ = [
    "MotorStore",
    "DocumentStore",
    "MotorStatementBuilder",
    "Dialect",
    "MYSQL",
    "SQLITE",
]
