# ==============================================
# SpecScans Metadata Service
# ==============================================
#
# Package Structure:
#
# specscans/
# ├── query/      # Field routing, filter compilation, federated search
# ├── storage/    # Relational motor store (MySQL / SQLite) + MongoDB client
# ├── records/    # Record decomposition/completion, schema validation
# ├── batch.py    # Concurrent per-record add/edit coordination
# ├── service.py  # ServiceContext + ScanService facade
# ├── config.py   # Configuration management
# ├── errors.py   # Exception taxonomy
# └── cli.py      # Command line entry point
#
# ==============================================

__version__ = "0.1.0"
