# ==============================================
# QUERY FEDERATION
# ==============================================
#
# This package turns one user filter expression into
# backend-specific predicates and joins the results.
#
# Modules:
# --------
# - routing.py         → Backend enum, static RoutingTable + loader
# - filters.py         → Tagged filter variants, parsed once
# - router.py          → Splits a filter into per-backend sub-filters
# - motor_compiler.py  → Sub-filter → per-mnemonic position filters
# - executor.py        → Picks the join strategy, completes records
#
# ==============================================

from .routing import Backend, RoutingEntry, RoutingTable, load_routing_table
from .filters import parse_filter
from .router import FieldRouter
from .motor_compiler import MotorPositionQuery, MotorPredicateCompiler
from .executor import FederatedSearch, SearchStrategy

__all__ = [
    "Backend",
    "RoutingEntry",
    "RoutingTable",
    "load_routing_table",
    "parse_filter",
    "FieldRouter",
    "MotorPositionQuery",
    "MotorPredicateCompiler",
    "FederatedSearch",
    "SearchStrategy",
]
