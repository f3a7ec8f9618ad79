# ==============================================
# FieldRouter
# ==============================================
#
# PURPOSE:
#   Takes one user filter expression and splits it into one
#   sub-filter per backend, using the static RoutingTable.
#
# WHY THIS CLASS EXISTS:
#   A scan record lives in two stores. "beamline" is a MongoDB
#   field, "motors.samx" lives in the relational motors database.
#   A single query may touch both, so every key must be sent to
#   the backend that owns it, and only that one.
#
# CLASS: FieldRouter
# ------------------
#   Stateless apart from the (immutable) routing table.
#
#   Constructor:
#   ------------
#   - __init__(routing_table: RoutingTable, strict: bool = False)
#
#   Methods:
#   --------
#   - route(service: str, expression: dict) -> dict[Backend, dict[str, FilterValue]]
#       Parses the expression into FilterValue variants, then
#       assigns each key to the backend of its most specific
#       routing entry. Every Backend is present in the result,
#       possibly with an empty sub-filter.
#       Keys owned by no entry are dropped with a warning, or
#       raise UnroutableFieldError when strict=True.
#
# ==============================================

import logging
from typing import Any, Mapping

from specscans.errors import UnroutableFieldError
from specscans.query.filters import FilterValue, parse_filter
from specscans.query.routing import Backend, RoutingTable

logger = logging.getLogger(__name__)


class FieldRouter:
    def __init__(self, routing_table: RoutingTable, strict: bool = False):
        self.routing_table = routing_table
        self.strict = strict

    def route(
        self,
        service: str,
        expression: Mapping[str, Any],
    ) -> dict[Backend, dict[str, FilterValue]]:
        terms = parse_filter(expression)
        routed: dict[Backend, dict[str, FilterValue]] = {backend: {} for backend in Backend}
        unmatched = []

        for key, value in terms.items():
            entry = self.routing_table.owner(service, key)
            if entry is None:
                unmatched.append(key)
                continue
            routed[entry.backend][key] = value

        if unmatched:
            if self.strict:
                raise UnroutableFieldError(service, unmatched)
            logger.warning("✗ Dropping unroutable filter keys for %s: %s", service, unmatched)

        logger.debug(
            "Routed query for %s: %s",
            service,
            {backend.value: sorted(sub) for backend, sub in routed.items()},
        )
        return routed
