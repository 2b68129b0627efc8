"""Claim routing module for import duty/VAT refund claims."""

from .claim_routing import (
    COURIER_PLAYBOOKS,
    ROUTE_CATALOG,
    CourierPlaybook,
    DeadlineStatus,
    RouteInfo,
    check_deadline,
    get_alternative_routes,
    get_courier_playbook,
    get_next_steps,
    get_route_info,
    get_routing_explanation,
    resolve_route,
)
from .schema import (
    Channel,
    ClaimRoute,
    ClaimType,
    Courier,
    EvidenceType,
    Identifier,
    RouteResult,
)

__all__ = [
    "COURIER_PLAYBOOKS",
    "ROUTE_CATALOG",
    "CourierPlaybook",
    "DeadlineStatus",
    "RouteInfo",
    "RouteResult",
    "Channel",
    "ClaimRoute",
    "ClaimType",
    "Courier",
    "EvidenceType",
    "Identifier",
    "check_deadline",
    "get_alternative_routes",
    "get_courier_playbook",
    "get_next_steps",
    "get_route_info",
    "get_routing_explanation",
    "resolve_route",
]
