"""Request gateway: route classification, gating and header injection."""

from access_guard.gateway.gateway import (
    SECURITY_HEADERS,
    DecisionKind,
    GatewayDecision,
    RequestGateway,
)
from access_guard.gateway.routes import DEFAULT_ROUTES, RouteTable, load_route_table

__all__ = [
    "DEFAULT_ROUTES",
    "SECURITY_HEADERS",
    "DecisionKind",
    "GatewayDecision",
    "RequestGateway",
    "RouteTable",
    "load_route_table",
]
