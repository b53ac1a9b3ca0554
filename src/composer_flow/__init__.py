"""
Composer Flow Connector

Lets flow-based automation tools create, update and retrieve the assets,
participants and transactions of a business network. Sessions connect
lazily and are shared per identity; payloads are classified against the
network's live type model and routed to the matching registry operation.
"""

__version__ = "0.1.0"

from composer_flow.dispatcher import ResourceDispatcher, Route, resolve_route
from composer_flow.operations import OperationKind, OperationRequest, OperationResult
from composer_flow.session import Session, SessionManager, SessionState

__all__ = [
    "ResourceDispatcher",
    "Route",
    "resolve_route",
    "OperationKind",
    "OperationRequest",
    "OperationResult",
    "Session",
    "SessionManager",
    "SessionState",
]
