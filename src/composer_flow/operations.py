"""
Operation request and result models.

An operation is one create, update or retrieve against the business
network, carried as a JSON payload whose shape depends on the kind.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from composer_flow.errors import BridgeError


class OperationKind(str, Enum):
    """Operations a flow can request."""
    CREATE = "create"
    RETRIEVE = "retrieve"
    UPDATE = "update"


@dataclass(frozen=True)
class OperationRequest:
    """
    A single requested operation.

    Attributes:
        kind: Create, retrieve or update
        payload: Resource JSON for create/update, {"modelName", "id"} for retrieve
    """

    kind: OperationKind
    payload: Any

    def __post_init__(self):
        if isinstance(self.kind, str):
            object.__setattr__(self, "kind", OperationKind(self.kind))

    @classmethod
    def create(cls, payload: Any) -> "OperationRequest":
        return cls(OperationKind.CREATE, payload)

    @classmethod
    def update(cls, payload: Any) -> "OperationRequest":
        return cls(OperationKind.UPDATE, payload)

    @classmethod
    def retrieve(cls, type_name: str, identifier: str) -> "OperationRequest":
        return cls(OperationKind.RETRIEVE, {"modelName": type_name, "id": identifier})


@dataclass
class OperationResult:
    """
    Outcome of an operation.

    Retrieve results carry the resource JSON; create/update results carry
    no payload. Failed results carry the error.
    """

    kind: OperationKind
    payload: Optional[Dict[str, Any]] = None
    error: Optional[BridgeError] = None
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, kind: OperationKind, payload: Optional[Dict[str, Any]] = None) -> "OperationResult":
        return cls(kind=kind, payload=payload)

    @classmethod
    def failure(cls, kind: OperationKind, error: BridgeError) -> "OperationResult":
        return cls(kind=kind, error=error)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "kind": self.kind.value,
            "ok": self.ok,
            "payload": self.payload,
            "error": str(self.error) if self.error else None,
            "error_type": type(self.error).__name__ if self.error else None,
            "completed_at": self.completed_at.isoformat(),
        }
