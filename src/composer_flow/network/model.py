"""
Type model of a business network.

Declarations describe the domain types of a network. Resources are typed
instances built from JSON payloads by the Serializer and classified into a
closed set of kinds that the dispatcher routes on.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from composer_flow.errors import DeserializationError

CLASS_FIELD = "$class"
TRANSACTION_ID_FIELD = "transactionId"
TIMESTAMP_FIELD = "timestamp"


class DeclarationType(str, Enum):
    """Raw declaration kinds found in a network's model files."""
    ASSET = "asset"
    PARTICIPANT = "participant"
    TRANSACTION = "transaction"
    EVENT = "event"
    CONCEPT = "concept"
    ENUM = "enum"


class Classification(str, Enum):
    """Kinds the dispatcher knows how to route."""
    ASSET = "asset"
    PARTICIPANT = "participant"
    TRANSACTION = "transaction"
    UNKNOWN = "unknown"


class ClassDeclaration(BaseModel):
    """A single declared type of the business network."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    namespace: str
    name: str
    type: DeclarationType
    identified_by: Optional[str] = Field(default=None, alias="identifiedBy")
    properties: List[str] = Field(default_factory=list)

    @property
    def fully_qualified_name(self) -> str:
        return f"{self.namespace}.{self.name}"

    @property
    def is_identified(self) -> bool:
        return self.type in (DeclarationType.ASSET, DeclarationType.PARTICIPANT)


_CLASSIFICATIONS = {
    DeclarationType.ASSET: Classification.ASSET,
    DeclarationType.PARTICIPANT: Classification.PARTICIPANT,
    DeclarationType.TRANSACTION: Classification.TRANSACTION,
}


def classify(declaration: Optional[ClassDeclaration]) -> Classification:
    """Map a declaration onto the routable classification."""
    if declaration is None:
        return Classification.UNKNOWN
    return _CLASSIFICATIONS.get(declaration.type, Classification.UNKNOWN)


class ModelManager:
    """Index of the declarations of one business network."""

    def __init__(self, declarations: Iterable[ClassDeclaration] = ()):
        self._declarations: Dict[str, ClassDeclaration] = {}
        for declaration in declarations:
            self.add_declaration(declaration)

    @classmethod
    def from_json(cls, data: Iterable[Dict[str, Any]]) -> "ModelManager":
        """Build a model manager from a list of declaration dicts."""
        return cls(ClassDeclaration.model_validate(item) for item in data)

    def add_declaration(self, declaration: ClassDeclaration) -> None:
        self._declarations[declaration.fully_qualified_name] = declaration

    def get_type(self, fully_qualified_name: str) -> Optional[ClassDeclaration]:
        return self._declarations.get(fully_qualified_name)

    def get_declarations(self) -> List[ClassDeclaration]:
        return list(self._declarations.values())

    def to_json(self) -> List[Dict[str, Any]]:
        return [d.model_dump(by_alias=True, mode="json") for d in self._declarations.values()]


class Introspector:
    """Read-only view over a model manager."""

    def __init__(self, model_manager: ModelManager):
        self._model_manager = model_manager

    def get_class_declarations(self) -> List[ClassDeclaration]:
        return self._model_manager.get_declarations()

    def get_class_declaration(self, fully_qualified_name: str) -> Optional[ClassDeclaration]:
        return self._model_manager.get_type(fully_qualified_name)

    def classify(self, fully_qualified_name: str) -> Classification:
        return classify(self._model_manager.get_type(fully_qualified_name))


@dataclass
class Resource:
    """
    Typed instance of a declaration.

    Attributes:
        declaration: The declared type of this resource
        data: Field values, excluding the $class discriminator
    """

    declaration: ClassDeclaration
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def fully_qualified_type(self) -> str:
        return self.declaration.fully_qualified_name

    @property
    def classification(self) -> Classification:
        return classify(self.declaration)

    @property
    def identifier(self) -> Optional[str]:
        """Identifying field value; the transaction id for transactions."""
        if self.declaration.type == DeclarationType.TRANSACTION:
            key = TRANSACTION_ID_FIELD
        else:
            key = self.declaration.identified_by
        if not key:
            return None
        value = self.data.get(key)
        return None if value is None else str(value)

    def get_class_declaration(self) -> ClassDeclaration:
        return self.declaration


class Serializer:
    """Converts between JSON payloads and resources of one type model."""

    def __init__(self, model_manager: ModelManager):
        self._model_manager = model_manager

    def from_json(self, data: Dict[str, Any]) -> Resource:
        """
        Build a resource from a JSON object.

        Args:
            data: JSON object with a $class discriminator

        Returns:
            Resource typed by the declaration named in $class

        Raises:
            DeserializationError: If the type is unknown or the identifying
                field of an asset/participant is missing
        """
        if not isinstance(data, dict):
            raise DeserializationError(f"Expected a JSON object, got {type(data).__name__}")

        type_name = data.get(CLASS_FIELD)
        if not isinstance(type_name, str) or not type_name:
            raise DeserializationError(f"Missing {CLASS_FIELD} in resource data")

        declaration = self._model_manager.get_type(type_name)
        if declaration is None:
            raise DeserializationError(f"Type {type_name} is not declared in the business network model")

        fields = {k: v for k, v in data.items() if k != CLASS_FIELD}

        if declaration.is_identified:
            key = declaration.identified_by
            if not key or fields.get(key) in (None, ""):
                raise DeserializationError(
                    f"Resource of type {type_name} is missing its identifying field {key!r}"
                )
        elif declaration.type == DeclarationType.TRANSACTION:
            fields.setdefault(TRANSACTION_ID_FIELD, uuid.uuid4().hex)
            fields.setdefault(TIMESTAMP_FIELD, datetime.now(timezone.utc).isoformat())

        return Resource(declaration=declaration, data=fields)

    def to_json(self, resource: Resource) -> Dict[str, Any]:
        """Render a resource as a JSON object, $class first."""
        result: Dict[str, Any] = {CLASS_FIELD: resource.fully_qualified_type}
        result.update(resource.data)
        return result


class BusinessNetworkDefinition:
    """A connected business network: its identifier and type model artifacts."""

    def __init__(self, identifier: str, model_manager: ModelManager):
        self.identifier = identifier
        self.model_manager = model_manager
        self.serializer = Serializer(model_manager)
        self.introspector = Introspector(model_manager)

    def __repr__(self) -> str:
        return f"BusinessNetworkDefinition({self.identifier!r}, types={len(self.model_manager.get_declarations())})"
