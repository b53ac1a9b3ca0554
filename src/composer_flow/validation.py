"""
Payload validation.

Synchronous shape checks run before any network activity: node
configuration, retrieve payloads and create/update payloads.
"""

from typing import Any, Mapping

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from composer_flow.errors import ConfigError, ValidationError
from composer_flow.network.interface import ConnectionParameters
from composer_flow.network.model import CLASS_FIELD

# Node configuration keys in the order they are checked
CONFIG_FIELDS = (
    ("connectionProfile", "profile_name"),
    ("businessNetworkIdentifier", "network_id"),
    ("participantId", "participant_id"),
    ("participantPassword", "secret"),
)


class RetrieveRequest(BaseModel):
    """Payload of a retrieve message."""

    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        protected_namespaces=(),
    )

    model_name: str = Field(alias="modelName", min_length=1)
    id: str = Field(min_length=1)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_config(config: Mapping[str, Any]) -> ConnectionParameters:
    """
    Check that all four connection parameters are present.

    Args:
        config: Node configuration keyed by connectionProfile,
            businessNetworkIdentifier, participantId, participantPassword

    Returns:
        Connection parameters for the session manager

    Raises:
        ConfigError: Naming the first missing field
    """
    values = {}
    for key, attr in CONFIG_FIELDS:
        value = config.get(key)
        if _is_blank(value):
            raise ConfigError(f"Missing required configuration: {key}", field=key)
        values[attr] = str(value)
    return ConnectionParameters(**values)


def validate_retrieve_payload(payload: Any) -> RetrieveRequest:
    """
    Check a retrieve payload: {"modelName": ..., "id": ...}.

    Raises:
        ValidationError: If modelName or id is missing or empty
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("Retrieve payload must be a JSON object")

    try:
        return RetrieveRequest.model_validate(dict(payload))
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        field = str(first["loc"][0]) if first.get("loc") else None
        raise ValidationError(
            f"Invalid retrieve payload: {field} {first['msg'].lower()}",
            field=field,
        ) from e


def validate_resource_payload(payload: Any) -> Mapping[str, Any]:
    """
    Check a create/update payload carries a $class discriminator.

    Raises:
        ValidationError: If the payload is not an object or $class is missing
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("Resource payload must be a JSON object")

    type_name = payload.get(CLASS_FIELD)
    if not isinstance(type_name, str) or not type_name.strip():
        raise ValidationError(f"Resource payload requires a non-empty {CLASS_FIELD}", field=CLASS_FIELD)
    return payload
