"""
Network Integration Layer.

Provides abstracted access to a business network's registries and
transaction submission. Supports a REST gateway and an embedded network.
"""

from composer_flow.config import ConnectionProfile, ProfileType
from composer_flow.network.interface import (
    ConnectionParameters,
    NetworkClient,
    NetworkClientError,
    Registry,
    ResourceNotFoundError,
)
from composer_flow.network.embedded import EmbeddedNetworkClient
from composer_flow.network.rest import RestNetworkClient


def create_client(profile: ConnectionProfile) -> NetworkClient:
    """Create the client implementation selected by a connection profile."""
    if profile.type == ProfileType.EMBEDDED:
        return EmbeddedNetworkClient(profile)
    return RestNetworkClient(profile)


__all__ = [
    "ConnectionParameters",
    "NetworkClient",
    "NetworkClientError",
    "Registry",
    "ResourceNotFoundError",
    "EmbeddedNetworkClient",
    "RestNetworkClient",
    "create_client",
]
