"""
Abstract interface for business network access.

Defines the contract every network client must implement: connect with a
participant identity, look up registries, and submit transactions.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from composer_flow.network.model import BusinessNetworkDefinition, Resource


@dataclass(frozen=True)
class ConnectionParameters:
    """Identity and target of a session; hashable so sessions can be keyed on it."""
    profile_name: str
    network_id: str
    participant_id: str
    secret: str = field(repr=False)


class Registry(ABC):
    """
    Remote collection holding the instances of one declared type.

    Attributes:
        registry_id: Fully qualified name of the type held by this registry
        registry_type: "Asset" or "Participant"
    """

    def __init__(self, registry_id: str, registry_type: str):
        self.registry_id = registry_id
        self.registry_type = registry_type

    @abstractmethod
    async def add(self, resource: Resource) -> None:
        """
        Add a new resource.

        Raises:
            NetworkClientError: If a resource with the same id already exists
        """
        pass

    @abstractmethod
    async def update(self, resource: Resource) -> None:
        """
        Replace an existing resource.

        Raises:
            ResourceNotFoundError: If no resource with that id exists
        """
        pass

    @abstractmethod
    async def get(self, identifier: str) -> Resource:
        """
        Fetch a resource by id.

        Raises:
            ResourceNotFoundError: If no resource with that id exists
        """
        pass

    @abstractmethod
    async def exists(self, identifier: str) -> bool:
        """Check whether a resource with that id exists."""
        pass

    @abstractmethod
    async def get_all(self) -> List[Resource]:
        """Fetch every resource in the registry."""
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.registry_type}:{self.registry_id})"


class NetworkClient(ABC):
    """
    Abstract interface for business network access.

    One client instance serves one identity; sessions with different
    credentials use different clients.
    """

    @abstractmethod
    async def connect(self, parameters: ConnectionParameters) -> BusinessNetworkDefinition:
        """
        Authenticate and load the network's type model.

        Args:
            parameters: Profile, network and participant identity

        Returns:
            Definition of the connected business network

        Raises:
            NetworkClientError: If the connection cannot be established
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Release transport resources."""
        pass

    @abstractmethod
    async def get_asset_registry(self, fully_qualified_name: str) -> Registry:
        """Get the default registry of an asset type."""
        pass

    @abstractmethod
    async def get_participant_registry(self, fully_qualified_name: str) -> Registry:
        """Get the default registry of a participant type."""
        pass

    @abstractmethod
    async def submit_transaction(self, resource: Resource) -> str:
        """
        Submit a transaction for execution.

        Returns:
            Transaction id
        """
        pass


class NetworkClientError(Exception):
    """Raised when a call to the business network fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ResourceNotFoundError(NetworkClientError):
    """Raised when a registry holds no resource with the requested id."""
    pass
