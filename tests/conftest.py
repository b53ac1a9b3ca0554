"""
Pytest configuration and shared fixtures for the test suite.
"""

import asyncio
from typing import Dict, List, Optional

import pytest

from composer_flow.config import BridgeConfig, ConnectionProfile, ProfileType
from composer_flow.dispatcher import ResourceDispatcher
from composer_flow.network.interface import (
    ConnectionParameters,
    NetworkClient,
    NetworkClientError,
    Registry,
    ResourceNotFoundError,
)
from composer_flow.network.model import (
    BusinessNetworkDefinition,
    ClassDeclaration,
    DeclarationType,
    ModelManager,
    Resource,
)
from composer_flow.session import Session, SessionManager


# ============================================================================
# Type Model Fixtures
# ============================================================================

ACME_DECLARATIONS = [
    {"namespace": "org.acme", "name": "Member", "type": "participant",
     "identifiedBy": "email", "properties": ["email", "balance"]},
    {"namespace": "org.acme", "name": "Vehicle", "type": "asset",
     "identifiedBy": "vin", "properties": ["vin", "owner", "colour"]},
    {"namespace": "org.acme", "name": "Trade", "type": "transaction",
     "properties": ["vehicle", "newOwner"]},
    {"namespace": "org.acme", "name": "TradeEvent", "type": "event",
     "properties": ["vehicle"]},
    {"namespace": "org.acme", "name": "Address", "type": "concept",
     "properties": ["street", "city"]},
]


@pytest.fixture
def acme_declarations() -> List[ClassDeclaration]:
    """Declarations of the test business network."""
    return ModelManager.from_json(ACME_DECLARATIONS).get_declarations()


@pytest.fixture
def acme_model(acme_declarations) -> ModelManager:
    return ModelManager(acme_declarations)


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def node_config() -> Dict[str, str]:
    """Flow node configuration."""
    return {
        "connectionProfile": "p",
        "businessNetworkIdentifier": "n",
        "participantId": "u1",
        "participantPassword": "s1",
    }


@pytest.fixture
def connection_parameters() -> ConnectionParameters:
    return ConnectionParameters(
        profile_name="p",
        network_id="n",
        participant_id="u1",
        secret="s1",
    )


@pytest.fixture
def test_config(tmp_path) -> BridgeConfig:
    """Create a test configuration with an embedded profile."""
    return BridgeConfig(
        profiles={
            "p": ConnectionProfile(
                type=ProfileType.EMBEDDED,
                database_url=f"sqlite+aiosqlite:///{tmp_path / 'network.db'}",
            ),
        },
        log_level="DEBUG",
    )


# ============================================================================
# Mock Network Client
# ============================================================================

class MockRegistry(Registry):
    """In-memory registry recording every call."""

    def __init__(self, registry_id: str, registry_type: str):
        super().__init__(registry_id, registry_type)
        self.resources: Dict[str, Resource] = {}
        self.calls: List[str] = []
        self.fail_with: Optional[Exception] = None

    async def add(self, resource: Resource) -> None:
        self.calls.append("add")
        if self.fail_with is not None:
            raise self.fail_with
        if resource.identifier in self.resources:
            raise NetworkClientError(f"{resource.identifier} already exists")
        self.resources[resource.identifier] = resource

    async def update(self, resource: Resource) -> None:
        self.calls.append("update")
        if self.fail_with is not None:
            raise self.fail_with
        if resource.identifier not in self.resources:
            raise ResourceNotFoundError(f"{resource.identifier} does not exist")
        self.resources[resource.identifier] = resource

    async def get(self, identifier: str) -> Resource:
        self.calls.append("get")
        if self.fail_with is not None:
            raise self.fail_with
        if identifier not in self.resources:
            raise ResourceNotFoundError(f"{identifier} does not exist")
        return self.resources[identifier]

    async def exists(self, identifier: str) -> bool:
        return identifier in self.resources

    async def get_all(self) -> List[Resource]:
        return list(self.resources.values())


class MockNetworkClient(NetworkClient):
    """Mock network client for testing."""

    def __init__(self, declarations: List[ClassDeclaration]):
        self.declarations = declarations
        self.connect_calls: List[ConnectionParameters] = []
        self.registry_lookups: List[str] = []
        self.submitted: List[Resource] = []
        self.registries: Dict[str, MockRegistry] = {}
        self.connect_error: Optional[Exception] = None
        self.connect_gate: Optional[asyncio.Event] = None
        self.registry_error: Optional[Exception] = None
        self.disconnected = False

    async def connect(self, parameters: ConnectionParameters) -> BusinessNetworkDefinition:
        self.connect_calls.append(parameters)
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        if self.connect_error is not None:
            raise self.connect_error
        return BusinessNetworkDefinition(parameters.network_id, ModelManager(self.declarations))

    async def disconnect(self) -> None:
        self.disconnected = True

    def _registry(self, fully_qualified_name: str, expected: DeclarationType) -> MockRegistry:
        self.registry_lookups.append(fully_qualified_name)
        declaration = next(
            (d for d in self.declarations if d.fully_qualified_name == fully_qualified_name),
            None,
        )
        if declaration is None or declaration.type != expected:
            raise NetworkClientError(f"No {expected.value} registry for {fully_qualified_name}")
        if fully_qualified_name not in self.registries:
            self.registries[fully_qualified_name] = MockRegistry(
                fully_qualified_name, expected.value.capitalize()
            )
        self.registries[fully_qualified_name].fail_with = self.registry_error
        return self.registries[fully_qualified_name]

    async def get_asset_registry(self, fully_qualified_name: str) -> Registry:
        return self._registry(fully_qualified_name, DeclarationType.ASSET)

    async def get_participant_registry(self, fully_qualified_name: str) -> Registry:
        return self._registry(fully_qualified_name, DeclarationType.PARTICIPANT)

    async def submit_transaction(self, resource: Resource) -> str:
        self.submitted.append(resource)
        return resource.identifier

    @property
    def network_calls(self) -> int:
        """Registry lookups plus submissions."""
        return len(self.registry_lookups) + len(self.submitted)


@pytest.fixture
def mock_client(acme_declarations) -> MockNetworkClient:
    """Create a mock network client."""
    return MockNetworkClient(acme_declarations)


@pytest.fixture
def session(connection_parameters, mock_client) -> Session:
    return Session(connection_parameters, mock_client)


@pytest.fixture
def dispatcher(session) -> ResourceDispatcher:
    return ResourceDispatcher(session)


@pytest.fixture
def session_manager(mock_client) -> SessionManager:
    """Session manager whose sessions all use the shared mock client."""
    return SessionManager(
        config=BridgeConfig(),
        client_factory=lambda parameters: mock_client,
    )


@pytest.fixture
def member_payload() -> dict:
    return {"$class": "org.acme.Member", "balance": 1234, "email": "a@b.com"}
