"""
REST gateway client for business network access.

Talks to the network through its REST gateway: one route per declared type,
participant identity sent as HTTP basic auth.
"""

from typing import Any, List, Optional

import httpx
import structlog

from composer_flow.config import ConnectionProfile
from composer_flow.network.interface import (
    ConnectionParameters,
    NetworkClient,
    NetworkClientError,
    Registry,
    ResourceNotFoundError,
)
from composer_flow.network.model import (
    BusinessNetworkDefinition,
    DeclarationType,
    ModelManager,
    Resource,
    Serializer,
    TRANSACTION_ID_FIELD,
)

logger = structlog.get_logger(__name__)

NETWORK_HEADER = "X-Business-Network"


class RestRegistry(Registry):
    """Registry backed by the gateway routes of one type."""

    def __init__(
        self,
        client: "RestNetworkClient",
        registry_id: str,
        registry_type: str,
        serializer: Serializer,
    ):
        super().__init__(registry_id, registry_type)
        self._client = client
        self._serializer = serializer

    @property
    def path(self) -> str:
        return f"/api/{self.registry_id}"

    async def add(self, resource: Resource) -> None:
        await self._client.request("POST", self.path, json=self._serializer.to_json(resource))

    async def update(self, resource: Resource) -> None:
        await self._client.request(
            "PUT",
            f"{self.path}/{resource.identifier}",
            json=self._serializer.to_json(resource),
            not_found=f"{self.registry_id}#{resource.identifier}",
        )

    async def get(self, identifier: str) -> Resource:
        data = await self._client.request(
            "GET",
            f"{self.path}/{identifier}",
            not_found=f"{self.registry_id}#{identifier}",
        )
        return self._serializer.from_json(data)

    async def exists(self, identifier: str) -> bool:
        try:
            await self.get(identifier)
        except ResourceNotFoundError:
            return False
        return True

    async def get_all(self) -> List[Resource]:
        data = await self._client.request("GET", self.path)
        return [self._serializer.from_json(item) for item in data or []]


class RestNetworkClient(NetworkClient):
    """
    REST gateway client.

    Implements the NetworkClient using httpx against the network's REST
    gateway.
    """

    def __init__(self, profile: ConnectionProfile, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize the REST client.

        Args:
            profile: Connection profile with the gateway URL
            transport: Custom httpx transport (tests, proxies)
        """
        self.profile = profile
        self._transport = transport
        self.base_url = (profile.url or "").rstrip("/")
        self._client: Optional[httpx.AsyncClient] = None
        self._definition: Optional[BusinessNetworkDefinition] = None

    def _build_client(self, parameters: ConnectionParameters) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=httpx.BasicAuth(parameters.participant_id, parameters.secret),
            headers={
                NETWORK_HEADER: parameters.network_id,
                "Content-Type": "application/json",
            },
            timeout=self.profile.timeout_seconds,
            transport=self._transport,
        )

    async def connect(self, parameters: ConnectionParameters) -> BusinessNetworkDefinition:
        """Open the HTTP client, check the identity and load the type model."""
        if not self.base_url:
            raise NetworkClientError(f"Connection profile {parameters.profile_name} has no gateway URL")

        await self.disconnect()
        self._client = self._build_client(parameters)

        try:
            await self.request("GET", "/api/system/ping")
            declarations = await self.request("GET", "/api/system/declarations")
            model_manager = ModelManager.from_json(declarations or [])
        except Exception:
            await self.disconnect()
            raise

        self._definition = BusinessNetworkDefinition(parameters.network_id, model_manager)
        logger.info(
            "rest_connected",
            base_url=self.base_url,
            network=parameters.network_id,
            participant=parameters.participant_id,
        )
        return self._definition

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("rest_disconnected", base_url=self.base_url)

    async def request(
        self,
        method: str,
        path: str,
        not_found: Optional[str] = None,
        **kwargs,
    ) -> Any:
        """
        Make a gateway request.

        Args:
            method: HTTP method
            path: Route below the gateway base URL
            not_found: Resource label; when set a 404 raises ResourceNotFoundError

        Returns:
            Decoded JSON body, or None for empty bodies

        Raises:
            ResourceNotFoundError: On a 404 when not_found is set
            NetworkClientError: On transport errors, error statuses or non-JSON bodies
        """
        if not self._client:
            raise NetworkClientError("REST client is not connected")

        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            logger.error("rest_request_error", path=path, error=str(e))
            raise NetworkClientError(f"Gateway request failed: {e}") from e

        if response.status_code == 404 and not_found:
            raise ResourceNotFoundError(f"Resource {not_found} does not exist", status_code=404)

        if not response.is_success:
            logger.error(
                "rest_request_failed",
                method=method,
                path=path,
                status=response.status_code,
                error=response.text,
            )
            raise NetworkClientError(
                f"Gateway error {response.status_code} on {method} {path}: {response.text}",
                status_code=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error("rest_invalid_body", method=method, path=path, status=response.status_code)
            raise NetworkClientError(
                f"Gateway returned a non-JSON body on {method} {path}",
                status_code=response.status_code,
            ) from e

    def _require_definition(self) -> BusinessNetworkDefinition:
        if self._definition is None:
            raise NetworkClientError("REST client is not connected")
        return self._definition

    def _registry(self, fully_qualified_name: str, expected: DeclarationType) -> RestRegistry:
        definition = self._require_definition()
        declaration = definition.model_manager.get_type(fully_qualified_name)
        if declaration is None or declaration.type != expected:
            raise NetworkClientError(f"No {expected.value} registry for type {fully_qualified_name}")
        return RestRegistry(
            self,
            fully_qualified_name,
            expected.value.capitalize(),
            definition.serializer,
        )

    async def get_asset_registry(self, fully_qualified_name: str) -> Registry:
        return self._registry(fully_qualified_name, DeclarationType.ASSET)

    async def get_participant_registry(self, fully_qualified_name: str) -> Registry:
        return self._registry(fully_qualified_name, DeclarationType.PARTICIPANT)

    async def submit_transaction(self, resource: Resource) -> str:
        """Post a transaction to its type route."""
        definition = self._require_definition()
        result = await self.request(
            "POST",
            f"/api/{resource.fully_qualified_type}",
            json=definition.serializer.to_json(resource),
        )

        transaction_id = None
        if isinstance(result, dict):
            transaction_id = result.get(TRANSACTION_ID_FIELD)
        transaction_id = transaction_id or resource.identifier

        logger.info("transaction_submitted_rest", type=resource.fully_qualified_type, transaction_id=transaction_id)
        return transaction_id
