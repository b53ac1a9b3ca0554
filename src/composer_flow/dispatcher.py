"""
Resource dispatcher.

Classifies payloads against the network's live type model and routes them
to the matching registry or transaction operation.
"""

from enum import Enum
from typing import Any, Awaitable, Dict, Mapping, Optional, TypeVar

import structlog

from composer_flow.errors import (
    BridgeError,
    NotFoundError,
    RemoteOperationError,
    UnsupportedOperationError,
    UnsupportedTypeError,
)
from composer_flow.network.interface import NetworkClientError, Registry, ResourceNotFoundError
from composer_flow.network.model import Classification
from composer_flow.operations import OperationKind, OperationRequest, OperationResult
from composer_flow.session import Session
from composer_flow.validation import validate_resource_payload, validate_retrieve_payload

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class Route(str, Enum):
    """Network operation selected for a create/update."""
    REGISTRY_ADD = "registry_add"
    REGISTRY_UPDATE = "registry_update"
    SUBMIT = "submit"


_ROUTES = {
    (Classification.ASSET, OperationKind.CREATE): Route.REGISTRY_ADD,
    (Classification.ASSET, OperationKind.UPDATE): Route.REGISTRY_UPDATE,
    (Classification.PARTICIPANT, OperationKind.CREATE): Route.REGISTRY_ADD,
    (Classification.PARTICIPANT, OperationKind.UPDATE): Route.REGISTRY_UPDATE,
    (Classification.TRANSACTION, OperationKind.CREATE): Route.SUBMIT,
}


def resolve_route(classification: Classification, kind: OperationKind, type_name: str = "") -> Route:
    """
    Pick the network operation for a classified resource.

    Raises:
        UnsupportedTypeError: For declarations that are not assets,
            participants or transactions
        UnsupportedOperationError: For combinations with no defined
            operation (updating a transaction)
    """
    if classification == Classification.UNKNOWN:
        raise UnsupportedTypeError(f"Unable to handle resource of type: {type_name}", type_name=type_name)

    route = _ROUTES.get((classification, kind))
    if route is None:
        raise UnsupportedOperationError(
            f"Cannot {kind.value} a {classification.value} ({type_name})",
            operation=kind.value,
            type_name=type_name,
        )
    return route


class ResourceDispatcher:
    """
    Routes operations for one session.

    Every operation runs validate -> connect -> dispatch in order. The
    lower-level create/update/retrieve methods raise BridgeError subclasses;
    execute() turns them into failed OperationResults.
    """

    def __init__(self, session: Session):
        self.session = session

    async def execute(self, request: OperationRequest) -> OperationResult:
        """Run a request and capture its outcome."""
        try:
            if request.kind == OperationKind.RETRIEVE:
                retrieve = validate_retrieve_payload(request.payload)
                payload = await self.retrieve(retrieve.model_name, retrieve.id)
            elif request.kind == OperationKind.CREATE:
                payload = await self.create(request.payload)
            elif request.kind == OperationKind.UPDATE:
                payload = await self.update(request.payload)
            else:
                raise UnsupportedOperationError(f"Unknown operation {request.kind}", operation=str(request.kind))
        except BridgeError as e:
            logger.warning(
                "operation_failed",
                operation=request.kind.value,
                error_type=type(e).__name__,
                error=str(e),
            )
            return OperationResult.failure(request.kind, e)
        except Exception as e:
            logger.exception("operation_crashed", operation=request.kind.value)
            return OperationResult.failure(
                request.kind,
                RemoteOperationError(
                    f"{request.kind.value} failed: {type(e).__name__}: {e}",
                    operation=request.kind.value,
                    cause=e,
                ),
            )

        return OperationResult.success(request.kind, payload)

    async def create(self, payload: Mapping[str, Any]) -> None:
        """Add an asset/participant to its registry or submit a transaction."""
        await self._write(OperationKind.CREATE, payload)

    async def update(self, payload: Mapping[str, Any]) -> None:
        """Replace an asset/participant in its registry."""
        await self._write(OperationKind.UPDATE, payload)

    async def retrieve(self, type_name: str, identifier: str) -> Dict[str, Any]:
        """
        Fetch an asset or participant and return it as JSON.

        Raises:
            UnsupportedTypeError: If the type is undeclared or not an asset/participant
            NotFoundError: If the registry has no resource with that id
        """
        artifacts = await self.session.ensure_connected()

        declaration = artifacts.model_manager.get_type(type_name)
        if declaration is None:
            raise UnsupportedTypeError(f"Type {type_name} is not declared in the business network", type_name=type_name)

        classification = artifacts.introspector.classify(type_name)
        if classification not in (Classification.ASSET, Classification.PARTICIPANT):
            raise UnsupportedTypeError(
                f"Cannot retrieve resources of type {type_name} ({declaration.type.value})",
                type_name=type_name,
            )

        registry = await self._registry(classification, type_name)
        resource = await self._call("get", type_name, registry.get(identifier), identifier=identifier)

        logger.info("resource_retrieved", type=type_name, identifier=identifier)
        return artifacts.serializer.to_json(resource)

    async def _write(self, kind: OperationKind, payload: Mapping[str, Any]) -> None:
        validate_resource_payload(payload)
        artifacts = await self.session.ensure_connected()

        resource = artifacts.serializer.from_json(dict(payload))
        type_name = resource.fully_qualified_type
        route = resolve_route(resource.classification, kind, type_name)

        logger.info(
            "dispatching_resource",
            operation=kind.value,
            type=type_name,
            classification=resource.classification.value,
            route=route.value,
        )

        if route == Route.SUBMIT:
            transaction_id = await self._call(
                "submit", type_name, self.session.client.submit_transaction(resource),
            )
            logger.info("transaction_submitted", type=type_name, transaction_id=transaction_id)
            return

        registry = await self._registry(resource.classification, type_name)
        if route == Route.REGISTRY_ADD:
            await self._call("add", type_name, registry.add(resource), identifier=resource.identifier)
        else:
            await self._call("update", type_name, registry.update(resource), identifier=resource.identifier)

        logger.info("resource_written", operation=kind.value, type=type_name, identifier=resource.identifier)

    async def _registry(self, classification: Classification, type_name: str) -> Registry:
        client = self.session.client
        if classification == Classification.ASSET:
            lookup = client.get_asset_registry(type_name)
        else:
            lookup = client.get_participant_registry(type_name)
        return await self._call("get_registry", type_name, lookup)

    async def _call(
        self,
        operation: str,
        type_name: str,
        call: Awaitable[T],
        identifier: Optional[str] = None,
    ) -> T:
        """Await a network call, rewrapping client errors with operation context."""
        try:
            return await call
        except ResourceNotFoundError as e:
            raise NotFoundError(
                f"{operation} failed: {type_name} {identifier} does not exist",
                type_name=type_name,
                identifier=identifier,
            ) from e
        except NetworkClientError as e:
            raise RemoteOperationError(
                f"{operation} failed for {type_name}: {e}",
                operation=operation,
                type_name=type_name,
                cause=e,
            ) from e
        except BridgeError:
            raise
        except Exception as e:
            logger.exception("network_call_error", operation=operation, type=type_name)
            raise RemoteOperationError(
                f"{operation} failed for {type_name}: {type(e).__name__}: {e}",
                operation=operation,
                type_name=type_name,
                cause=e,
            ) from e
