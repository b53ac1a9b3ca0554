"""
Embedded business network.

Runs a single-process network for development and tests: declarations come
from a model file, registries and submitted transactions are persisted with
SQLAlchemy (SQLite by default). Transactions are recorded, not executed.
"""

import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

import structlog
from sqlalchemy import Column, DateTime, String, Text, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

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
    ClassDeclaration,
    DeclarationType,
    ModelManager,
    Resource,
    Serializer,
)

logger = structlog.get_logger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResourceRecord(Base):
    """Database model for registry entries."""

    __tablename__ = "resources"

    network_id = Column(String(200), primary_key=True)
    registry_id = Column(String(200), primary_key=True)
    identifier = Column(String(200), primary_key=True)

    registry_type = Column(String(20), nullable=False)
    data_json = Column(Text, nullable=False)  # JSON encoded

    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class TransactionRecord(Base):
    """Database model for submitted transactions."""

    __tablename__ = "transactions"

    transaction_id = Column(String(100), primary_key=True)
    network_id = Column(String(200), nullable=False)
    transaction_type = Column(String(200), nullable=False)
    participant_id = Column(String(200), nullable=True)
    data_json = Column(Text, nullable=False)  # JSON encoded

    submitted_at = Column(DateTime, default=_utcnow)


def load_declarations(path: str) -> List[ClassDeclaration]:
    """
    Read declarations from a model file.

    The file holds either a JSON list of declarations or an object with a
    "declarations" list.
    """
    raw = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("declarations", [])
    return ModelManager.from_json(raw).get_declarations()


class EmbeddedRegistry(Registry):
    """Registry stored in the embedded network's database."""

    def __init__(self, client: "EmbeddedNetworkClient", registry_id: str, registry_type: str):
        super().__init__(registry_id, registry_type)
        self._client = client

    @property
    def _serializer(self) -> Serializer:
        return self._client.definition.serializer

    def _key(self, identifier: str) -> tuple:
        return (self._client.network_id, self.registry_id, identifier)

    async def add(self, resource: Resource) -> None:
        async with self._client.session_scope() as session:
            if await session.get(ResourceRecord, self._key(resource.identifier)):
                raise NetworkClientError(
                    f"{self.registry_type} {self.registry_id}#{resource.identifier} already exists"
                )
            session.add(ResourceRecord(
                network_id=self._client.network_id,
                registry_id=self.registry_id,
                identifier=resource.identifier,
                registry_type=self.registry_type,
                data_json=json.dumps(self._serializer.to_json(resource)),
            ))
            await session.commit()

        logger.debug("resource_added", registry=self.registry_id, identifier=resource.identifier)

    async def update(self, resource: Resource) -> None:
        async with self._client.session_scope() as session:
            record = await session.get(ResourceRecord, self._key(resource.identifier))
            if record is None:
                raise ResourceNotFoundError(
                    f"{self.registry_type} {self.registry_id}#{resource.identifier} does not exist"
                )
            record.data_json = json.dumps(self._serializer.to_json(resource))
            await session.commit()

        logger.debug("resource_updated", registry=self.registry_id, identifier=resource.identifier)

    async def get(self, identifier: str) -> Resource:
        async with self._client.session_scope() as session:
            record = await session.get(ResourceRecord, self._key(identifier))
            if record is None:
                raise ResourceNotFoundError(
                    f"{self.registry_type} {self.registry_id}#{identifier} does not exist"
                )
            return self._serializer.from_json(json.loads(record.data_json))

    async def exists(self, identifier: str) -> bool:
        async with self._client.session_scope() as session:
            return await session.get(ResourceRecord, self._key(identifier)) is not None

    async def get_all(self) -> List[Resource]:
        async with self._client.session_scope() as session:
            result = await session.execute(
                select(ResourceRecord)
                .where(ResourceRecord.network_id == self._client.network_id)
                .where(ResourceRecord.registry_id == self.registry_id)
                .order_by(ResourceRecord.identifier)
            )
            return [self._serializer.from_json(json.loads(r.data_json)) for r in result.scalars().all()]


class EmbeddedNetworkClient(NetworkClient):
    """
    Embedded network client.

    Implements the NetworkClient over a local SQLAlchemy database.
    """

    def __init__(
        self,
        profile: ConnectionProfile,
        declarations: Optional[Iterable[ClassDeclaration]] = None,
    ):
        """
        Initialize the embedded client.

        Args:
            profile: Connection profile with database URL, model file and identities
            declarations: Explicit type model; read from profile.model_file if not provided
        """
        self.profile = profile
        self._declarations = list(declarations) if declarations is not None else None
        self._engine = None
        self._session_factory = None
        self._definition: Optional[BusinessNetworkDefinition] = None
        self._participant_id: Optional[str] = None

    @property
    def network_id(self) -> str:
        return self.definition.identifier

    @property
    def definition(self) -> BusinessNetworkDefinition:
        if self._definition is None:
            raise NetworkClientError("Embedded network is not connected")
        return self._definition

    def _authenticate(self, parameters: ConnectionParameters) -> None:
        identities = self.profile.identities
        if not identities:
            return
        if identities.get(parameters.participant_id) != parameters.secret:
            raise NetworkClientError(f"Authentication failed for participant {parameters.participant_id}")

    def _load_model(self) -> ModelManager:
        if self._declarations is not None:
            return ModelManager(self._declarations)
        if not self.profile.model_file:
            raise NetworkClientError("Embedded profile has no model file")
        try:
            return ModelManager(load_declarations(self.profile.model_file))
        except (OSError, ValueError) as e:
            raise NetworkClientError(f"Cannot load model file {self.profile.model_file}: {e}") from e

    async def connect(self, parameters: ConnectionParameters) -> BusinessNetworkDefinition:
        """Check the identity, open the database and create tables."""
        self._authenticate(parameters)
        model_manager = self._load_model()

        await self.disconnect()
        self._engine = create_async_engine(self.profile.database_url, echo=False)
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            await self.disconnect()
            raise NetworkClientError(f"Cannot open embedded network database: {e}") from e

        self._participant_id = parameters.participant_id
        self._definition = BusinessNetworkDefinition(parameters.network_id, model_manager)
        logger.info(
            "embedded_connected",
            url=self.profile.database_url.split("///")[0],
            network=parameters.network_id,
            participant=parameters.participant_id,
        )
        return self._definition

    async def disconnect(self) -> None:
        """Dispose of the database engine."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("embedded_disconnected")

    def get_session(self) -> AsyncSession:
        """Get a new database session."""
        if not self._session_factory:
            raise NetworkClientError("Embedded network is not connected")
        return self._session_factory()

    @asynccontextmanager
    async def session_scope(self) -> AsyncIterator[AsyncSession]:
        """
        Database session whose driver errors surface as NetworkClientError.

        Raises:
            NetworkClientError: If the network is not connected or the database fails
        """
        try:
            async with self.get_session() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error("embedded_database_error", error=str(e))
            raise NetworkClientError(f"Embedded network database error: {e}") from e

    def _registry(self, fully_qualified_name: str, expected: DeclarationType) -> EmbeddedRegistry:
        declaration = self.definition.model_manager.get_type(fully_qualified_name)
        if declaration is None or declaration.type != expected:
            raise NetworkClientError(f"No {expected.value} registry for type {fully_qualified_name}")
        return EmbeddedRegistry(self, fully_qualified_name, expected.value.capitalize())

    async def get_asset_registry(self, fully_qualified_name: str) -> Registry:
        return self._registry(fully_qualified_name, DeclarationType.ASSET)

    async def get_participant_registry(self, fully_qualified_name: str) -> Registry:
        return self._registry(fully_qualified_name, DeclarationType.PARTICIPANT)

    async def submit_transaction(self, resource: Resource) -> str:
        """Record a transaction in the transaction log."""
        if resource.declaration.type != DeclarationType.TRANSACTION:
            raise NetworkClientError(f"{resource.fully_qualified_type} is not a transaction type")

        transaction_id = resource.identifier
        async with self.session_scope() as session:
            if await session.get(TransactionRecord, transaction_id):
                raise NetworkClientError(f"Transaction {transaction_id} was already submitted")
            session.add(TransactionRecord(
                transaction_id=transaction_id,
                network_id=self.network_id,
                transaction_type=resource.fully_qualified_type,
                participant_id=self._participant_id,
                data_json=json.dumps(self.definition.serializer.to_json(resource)),
            ))
            await session.commit()

        logger.info("transaction_submitted_embedded", type=resource.fully_qualified_type, transaction_id=transaction_id)
        return transaction_id

    async def get_transactions(self) -> List[Dict[str, Any]]:
        """Every recorded transaction of this network, oldest first."""
        async with self.session_scope() as session:
            result = await session.execute(
                select(TransactionRecord)
                .where(TransactionRecord.network_id == self.network_id)
                .order_by(TransactionRecord.submitted_at)
            )
            return [json.loads(r.data_json) for r in result.scalars().all()]
