"""
Session management.

A Session owns the connection to one business network for one participant
identity. Connections are established lazily on first use and reused
afterwards; concurrent callers share a single in-flight connect attempt.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

import structlog

from composer_flow.config import BridgeConfig, get_config
from composer_flow.errors import ConnectionError
from composer_flow.network import create_client
from composer_flow.network.interface import ConnectionParameters, NetworkClient
from composer_flow.network.model import (
    BusinessNetworkDefinition,
    Introspector,
    ModelManager,
    Serializer,
)

logger = structlog.get_logger(__name__)


class SessionState(str, Enum):
    """Connection state of a session."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class NetworkArtifacts:
    """Objects cached from the business network once connected."""
    definition: BusinessNetworkDefinition
    serializer: Serializer
    model_manager: ModelManager
    introspector: Introspector

    @classmethod
    def from_definition(cls, definition: BusinessNetworkDefinition) -> "NetworkArtifacts":
        return cls(
            definition=definition,
            serializer=definition.serializer,
            model_manager=definition.model_manager,
            introspector=definition.introspector,
        )


class Session:
    """
    Lazily connected session to a business network.

    State transitions are driven only by ensure_connected():
    - Disconnected -> Connecting when a connect attempt starts
    - Connecting -> Connected on success, artifacts cached
    - Connecting -> Disconnected on failure

    Usage:
        ```python
        session = Session(parameters, client)
        artifacts = await session.ensure_connected()
        ```
    """

    def __init__(
        self,
        parameters: ConnectionParameters,
        client: NetworkClient,
        on_connect_failed: Optional[Callable[["Session"], None]] = None,
    ):
        """
        Initialize the session.

        Args:
            parameters: Profile, network and participant identity
            client: Network client owned by this session
            on_connect_failed: Called with this session after a failed connect attempt
        """
        self.parameters = parameters
        self.client = client
        self._state = SessionState.DISCONNECTED
        self._pending: Optional[asyncio.Task] = None
        self._artifacts: Optional[NetworkArtifacts] = None
        self._connect_attempts = 0
        self._on_connect_failed = on_connect_failed

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def connect_attempts(self) -> int:
        """Number of connect calls issued to the client."""
        return self._connect_attempts

    @property
    def artifacts(self) -> NetworkArtifacts:
        """
        Cached network artifacts.

        Raises:
            ConnectionError: If the session is not connected
        """
        if self._state != SessionState.CONNECTED or self._artifacts is None:
            raise ConnectionError(f"Session to {self.parameters.network_id} is not connected")
        return self._artifacts

    async def ensure_connected(self) -> NetworkArtifacts:
        """
        Make sure a usable connection exists.

        Returns:
            Network artifacts of the connected business network

        Raises:
            ConnectionError: If the connect attempt fails
        """
        if self._state == SessionState.CONNECTED:
            return self._artifacts

        if self._state == SessionState.DISCONNECTED:
            self._state = SessionState.CONNECTING
            self._pending = asyncio.ensure_future(self._connect())

        # Shielded so a cancelled waiter does not abort the attempt for the others
        return await asyncio.shield(self._pending)

    async def _connect(self) -> NetworkArtifacts:
        logger.info(
            "session_connecting",
            profile=self.parameters.profile_name,
            network=self.parameters.network_id,
            participant=self.parameters.participant_id,
        )
        self._connect_attempts += 1

        try:
            definition = await self.client.connect(self.parameters)
            self._artifacts = NetworkArtifacts.from_definition(definition)
            self._state = SessionState.CONNECTED
        except Exception as e:
            logger.error(
                "session_connect_failed",
                network=self.parameters.network_id,
                participant=self.parameters.participant_id,
                error=str(e),
            )
            if self._on_connect_failed is not None:
                self._on_connect_failed(self)
            raise ConnectionError(
                f"Failed to connect to business network {self.parameters.network_id}: {e}",
                cause=e,
            ) from e
        finally:
            self._pending = None
            if self._state != SessionState.CONNECTED:
                self._artifacts = None
                self._state = SessionState.DISCONNECTED

        logger.info("session_connected", network=self.parameters.network_id)
        return self._artifacts

    async def close(self) -> None:
        """Disconnect the client and return to Disconnected."""
        if self._pending is not None:
            self._pending.cancel()
            try:
                await self._pending
            except (asyncio.CancelledError, ConnectionError):
                pass

        await self.client.disconnect()
        self._artifacts = None
        self._state = SessionState.DISCONNECTED
        logger.info("session_closed", network=self.parameters.network_id)


class SessionManager:
    """
    Hands out one Session per distinct set of connection parameters.

    Sessions with different credentials never share a client, so one caller
    can not replace another caller's identity.

    A session whose connect attempt fails is dropped, so mistyped credentials
    do not accumulate; the next request with them starts a fresh session.
    """

    def __init__(
        self,
        config: Optional[BridgeConfig] = None,
        client_factory: Optional[Callable[[ConnectionParameters], NetworkClient]] = None,
    ):
        """
        Initialize the session manager.

        Args:
            config: Connector configuration, used to resolve connection profiles
            client_factory: Builds a client for new sessions; defaults to the
                implementation selected by the named connection profile
        """
        self.config = config or get_config()
        self._client_factory = client_factory or self._default_client
        self._sessions: Dict[ConnectionParameters, Session] = {}

    def _default_client(self, parameters: ConnectionParameters) -> NetworkClient:
        return create_client(self.config.get_profile(parameters.profile_name))

    def get_session(self, parameters: ConnectionParameters) -> Session:
        """Get the session for these parameters, creating it on first use."""
        session = self._sessions.get(parameters)
        if session is None:
            session = Session(parameters, self._client_factory(parameters), on_connect_failed=self._forget)
            self._sessions[parameters] = session
            logger.debug(
                "session_created",
                profile=parameters.profile_name,
                network=parameters.network_id,
                participant=parameters.participant_id,
            )
        return session

    def _forget(self, session: Session) -> None:
        if self._sessions.get(session.parameters) is session:
            del self._sessions[session.parameters]
            logger.debug(
                "session_dropped",
                network=session.parameters.network_id,
                participant=session.parameters.participant_id,
            )

    async def ensure_connected(self, parameters: ConnectionParameters) -> NetworkArtifacts:
        """Connect the session for these parameters if needed."""
        return await self.get_session(parameters).ensure_connected()

    @property
    def sessions(self) -> Dict[ConnectionParameters, Session]:
        return dict(self._sessions)

    async def close(self) -> None:
        """Close every session."""
        for session in list(self._sessions.values()):
            await session.close()
        self._sessions.clear()
