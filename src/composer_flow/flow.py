"""
Flow adapters.

Host-neutral nodes that receive flow messages, run them through the
dispatcher and report the outcome on status, send and error channels.
Failures are reported on the channels and never raised to the host.
"""

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

import structlog

from composer_flow.dispatcher import ResourceDispatcher
from composer_flow.errors import BridgeError, ConfigError, ConnectionError
from composer_flow.operations import OperationKind, OperationRequest, OperationResult
from composer_flow.session import SessionManager, SessionState
from composer_flow.validation import validate_config

logger = structlog.get_logger(__name__)

Message = Dict[str, Any]


@dataclass(frozen=True)
class NodeStatus:
    """Status indicator shown under a node; all None clears it."""
    fill: Optional[str] = None
    shape: Optional[str] = None
    text: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in (("fill", self.fill), ("shape", self.shape), ("text", self.text)) if v is not None}


CLEAR_STATUS = NodeStatus()
CONNECTING_STATUS = NodeStatus(fill="yellow", shape="ring", text="connecting")


def error_status(error: BaseException) -> NodeStatus:
    return NodeStatus(fill="red", shape="ring", text=str(error))


class FlowNode(ABC):
    """
    Base class for flow nodes.

    The host registers handlers for the status, send and error channels.
    """

    def __init__(self, config: Mapping[str, Any], sessions: SessionManager, name: Optional[str] = None):
        self.config = dict(config)
        self.sessions = sessions
        self.name = name or self.config.get("name") or type(self).__name__
        self.current_status = CLEAR_STATUS
        self._status_handlers: List[Callable[[NodeStatus], None]] = []
        self._send_handlers: List[Callable[[Message], None]] = []
        self._error_handlers: List[Callable[[str, Optional[Message]], None]] = []

    def on_status(self, handler: Callable[[NodeStatus], None]) -> None:
        self._status_handlers.append(handler)

    def on_send(self, handler: Callable[[Message], None]) -> None:
        self._send_handlers.append(handler)

    def on_error(self, handler: Callable[[str, Optional[Message]], None]) -> None:
        self._error_handlers.append(handler)

    def status(self, status: NodeStatus) -> None:
        self.current_status = status
        for handler in self._status_handlers:
            handler(status)

    def send(self, msg: Message) -> None:
        for handler in self._send_handlers:
            handler(msg)

    def error(self, message: str, msg: Optional[Message] = None) -> None:
        logger.error("node_error", node=self.name, error=message)
        for handler in self._error_handlers:
            handler(message, msg)

    @abstractmethod
    async def handle_input(self, msg: Message) -> OperationResult:
        """Process one inbound message; failures go to the channels, never raised."""
        pass

    async def _run(self, request: OperationRequest, msg: Message) -> OperationResult:
        """Validate config, run the request and report failures."""
        try:
            parameters = validate_config(self.config)
            session = self.sessions.get_session(parameters)
        except BridgeError as e:
            return self._fail(OperationResult.failure(request.kind, e), msg)
        except Exception as e:
            logger.exception("session_setup_failed", node=self.name)
            error = ConnectionError(f"Cannot set up a session: {type(e).__name__}: {e}", cause=e)
            return self._fail(OperationResult.failure(request.kind, error), msg)

        if session.state != SessionState.CONNECTED:
            self.status(CONNECTING_STATUS)

        result = await ResourceDispatcher(session).execute(request)
        if not result.ok:
            return self._fail(result, msg)
        return result

    def _fail(self, result: OperationResult, msg: Message) -> OperationResult:
        self.status(error_status(result.error))
        self.error(f"{result.kind.value} failed: {result.error}", msg)
        return result


class ComposerOutNode(FlowNode):
    """
    Terminal node that creates or updates resources.

    The actionType setting selects create (default) or update. Success
    clears the status; nothing is sent downstream.
    """

    def _operation_kind(self) -> OperationKind:
        action = self.config.get("actionType") or OperationKind.CREATE.value
        try:
            kind = OperationKind(action)
        except ValueError as e:
            raise ConfigError(f"Unsupported actionType: {action}", field="actionType") from e
        if kind == OperationKind.RETRIEVE:
            raise ConfigError("Out node can not retrieve; use the in node", field="actionType")
        return kind

    async def handle_input(self, msg: Message) -> OperationResult:
        try:
            kind = self._operation_kind()
        except ConfigError as e:
            return self._fail(OperationResult.failure(OperationKind.CREATE, e), msg)

        logger.debug("node_input", node=self.name, action=kind.value)
        result = await self._run(OperationRequest(kind, msg.get("payload")), msg)
        if result.ok:
            self.status(CLEAR_STATUS)
        return result


class ComposerInNode(FlowNode):
    """
    Node that retrieves a resource by type and id.

    On success the message is sent on with its payload replaced by the
    resource JSON.
    """

    async def handle_input(self, msg: Message) -> OperationResult:
        logger.debug("node_input", node=self.name, action=OperationKind.RETRIEVE.value)
        result = await self._run(OperationRequest(OperationKind.RETRIEVE, msg.get("payload")), msg)
        if result.ok:
            self.status(CLEAR_STATUS)
            out = copy.copy(msg)
            out["payload"] = result.payload
            self.send(out)
        return result
