"""
Error taxonomy for the flow connector.

Every failure surfaced by validation, session management or dispatch
derives from BridgeError so the flow adapters can report it uniformly.
"""

from typing import Optional


class BridgeError(Exception):
    """Base exception for all connector errors."""
    pass


class ConfigError(BridgeError):
    """Raised when static node configuration is missing or invalid."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ValidationError(BridgeError):
    """Raised when an inbound message payload is malformed."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ConnectionError(BridgeError):
    """Raised when a session to the business network cannot be established."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class DeserializationError(BridgeError):
    """Raised when a payload cannot be turned into a resource of the type model."""
    pass


class UnsupportedTypeError(BridgeError):
    """Raised when a declaration kind has no handling defined."""

    def __init__(self, message: str, type_name: Optional[str] = None):
        super().__init__(message)
        self.type_name = type_name


class UnsupportedOperationError(BridgeError):
    """Raised when an operation is not defined for a declaration kind."""

    def __init__(self, message: str, operation: Optional[str] = None, type_name: Optional[str] = None):
        super().__init__(message)
        self.operation = operation
        self.type_name = type_name


class NotFoundError(BridgeError):
    """Raised when a retrieve target does not exist in its registry."""

    def __init__(self, message: str, type_name: Optional[str] = None, identifier: Optional[str] = None):
        super().__init__(message)
        self.type_name = type_name
        self.identifier = identifier


class RemoteOperationError(BridgeError):
    """Raised when a registry or transaction call fails on the network side."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        type_name: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.type_name = type_name
        self.cause = cause
