"""Abstract Record Source Interface.

This module defines the abstract interface every source-system connector must
implement. It is intentionally system-agnostic - no Odoo specifics here.

Connectors implement this interface to:
1. Connect and authenticate with their system
2. Bulk-read records of a model (search_read)
3. Count records of a model (search_count)

Key Design Principles:
- Sync services and the restriction retry loop depend ONLY on this interface
- Remote errors surface as SourceRPCError carrying the remote message text;
  transport and authentication failures use their own exception types
- System-specific implementations live in connector subfolders
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


# =============================================================================
# Exceptions
# =============================================================================

class SourceError(Exception):
    """Base exception for source-system errors."""
    def __init__(self, message: str, model: Optional[str] = None):
        super().__init__(message)
        self.model = model


class SourceAuthenticationError(SourceError):
    """Authentication with the source system failed."""
    pass


class SourceTransportError(SourceError):
    """The source system could not be reached or answered with a non-RPC failure."""
    def __init__(self, message: str, status_code: int = 0, model: Optional[str] = None):
        super().__init__(message, model)
        self.status_code = status_code


class SourceRPCError(SourceError):
    """The source system rejected a call and returned an error message.

    ``remote_message`` holds the text the restriction loop classifies.
    """
    def __init__(
        self,
        message: str,
        remote_message: str = "",
        code: Optional[int] = None,
        model: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, model)
        self.remote_message = remote_message or message
        self.code = code
        self.data = data or {}


# =============================================================================
# Enums / Config
# =============================================================================

class SourceConnectionStatus(str, Enum):
    """Connection state of a source connector."""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass
class SourceConfig:
    """Configuration for a source connector.

    Generic configuration that can be extended by specific connectors.
    """
    connector_type: str                     # "odoo", ...
    base_url: Optional[str] = None          # Source API endpoint
    database: Optional[str] = None          # Database / tenant within the source
    username: Optional[str] = None
    password: Optional[str] = None          # Password or API key
    timeout_seconds: int = 120
    custom_settings: Dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Abstract Source Interface
# =============================================================================

class RecordSource(ABC):
    """Abstract base class for source-system connectors.

    Implementations:
    - connectors/odoo/odoo_client.py
    """

    def __init__(self, config: SourceConfig):
        """Initialize connector with configuration."""
        self.config = config
        self._connection_status = SourceConnectionStatus.DISCONNECTED

    # =========================================================================
    # Connection Management
    # =========================================================================

    @abstractmethod
    async def connect(self) -> bool:
        """Establish connection and authenticate.

        Returns:
            True if connection successful
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Disconnect from the source system."""
        pass

    @property
    def connection_status(self) -> SourceConnectionStatus:
        """Get current connection status."""
        return self._connection_status

    # =========================================================================
    # Record Access
    # =========================================================================

    @abstractmethod
    async def search_read(
        self,
        model: str,
        domain: Optional[List[Any]] = None,
        fields: Optional[List[str]] = None,
        offset: int = 0,
        limit: Optional[int] = None,
        order: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Read records matching a domain.

        Args:
            model: Technical model name (e.g., "crm.lead")
            domain: Filter domain (empty for all records)
            fields: Field names to return (all fields when None)
            offset: Records to skip
            limit: Maximum records to return
            order: Sort specification (e.g., "id")
            context: Source-specific call context (e.g., {"active_test": False})

        Returns:
            List of field name -> value dicts

        Raises:
            SourceRPCError: The source rejected the call
            SourceTransportError: The source could not be reached
            SourceAuthenticationError: Credentials were rejected
        """
        pass

    @abstractmethod
    async def search_count(
        self,
        model: str,
        domain: Optional[List[Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Count records matching a domain."""
        pass

    def get_connector_name(self) -> str:
        """Get the connector type name."""
        return self.config.connector_type

    async def __aenter__(self) -> "RecordSource":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()


# =============================================================================
# Connector Factory
# =============================================================================

_connector_registry: Dict[str, type] = {}


def register_connector(connector_type: str):
    """Decorator to register a connector implementation."""
    def decorator(cls):
        _connector_registry[connector_type] = cls
        return cls
    return decorator


def create_connector(config: SourceConfig) -> RecordSource:
    """Create a connector instance from configuration.

    Raises:
        ValueError: If connector_type is not registered
    """
    connector_type = config.connector_type.lower()

    if connector_type not in _connector_registry:
        available = list(_connector_registry.keys())
        raise ValueError(
            f"Unknown connector type: {connector_type}. "
            f"Available: {available}"
        )

    connector_class = _connector_registry[connector_type]
    return connector_class(config)


def list_available_connectors() -> List[str]:
    """List all registered connector types."""
    return list(_connector_registry.keys())
