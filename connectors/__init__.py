"""Source Connectors - Pluggable source-system integrations.

This package contains the abstract record-source interface, the resilient
field-restriction retry loop, and concrete connectors (Odoo).

Key Design Principle:
- Sync services depend ONLY on the RecordSource interface
- Error-message heuristics stay inside each connector's ErrorClassifier

To add a new source:
1. Create a new folder (e.g., sap/)
2. Implement RecordSource and ErrorClassifier
3. Register using @register_connector decorator
"""

from connectors.erp_base import (
    RecordSource,
    SourceConfig,
    SourceConnectionStatus,
    SourceError,
    SourceAuthenticationError,
    SourceTransportError,
    SourceRPCError,
    create_connector,
    register_connector,
    list_available_connectors,
)
from connectors.resilient import (
    ErrorKind,
    ErrorClassification,
    ErrorClassifier,
    RestrictionTracker,
    ResilientFetcher,
    ResilientFetchResult,
    RestrictionRetryExhausted,
    AllFieldsRestrictedError,
)

__all__ = [
    "RecordSource",
    "SourceConfig",
    "SourceConnectionStatus",
    "SourceError",
    "SourceAuthenticationError",
    "SourceTransportError",
    "SourceRPCError",
    "create_connector",
    "register_connector",
    "list_available_connectors",
    "ErrorKind",
    "ErrorClassification",
    "ErrorClassifier",
    "RestrictionTracker",
    "ResilientFetcher",
    "ResilientFetchResult",
    "RestrictionRetryExhausted",
    "AllFieldsRestrictedError",
]
