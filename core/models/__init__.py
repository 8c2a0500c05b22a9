"""Core data models shared across packages.

Storage references and field-restriction records used by the connectors,
the encoder and the sync services.
"""

from core.models.refs import DataReference
from core.models.restrictions import FieldRestriction, RestrictionReason

__all__ = [
    "DataReference",
    "FieldRestriction",
    "RestrictionReason",
]
