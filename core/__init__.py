"""Core module - source-neutral configuration, models, storage and observability.

This module contains settings, shared models (storage references, field
restrictions), JSON state storage, and structured logging / metrics. It is
intentionally source-agnostic.

Source-specific logic (Odoo, ...) belongs in /connectors/.
"""

__version__ = "1.0.0"
