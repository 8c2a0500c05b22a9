"""Odoo connector - JSON-RPC record source and error classification."""

from connectors.odoo.odoo_client import OdooClient
from connectors.odoo.odoo_errors import OdooErrorClassifier

__all__ = [
    "OdooClient",
    "OdooErrorClassifier",
]
