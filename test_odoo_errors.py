"""
Odoo Error Classification Tests

Validates that Odoo's free-text error messages map to the right restriction
kind and field names, and that JSON-RPC error objects become the right
exception type.
"""

import pytest

from connectors.erp_base import (
    SourceAuthenticationError,
    SourceConfig,
    SourceRPCError,
    create_connector,
    list_available_connectors,
)
from connectors.odoo.odoo_client import OdooClient
from connectors.odoo.odoo_errors import OdooErrorClassifier
from connectors.resilient import ErrorKind
from core.models.restrictions import RestrictionReason


@pytest.fixture
def classifier():
    return OdooErrorClassifier()


class TestOdooErrorClassifier:

    def test_access_rights_quoted_fields(self, classifier):
        result = classifier.classify(
            'You do not have enough rights to access the fields "x_margin,x_cost" on '
            "Lead/Opportunity (crm.lead). Please contact your system administrator."
        )
        assert result.kind == ErrorKind.SECURITY_RESTRICTION
        assert result.fields == ["x_margin", "x_cost"]
        assert result.reason == RestrictionReason.SECURITY_RESTRICTION

    def test_access_rights_bullet_form(self, classifier):
        message = (
            "The requested operation can not be completed due to security restrictions.\n\n"
            "Document type: Lead/Opportunity (crm.lead)\n"
            "Operation: read\n"
            "User: 7\n"
            "Fields:\n"
            "- x_margin (allowed for groups 'Sales / Administrator')\n"
            "- x_cost (allowed for groups 'Sales / Administrator')"
        )
        result = classifier.classify(message)
        assert result.kind == ErrorKind.SECURITY_RESTRICTION
        assert result.fields == ["x_margin", "x_cost"]

    def test_compute_failure(self, classifier):
        message = (
            "Traceback (most recent call last):\n"
            '  File "/opt/odoo/addons/crm/models/crm_lead.py", line 412, in _compute_x_score\n'
            "ZeroDivisionError: float division by zero"
        )
        result = classifier.classify(message)
        assert result.kind == ErrorKind.COMPUTE_ERROR
        assert result.fields == ["x_score"]
        assert result.reason == RestrictionReason.COMPUTE_ERROR

    def test_singleton_without_field(self, classifier):
        result = classifier.classify("ValueError: Expected singleton: res.partner(1, 2)")
        assert result.kind == ErrorKind.SINGLETON
        assert result.fields == []
        assert result.is_restriction

    def test_singleton_inside_compute(self, classifier):
        message = (
            '  File "/opt/odoo/addons/sale/models/sale_order.py", line 88, in _compute_amount_due\n'
            "ValueError: Expected singleton: account.move(4, 5)"
        )
        result = classifier.classify(message)
        assert result.kind == ErrorKind.COMPUTE_ERROR
        assert result.fields == ["amount_due"]

    def test_invalid_field(self, classifier):
        result = classifier.classify("Invalid field 'x_foo' on model 'crm.lead'")
        assert result.kind == ErrorKind.UNKNOWN_FIELD
        assert result.fields == ["x_foo"]
        assert result.reason == RestrictionReason.UNKNOWN

    @pytest.mark.parametrize("message", [
        "psycopg2.OperationalError: server closed the connection unexpectedly",
        "Record does not exist or has been deleted.",
        "",
    ])
    def test_not_a_restriction(self, classifier, message):
        result = classifier.classify(message)
        assert result.kind == ErrorKind.NOT_RESTRICTION
        assert not result.is_restriction


class TestRpcErrorMapping:

    def test_server_error_becomes_rpc_error(self):
        error = {
            "code": 200,
            "message": "Odoo Server Error",
            "data": {
                "name": "odoo.exceptions.AccessError",
                "message": 'You do not have enough rights to access the fields "x_margin" on Lead (crm.lead).',
                "debug": "Traceback (most recent call last): ...",
            },
        }
        exc = OdooClient._rpc_error(error, "crm.lead")

        assert isinstance(exc, SourceRPCError)
        assert exc.code == 200
        assert exc.model == "crm.lead"
        assert exc.remote_message.startswith("You do not have enough rights")
        assert "Traceback" in exc.remote_message

    def test_access_denied_becomes_authentication_error(self):
        error = {"code": 200, "data": {"name": "odoo.exceptions.AccessDenied", "message": "Access Denied"}}
        assert isinstance(OdooClient._rpc_error(error, None), SourceAuthenticationError)


class TestConnectorRegistry:

    def test_odoo_registered(self):
        assert "odoo" in list_available_connectors()
        client = create_connector(SourceConfig(connector_type="Odoo", base_url="https://erp.example.com/"))
        assert isinstance(client, OdooClient)
        assert client.get_connector_name() == "Odoo"

    def test_unknown_connector(self):
        with pytest.raises(ValueError):
            create_connector(SourceConfig(connector_type="sap"))
