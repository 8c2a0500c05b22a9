"""Odoo JSON-RPC Client.

Low-level client for Odoo's ``/jsonrpc`` endpoint. Handles authentication,
request framing and error mapping; exposes the RecordSource interface.

Usage:
    client = OdooClient(SourceConfig(connector_type="odoo", base_url=..., database=..., ...))
    await client.connect()
    leads = await client.search_read("crm.lead", [], ["id", "name"], limit=10)
"""

import itertools
from typing import Any, Dict, List, Optional

import aiohttp

from connectors.erp_base import (
    RecordSource,
    SourceAuthenticationError,
    SourceConfig,
    SourceConnectionStatus,
    SourceRPCError,
    SourceTransportError,
    register_connector,
)
from core.observability.logging import get_logger

logger = get_logger(__name__)

JSONRPC_PATH = "/jsonrpc"


@register_connector("odoo")
class OdooClient(RecordSource):
    """RecordSource over Odoo's JSON-RPC API.

    Errors:
    - HTTP failures and connection problems raise SourceTransportError
    - Rejected credentials raise SourceAuthenticationError
    - Server-side exceptions raise SourceRPCError; ``remote_message`` carries
      the exception message followed by the server traceback
    """

    def __init__(self, config: SourceConfig, session: Optional[aiohttp.ClientSession] = None):
        super().__init__(config)
        if not config.base_url:
            raise ValueError("Odoo base_url is required")
        self._endpoint = config.base_url.rstrip("/") + JSONRPC_PATH
        self._session = session
        self._owns_session = session is None
        self._uid: Optional[int] = None
        self._ids = itertools.count(1)

    # =========================================================================
    # Connection Management
    # =========================================================================

    async def connect(self) -> bool:
        """Open the HTTP session and authenticate."""
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

        if self._uid is not None:
            return True

        uid = await self._call("common", "authenticate", [
            self.config.database, self.config.username, self.config.password, {},
        ])

        if not uid:
            self._connection_status = SourceConnectionStatus.ERROR
            raise SourceAuthenticationError(
                f"Odoo rejected credentials for {self.config.username} on {self.config.database}"
            )

        self._uid = int(uid)
        self._connection_status = SourceConnectionStatus.CONNECTED
        logger.info(f"Authenticated with Odoo as uid {self._uid} on {self.config.database}")
        return True

    async def disconnect(self) -> None:
        """Close the HTTP session if this client opened it."""
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None
        self._uid = None
        self._connection_status = SourceConnectionStatus.DISCONNECTED

    # =========================================================================
    # Record Access
    # =========================================================================

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
        kwargs: Dict[str, Any] = {"offset": offset}
        if fields is not None:
            kwargs["fields"] = fields
        if limit is not None:
            kwargs["limit"] = limit
        if order:
            kwargs["order"] = order
        if context:
            kwargs["context"] = context
        return await self.execute_kw(model, "search_read", [domain or []], kwargs)

    async def search_count(
        self,
        model: str,
        domain: Optional[List[Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> int:
        kwargs = {"context": context} if context else None
        return int(await self.execute_kw(model, "search_count", [domain or []], kwargs))

    async def execute_kw(
        self,
        model: str,
        method: str,
        args: List[Any],
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Call a model method through ``object.execute_kw``."""
        if self._uid is None:
            await self.connect()
        return await self._call(
            "object",
            "execute_kw",
            [self.config.database, self._uid, self.config.password, model, method, args, kwargs or {}],
            model=model,
        )

    # =========================================================================
    # Transport
    # =========================================================================

    async def _call(self, service: str, method: str, args: List[Any], model: Optional[str] = None) -> Any:
        """POST one JSON-RPC request and unwrap its result.

        Raises:
            SourceTransportError: Connection failure, HTTP error or malformed body
            SourceRPCError: The server returned an error object
        """
        if self._session is None:
            raise SourceTransportError("Not connected. Call connect() first.", model=model)

        request = {
            "jsonrpc": "2.0",
            "method": "call",
            "params": {"service": service, "method": method, "args": args},
            "id": next(self._ids),
        }

        try:
            async with self._session.post(self._endpoint, json=request) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise SourceTransportError(
                        f"Odoo HTTP {response.status}: {body[:200]}",
                        status_code=response.status,
                        model=model,
                    )
                payload = await response.json(content_type=None)
        except aiohttp.ClientError as exc:
            raise SourceTransportError(f"Odoo request failed: {exc}", model=model) from exc

        if not isinstance(payload, dict):
            raise SourceTransportError("Odoo returned a non-object JSON-RPC response", model=model)

        error = payload.get("error")
        if error:
            raise self._rpc_error(error, model)

        return payload.get("result")

    @staticmethod
    def _rpc_error(error: Dict[str, Any], model: Optional[str]) -> Exception:
        data = error.get("data") or {}
        name = data.get("name", "")
        message = data.get("message") or error.get("message") or "Odoo Server Error"
        debug = data.get("debug") or ""
        remote = f"{message}\n{debug}" if debug else message

        if name.endswith("AccessDenied"):
            return SourceAuthenticationError(f"Odoo access denied: {message}", model=model)

        return SourceRPCError(
            f"Odoo error ({name or error.get('code')}): {message[:200]}",
            remote_message=remote,
            code=error.get("code"),
            model=model,
            data=data,
        )
