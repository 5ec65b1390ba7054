"""
Modules API Client

Async client for the remote module authority. The authority owns the
catalog and every tenant's enabled set; this client only reads snapshots
and forwards install/uninstall requests.
"""

import logging
from typing import Any, List, Optional, Tuple

import httpx

from ..config import ApiConfig
from ..exceptions import ModuleApiError, ModuleConflictError
from ..models import EnabledSet, OperationOutcome
from ..modules.catalog import ModuleDefinition
from . import wire

logger = logging.getLogger(__name__)


class ModulesApiClient:
    """
    Talks to the module authority over HTTP.

    Usage:
        config = ApiConfig(base_url="https://api.example.com/api", api_token="...")
        async with ModulesApiClient(config) as api:
            definitions, installed = await api.get_catalog("org-1")
            outcome = await api.install_module("org-1", "inventory")

    Reads use config.read_timeout, mutations config.mutation_timeout.
    Non-2xx responses raise ModuleApiError; a 409 uninstall carrying
    dependents raises ModuleConflictError.
    """

    def __init__(
        self,
        config: ApiConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        api_token: Optional[str] = None,
    ):
        self.config = config
        headers = dict(config.headers)
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self.client = httpx.AsyncClient(
            base_url=config.base_url,
            headers=headers,
            timeout=config.read_timeout,
            transport=transport,
        )

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()

    # =========================================================================
    # Core request handling
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        timeout: float,
        **kwargs,
    ) -> Any:
        resp = await self.client.request(method, path, timeout=timeout, **kwargs)
        payload = _json_or_none(resp)
        if resp.is_error:
            logger.debug(f"{method} {path} -> HTTP {resp.status_code}: {payload}")
            raise ModuleApiError(
                f"{method} {path} failed with HTTP {resp.status_code}",
                status_code=resp.status_code,
                payload=payload,
            )
        return payload

    async def _read(self, path: str, **kwargs) -> Any:
        return await self._request("GET", path, self.config.read_timeout, **kwargs)

    async def _mutate(self, path: str, body: dict) -> Any:
        return await self._request("POST", path, self.config.mutation_timeout, json=body)

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_catalog(
        self, tenant_id: str
    ) -> Tuple[List[ModuleDefinition], Optional[List[str]]]:
        """Installable module store for a tenant (definitions + installed flags)."""
        body = await self._read(f"/organizations/{tenant_id}/modules/store")
        return wire.parse_catalog(body)

    async def get_definitions(self, workspace_id: str) -> List[ModuleDefinition]:
        """Raw module definitions visible to a workspace."""
        body = await self._read("/modules/definitions", params={"workspaceId": workspace_id})
        definitions, _ = wire.parse_catalog(body)
        return definitions

    async def get_enabled_set(self, tenant_id: str) -> EnabledSet:
        """Module ids the tenant currently has enabled."""
        body = await self._read(f"/organizations/{tenant_id}/modules")
        return wire.parse_enabled_set(body, tenant_id)

    # =========================================================================
    # Mutations
    # =========================================================================

    async def install_module(self, tenant_id: str, module_id: str) -> OperationOutcome:
        """Install a module; the authority installs missing dependencies too."""
        body = await self._mutate(
            f"/organizations/{tenant_id}/modules/install", {"key": module_id}
        )
        return wire.parse_install_result(body)

    async def uninstall_module(
        self, tenant_id: str, module_id: str, cascade: bool = False
    ) -> OperationOutcome:
        """Uninstall a module, optionally cascading to its dependents."""
        try:
            body = await self._mutate(
                f"/organizations/{tenant_id}/modules/uninstall",
                {"key": module_id, "cascade": cascade},
            )
        except ModuleApiError as e:
            if e.status_code == 409:
                conflict = wire.parse_conflict(e.payload, module_id)
                if conflict is not None:
                    raise ModuleConflictError(
                        module_id, conflict.dependents, payload=e.payload
                    ) from e
            raise
        return wire.parse_uninstall_result(body)

    async def install_suite(self, tenant_id: str, suite_id: str) -> OperationOutcome:
        body = await self._mutate(
            f"/organizations/{tenant_id}/modules/suites/{suite_id}/install", {}
        )
        return wire.parse_suite_result(body)

    async def uninstall_suite(self, tenant_id: str, suite_id: str) -> OperationOutcome:
        body = await self._mutate(
            f"/organizations/{tenant_id}/modules/suites/{suite_id}/uninstall", {}
        )
        return wire.parse_suite_result(body)


def _json_or_none(resp: httpx.Response) -> Any:
    if not resp.content:
        return None
    try:
        return resp.json()
    except ValueError:
        return None
