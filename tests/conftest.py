"""
Module Engine Test Fixtures
===========================

Shared fixtures for all test modules.

The module authority is replaced by FakeAuthority, an in-memory backend
served through httpx.MockTransport, so the real API client and wire
adapter run in every orchestrator test.
"""

import asyncio
import json
import re
from typing import Dict, List, Optional, Set

import httpx
import pytest

from module_engine.config import ApiConfig, EngineConfig
from module_engine.modules.catalog import ModuleCatalog, ModuleDefinition
from module_engine.modules.resolver import get_dependents


# ============================================
# CATALOGS
# ============================================

@pytest.fixture
def chain_catalog():
    """A <- B <- C."""
    return ModuleCatalog([
        ModuleDefinition.create("A", name="Alpha"),
        ModuleDefinition.create("B", name="Beta", dependencies=["A"]),
        ModuleDefinition.create("C", name="Gamma", dependencies=["B"]),
    ])


STORE_DEFINITIONS = [
    {"id": "core", "name": "Core", "isSystem": True, "suite": "platform-suite", "order": 0},
    {"id": "products", "name": "Products", "dependencies": ["core"], "suite": "master-data-suite", "order": 10},
    {"id": "uom", "name": "Units of Measure", "dependencies": ["core"], "suite": "master-data-suite", "order": 11},
    {"id": "warehouses", "name": "Warehouses", "dependencies": ["core"], "suite": "inventory-suite", "order": 20},
    {"id": "stock", "name": "Stock", "dependencies": ["products", "warehouses"], "suite": "inventory-suite", "order": 21},
    {"id": "transfers", "name": "Transfers", "dependencies": ["stock"], "suite": "inventory-suite", "order": 22},
    {"id": "pos", "name": "Point of Sale", "dependencies": ["stock", "uom"], "suite": "pos-suite", "order": 30},
    {"id": "reports", "name": "Reports", "dependencies": ["core"], "suite": "utilities-suite", "order": 40},
]


# ============================================
# FAKE MODULE AUTHORITY
# ============================================

class FakeAuthority:
    """
    In-memory module authority speaking the console's wire format.

    Knobs:
        installed: ids currently installed
        blocked: ids a suite install reports as blockers
        broken: ids whose install fails with a server error message
        gate: when set, mutations wait on this event before answering
        delay: seconds every read sleeps before answering
        offline: every request raises a transport error
    """

    def __init__(self, definitions: List[dict], installed: Optional[Set[str]] = None):
        self.definitions = {d["id"]: dict(d) for d in definitions}
        self.installed: Set[str] = set(installed or ())
        self.blocked: Set[str] = set()
        self.broken: Dict[str, object] = {}
        self.gate: Optional[asyncio.Event] = None
        self.delay: float = 0.0
        self.offline = False
        self.default_module: Optional[str] = None
        self.calls: List[tuple] = []

    @property
    def catalog(self) -> ModuleCatalog:
        return ModuleCatalog(
            ModuleDefinition.create(
                id=d["id"],
                name=d.get("name"),
                dependencies=d.get("dependencies"),
                is_system=d.get("isSystem", False),
                suite=d.get("suite"),
                order=d.get("order"),
            )
            for d in self.definitions.values()
        )

    def mutation_calls(self) -> List[tuple]:
        return [c for c in self.calls if c[0] == "POST"]

    # -----------------------------------------
    # Transport
    # -----------------------------------------

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, request.url.path, body))

        if self.offline:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path
        if path.startswith("/api/"):
            path = path[len("/api"):]
        if request.method == "GET":
            if self.delay:
                await asyncio.sleep(self.delay)
            return self._read(path, request)

        if self.gate is not None:
            await self.gate.wait()
        return self._mutate(path, body or {})

    def _read(self, path: str, request: httpx.Request) -> httpx.Response:
        if path.endswith("/modules/store"):
            available = [
                {
                    "key": d["id"],
                    "name": d.get("name"),
                    "dependencies": d.get("dependencies", []),
                    "isSystem": d.get("isSystem", False),
                    "suite": d.get("suite"),
                    "order": d.get("order"),
                    "installed": d["id"] in self.installed,
                }
                for d in self.definitions.values()
            ]
            return _envelope({"available": available})

        if path == "/modules/definitions":
            return _envelope(list(self.definitions.values()))

        if re.fullmatch(r"/organizations/[^/]+/modules", path):
            modules = [
                {
                    "key": d["id"],
                    "name": d.get("name"),
                    "dependencies": d.get("dependencies", []),
                    "isSystem": d.get("isSystem", False),
                    "state": {"status": "configured" if d["id"] in self.installed else "disabled"},
                }
                for d in self.definitions.values()
            ]
            return _envelope({"modules": modules, "defaultModule": self.default_module})

        return httpx.Response(404, json={"message": f"No route for {path}"})

    def _mutate(self, path: str, body: dict) -> httpx.Response:
        suite = re.fullmatch(r"/organizations/[^/]+/modules/suites/([^/]+)/(install|uninstall)", path)
        if suite:
            suite_id, action = suite.groups()
            if action == "install":
                return _envelope(self._install_suite(suite_id))
            return _envelope(self._uninstall_suite(suite_id))

        if path.endswith("/modules/install"):
            key = body["key"]
            if key in self.broken:
                return httpx.Response(500, json={"message": self.broken[key]})
            installed, already = self._install(key)
            return _envelope({"installedKeys": installed, "alreadyInstalledKeys": already})

        if path.endswith("/modules/uninstall"):
            key = body["key"]
            dependents = sorted(get_dependents(key, self.installed, self.catalog))
            if dependents and not body.get("cascade"):
                return httpx.Response(409, json={
                    "message": "Module is required by other modules",
                    "dependents": dependents,
                })
            removed = [key] + dependents
            self.installed.difference_update(removed)
            return _envelope({"uninstalledKeys": removed})

        return httpx.Response(404, json={"message": f"No route for {path}"})

    def _install(self, key: str):
        order = self._dependencies_first(key, self.catalog, set())
        installed = [k for k in order if k not in self.installed]
        already = [k for k in order if k in self.installed]
        self.installed.update(installed)
        return installed, already

    def _dependencies_first(self, key: str, catalog: ModuleCatalog, seen: Set[str]) -> List[str]:
        """Post-order walk: every dependency lands before its dependent."""
        seen.add(key)
        order: List[str] = []
        definition = catalog.get(key)
        for dep in definition.dependencies if definition else ():
            if dep not in seen:
                order.extend(self._dependencies_first(dep, catalog, seen))
        order.append(key)
        return order

    def _install_suite(self, suite_id: str) -> dict:
        result = {"installed": [], "skipped": [], "blockers": [], "errors": []}
        for member in self.catalog.suite_modules(suite_id):
            if member.id in self.installed:
                result["skipped"].append(member.id)
            elif member.id in self.blocked:
                result["blockers"].append(member.id)
            elif member.id in self.broken:
                result["errors"].append({"key": member.id, "message": self.broken[member.id]})
            else:
                self._install(member.id)
                result["installed"].append(member.id)
        return result

    def _uninstall_suite(self, suite_id: str) -> dict:
        members = [m.id for m in self.catalog.suite_modules(suite_id)]
        result = {"uninstalled": [], "skipped": [], "blockers": [], "errors": []}
        for member in members:
            if member not in self.installed:
                result["skipped"].append(member)
                continue
            outside = get_dependents(member, self.installed, self.catalog) - set(members)
            if outside:
                result["blockers"].append(member)
            else:
                result["uninstalled"].append(member)
        self.installed.difference_update(result["uninstalled"])
        return result


def _envelope(result) -> httpx.Response:
    return httpx.Response(200, json={"status": "success", "message": "", "result": result, "error": None})


# ============================================
# CONFIG / CLIENTS
# ============================================

@pytest.fixture
def api_config():
    return ApiConfig(
        base_url="http://authority.test/api",
        api_token="test-token",
        read_timeout=2.0,
        mutation_timeout=2.0,
    )


@pytest.fixture
def engine_config(api_config):
    return EngineConfig(api=api_config, log_format="text")


@pytest.fixture
def authority():
    """Fake authority with core, products and warehouses installed."""
    return FakeAuthority(STORE_DEFINITIONS, installed={"core", "products", "warehouses"})


@pytest.fixture
def make_authority():
    """Factory for authorities serving custom definitions."""
    return FakeAuthority


@pytest.fixture
def api_client(api_config, authority):
    from module_engine.services.modules_api import ModulesApiClient

    return ModulesApiClient(api_config, transport=authority.transport())


@pytest.fixture
def orchestrator(api_client):
    """Orchestrator for tenant org-1 with auto reload on."""
    from module_engine.orchestrator import LifecycleOrchestrator

    return LifecycleOrchestrator(api_client, "org-1")


# ============================================
# FASTAPI TEST CLIENT
# ============================================

@pytest.fixture
def test_client(engine_config, authority):
    """FastAPI test client wired to the fake authority."""
    from fastapi.testclient import TestClient
    from module_engine.api import create_app

    app = create_app(engine_config, transport=authority.transport())
    with TestClient(app) as client:
        yield client
