"""
Module Engine API
=================

HTTP facade used by the console's module store and setup wizards.

Endpoints:
- GET  /api/health - Health check
- POST /api/v1/plan/enable - What enabling a module pulls in
- POST /api/v1/plan/disable - Whether a module can be disabled
- GET  /api/v1/tenants/{tenant_id}/modules - Catalog + enabled set
- POST /api/v1/tenants/{tenant_id}/modules/{module_id}/install
- POST /api/v1/tenants/{tenant_id}/modules/{module_id}/uninstall?cascade=
- POST /api/v1/tenants/{tenant_id}/suites/{suite_id}/install
- POST /api/v1/tenants/{tenant_id}/suites/{suite_id}/uninstall

Operation results map to status codes: succeeded or skipped 200,
conflicted 409, failed 502.
"""

import logging
from collections import OrderedDict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

import httpx
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import EngineConfig
from .exceptions import CatalogCycleError, ResponseShapeError
from .modules.catalog import ModuleCatalog
from .modules.planner import can_disable, describe_enable, plan_enable
from .orchestrator import LifecycleOrchestrator, ModuleOperation, OperationState
from .services.modules_api import ModulesApiClient
from .services.wire import DefinitionWire

logger = logging.getLogger(__name__)


# ============================================
# PYDANTIC MODELS
# ============================================

class PlanRequest(BaseModel):
    module_id: str
    enabled: List[str] = Field(default_factory=list)
    modules: List[DefinitionWire] = Field(default_factory=list)


class EnablePlanResponse(BaseModel):
    module_id: str
    enabled: List[str]
    new_dependencies: List[str]
    message: Optional[str] = None


class DisableCheckResponse(BaseModel):
    module_id: str
    allowed: bool
    required_by: List[str]


STATUS_CODES = {
    OperationState.IDLE: 200,
    OperationState.SUCCEEDED: 200,
    OperationState.CONFLICTED: 409,
    OperationState.FAILED: 502,
}


def create_app(
    config: Optional[EngineConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the API.

    Args:
        config: Engine configuration (from environment if omitted)
        transport: httpx transport for the authority client (tests)
    """
    config = config or EngineConfig.from_env()
    api_client = ModulesApiClient(config.api, transport=transport)
    # Least recently used first
    orchestrators: "OrderedDict[str, LifecycleOrchestrator]" = OrderedDict()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await api_client.close()

    app = FastAPI(
        title="Module Engine",
        description="Module dependency resolution and lifecycle orchestration",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_orchestrator(tenant_id: str) -> LifecycleOrchestrator:
        orch = orchestrators.get(tenant_id)
        if orch is None:
            orch = LifecycleOrchestrator(
                api_client,
                tenant_id,
                auto_reload=config.auto_reload,
                reject_cyclic_catalogs=config.reject_cyclic_catalogs,
            )
            orchestrators[tenant_id] = orch
            evict_idle(keep=tenant_id)
        orchestrators.move_to_end(tenant_id)
        return orch

    def evict_idle(keep: str):
        """Drop least recently used tenants beyond max_tenants, skipping busy ones."""
        for tenant_id in list(orchestrators):
            if len(orchestrators) <= config.max_tenants:
                break
            if tenant_id == keep or orchestrators[tenant_id].guard.busy:
                continue
            del orchestrators[tenant_id]
            logger.debug(f"Evicted orchestrator for {tenant_id}")

    async def loaded_orchestrator(tenant_id: str) -> LifecycleOrchestrator:
        orch = get_orchestrator(tenant_id)
        if orch.snapshot.enabled is None:
            await refresh(orch)
        return orch

    async def refresh(orch: LifecycleOrchestrator):
        try:
            return await orch.refresh()
        except (ResponseShapeError, CatalogCycleError) as e:
            logger.error(f"Unusable module data for {orch.tenant_id}: {e}")
            raise HTTPException(status_code=502, detail=str(e))

    def operation_response(op: ModuleOperation) -> JSONResponse:
        return JSONResponse(status_code=STATUS_CODES.get(op.state, 200), content=op.to_dict())

    # ----------------------------------------
    # ENDPOINTS
    # ----------------------------------------

    @app.get("/api/health")
    async def health():
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "api_configured": config.api.is_configured,
            "tenants_loaded": len(orchestrators),
        }

    @app.post("/api/v1/plan/enable", response_model=EnablePlanResponse)
    async def plan_enable_endpoint(request: PlanRequest):
        """Enabled set after enabling a module with its dependencies."""
        catalog = ModuleCatalog(m.to_definition() for m in request.modules)
        plan = plan_enable(request.enabled, request.module_id, catalog)
        return EnablePlanResponse(
            module_id=request.module_id,
            enabled=sorted(plan.enabled),
            new_dependencies=plan.new_dependencies,
            message=describe_enable(plan, request.module_id, catalog),
        )

    @app.post("/api/v1/plan/disable", response_model=DisableCheckResponse)
    async def plan_disable_endpoint(request: PlanRequest):
        """Whether any enabled module still needs this one."""
        catalog = ModuleCatalog(m.to_definition() for m in request.modules)
        check = can_disable(request.enabled, request.module_id, catalog)
        return DisableCheckResponse(
            module_id=request.module_id,
            allowed=check.allowed,
            required_by=check.required_by,
        )

    @app.get("/api/v1/tenants/{tenant_id}/modules")
    async def get_modules(tenant_id: str):
        """Fresh catalog and enabled set for a tenant."""
        snapshot = await refresh(get_orchestrator(tenant_id))
        status_code = 200 if snapshot.ok else 503
        return JSONResponse(status_code=status_code, content=snapshot.to_dict())

    @app.post("/api/v1/tenants/{tenant_id}/modules/{module_id}/install")
    async def install_module(tenant_id: str, module_id: str):
        orch = await loaded_orchestrator(tenant_id)
        return operation_response(await orch.install(module_id))

    @app.post("/api/v1/tenants/{tenant_id}/modules/{module_id}/uninstall")
    async def uninstall_module(tenant_id: str, module_id: str, cascade: bool = False):
        orch = await loaded_orchestrator(tenant_id)
        return operation_response(await orch.uninstall(module_id, cascade=cascade))

    @app.post("/api/v1/tenants/{tenant_id}/suites/{suite_id}/install")
    async def install_suite(tenant_id: str, suite_id: str):
        orch = await loaded_orchestrator(tenant_id)
        return operation_response(await orch.install_suite(suite_id))

    @app.post("/api/v1/tenants/{tenant_id}/suites/{suite_id}/uninstall")
    async def uninstall_suite(tenant_id: str, suite_id: str):
        orch = await loaded_orchestrator(tenant_id)
        return operation_response(await orch.uninstall_suite(suite_id))

    return app


def create_app_from_env() -> FastAPI:
    """Create app using environment variables."""
    return create_app(EngineConfig.from_env())
