"""
Module Engine
=============

Dependency resolution and lifecycle orchestration for the feature
modules of a multi-tenant business suite.
"""

from .modules import (
    ModuleCatalog,
    ModuleDefinition,
    resolve_dependencies,
    get_dependents,
    plan_enable,
    can_disable,
)
from .inflight import InFlightGuard, GuardScope
from .orchestrator import (
    LifecycleOrchestrator,
    ModuleOperation,
    OperationKind,
    OperationState,
)

__version__ = "1.0.0"

__all__ = [
    "ModuleCatalog",
    "ModuleDefinition",
    "resolve_dependencies",
    "get_dependents",
    "plan_enable",
    "can_disable",
    "InFlightGuard",
    "GuardScope",
    "LifecycleOrchestrator",
    "ModuleOperation",
    "OperationKind",
    "OperationState",
]
