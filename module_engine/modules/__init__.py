"""
Module Dependency Engine
========================

Catalog, resolver and planner for installable feature modules.

Module lifecycle:
1. Authority supplies the catalog and the tenant's enabled set
2. Planner decides what an enable pulls in / what blocks a disable
3. Orchestrator asks the authority to apply the change
4. Caller reloads the enabled set from the authority
"""

from .catalog import (
    ModuleCatalog,
    ModuleDefinition,
)

from .resolver import (
    resolve_dependencies,
    get_dependents,
)

from .planner import (
    EnablePlan,
    DisableCheck,
    plan_enable,
    can_disable,
    describe_enable,
)

__all__ = [
    "ModuleCatalog",
    "ModuleDefinition",
    "resolve_dependencies",
    "get_dependents",
    "EnablePlan",
    "DisableCheck",
    "plan_enable",
    "can_disable",
    "describe_enable",
]
