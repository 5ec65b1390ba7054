"""
Enable/Disable Planner
======================

Applies resolver output to a tenant's enabled-set snapshot. Nothing
here mutates state; callers apply a plan only after the authority has
accepted it.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Optional

from .resolver import CatalogLike, _as_lookup, get_dependents, resolve_dependencies


@dataclass(frozen=True)
class EnablePlan:
    """Enabled set after enabling a module, plus what it pulled in."""
    enabled: FrozenSet[str]
    new_dependencies: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class DisableCheck:
    """Whether a module may be disabled, and who blocks it."""
    allowed: bool
    required_by: List[str] = field(default_factory=list)


def plan_enable(
    current_enabled: Iterable[str],
    module_id: str,
    catalog: CatalogLike,
) -> EnablePlan:
    """Enable module_id together with every dependency it needs."""
    current = set(current_enabled)
    deps = resolve_dependencies(module_id, catalog)
    return EnablePlan(
        enabled=frozenset(current | {module_id} | deps),
        new_dependencies=sorted(deps - current),
    )


def can_disable(
    current_enabled: Iterable[str],
    module_id: str,
    catalog: CatalogLike,
) -> DisableCheck:
    """Check that no enabled module still depends on module_id."""
    dependents = get_dependents(module_id, current_enabled, catalog)
    return DisableCheck(allowed=not dependents, required_by=sorted(dependents))


def describe_enable(
    plan: EnablePlan,
    module_id: str,
    catalog: CatalogLike,
) -> Optional[str]:
    """Message telling the user what else an enable switched on."""
    if not plan.new_dependencies:
        return None
    lookup = _as_lookup(catalog)

    def label(mod_id: str) -> str:
        definition = lookup.get(mod_id)
        return definition.name if definition and definition.name else mod_id

    formatted = ", ".join(label(dep) for dep in plan.new_dependencies)
    return f"Enabled {label(module_id)} and also: {formatted} (dependencies)."
