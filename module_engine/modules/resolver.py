"""
Dependency Graph Resolver
=========================

Pure functions over a module catalog. No I/O, no state.

Cycles in malformed catalogs terminate because every traversal keeps
its own visited set; the result is whatever was reachable before the
cycle closed.
"""

from typing import Iterable, Mapping, Set, Union

from .catalog import ModuleCatalog, ModuleDefinition

CatalogLike = Union[ModuleCatalog, Mapping[str, ModuleDefinition], Iterable[ModuleDefinition]]


def _as_lookup(catalog: CatalogLike):
    if isinstance(catalog, (ModuleCatalog, Mapping)):
        return catalog
    return {definition.id: definition for definition in catalog}


def resolve_dependencies(module_id: str, catalog: CatalogLike) -> Set[str]:
    """
    Transitive closure of the dependencies of module_id.

    The module itself is never part of the result. Unknown modules have
    no dependencies.
    """
    lookup = _as_lookup(catalog)
    result: Set[str] = set()
    visited = {module_id}

    def visit(current_id: str) -> None:
        definition = lookup.get(current_id)
        if definition is None:
            return
        for dep_id in definition.dependencies:
            if dep_id in visited:
                continue
            visited.add(dep_id)
            result.add(dep_id)
            visit(dep_id)

    visit(module_id)
    return result


def get_dependents(
    module_id: str,
    enabled_ids: Iterable[str],
    catalog: CatalogLike,
) -> Set[str]:
    """
    Enabled modules that need module_id, directly or transitively.
    """
    lookup = _as_lookup(catalog)
    return {
        enabled_id
        for enabled_id in enabled_ids
        if enabled_id != module_id
        and module_id in resolve_dependencies(enabled_id, lookup)
    }
