"""
Module Catalog
==============

Read-only catalog of installable feature modules for one tenant.

Definitions are supplied by the remote module authority on every
request. The engine never mutates them; a catalog is rebuilt from
scratch whenever the authority is re-read.

Each module is organized by:
- Suite (the batch unit for suite install/uninstall)
- Category (presentation grouping)
- Flags (system modules and dependency-only definitions)
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from ..exceptions import CatalogCycleError

logger = logging.getLogger(__name__)


DEFAULT_VERSION = "1.0.0"
DEFAULT_CATEGORY = "utilities"
DEFAULT_SUITE = "utilities-suite"
DEFAULT_ORDER = 100


@dataclass(frozen=True)
class ModuleDefinition:
    """
    An installable feature module.

    Attributes:
        id: Unique module key
        name: Human-readable name
        version: Module version string
        dependencies: Module ids this one requires, in declared order
        is_system: System modules are never offered for manual install/uninstall
        is_installable: False for definitions that only exist as dependency targets
        category: Presentation grouping
        suite: Suite the module belongs to
        tags: Free-form search tags
        order: Sort hint
        description: Short description
    """
    id: str
    name: str = ""
    version: str = DEFAULT_VERSION
    dependencies: Tuple[str, ...] = field(default_factory=tuple)
    is_system: bool = False
    is_installable: bool = True
    category: Optional[str] = None
    suite: Optional[str] = None
    tags: Tuple[str, ...] = field(default_factory=tuple)
    order: int = DEFAULT_ORDER
    description: Optional[str] = None

    @classmethod
    def create(
        cls,
        id: str,
        name: Optional[str] = None,
        version: Optional[str] = None,
        dependencies: Optional[Iterable[str]] = None,
        is_system: bool = False,
        is_installable: bool = True,
        category: Optional[str] = None,
        suite: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        order=None,
        description: Optional[str] = None,
    ) -> "ModuleDefinition":
        """Build a definition, filling blanks with catalog defaults."""
        clean_tags = tuple(
            tag.strip() for tag in (tags or []) if isinstance(tag, str) and tag.strip()
        )
        numeric_order = isinstance(order, (int, float)) and not isinstance(order, bool)
        return cls(
            id=id,
            name=(name or "").strip() or id,
            version=(version or "").strip() or DEFAULT_VERSION,
            dependencies=tuple(dependencies or ()),
            is_system=bool(is_system),
            is_installable=bool(is_installable),
            category=(category or "").strip() or DEFAULT_CATEGORY,
            suite=(suite or "").strip() or DEFAULT_SUITE,
            tags=clean_tags,
            order=int(order) if numeric_order else DEFAULT_ORDER,
            description=description,
        )

    @property
    def can_manage(self) -> bool:
        """Check if the module may be installed/uninstalled manually."""
        return self.is_installable and not self.is_system


class ModuleCatalog:
    """
    Immutable id -> definition map with suite and ordering queries.
    """

    def __init__(self, definitions: Iterable[ModuleDefinition] = ()):
        self._modules: Dict[str, ModuleDefinition] = {}
        for definition in definitions:
            if definition.id in self._modules:
                logger.warning(f"Duplicate module definition ignored: {definition.id}")
                continue
            self._modules[definition.id] = definition

    @classmethod
    def from_definitions(
        cls,
        definitions: Iterable[ModuleDefinition],
        reject_cycles: bool = True,
    ) -> "ModuleCatalog":
        """
        Build a catalog and check it for dependency cycles.

        Args:
            definitions: Module definitions from the authority
            reject_cycles: Raise CatalogCycleError on a cyclic catalog
                instead of accepting best-effort resolution
        """
        catalog = cls(definitions)
        cycles = catalog.find_cycles()
        if cycles:
            if reject_cycles:
                raise CatalogCycleError(cycles)
            logger.warning(
                f"Catalog has {len(cycles)} dependency cycle(s); "
                f"dependency resolution will be truncated: {cycles}"
            )
        return catalog

    # -----------------------------------------
    # Lookups
    # -----------------------------------------

    def get(self, module_id: str) -> Optional[ModuleDefinition]:
        """Get a module by ID."""
        return self._modules.get(module_id)

    def __contains__(self, module_id: object) -> bool:
        return module_id in self._modules

    def __iter__(self) -> Iterator[ModuleDefinition]:
        return iter(self._modules.values())

    def __len__(self) -> int:
        return len(self._modules)

    def ids(self) -> List[str]:
        return list(self._modules)

    def installable(self) -> List[ModuleDefinition]:
        """Modules a user may install or uninstall by hand."""
        return [m for m in self._modules.values() if m.can_manage]

    def suites(self) -> List[str]:
        """All suite ids, sorted."""
        return sorted({m.suite for m in self._modules.values() if m.suite})

    def suite_modules(self, suite_id: str) -> List[ModuleDefinition]:
        """Every module whose suite equals suite_id, in sort-hint order."""
        members = [m for m in self._modules.values() if m.suite == suite_id]
        return sorted(members, key=lambda m: (m.order, m.name))

    # -----------------------------------------
    # Graph checks
    # -----------------------------------------

    def find_cycles(self) -> List[List[str]]:
        """
        Find dependency cycles.

        Returns each cycle as a path that starts and ends on the same id.
        Dependencies on unknown ids are ignored.
        """
        visiting = set()
        done = set()
        stack: List[str] = []
        cycles: List[List[str]] = []

        def visit(module_id: str) -> None:
            visiting.add(module_id)
            stack.append(module_id)
            for dep in self._modules[module_id].dependencies:
                if dep not in self._modules or dep in done:
                    continue
                if dep in visiting:
                    cycles.append(stack[stack.index(dep):] + [dep])
                    continue
                visit(dep)
            stack.pop()
            visiting.discard(module_id)
            done.add(module_id)

        for module_id in self._modules:
            if module_id not in done:
                visit(module_id)
        return cycles
