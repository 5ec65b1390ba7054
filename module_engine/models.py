"""
Canonical engine types.

Every wire shape the authority answers with is mapped onto one of these
by module_engine.services.wire. They are one-shot values; nothing here
is persisted.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, List, Optional

from .modules.catalog import ModuleCatalog


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class EnabledSet:
    """Snapshot of the module ids a tenant has enabled."""
    tenant_id: str
    module_ids: FrozenSet[str] = frozenset()
    default_module: Optional[str] = None
    fetched_at: datetime = field(default_factory=utcnow)

    def __contains__(self, module_id: object) -> bool:
        return module_id in self.module_ids

    def __len__(self) -> int:
        return len(self.module_ids)


@dataclass
class TenantSnapshot:
    """Catalog plus enabled set as last read from the authority.

    A failed read leaves an empty snapshot with load_error set; the
    caller may retry when retryable is true.
    """
    tenant_id: str
    catalog: ModuleCatalog = field(default_factory=ModuleCatalog)
    enabled: Optional[EnabledSet] = None
    load_error: Optional[str] = None
    retryable: bool = False

    @property
    def ok(self) -> bool:
        return self.load_error is None

    @property
    def enabled_ids(self) -> FrozenSet[str]:
        return self.enabled.module_ids if self.enabled is not None else frozenset()

    def is_installed(self, module_id: str) -> bool:
        return module_id in self.enabled_ids

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "modules": [
                {
                    "id": m.id,
                    "name": m.name,
                    "version": m.version,
                    "dependencies": list(m.dependencies),
                    "suite": m.suite,
                    "category": m.category,
                    "is_system": m.is_system,
                    "is_installable": m.is_installable,
                    "installed": m.id in self.enabled_ids,
                }
                for m in self.catalog
            ],
            "enabled": sorted(self.enabled_ids),
            "default_module": self.enabled.default_module if self.enabled is not None else None,
            "load_error": self.load_error,
            "retryable": self.retryable,
        }


@dataclass(frozen=True)
class SuiteError:
    """A suite member that could not be processed."""
    key: str
    message: str


@dataclass
class OperationOutcome:
    """What the authority reports a mutating call did."""
    installed_keys: List[str] = field(default_factory=list)
    already_installed_keys: List[str] = field(default_factory=list)
    uninstalled_keys: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    blockers: List[str] = field(default_factory=list)
    errors: List[SuiteError] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        """Some members were blocked or failed."""
        return bool(self.blockers or self.errors)

    def dependencies_installed(self) -> int:
        """Keys installed besides the requested module itself."""
        return max(len(self.installed_keys) - 1, 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "installed_keys": list(self.installed_keys),
            "already_installed_keys": list(self.already_installed_keys),
            "uninstalled_keys": list(self.uninstalled_keys),
            "skipped": list(self.skipped),
            "blockers": list(self.blockers),
            "errors": [{"key": e.key, "message": e.message} for e in self.errors],
        }


@dataclass(frozen=True)
class ConflictReport:
    """Uninstall refused because enabled modules depend on the target."""
    module_id: str
    dependents: List[str] = field(default_factory=list)
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module_id": self.module_id,
            "dependents": list(self.dependents),
            "message": self.message,
        }
