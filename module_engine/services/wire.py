"""
Wire Adapter
============

Maps each known response shape of the module authority onto one
canonical engine type.

Known shapes:
- Envelope: {status, message, result, error} around any of the below
- Definitions: [{id, name, version, dependencies, isSystem, ...}]
- Store: {available: [{key, installed, suite, category, ...}]}
- Organization overview: {modules: [{key, state: {status}}]}
- Workspace overview: {availableModules: [...], enabledModules: [{key, enabled}]}
- Install: {installedKeys, alreadyInstalledKeys}
- Uninstall: {uninstalledKeys}
- Suite: {installed | uninstalled, skipped, blockers, errors}
- Conflict (409): {dependents, message}

Anything else raises ResponseShapeError instead of producing an empty
result.
"""

from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..exceptions import ResponseShapeError
from ..models import ConflictReport, EnabledSet, OperationOutcome, SuiteError
from ..modules.catalog import ModuleDefinition


# ============================================
# PYDANTIC WIRE MODELS
# ============================================

class WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class DefinitionWire(WireModel):
    id: str
    name: Optional[str] = None
    version: Optional[str] = None
    dependencies: List[str] = Field(default_factory=list)
    is_system: Optional[bool] = Field(False, alias="isSystem")
    is_installable: Optional[bool] = Field(True, alias="isInstallable")
    category: Optional[str] = None
    suite: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    order: Optional[Any] = None
    description: Optional[str] = None

    @field_validator("dependencies", "tags", mode="before")
    @classmethod
    def none_to_list(cls, value):
        return value if isinstance(value, list) else []

    def to_definition(self) -> ModuleDefinition:
        return ModuleDefinition.create(
            id=self.id,
            name=self.name,
            version=self.version,
            dependencies=self.dependencies,
            is_system=bool(self.is_system),
            is_installable=self.is_installable is not False,
            category=self.category,
            suite=self.suite,
            tags=self.tags,
            order=self.order,
            description=self.description,
        )


class KeyedDefinitionWire(DefinitionWire):
    """Definition keyed by `key` instead of `id`."""
    id: str = Field(alias="key")


class StoreItemWire(KeyedDefinitionWire):
    installed: bool = False


class ModuleStateWire(WireModel):
    status: str = "disabled"


class OverviewItemWire(KeyedDefinitionWire):
    state: ModuleStateWire = Field(default_factory=ModuleStateWire)

    @property
    def enabled(self) -> bool:
        return self.state.status != "disabled"


class WorkspaceStateWire(WireModel):
    key: str
    enabled: bool = False


class InstallResultWire(WireModel):
    installed_keys: List[str] = Field(alias="installedKeys")
    already_installed_keys: List[str] = Field(default_factory=list, alias="alreadyInstalledKeys")


class UninstallResultWire(WireModel):
    uninstalled_keys: List[str] = Field(alias="uninstalledKeys")


class SuiteErrorWire(WireModel):
    key: str
    message: str = ""


class SuiteResultWire(WireModel):
    installed: List[str] = Field(default_factory=list)
    uninstalled: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    blockers: List[str] = Field(default_factory=list)
    errors: List[SuiteErrorWire] = Field(default_factory=list)


class ConflictWire(WireModel):
    dependents: List[str]
    message: Optional[Any] = None


# ============================================
# ADAPTERS
# ============================================

def unwrap(body: Any) -> Any:
    """Strip the {status, message, result, error} envelope if present."""
    if isinstance(body, dict) and "result" in body and ("status" in body or "message" in body):
        if body.get("status") == "error":
            raise ResponseShapeError(f"Error envelope in successful response: {body.get('message')}")
        return body["result"]
    return body


def _validate(model, data: Any, shape: str):
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ResponseShapeError(f"Malformed {shape} response: {e}") from e


def _validate_list(model, items: Any, shape: str) -> list:
    if not isinstance(items, list):
        raise ResponseShapeError(f"Expected a list for {shape}, got {type(items).__name__}")
    return [_validate(model, item, shape) for item in items]


def parse_catalog(body: Any) -> Tuple[List[ModuleDefinition], Optional[List[str]]]:
    """
    Parse a catalog response.

    Returns the definitions and, for shapes that carry it, the ids the
    tenant has installed (None otherwise).
    """
    data = unwrap(body)

    if isinstance(data, list):
        if data and isinstance(data[0], dict) and "id" not in data[0] and "key" in data[0]:
            items = _validate_list(KeyedDefinitionWire, data, "definitions")
        else:
            items = _validate_list(DefinitionWire, data, "definitions")
        return [item.to_definition() for item in items], None

    if isinstance(data, dict):
        if "available" in data:
            items = _validate_list(StoreItemWire, data["available"], "module store")
            installed = [item.id for item in items if item.installed]
            return [item.to_definition() for item in items], installed
        if "modules" in data:
            items = _validate_list(OverviewItemWire, data["modules"], "organization modules")
            installed = [item.id for item in items if item.enabled]
            return [item.to_definition() for item in items], installed
        if "availableModules" in data:
            items = _validate_list(KeyedDefinitionWire, data["availableModules"], "workspace modules")
            states = _validate_list(WorkspaceStateWire, data.get("enabledModules") or [], "workspace modules")
            installed = [state.key for state in states if state.enabled]
            return [item.to_definition() for item in items], installed

    raise ResponseShapeError(f"Unknown catalog response shape: {_describe(data)}")


def parse_enabled_set(body: Any, tenant_id: str) -> EnabledSet:
    """Parse a tenant's enabled/installed modules response."""
    data = unwrap(body)
    default_module = None
    ids: Optional[List[str]] = None

    if isinstance(data, dict):
        default_module = data.get("defaultModule")
        if "enabled" in data and isinstance(data["enabled"], list):
            ids = [str(key) for key in data["enabled"]]
        elif "enabledModules" in data:
            states = _validate_list(WorkspaceStateWire, data["enabledModules"], "enabled modules")
            ids = [state.key for state in states if state.enabled]
        elif "modules" in data or "available" in data:
            _, ids = parse_catalog(data)

    if ids is None:
        raise ResponseShapeError(f"Unknown enabled-set response shape: {_describe(data)}")

    return EnabledSet(
        tenant_id=tenant_id,
        module_ids=frozenset(ids),
        default_module=default_module,
    )


def parse_install_result(body: Any) -> OperationOutcome:
    result = _validate(InstallResultWire, unwrap(body), "install")
    return OperationOutcome(
        installed_keys=result.installed_keys,
        already_installed_keys=result.already_installed_keys,
    )


def parse_uninstall_result(body: Any) -> OperationOutcome:
    result = _validate(UninstallResultWire, unwrap(body), "uninstall")
    return OperationOutcome(uninstalled_keys=result.uninstalled_keys)


def parse_suite_result(body: Any) -> OperationOutcome:
    data = unwrap(body)
    if not isinstance(data, dict) or not any(
        key in data for key in ("installed", "uninstalled", "skipped", "blockers", "errors")
    ):
        raise ResponseShapeError(f"Unknown suite response shape: {_describe(data)}")
    result = _validate(SuiteResultWire, data, "suite")
    return OperationOutcome(
        installed_keys=result.installed,
        uninstalled_keys=result.uninstalled,
        skipped=result.skipped,
        blockers=result.blockers,
        errors=[SuiteError(key=e.key, message=e.message) for e in result.errors],
    )


def parse_conflict(body: Any, module_id: str) -> Optional[ConflictReport]:
    """Conflict report from a 409 body, or None if it carries no dependents."""
    if not isinstance(body, dict) or "dependents" not in body:
        return None
    try:
        conflict = ConflictWire.model_validate(body)
    except ValidationError:
        return None
    if not conflict.dependents:
        return None
    message = conflict.message
    if isinstance(message, list):
        message = ", ".join(str(m) for m in message)
    return ConflictReport(
        module_id=module_id,
        dependents=list(conflict.dependents),
        message=message if isinstance(message, str) else None,
    )


def _describe(data: Any) -> str:
    if isinstance(data, dict):
        return f"object with keys {sorted(data)}"
    return type(data).__name__
