"""
Module Lifecycle Orchestrator
=============================

Drives the module authority's install/uninstall/suite endpoints for one
tenant and turns each call into a small state machine.

States per operation:
    IDLE -> CONFIRMING -> IN_FLIGHT -> SUCCEEDED | CONFLICTED | FAILED

- CONFIRMING only exists for uninstall, where the user confirms first
- CONFLICTED carries a ConflictReport; the caller may retry with
  cascade (back to CONFIRMING) or abandon
- An operation refused by a precondition (already in the desired state,
  already in flight, nothing to do for a suite) stays IDLE with a
  skip_reason; that is not an error

After any successful or partially successful mutation the operation is
flagged reload_required and, with auto_reload, the orchestrator re-reads
the tenant from the authority. Responses are a log of what happened,
never merged into the local snapshot.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from .exceptions import (
    CatalogCycleError,
    ModuleApiError,
    ModuleConflictError,
    ResponseShapeError,
)
from .inflight import GuardScope, InFlightGuard
from .models import ConflictReport, OperationOutcome, TenantSnapshot, utcnow
from .modules.catalog import ModuleCatalog
from .services.modules_api import ModulesApiClient

logger = logging.getLogger(__name__)


class OperationState(Enum):
    """States of a single module or suite operation."""
    IDLE = "idle"
    CONFIRMING = "confirming"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    CONFLICTED = "conflicted"
    FAILED = "failed"


class OperationKind(Enum):
    INSTALL = "install"
    UNINSTALL = "uninstall"
    INSTALL_SUITE = "install_suite"
    UNINSTALL_SUITE = "uninstall_suite"

    @property
    def scope(self) -> GuardScope:
        if self in (OperationKind.INSTALL_SUITE, OperationKind.UNINSTALL_SUITE):
            return GuardScope.SUITE
        return GuardScope.MODULE


GENERIC_FAILURES = {
    OperationKind.INSTALL: "Could not install the module.",
    OperationKind.UNINSTALL: "Could not uninstall the module.",
    OperationKind.INSTALL_SUITE: "Could not install the suite.",
    OperationKind.UNINSTALL_SUITE: "Could not uninstall the suite.",
}

TIMEOUT_FAILURE = "The request timed out. Reload the module list before retrying."


@dataclass
class ModuleOperation:
    """Tracks one install/uninstall/suite call through its lifecycle."""
    operation_id: str
    kind: OperationKind
    key: str
    tenant_id: str

    # State tracking
    state: OperationState = OperationState.IDLE
    cascade: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    # Results
    outcome: Optional[OperationOutcome] = None
    conflict: Optional[ConflictReport] = None
    error_message: Optional[str] = None
    skip_reason: Optional[str] = None
    reload_error: Optional[str] = None
    reload_required: bool = False

    @property
    def skipped(self) -> bool:
        return self.skip_reason is not None

    @property
    def finished(self) -> bool:
        return self.state in (
            OperationState.SUCCEEDED,
            OperationState.CONFLICTED,
            OperationState.FAILED,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "operation_id": self.operation_id,
            "kind": self.kind.value,
            "key": self.key,
            "tenant_id": self.tenant_id,
            "state": self.state.value,
            "cascade": self.cascade,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "outcome": self.outcome.to_dict() if self.outcome else None,
            "dependencies_installed": (
                self.outcome.dependencies_installed()
                if self.outcome and self.kind == OperationKind.INSTALL
                else None
            ),
            "conflict": self.conflict.to_dict() if self.conflict else None,
            "error_message": self.error_message,
            "skip_reason": self.skip_reason,
            "reload_error": self.reload_error,
            "reload_required": self.reload_required,
        }


class LifecycleOrchestrator:
    """
    Install/uninstall orchestration for one tenant.

    The In-Flight Guard is the only mutable coordination state. The
    snapshot is the last read of the authority and is only used for
    precondition checks.
    """

    def __init__(
        self,
        api: ModulesApiClient,
        tenant_id: str,
        guard: Optional[InFlightGuard] = None,
        auto_reload: bool = True,
        reject_cyclic_catalogs: bool = True,
        read_timeout: Optional[float] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            api: Client for the module authority
            tenant_id: Organization or workspace the operations apply to
            guard: Shared In-Flight Guard (a private one if omitted)
            auto_reload: Re-read the tenant after every applied mutation
            reject_cyclic_catalogs: Refuse catalogs with dependency cycles
            read_timeout: Bound on a full refresh, defaults to the API read timeout
        """
        self.api = api
        self.tenant_id = tenant_id
        self.guard = guard or InFlightGuard()
        self.auto_reload = auto_reload
        self.reject_cyclic_catalogs = reject_cyclic_catalogs
        self.read_timeout = read_timeout or api.config.read_timeout
        self.snapshot = TenantSnapshot(tenant_id=tenant_id)

    # =========================================
    # READS
    # =========================================

    async def refresh(self) -> TenantSnapshot:
        """
        Reload catalog and enabled set from the authority.

        Timeouts, transport errors and server errors leave an empty
        snapshot with load_error set instead of raising. Unknown
        response shapes and cyclic catalogs (when rejected) raise.
        """
        try:
            snapshot = await asyncio.wait_for(self._load(), timeout=self.read_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Timed out loading modules for {self.tenant_id} after {self.read_timeout}s",
                extra={"tenant_id": self.tenant_id},
            )
            snapshot = self._failed_snapshot("Timed out loading modules.", retryable=True)
        except ModuleApiError as e:
            logger.error(
                f"Module authority refused load for {self.tenant_id}: {e}",
                extra={"tenant_id": self.tenant_id},
            )
            retryable = e.status_code is None or e.status_code >= 500 or e.status_code in (408, 429)
            snapshot = self._failed_snapshot(
                e.server_message or "Could not load modules.", retryable=retryable
            )
        except httpx.HTTPError as e:
            logger.error(
                f"Transport error loading modules for {self.tenant_id}: {e}",
                extra={"tenant_id": self.tenant_id},
            )
            snapshot = self._failed_snapshot("Could not load modules.", retryable=True)

        self.snapshot = snapshot
        return snapshot

    async def _load(self) -> TenantSnapshot:
        # Both reads run to completion; the catalog read's error wins
        results = await asyncio.gather(
            self.api.get_catalog(self.tenant_id),
            self.api.get_enabled_set(self.tenant_id),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        (definitions, _), enabled = results
        catalog = ModuleCatalog.from_definitions(
            definitions, reject_cycles=self.reject_cyclic_catalogs
        )
        logger.debug(
            f"Loaded {len(catalog)} modules, {len(enabled)} enabled for {self.tenant_id}",
            extra={"tenant_id": self.tenant_id},
        )
        return TenantSnapshot(tenant_id=self.tenant_id, catalog=catalog, enabled=enabled)

    def _failed_snapshot(self, message: str, retryable: bool) -> TenantSnapshot:
        return TenantSnapshot(
            tenant_id=self.tenant_id,
            load_error=message,
            retryable=retryable,
        )

    # =========================================
    # MODULE OPERATIONS
    # =========================================

    async def install(self, module_id: str) -> ModuleOperation:
        """
        Install a module.

        The authority decides which dependencies are installed with it;
        the result is surfaced as reported.
        """
        op = self._new_operation(OperationKind.INSTALL, module_id)

        reason = self._module_skip_reason(module_id, want_installed=False)
        if reason:
            return self._skip(op, reason)

        return await self._run(
            op, lambda: self.api.install_module(self.tenant_id, module_id)
        )

    def prepare_uninstall(self, module_id: str) -> ModuleOperation:
        """Start an uninstall that waits for the user's confirmation."""
        op = self._new_operation(OperationKind.UNINSTALL, module_id)

        reason = self._module_skip_reason(module_id, want_installed=True)
        if reason:
            return self._skip(op, reason)

        self._transition(op, OperationState.CONFIRMING)
        return op

    async def uninstall(
        self,
        module_id: str,
        cascade: bool = False,
        operation: Optional[ModuleOperation] = None,
    ) -> ModuleOperation:
        """
        Uninstall a module.

        Without cascade, live dependents make the authority refuse and the
        operation ends CONFLICTED with the dependents listed. With cascade
        the authority removes the module and its dependents.

        Args:
            module_id: Module to remove
            cascade: Force removal of dependents
            operation: A CONFIRMING operation from prepare_uninstall
        """
        if operation is None:
            op = self._new_operation(OperationKind.UNINSTALL, module_id)
            reason = self._module_skip_reason(module_id, want_installed=True)
            if reason:
                return self._skip(op, reason)
        else:
            if operation.kind != OperationKind.UNINSTALL or operation.key != module_id:
                raise ValueError(f"Operation {operation.operation_id} is not an uninstall of {module_id}")
            if operation.state != OperationState.CONFIRMING:
                raise ValueError(
                    f"Operation {operation.operation_id} is {operation.state.value}, not confirming"
                )
            op = operation

        op.cascade = cascade
        return await self._run(
            op, lambda: self.api.uninstall_module(self.tenant_id, module_id, cascade=cascade)
        )

    async def retry_with_cascade(self, operation: ModuleOperation) -> ModuleOperation:
        """Re-issue a conflicted uninstall with cascade."""
        if operation.state != OperationState.CONFLICTED:
            raise ValueError(
                f"Only conflicted operations can cascade; {operation.operation_id} is {operation.state.value}"
            )
        operation.conflict = None
        operation.error_message = None
        self._transition(operation, OperationState.CONFIRMING)
        return await self.uninstall(operation.key, cascade=True, operation=operation)

    # =========================================
    # SUITE OPERATIONS
    # =========================================

    async def install_suite(self, suite_id: str) -> ModuleOperation:
        """Install every module of a suite. Partial success is expected."""
        op = self._new_operation(OperationKind.INSTALL_SUITE, suite_id)

        reason = self._suite_skip_reason(suite_id, want_installed=False)
        if reason:
            return self._skip(op, reason)

        return await self._run(
            op, lambda: self.api.install_suite(self.tenant_id, suite_id)
        )

    async def uninstall_suite(self, suite_id: str) -> ModuleOperation:
        """Uninstall every module of a suite. Partial success is expected."""
        op = self._new_operation(OperationKind.UNINSTALL_SUITE, suite_id)

        reason = self._suite_skip_reason(suite_id, want_installed=True)
        if reason:
            return self._skip(op, reason)

        return await self._run(
            op, lambda: self.api.uninstall_suite(self.tenant_id, suite_id)
        )

    # =========================================
    # PRECONDITIONS
    # =========================================

    def _module_skip_reason(self, module_id: str, want_installed: bool) -> Optional[str]:
        if self.guard.is_in_flight(GuardScope.MODULE, module_id):
            return "operation already in flight"

        definition = self.snapshot.catalog.get(module_id)
        if definition is not None and not definition.can_manage:
            return "module is not manually installable"

        if self.snapshot.enabled is None:
            # Nothing loaded yet; let the authority decide
            return None

        installed = self.snapshot.is_installed(module_id)
        if want_installed and not installed:
            return "module is not installed"
        if not want_installed and installed:
            return "module is already installed"
        return None

    def _suite_skip_reason(self, suite_id: str, want_installed: bool) -> Optional[str]:
        if self.guard.is_in_flight(GuardScope.SUITE, suite_id):
            return "operation already in flight"

        members = self.snapshot.catalog.suite_modules(suite_id)
        if not members:
            return "suite has no modules"

        if want_installed:
            if not any(self.snapshot.is_installed(m.id) for m in members):
                return "no suite module is installed"
        elif all(self.snapshot.is_installed(m.id) for m in members):
            return "every suite module is already installed"
        return None

    # =========================================
    # EXECUTION
    # =========================================

    async def _run(
        self,
        op: ModuleOperation,
        call: Callable[[], Awaitable[OperationOutcome]],
    ) -> ModuleOperation:
        scope = op.kind.scope
        async with self.guard.hold(scope, op.key) as acquired:
            if not acquired:
                return self._skip(op, "operation already in flight")

            self._transition(op, OperationState.IN_FLIGHT)
            try:
                op.outcome = await call()
            except ModuleConflictError as e:
                if op.kind == OperationKind.UNINSTALL and not op.cascade:
                    op.conflict = ConflictReport(
                        module_id=op.key,
                        dependents=e.dependents,
                        message=e.server_message,
                    )
                    self._transition(op, OperationState.CONFLICTED)
                    logger.warning(
                        f"Uninstall of {op.key} blocked by dependents: {', '.join(e.dependents)}",
                        extra=self._log_context(op),
                    )
                else:
                    self._fail(op, e.server_message or GENERIC_FAILURES[op.kind])
            except ModuleApiError as e:
                self._fail(op, e.server_message or GENERIC_FAILURES[op.kind])
            except httpx.TimeoutException:
                self._fail(op, TIMEOUT_FAILURE)
            except httpx.HTTPError as e:
                logger.debug(f"Transport error for {op.kind.value} {op.key}: {e}")
                self._fail(op, GENERIC_FAILURES[op.kind])
            except ResponseShapeError as e:
                # The call went through but its answer is unreadable
                logger.error(f"{op.kind.value} {op.key}: {e}", extra=self._log_context(op))
                op.reload_required = True
                self._fail(op, GENERIC_FAILURES[op.kind])
            else:
                op.reload_required = True
                self._transition(op, OperationState.SUCCEEDED)
                self._log_outcome(op)

        if op.reload_required and self.auto_reload:
            try:
                await self.refresh()
            except (ResponseShapeError, CatalogCycleError) as e:
                # The mutation already applied; keep its outcome and flag the reload
                logger.error(
                    f"Reload after {op.kind.value} {op.key} failed: {e}",
                    extra=self._log_context(op),
                )
                op.reload_error = str(e)
                self.snapshot = self._failed_snapshot(str(e), retryable=False)
        return op

    # =========================================
    # BOOKKEEPING
    # =========================================

    def _new_operation(self, kind: OperationKind, key: str) -> ModuleOperation:
        return ModuleOperation(
            operation_id=str(uuid.uuid4()),
            kind=kind,
            key=key,
            tenant_id=self.tenant_id,
        )

    def _transition(self, op: ModuleOperation, state: OperationState) -> None:
        op.state = state
        op.updated_at = utcnow()
        logger.info(
            f"{op.kind.value} {op.key} ({op.operation_id}) state: {state.value}",
            extra=self._log_context(op),
        )

    def _skip(self, op: ModuleOperation, reason: str) -> ModuleOperation:
        op.skip_reason = reason
        op.state = OperationState.IDLE
        op.updated_at = utcnow()
        logger.info(
            f"{op.kind.value} {op.key} skipped: {reason}",
            extra=self._log_context(op),
        )
        return op

    def _fail(self, op: ModuleOperation, message: str) -> None:
        op.error_message = message
        self._transition(op, OperationState.FAILED)
        logger.error(
            f"{op.kind.value} {op.key} failed: {message}",
            extra=self._log_context(op),
        )

    def _log_outcome(self, op: ModuleOperation) -> None:
        outcome = op.outcome
        if op.kind == OperationKind.INSTALL:
            logger.info(
                f"Installed {len(outcome.installed_keys)} "
                f"(dependencies: {outcome.dependencies_installed()}, "
                f"already installed: {len(outcome.already_installed_keys)})",
                extra=self._log_context(op),
            )
        elif op.kind == OperationKind.UNINSTALL:
            logger.info(
                f"Uninstalled {len(outcome.uninstalled_keys)}",
                extra=self._log_context(op),
            )
        elif outcome.partial:
            logger.warning(
                f"Suite {op.key} partially applied: blockers={outcome.blockers}, "
                f"errors={[e.key for e in outcome.errors]}",
                extra=self._log_context(op),
            )

    def _log_context(self, op: ModuleOperation) -> Dict[str, str]:
        context = {
            "tenant_id": op.tenant_id,
            "operation_id": op.operation_id,
            "state": op.state.value,
        }
        if op.kind.scope == GuardScope.SUITE:
            context["suite_key"] = op.key
        else:
            context["module_key"] = op.key
        return context
