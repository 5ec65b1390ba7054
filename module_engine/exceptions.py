"""
Module Engine Exceptions
========================

Raised by the API client and the catalog loader. The resolver and
planner never raise; the orchestrator converts these into operation
states.
"""

from typing import Any, List, Optional


class ModuleEngineError(Exception):
    """Base class for all engine errors."""


class ModuleApiError(ModuleEngineError):
    """Non-2xx response from the module authority."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload

    @property
    def server_message(self) -> Optional[str]:
        """Message reported by the server, if any.

        List messages (validation errors) are joined with ", ".
        """
        if not isinstance(self.payload, dict):
            return None
        message = self.payload.get("message")
        if isinstance(message, list):
            parts = [str(m) for m in message if str(m).strip()]
            return ", ".join(parts) or None
        if isinstance(message, str) and message.strip():
            return message
        return None


class ModuleConflictError(ModuleApiError):
    """Uninstall blocked because other enabled modules depend on it."""

    def __init__(
        self,
        module_id: str,
        dependents: List[str],
        payload: Any = None,
    ):
        super().__init__(
            f"Module '{module_id}' is required by: {', '.join(dependents)}",
            status_code=409,
            payload=payload,
        )
        self.module_id = module_id
        self.dependents = list(dependents)


class ResponseShapeError(ModuleEngineError):
    """Response body did not match any known wire shape."""


class CatalogCycleError(ModuleEngineError):
    """Catalog contains a dependency cycle."""

    def __init__(self, cycles: List[List[str]]):
        rendered = "; ".join(" -> ".join(cycle) for cycle in cycles)
        super().__init__(f"Dependency cycle in module catalog: {rendered}")
        self.cycles = cycles
