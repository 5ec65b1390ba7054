"""
In-Flight Guard
===============

Per-key debouncing for module and suite operations: a key is added
before the remote call and removed when it completes, and a second
operation on a key that is still present is refused.

Client-side only. Exclusivity across clients is the authority's job.
"""

from contextlib import asynccontextmanager
from enum import Enum
from typing import Dict, Set


class GuardScope(Enum):
    """Independent key spaces."""
    MODULE = "module"
    SUITE = "suite"


class InFlightGuard:
    """Membership sets of keys with an outstanding operation."""

    def __init__(self):
        self._keys: Dict[GuardScope, Set[str]] = {scope: set() for scope in GuardScope}

    def is_in_flight(self, scope: GuardScope, key: str) -> bool:
        return key in self._keys[scope]

    def try_acquire(self, scope: GuardScope, key: str) -> bool:
        """Claim a key. False if an operation already holds it."""
        held = self._keys[scope]
        if key in held:
            return False
        held.add(key)
        return True

    def release(self, scope: GuardScope, key: str) -> None:
        self._keys[scope].discard(key)

    @property
    def busy(self) -> bool:
        """True while any key in any scope is held."""
        return any(self._keys.values())

    def in_flight(self, scope: GuardScope) -> Set[str]:
        """Copy of the keys currently held in a scope."""
        return set(self._keys[scope])

    @asynccontextmanager
    async def hold(self, scope: GuardScope, key: str):
        """
        Hold a key for the duration of the block.

        Yields False without claiming anything when the key is already
        held; the key is always released on exit when it was claimed.
        """
        acquired = self.try_acquire(scope, key)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(scope, key)
