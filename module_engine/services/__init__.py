"""
Remote module authority: HTTP client and wire adapter.
"""

from .modules_api import ModulesApiClient

__all__ = ["ModulesApiClient"]
