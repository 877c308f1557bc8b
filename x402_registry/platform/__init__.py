"""Service infrastructure module.

This module provides the plumbing the registry runs on:
- Settings loaded from the environment
- FastAPI server configuration
- Database and observability utilities
"""

from x402_registry.platform.settings import Settings

__all__ = [
    "Settings",
]
