"""Database infrastructure module.

This module provides database connectivity and persistence:
- Database engine management
- Connection setup/teardown
- SQLAlchemy table definitions
- Repositories for agents and endpoints
"""

from x402_registry.platform.database.engine import DbEngine
from x402_registry.platform.database.setup import close_db, setup_db

__all__ = [
    "DbEngine",
    "setup_db",
    "close_db",
]
