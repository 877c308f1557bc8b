"""Agent registry core.

Catalog, selection, planning, payment-gated orchestration and the x402
endpoint registry. Nothing here knows about FastAPI apart from ``routes``.
"""

from x402_registry.registry.catalog import AgentCatalog
from x402_registry.registry.endpoints import EndpointService
from x402_registry.registry.errors import RegistryError
from x402_registry.registry.orchestrator import ExecutionPolicy, Orchestrator

__all__ = [
    "AgentCatalog",
    "EndpointService",
    "ExecutionPolicy",
    "Orchestrator",
    "RegistryError",
]
