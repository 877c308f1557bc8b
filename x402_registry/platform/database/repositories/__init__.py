"""Database repositories for data access abstraction."""

from x402_registry.platform.database.repositories.agents import SqlAgentStore
from x402_registry.platform.database.repositories.analytics import SqlCallLog
from x402_registry.platform.database.repositories.endpoints import SqlEndpointRepository
from x402_registry.platform.database.repositories.payments import (
    SqlInvoiceRepository,
    SqlPaymentLedger,
    SqlSubscriptionRepository,
)

__all__ = [
    "SqlAgentStore",
    "SqlCallLog",
    "SqlEndpointRepository",
    "SqlInvoiceRepository",
    "SqlPaymentLedger",
    "SqlSubscriptionRepository",
]
