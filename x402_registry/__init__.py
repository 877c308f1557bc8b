"""x402-registry - Agent registry, payment-gated orchestration and x402 endpoint discovery."""

from .platform.server.app import create_app
from .platform.settings import Settings


def app():
    """Create the FastAPI application instance."""
    settings = Settings()
    return create_app(settings)
