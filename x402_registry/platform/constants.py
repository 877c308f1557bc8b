"""Service-wide constants."""

SERVICE_NAME = "x402-registry"
USER_AGENT = f"{SERVICE_NAME}/1.0"
