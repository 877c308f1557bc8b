"""Exception hierarchy for the registry core.

Every error carries a machine-readable ``category`` and the HTTP status it maps
to, so the transport layer can render a uniform error body.
"""

from typing import Any


class RegistryError(Exception):
    """Base exception for all registry errors."""

    category: str = "registry_error"
    status_code: int = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "category": self.category}


class ValidationError(RegistryError):
    """Raised when a required input field is missing or malformed."""

    category = "validation_error"
    status_code = 400

    def __init__(self, message: str, fields: list[str] | None = None):
        self.fields = fields or []
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        if self.fields:
            payload["fields"] = self.fields
        return payload


class NotFoundError(RegistryError):
    """Raised when a referenced agent or endpoint does not exist."""

    category = "not_found"
    status_code = 404

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class NotAuthorizedError(RegistryError):
    """Raised when the caller does not own the record it tries to modify."""

    category = "not_authorized"
    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)


class OwnerRequiredError(RegistryError):
    """Raised when an owner-scoped read arrives without an owner address."""

    category = "owner_required"
    status_code = 401

    def __init__(self, header: str):
        super().__init__(f"{header} header required")


class PaymentRequiredError(RegistryError):
    """Protocol state, not a failure: the caller must pay and retry with proof.

    ``body`` holds the full payment demand rendered with the 402 response.
    """

    category = "payment_required"
    status_code = 402

    def __init__(self, body: dict[str, Any], reason: str | None = None):
        self.body = body
        self.reason = reason
        super().__init__("Payment Required")

    def to_dict(self) -> dict[str, Any]:
        payload = {"error": self.message, "category": self.category, **self.body}
        if self.reason:
            payload["reason"] = self.reason
        return payload


class UpstreamUnavailableError(RegistryError):
    """Raised when a downstream agent call fails or times out."""

    category = "upstream_unavailable"
    status_code = 502

    def __init__(
        self,
        message: str,
        agent_id: str | None = None,
        endpoint: str | None = None,
        transient: bool = True,
    ):
        self.agent_id = agent_id
        self.endpoint = endpoint
        self.transient = transient
        agent_info = f" [agent: {agent_id}]" if agent_id else ""
        super().__init__(f"Upstream unavailable{agent_info}: {message}")


class PaymentVerificationError(RegistryError):
    """Raised when the payment oracle itself cannot be reached."""

    category = "payment_verification_failed"
    status_code = 502

    def __init__(self, message: str):
        super().__init__(f"Verification failed: {message}")
