"""Unit tests for the registry exception hierarchy."""

import pytest

from x402_registry.registry.errors import (
    NotAuthorizedError,
    NotFoundError,
    PaymentRequiredError,
    PaymentVerificationError,
    RegistryError,
    UpstreamUnavailableError,
    ValidationError,
)


class TestErrorHierarchy:
    @pytest.mark.parametrize(
        "error, status, category",
        [
            (ValidationError("bad"), 400, "validation_error"),
            (NotFoundError("Agent", "x"), 404, "not_found"),
            (NotAuthorizedError(), 403, "not_authorized"),
            (PaymentRequiredError({}), 402, "payment_required"),
            (UpstreamUnavailableError("down"), 502, "upstream_unavailable"),
            (PaymentVerificationError("down"), 502, "payment_verification_failed"),
        ],
    )
    def test_status_and_category(self, error: RegistryError, status: int, category: str):
        assert isinstance(error, RegistryError)
        assert error.status_code == status
        assert error.to_dict()["category"] == category


class TestValidationError:
    def test_fields_included_when_present(self):
        error = ValidationError("Required: task", fields=["task"])
        assert error.to_dict() == {"error": "Required: task", "category": "validation_error", "fields": ["task"]}

    def test_fields_omitted_when_empty(self):
        assert "fields" not in ValidationError("bad").to_dict()


class TestNotFoundError:
    def test_message(self):
        error = NotFoundError("Endpoint", "abc")
        assert error.message == "Endpoint not found: abc"


class TestPaymentRequiredError:
    def test_body_is_merged(self):
        error = PaymentRequiredError({"payment": {"amount": 110}, "task": "t"})

        assert error.to_dict() == {
            "error": "Payment Required",
            "category": "payment_required",
            "payment": {"amount": 110},
            "task": "t",
        }

    def test_reason(self):
        error = PaymentRequiredError({"payment": {}}, reason="Empty payment proof")
        assert error.to_dict()["reason"] == "Empty payment proof"


class TestUpstreamUnavailableError:
    def test_agent_in_message(self):
        error = UpstreamUnavailableError("HTTP 503", agent_id="summarizer")
        assert error.message == "Upstream unavailable [agent: summarizer]: HTTP 503"

    def test_transient_by_default(self):
        assert UpstreamUnavailableError("x").transient is True
