"""Payment execution client used by the retry engine.

The engine only depends on ``PaymentClient``; ``HttpPaymentClient`` talks to an
external payment-execution service over HTTP.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

import httpx

from recovery.core.config import settings

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = frozenset({"success", "succeeded", "confirmed", "completed"})


class PaymentExecutionError(Exception):
    """Raised when the payment service cannot be reached or rejects the request."""


@dataclass
class PaymentRequest:
    """Payment retry request sent to the execution service."""

    campaign_id: UUID
    customer_id: UUID
    amount_cents: int
    currency: str
    attempt_number: int
    subscription_id: UUID | None = None
    payment_id: UUID | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "campaign_id": str(self.campaign_id),
            "customer_id": str(self.customer_id),
            "subscription_id": str(self.subscription_id) if self.subscription_id else None,
            "payment_id": str(self.payment_id) if self.payment_id else None,
            "amount_cents": self.amount_cents,
            "currency": self.currency,
            "attempt_number": self.attempt_number,
            "metadata": self.metadata,
        }


@dataclass
class PaymentResult:
    """Result returned by the payment execution service."""

    status: str
    transaction_reference: str | None = None
    resource_usage: dict[str, Any] | None = None
    block_reference: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status.lower() in SUCCESS_STATUSES


class PaymentClient(ABC):
    """Abstract payment execution client."""

    @abstractmethod
    def process_payment(self, request: PaymentRequest) -> PaymentResult:
        """Execute a payment and return the processor's result."""
        pass  # pragma: no cover


class HttpPaymentClient(PaymentClient):
    """Payment client backed by the payment service HTTP API."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.PAYMENT_SERVICE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.PAYMENT_SERVICE_API_KEY
        self.timeout = timeout or settings.PAYMENT_SERVICE_TIMEOUT_SECONDS

    def process_payment(self, request: PaymentRequest) -> PaymentResult:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(
                    f"{self.base_url}/api/v1/payments/process",
                    json=request.to_payload(),
                    headers=headers,
                )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Payment service rejected campaign %s: %s",
                request.campaign_id,
                exc.response.status_code,
            )
            raise PaymentExecutionError(
                f"Payment service returned {exc.response.status_code}: {exc.response.text[:500]}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Payment service request failed for campaign %s: %s", request.campaign_id, exc)
            raise PaymentExecutionError(f"Payment service request failed: {exc}") from exc

        data = resp.json()
        return PaymentResult(
            status=str(data.get("status", "")),
            transaction_reference=data.get("transaction_reference"),
            resource_usage=data.get("resource_usage"),
            block_reference=data.get("block_reference"),
        )


def get_payment_client() -> PaymentClient | None:
    """Return the configured payment client, or None when no service URL is set."""
    if not settings.payment_service_enabled:
        return None
    return HttpPaymentClient()
