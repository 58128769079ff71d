"""
Checkout provider protocol.

Defines the interface for payment providers (Stripe, etc.).
This allows swapping providers (or a test double) without changing the
checkout orchestration.
"""
from typing import Protocol, Dict, Any, List, Optional
from dataclasses import dataclass

from plancheckout.core.errors import AppError


@dataclass(frozen=True)
class CheckoutSession:
    """Provider-hosted checkout session. Only id and mode are relied upon."""
    id: str
    mode: str
    url: Optional[str] = None


class CheckoutProvider(Protocol):
    """
    Protocol for payment providers.

    Implementations create a checkout session and nothing else; the
    provider is the billing source of truth, so callers never retry.
    """

    def create_session(
        self,
        mode: str,
        line_items: List[Dict[str, Any]],
        customer_email: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> CheckoutSession:
        """
        Create a checkout session.

        Args:
            mode: "subscription" or "payment"
            line_items: Provider line items (price reference or inline price_data)
            customer_email: Prefilled customer email
            success_url: URL to redirect on success
            cancel_url: URL to redirect on cancellation
            metadata: Key/value metadata attached to the session

        Returns:
            The created session

        Raises:
            PaymentProviderError: If session creation fails
        """
        ...


class PaymentProviderError(AppError):
    """Checkout session creation failed at the provider."""
    code = "payment_provider_error"
    status_code = 500
