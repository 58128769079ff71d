"""
Stripe checkout provider implementation.

Implements CheckoutProvider using the Stripe Checkout Sessions API.
"""
import os
from typing import Dict, Any, List, Optional
import stripe

from plancheckout.features.checkout.provider import CheckoutSession, PaymentProviderError


class StripeProvider:
    """Stripe implementation of CheckoutProvider protocol."""

    def __init__(self, secret_key: Optional[str] = None):
        """
        Initialize Stripe provider.

        Args:
            secret_key: Stripe secret key (defaults to STRIPE_SECRET_KEY env var)
        """
        self.secret_key = secret_key or os.getenv("STRIPE_SECRET_KEY")

        if not self.secret_key:
            raise PaymentProviderError("STRIPE_SECRET_KEY not configured", status_code=503)

        stripe.api_key = self.secret_key

    def create_session(
        self,
        mode: str,
        line_items: List[Dict[str, Any]],
        customer_email: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> CheckoutSession:
        """Create Stripe checkout session."""
        try:
            session = stripe.checkout.Session.create(
                payment_method_types=["card"],
                mode=mode,
                line_items=line_items,
                success_url=success_url,
                cancel_url=cancel_url,
                customer_email=customer_email,
                metadata=metadata,
            )
        except stripe.StripeError as e:
            status = getattr(e, "http_status", None) or 500
            message = getattr(e, "user_message", None) or str(e) or "Stripe checkout session creation failed"
            raise PaymentProviderError(message, status_code=status)

        return CheckoutSession(
            id=session.id,
            mode=getattr(session, "mode", None) or mode,
            url=getattr(session, "url", None),
        )
