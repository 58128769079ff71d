"""
Plan checkout

Creates a hosted checkout session for a known user and records the
pending plan on the user row:
- Plan classification (catalog plans, yearly deal, lifetime deal)
- Session creation through a CheckoutProvider
- Bounded retry of the pending-plan write across ordered store clients

Persistence failures never fail the checkout; the webhook settles the plan.
"""
