"""
plancheckout/models/checkout.py

Request and response models for checkout session creation.

Field names follow the JSON wire format used by the pricing page
(camelCase in, snake_case plan_type out).
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, StrictBool


class CheckoutRequest(BaseModel):
    """
    Incoming request to start a plan purchase.

    customerEmail and userId are optional at the schema level so that
    their absence is reported as a missing field rather than a malformed body.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    customer_email: Optional[str] = Field(default=None, alias="customerEmail")
    user_id: Optional[str] = Field(default=None, alias="userId")
    price_id: Optional[str] = Field(default=None, alias="priceId")
    plan_type: Optional[str] = Field(default=None, alias="planType")
    is_yearly_deal: Optional[StrictBool] = Field(default=None, alias="isYearlyDeal")
    is_lifetime_deal: Optional[StrictBool] = Field(default=None, alias="isLifetimeDeal")


class CheckoutResult(BaseModel):
    """Successful checkout response body."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    user_id: str = Field(alias="userId")
    success: bool = True
    plan_type: str
    mode: str
