from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake-case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True)


class PortalSessionRequest(CamelModel):
    customer_id: Optional[str] = None


class PortalSessionResponse(CamelModel):
    url: str


class TrialSubscriptionRequest(CamelModel):
    price_id: Optional[str] = None
    customer_email: Optional[str] = None
    user_id: Optional[str] = None
    billing_interval: str = "month"
    coupon_code: Optional[str] = None
    return_url: Optional[str] = None


class TrialSubscriptionResponse(CamelModel):
    subscription_id: str
    customer_id: str
    client_secret: Optional[str] = None
    checkout_url: Optional[str] = None
    trial_end: Optional[int] = None


class CustomerSummary(CamelModel):
    id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None


class SubscriptionSummary(CamelModel):
    id: Optional[str] = None
    status: Optional[str] = None
    current_period_end: Optional[int] = None
    current_period_start: Optional[int] = None
    cancel_at_period_end: Optional[bool] = None
    price_id: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    interval: Optional[str] = None


class PaymentMethodSummary(CamelModel):
    id: Optional[str] = None
    brand: Optional[str] = None
    last4: Optional[str] = None
    exp_month: Optional[int] = None
    exp_year: Optional[int] = None


class InvoiceSummary(CamelModel):
    id: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    created: Optional[int] = None
    hosted_invoice_url: Optional[str] = None
    invoice_pdf: Optional[str] = None


class SubscriptionDetails(CamelModel):
    customer: CustomerSummary
    subscription: Optional[SubscriptionSummary] = None
    payment_methods: List[PaymentMethodSummary] = []
    invoices: List[InvoiceSummary] = []


class StripeConfigResponse(CamelModel):
    stripe_configured: bool
    key_prefix: str
    timestamp: str
    environment: str
