"""Billing webhook endpoint.

Endpoints:
- POST /api/v1/webhooks/billing - Apply a subscription event

The billing source delivers at least once; repeated events are no-ops.
A 409 means another operation for the customer is in flight and the
event should be redelivered.
"""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from mediahost.app.api.v1.dependencies import Billing

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


class BillingEventRequest(BaseModel):
    customer_id: str = Field(min_length=1, max_length=64)
    event: str = Field(min_length=1, max_length=32)


class BillingEventResponse(BaseModel):
    received: bool = True
    customer_id: str
    event: str
    action: str
    status: str | None


@router.post("/billing", response_model=BillingEventResponse)
async def billing_event(request: BillingEventRequest, billing: Billing) -> BillingEventResponse:
    outcome = await billing.on_billing_event(request.customer_id, request.event)
    return BillingEventResponse(
        customer_id=outcome.customer_id,
        event=outcome.event.value,
        action=outcome.action,
        status=str(outcome.status) if outcome.status else None,
    )
