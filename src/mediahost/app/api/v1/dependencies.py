"""Request dependencies: caller identity and service handles.

Identity comes from the upstream identity layer as trusted headers:
X-Customer-Id (customer routes) and X-Customer-Role (customer | admin).
"""

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, Request

from mediahost.core.errors import ForbiddenError, UnauthorizedError
from mediahost.services import BillingEventHandler, HealthReconciler, LifecycleService

ROLE_CUSTOMER = "customer"
ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class Caller:
    customer_id: str | None
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def is_admin_request(request: Request) -> bool:
    """Used by the error handler to decide how much detail to expose."""
    return request.headers.get("x-customer-role", "").strip().lower() == ROLE_ADMIN


async def get_caller(
    x_customer_id: Annotated[str | None, Header()] = None,
    x_customer_role: Annotated[str, Header()] = ROLE_CUSTOMER,
) -> Caller:
    customer_id = x_customer_id.strip() if x_customer_id else None
    return Caller(customer_id=customer_id or None, role=x_customer_role.strip().lower())


async def require_customer(caller: Annotated[Caller, Depends(get_caller)]) -> str:
    """Customer id of the caller. Admins may act on their own instance too."""
    if not caller.customer_id:
        raise UnauthorizedError("X-Customer-Id header required")
    return caller.customer_id


async def require_admin(caller: Annotated[Caller, Depends(get_caller)]) -> Caller:
    if not caller.is_admin:
        raise ForbiddenError("Admin role required")
    return caller


def get_lifecycle(request: Request) -> LifecycleService:
    return request.app.state.services.lifecycle


def get_billing(request: Request) -> BillingEventHandler:
    return request.app.state.services.billing


def get_reconciler(request: Request) -> HealthReconciler:
    return request.app.state.services.reconciler


CustomerId = Annotated[str, Depends(require_customer)]
AdminCaller = Annotated[Caller, Depends(require_admin)]
Lifecycle = Annotated[LifecycleService, Depends(get_lifecycle)]
Billing = Annotated[BillingEventHandler, Depends(get_billing)]
Reconciler = Annotated[HealthReconciler, Depends(get_reconciler)]
