"""Billing event ingestion.

Maps subscription events onto lifecycle operations:

    activated -> resume (when SUSPENDED)
    past_due  -> no-op, grace period
    cancelled -> suspend then delete
    resumed   -> resume (when SUSPENDED)

Delivery is at-least-once, so every mapping is idempotent. A missing
instance or one already in the target state is a no-op success.
"""

import logging
from dataclasses import dataclass

from mediahost.app.metrics.collector import BILLING_EVENTS
from mediahost.core.domain import (
    ActivityAction,
    BillingEventKind,
    LifecycleStatus,
    validate_customer_id,
)
from mediahost.core.errors import InvalidRequestError
from mediahost.core.interfaces import InstanceStore
from mediahost.core.logging_schema import Component, LogEvent
from mediahost.services.lifecycle import LifecycleService

logger = logging.getLogger(__name__)


@dataclass
class BillingOutcome:
    customer_id: str
    event: BillingEventKind
    action: str  # resumed, suspended_deleted, grace_period, noop
    status: LifecycleStatus | None = None  # None once deleted or when missing


def parse_event_kind(value: str) -> BillingEventKind:
    try:
        return BillingEventKind(value.strip().lower())
    except ValueError:
        raise InvalidRequestError(f"Unknown billing event: {value!r}") from None


class BillingEventHandler:
    """Applies billing events to customer instances."""

    def __init__(self, lifecycle: LifecycleService, store: InstanceStore) -> None:
        self._lifecycle = lifecycle
        self._store = store

    async def on_billing_event(self, customer_id: str, event_kind: str) -> BillingOutcome:
        """Apply one billing event.

        Raises:
            InvalidRequestError: Unknown event kind or malformed customer id
            ConflictError: Another operation holds the customer's lock
        """
        validate_customer_id(customer_id)
        event = parse_event_kind(event_kind)

        logger.info(
            "Billing event %s for customer %s",
            event,
            customer_id,
            extra={
                "event": LogEvent.BILLING_EVENT_RECEIVED,
                "component": Component.BILLING,
                "customer_id": customer_id,
                "billing_event": event.value,
            },
        )

        outcome = await self._apply(customer_id, event)

        BILLING_EVENTS.labels(event.value, outcome.action).inc()
        await self._store.log_activity(
            customer_id,
            ActivityAction.BILLING_EVENT,
            {"event": event.value, "action": outcome.action},
        )
        return outcome

    async def _apply(self, customer_id: str, event: BillingEventKind) -> BillingOutcome:
        instance = await self._lifecycle.find(customer_id)
        if instance is None:
            logger.info("No instance for customer %s, ignoring %s", customer_id, event)
            return BillingOutcome(customer_id, event, "noop")

        match event:
            case BillingEventKind.ACTIVATED | BillingEventKind.RESUMED:
                if instance.status != LifecycleStatus.SUSPENDED:
                    return BillingOutcome(customer_id, event, "noop", instance.status)
                resumed = await self._lifecycle.resume(customer_id)
                return BillingOutcome(customer_id, event, "resumed", resumed.status)
            case BillingEventKind.PAST_DUE:
                logger.warning(
                    "Customer %s past due, instance left %s",
                    customer_id,
                    instance.status,
                    extra={"customer_id": customer_id, "component": Component.BILLING},
                )
                return BillingOutcome(customer_id, event, "grace_period", instance.status)
            case BillingEventKind.CANCELLED:
                report = await self._lifecycle.terminate(
                    customer_id, reason="subscription_cancelled"
                )
                if report is None:
                    return BillingOutcome(customer_id, event, "noop")
                return BillingOutcome(customer_id, event, "suspended_deleted")
