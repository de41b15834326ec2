"""Payment provider webhooks."""

import stripe
from fastapi import APIRouter, Header, Request

from src.dependencies import BillingServiceDep, SettingsDep
from src.exceptions import WebhookSignatureError
from src.schemas.webhooks import WebhookAck
from src.services.billing_service import payment_event_from_stripe
from src.utils.logger import get_logger

log = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    billing: BillingServiceDep,
    settings: SettingsDep,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
) -> WebhookAck:
    """Apply checkout, renewal and cancellation events.

    Redelivered events are acknowledged without changing balances.
    """
    if not stripe_signature:
        raise WebhookSignatureError("Missing Stripe signature")

    payload = await request.body()
    try:
        event = stripe.Webhook.construct_event(
            payload, stripe_signature, settings.stripe_webhook_secret
        )
    except ValueError:
        log.warning("stripe webhook rejected", reason="invalid payload")
        raise WebhookSignatureError("Invalid payload")
    except stripe.SignatureVerificationError:
        log.warning("stripe webhook rejected", reason="invalid signature")
        raise WebhookSignatureError()

    payment_event = payment_event_from_stripe(event)
    if payment_event is None:
        log.debug("stripe event ignored", event_type=event["type"], event_id=event["id"])
        return WebhookAck(applied=False)

    outcome = await billing.apply_event(payment_event)
    return WebhookAck(applied=outcome is not None and outcome.applied)
