import stripe

from estore import config
from estore.schemas import CheckoutSession

SUCCESS_URL = "{origin}/payment-success?session_id={{CHECKOUT_SESSION_ID}}"
CANCEL_URL = "{origin}/payment-cancelled"


def configure_stripe():
    stripe.api_key = config.STRIPE_SECRET_KEY
    stripe.max_network_retries = config.STRIPE_MAX_NETWORK_RETRIES
    stripe.default_http_client = stripe.RequestsClient(timeout=config.STRIPE_TIMEOUT_SECONDS)


configure_stripe()


def create_checkout_session(
    amount: int,
    currency: str,
    success_url: str,
    cancel_url: str,
    metadata: dict,
    idempotency_key: str,
) -> CheckoutSession:
    """Open a hosted checkout session for ``amount`` minor units."""
    session = stripe.checkout.Session.create(
        payment_method_types=["card"],
        line_items=[
            {
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": "Checkout"},
                    "unit_amount": amount,
                },
                "quantity": 1,
            }
        ],
        mode="payment",
        success_url=success_url,
        cancel_url=cancel_url,
        metadata=metadata,
        idempotency_key=idempotency_key,
    )
    return CheckoutSession(session_id=session.id, url=session.url)


def construct_event(payload: bytes, signature: str):
    """Verify the signature header and parse the event.

    Raises ``ValueError`` for an unparsable payload and
    ``stripe.SignatureVerificationError`` for a bad signature.
    """
    return stripe.Webhook.construct_event(
        payload,
        signature,
        config.STRIPE_WEBHOOK_SECRET,
    )
