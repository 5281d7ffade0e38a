import stripe
import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from estore import config, stripe_service
from estore.errors import AmountMismatch, AuthenticationFailure, ReferenceNotFound, TransientStoreFailure
from estore.schemas import TransactionStatus
from estore.stores import OrderStore, TransactionStore

logger = structlog.get_logger(__name__)

PAYMENT_SUCCEEDED_EVENTS = (
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
)
PAYMENT_FAILED_EVENT = "checkout.session.async_payment_failed"
SESSION_EXPIRED_EVENT = "checkout.session.expired"


class WebhookHandler:
    def __init__(self, db: Session):
        self.db = db
        self.orders = OrderStore(db)
        self.transactions = TransactionStore(db)

    def verify(self, payload: bytes, signature: str | None):
        if not config.STRIPE_WEBHOOK_SECRET:
            logger.error("webhook_secret_missing")
            raise AuthenticationFailure("Webhook secret is not configured", status_code=400)
        if not signature:
            logger.warning("webhook_signature_missing")
            raise AuthenticationFailure("Missing signature", status_code=400)
        try:
            return stripe_service.construct_event(payload, signature)
        except ValueError as exc:
            logger.warning("webhook_payload_invalid", error=str(exc))
            raise AuthenticationFailure("Invalid payload", status_code=400) from exc
        except stripe.SignatureVerificationError as exc:
            logger.warning("webhook_signature_invalid", error=str(exc))
            raise AuthenticationFailure("Invalid signature", status_code=400) from exc

    def handle(self, payload: bytes, signature: str | None) -> str:
        """Verify and apply one delivery; returns a short outcome label."""
        event = self.verify(payload, signature)
        event_type = event["type"]
        log = logger.bind(event_id=event.get("id"), event_type=event_type)

        if event_type not in PAYMENT_SUCCEEDED_EVENTS + (PAYMENT_FAILED_EVENT, SESSION_EXPIRED_EVENT):
            log.info("webhook_event_ignored")
            return "ignored"

        session = event["data"]["object"]
        metadata = session.get("metadata") or {}
        transaction_id = metadata.get("transactionId")
        order_id = metadata.get("orderId")
        log = log.bind(session_id=session.get("id"), transaction_id=transaction_id, order_id=order_id)

        if not transaction_id or not order_id:
            log.warning("webhook_correlation_missing")
            raise ReferenceNotFound("Missing correlation metadata", status_code=400)

        try:
            return self._apply(event_type, session, transaction_id, order_id, log)
        except SQLAlchemyError as exc:
            self.db.rollback()
            log.error("webhook_store_failure", exc_info=True)
            raise TransientStoreFailure("Internal server error") from exc

    def _apply(self, event_type, session, transaction_id, order_id, log) -> str:
        transaction = self.transactions.get(transaction_id)
        order = self.orders.get(order_id)
        if transaction is None or order is None or transaction.user_id != order.user_id:
            log.warning(
                "webhook_correlation_unknown",
                transaction_found=transaction is not None,
                order_found=order is not None,
            )
            raise ReferenceNotFound("Unknown transaction or order", status_code=400)

        if event_type in PAYMENT_SUCCEEDED_EVENTS:
            if session.get("payment_status") == "unpaid":
                log.info("webhook_payment_awaiting_async_result")
                return "awaiting_payment"

            amount_total = session.get("amount_total")
            if amount_total is not None and amount_total != transaction.amount_minor_units:
                log.error(
                    "webhook_amount_mismatch",
                    expected=transaction.amount_minor_units,
                    received=amount_total,
                )
                raise AmountMismatch(transaction_id, transaction.amount_minor_units, amount_total)

            return self._settle(
                transaction_id,
                order_id,
                session["id"],
                TransactionStatus.COMPLETED,
                self.transactions.complete,
                self.orders.mark_paid,
                log,
            )

        # Expired sessions leave the order pending so the user can restart checkout
        mark_order = self.orders.mark_payment_failed if event_type == PAYMENT_FAILED_EVENT else None
        return self._settle(
            transaction_id,
            order_id,
            session["id"],
            TransactionStatus.FAILED,
            self.transactions.fail,
            mark_order,
            log,
        )

    def _settle(self, transaction_id, order_id, gateway_ref, target, finish, mark_order, log) -> str:
        changed = finish(transaction_id, gateway_ref)
        if not changed:
            current = self.transactions.get(transaction_id)
            if current.status != target:
                self.db.rollback()
                log.error("webhook_transaction_conflict", current_status=current.status.value, target=target.value)
                return "conflict"

        order_changed = mark_order(order_id) if mark_order else False
        self.db.commit()

        if not changed and not order_changed:
            log.info("webhook_event_duplicate")
            return "duplicate"
        log.info(
            "webhook_event_applied",
            transaction_status=target.value,
            transaction_changed=changed,
            order_changed=order_changed,
        )
        return "applied"
