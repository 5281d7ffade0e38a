import stripe
import structlog
from sqlalchemy.orm import Session

from estore import config, stripe_service
from estore.errors import GatewayUnavailable, ReferenceNotFound, StateConflict
from estore.schemas import (
    OrderFilter,
    OrderRequest,
    OrderStatus,
    OrderView,
    TransactionType,
    validate_order_request,
)
from estore.stores import OrderStore, ReferenceStore, TransactionStore

logger = structlog.get_logger(__name__)


class OrderService:
    def __init__(self, db: Session):
        self.db = db
        self.orders = OrderStore(db)
        self.transactions = TransactionStore(db)
        self.references = ReferenceStore(db)

    def _check_references(self, user_id: str, request: OrderRequest):
        if not self.references.user_exists(user_id):
            raise ReferenceNotFound("User not found")

        if self.references.count_products(request.product_ids) != len(request.items):
            raise ReferenceNotFound("One or more products not found", status_code=400)

        if self.references.find_address(request.shipping_address, user_id) is None:
            raise ReferenceNotFound("Invalid shipping address", status_code=400)

    def _prepare(self, user_id: str, payload) -> OrderRequest:
        request = validate_order_request(payload)
        self._check_references(user_id, request)
        return request

    def _persist_order(self, user_id: str, request: OrderRequest):
        order = self.orders.create(
            user_id=user_id,
            shipping_address_id=request.shipping_address,
            items=request.items,
            subtotal=request.subtotal,
        )
        self.db.commit()
        logger.info("order_created", order_id=order.id, user_id=user_id, subtotal=order.subtotal)
        return order

    def create_cash_order(self, user_id: str, payload) -> OrderView:
        request = self._prepare(user_id, payload)
        order = self._persist_order(user_id, request)
        return self.references.populate([order])[0]

    def create_gateway_order(self, user_id: str, payload) -> str:
        """Create a gateway-paid order and return the checkout redirect URL.

        The order stays pending/pending until the webhook reconciles it.
        """
        request = self._prepare(user_id, payload)
        order = self._persist_order(user_id, request)

        transaction = self.transactions.create(
            user_id=user_id,
            amount=order.subtotal,
            type=TransactionType.CHECKOUT,
        )
        self.db.commit()
        log = logger.bind(order_id=order.id, transaction_id=transaction.id, user_id=user_id)
        log.info("transaction_created", amount=transaction.amount)

        try:
            session = stripe_service.create_checkout_session(
                amount=transaction.amount_minor_units,
                currency=config.CHECKOUT_CURRENCY,
                success_url=stripe_service.SUCCESS_URL.format(origin=config.ORIGIN),
                cancel_url=stripe_service.CANCEL_URL.format(origin=config.ORIGIN),
                metadata={"transactionId": transaction.id, "orderId": order.id},
                idempotency_key=transaction.id,
            )
        except stripe.StripeError as exc:
            log.error("checkout_session_failed", error=str(exc))
            raise GatewayUnavailable("Could not start checkout") from exc

        log.info("checkout_session_created", session_id=session.session_id)
        return session.url

    def get_order(self, user_id: str, order_id: str) -> OrderView:
        order = self.orders.get(order_id, user_id=user_id)
        if order is None:
            raise ReferenceNotFound("Order not found")
        return self.references.populate([order])[0]

    def list_orders(self, user_id: str, flt: OrderFilter) -> list[OrderView]:
        return self.references.populate(self.orders.list(user_id, flt))

    def update_status(self, user_id: str, order_id: str, status: OrderStatus) -> OrderView:
        if status == OrderStatus.CANCELLED:
            return self.cancel(user_id, order_id)

        if not self.orders.set_status(order_id, user_id, status):
            self.db.rollback()
            self._require_order(user_id, order_id)
            raise StateConflict("Cancelled orders cannot change status")
        self.db.commit()
        logger.info("order_status_updated", order_id=order_id, status=status.value)
        return self.get_order(user_id, order_id)

    def cancel(self, user_id: str, order_id: str) -> OrderView:
        """Cancel an order that is still pending or processing.

        A completed ledger entry is left untouched.
        """
        if not self.orders.cancel(order_id, user_id):
            self.db.rollback()
            self._require_order(user_id, order_id)
            raise StateConflict("Order cannot be cancelled at this stage")
        self.db.commit()
        logger.info("order_cancelled", order_id=order_id, user_id=user_id)
        return self.get_order(user_id, order_id)

    def _require_order(self, user_id: str, order_id: str):
        if self.orders.get(order_id, user_id=user_id) is None:
            raise ReferenceNotFound("Order not found")
