from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from estore.models import Address, Order, OrderItem, Product, Transaction, User
from estore.schemas import (
    CANCELLABLE_STATUSES,
    AddressView,
    LedgerEntry,
    OrderFilter,
    OrderItemView,
    OrderSnapshot,
    OrderStatus,
    OrderView,
    PaymentStatus,
    ProductView,
    TransactionStatus,
    TransactionType,
    UserView,
)

SORT_COLUMNS = {
    "createdAt": Order.created_at,
    "updatedAt": Order.updated_at,
    "subtotal": Order.subtotal,
    "status": Order.status,
}


class OrderStore:
    def __init__(self, db: Session):
        self.db = db

    def create(self, user_id: str, shipping_address_id: str, items, subtotal: int) -> OrderSnapshot:
        order = Order(
            user_id=user_id,
            shipping_address_id=shipping_address_id,
            subtotal=subtotal,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            items=[
                OrderItem(
                    position=position,
                    product_id=item.product,
                    quantity=item.quantity,
                    price=item.price,
                )
                for position, item in enumerate(items)
            ],
        )
        self.db.add(order)
        self.db.flush()
        return OrderSnapshot.model_validate(order)

    def get(self, order_id: str, user_id: str | None = None) -> OrderSnapshot | None:
        stmt = select(Order).where(Order.id == order_id)
        if user_id is not None:
            stmt = stmt.where(Order.user_id == user_id)
        order = self.db.scalars(stmt.execution_options(populate_existing=True)).first()
        return OrderSnapshot.model_validate(order) if order else None

    def list(self, user_id: str, flt: OrderFilter) -> list[OrderSnapshot]:
        stmt = select(Order).where(Order.user_id == user_id)
        if flt.status is not None:
            stmt = stmt.where(Order.status == flt.status.value)
        if flt.product_id:
            stmt = stmt.where(Order.items.any(OrderItem.product_id == flt.product_id))
        if flt.start_date is not None:
            stmt = stmt.where(Order.created_at >= flt.start_date)
        if flt.end_date is not None:
            stmt = stmt.where(Order.created_at <= flt.end_date)

        column = SORT_COLUMNS[flt.sort_by]
        stmt = stmt.order_by(column.asc() if flt.sort_order == "asc" else column.desc(), Order.id)
        stmt = stmt.offset(flt.offset).limit(flt.limit)
        return [OrderSnapshot.model_validate(order) for order in self.db.scalars(stmt)]

    def _transition(self, order_id: str, values: dict, *conditions) -> bool:
        stmt = update(Order).where(Order.id == order_id, *conditions).values(**values)
        return self.db.execute(stmt).rowcount == 1

    def set_status(self, order_id: str, user_id: str, status: OrderStatus) -> bool:
        return self._transition(
            order_id,
            {"status": status.value},
            Order.user_id == user_id,
            Order.status != OrderStatus.CANCELLED.value,
        )

    def cancel(self, order_id: str, user_id: str) -> bool:
        return self._transition(
            order_id,
            {"status": OrderStatus.CANCELLED.value},
            Order.user_id == user_id,
            Order.status.in_([status.value for status in CANCELLABLE_STATUSES]),
        )

    def mark_paid(self, order_id: str) -> bool:
        return self._transition(
            order_id,
            {"payment_status": PaymentStatus.PAID.value},
            Order.payment_status == PaymentStatus.PENDING.value,
        )

    def mark_payment_failed(self, order_id: str) -> bool:
        return self._transition(
            order_id,
            {"payment_status": PaymentStatus.FAILED.value},
            Order.payment_status == PaymentStatus.PENDING.value,
        )


class TransactionStore:
    def __init__(self, db: Session):
        self.db = db

    def create(self, user_id: str, amount: int, type: TransactionType = TransactionType.CHECKOUT) -> LedgerEntry:
        transaction = Transaction(
            user_id=user_id,
            type=type.value,
            amount=amount,
            status=TransactionStatus.PENDING.value,
        )
        self.db.add(transaction)
        self.db.flush()
        return LedgerEntry.model_validate(transaction)

    def get(self, transaction_id: str) -> LedgerEntry | None:
        stmt = select(Transaction).where(Transaction.id == transaction_id)
        transaction = self.db.scalars(stmt.execution_options(populate_existing=True)).first()
        return LedgerEntry.model_validate(transaction) if transaction else None

    def _finish(self, transaction_id: str, status: TransactionStatus, gateway_ref: str) -> bool:
        stmt = (
            update(Transaction)
            .where(
                Transaction.id == transaction_id,
                Transaction.status == TransactionStatus.PENDING.value,
            )
            .values(status=status.value, gateway_ref=gateway_ref)
        )
        return self.db.execute(stmt).rowcount == 1

    def complete(self, transaction_id: str, gateway_ref: str) -> bool:
        return self._finish(transaction_id, TransactionStatus.COMPLETED, gateway_ref)

    def fail(self, transaction_id: str, gateway_ref: str) -> bool:
        return self._finish(transaction_id, TransactionStatus.FAILED, gateway_ref)


class ReferenceStore:
    """Read-only access to users, products and addresses."""

    def __init__(self, db: Session):
        self.db = db

    def user_exists(self, user_id: str) -> bool:
        return self.db.get(User, user_id) is not None

    def count_products(self, product_ids) -> int:
        stmt = select(func.count()).select_from(Product).where(Product.id.in_(set(product_ids)))
        return self.db.scalar(stmt)

    def find_address(self, address_id: str, user_id: str) -> AddressView | None:
        stmt = select(Address).where(Address.id == address_id, Address.user_id == user_id)
        address = self.db.scalars(stmt).first()
        return AddressView.model_validate(address) if address else None

    def populate(self, orders: list[OrderSnapshot]) -> list[OrderView]:
        """Join each order with its user, products and shipping address."""
        if not orders:
            return []

        def by_id(model, ids):
            rows = self.db.scalars(select(model).where(model.id.in_(ids)))
            return {row.id: row for row in rows}

        users = by_id(User, {order.user_id for order in orders})
        addresses = by_id(Address, {order.shipping_address_id for order in orders})
        products = by_id(Product, {item.product_id for order in orders for item in order.items})

        views = []
        for order in orders:
            user = users.get(order.user_id)
            address = addresses.get(order.shipping_address_id)
            items = []
            for item in order.items:
                product = products.get(item.product_id)
                items.append(
                    OrderItemView(
                        product=ProductView.model_validate(product) if product else None,
                        quantity=item.quantity,
                        price=item.price,
                    )
                )
            views.append(
                OrderView(
                    id=order.id,
                    user=UserView.model_validate(user) if user else None,
                    items=items,
                    shipping_address=AddressView.model_validate(address) if address else None,
                    subtotal=order.subtotal,
                    status=order.status,
                    payment_status=order.payment_status,
                    created_at=order.created_at,
                    updated_at=order.updated_at,
                )
            )
        return views
