import pytest

from estore.errors import OrderValidationError
from estore.schemas import (
    OrderFilter,
    OrderItemRequest,
    OrderStatus,
    PaymentStatus,
    TransactionStatus,
    compute_subtotal,
    validate_order_request,
)
from estore.stores import OrderStore, ReferenceStore, TransactionStore

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


@pytest.fixture
def order(db, catalog):
    request = validate_order_request({
        "items": [
            {"product": "prod-a", "quantity": 2, "price": 10},
            {"product": "prod-b", "quantity": 1, "price": 5},
        ],
        "shippingAddress": "addr-1",
    })
    snapshot = OrderStore(db).create(USER_ID, request.shipping_address, request.items, request.subtotal)
    db.commit()
    return snapshot


@pytest.mark.parametrize("lines, expected", [
    ([(2, 10), (1, 5)], 25),
    ([(1, 1)], 1),
    ([(3, 7), (4, 9), (10, 1)], 67),
])
def test_compute_subtotal(lines, expected):
    items = [OrderItemRequest(product=f"p{i}", quantity=q, price=p) for i, (q, p) in enumerate(lines)]
    assert compute_subtotal(items) == expected


def test_validate_order_request_strips_unknown_fields():
    request = validate_order_request({
        "items": [{"product": "prod-a", "quantity": 2, "price": 10, "name": "ignored"}],
        "shippingAddress": "addr-1",
        "subtotal": 999,
    })
    assert request.subtotal == 20
    assert request.shipping_address == "addr-1"


@pytest.mark.parametrize("payload", [
    None,
    {},
    {"items": [], "shippingAddress": "addr-1"},
    {"items": [{"product": "p", "quantity": 1, "price": 0}], "shippingAddress": "addr-1"},
    {"items": [{"product": "", "quantity": 1, "price": 1}], "shippingAddress": "addr-1"},
    {"items": [{"product": "p", "quantity": 1.5, "price": 1}], "shippingAddress": "addr-1"},
    {"items": [{"product": "p", "quantity": 1, "price": 1}], "shippingAddress": ""},
])
def test_validate_order_request_rejects(payload):
    with pytest.raises(OrderValidationError):
        validate_order_request(payload)


def test_order_snapshot_is_frozen(order):
    assert order.status == OrderStatus.PENDING
    assert order.payment_status == PaymentStatus.PENDING
    assert [item.product_id for item in order.items] == ["prod-a", "prod-b"]
    with pytest.raises(Exception):
        order.status = OrderStatus.SHIPPED


def test_mark_paid_only_from_pending(db, order):
    store = OrderStore(db)

    assert store.mark_paid(order.id) is True
    assert store.mark_paid(order.id) is False
    assert store.mark_payment_failed(order.id) is False
    db.commit()

    assert store.get(order.id).payment_status == PaymentStatus.PAID


def test_cancel_only_from_pending_or_processing(db, order):
    store = OrderStore(db)

    assert store.cancel(order.id, OTHER_USER_ID) is False
    assert store.set_status(order.id, USER_ID, OrderStatus.PROCESSING) is True
    assert store.cancel(order.id, USER_ID) is True
    assert store.cancel(order.id, USER_ID) is False
    assert store.set_status(order.id, USER_ID, OrderStatus.PENDING) is False
    db.commit()

    assert store.get(order.id).status == OrderStatus.CANCELLED


def test_get_is_scoped_to_user(db, order):
    store = OrderStore(db)
    assert store.get(order.id, user_id=USER_ID) == store.get(order.id)
    assert store.get(order.id, user_id=OTHER_USER_ID) is None


def test_transaction_transition_happens_once(db, catalog):
    store = TransactionStore(db)
    entry = store.create(USER_ID, 25)
    db.commit()
    assert entry.status == TransactionStatus.PENDING
    assert entry.amount_minor_units == 2500

    assert store.complete(entry.id, "cs_1") is True
    assert store.complete(entry.id, "cs_2") is False
    assert store.fail(entry.id, "cs_3") is False
    db.commit()

    current = store.get(entry.id)
    assert current.status == TransactionStatus.COMPLETED
    assert current.gateway_ref == "cs_1"


def test_reference_store(db, catalog):
    references = ReferenceStore(db)

    assert references.user_exists(USER_ID)
    assert not references.user_exists("ghost")
    assert references.count_products(["prod-a", "prod-b", "prod-x"]) == 2
    assert references.find_address("addr-1", USER_ID).city == "Springfield"
    assert references.find_address("addr-2", USER_ID) is None


def test_populate_tolerates_deleted_product(db, order):
    from estore.models import Product

    db.query(Product).filter_by(id="prod-b").delete()
    db.commit()

    view = ReferenceStore(db).populate([order])[0]

    assert view.items[0].product.name == "Product A"
    assert view.items[1].product is None
    assert view.items[1].price == 5
    assert view.model_dump(by_alias=True)["shippingAddress"]["postalCode"] == "62701"


def test_order_filter_clamps_paging():
    flt = OrderFilter(page=0, limit=1000)
    assert (flt.page, flt.limit, flt.offset) == (1, 100, 0)
    assert OrderFilter(page=3, limit=10).offset == 20
