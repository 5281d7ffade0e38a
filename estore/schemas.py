from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import AliasGenerator, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from estore.errors import OrderValidationError


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    CHECKOUT = "checkout"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


CANCELLABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.PROCESSING)


def first_error_message(exc: ValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error["loc"])
    if location:
        return f"{location}: {error['msg']}"
    return error["msg"]


# Requests

class OrderItemRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    product: str = Field(min_length=1, max_length=64)
    quantity: int = Field(ge=1)
    price: int = Field(ge=1)


class OrderRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    items: list[OrderItemRequest] = Field(min_length=1)
    shipping_address: str = Field(alias="shippingAddress", min_length=1, max_length=64)

    @property
    def product_ids(self) -> list[str]:
        return [item.product for item in self.items]

    @property
    def subtotal(self) -> int:
        return compute_subtotal(self.items)


class StatusUpdateRequest(BaseModel):
    status: OrderStatus


def compute_subtotal(items) -> int:
    return sum(item.quantity * item.price for item in items)


def validate_order_request(payload: Any) -> OrderRequest:
    """Validate a raw order body, raising OrderValidationError on the first problem."""
    if not isinstance(payload, dict):
        raise OrderValidationError("Request body must be a JSON object")
    try:
        request = OrderRequest.model_validate(payload)
    except ValidationError as exc:
        raise OrderValidationError(first_error_message(exc)) from exc

    if len(set(request.product_ids)) != len(request.product_ids):
        raise OrderValidationError("Duplicate product in order items")
    return request


class OrderFilter(BaseModel):
    """Supported filters for listing a user's orders."""

    model_config = ConfigDict(frozen=True)

    status: Optional[OrderStatus] = None
    product_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    sort_by: Literal["createdAt", "updatedAt", "subtotal", "status"] = "createdAt"
    sort_order: Literal["asc", "desc"] = "desc"
    page: int = 1
    limit: int = 10

    @field_validator("start_date", "end_date")
    @classmethod
    def _as_naive_utc(cls, value):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @field_validator("page")
    @classmethod
    def _clamp_page(cls, value):
        return max(1, value)

    @field_validator("limit")
    @classmethod
    def _clamp_limit(cls, value):
        return min(100, max(1, value))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


# Snapshots

class Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)


class OrderItemSnapshot(Snapshot):
    product_id: str
    quantity: int
    price: int


class OrderSnapshot(Snapshot):
    id: str
    user_id: str
    shipping_address_id: str
    items: tuple[OrderItemSnapshot, ...]
    subtotal: int
    status: OrderStatus
    payment_status: PaymentStatus
    created_at: datetime
    updated_at: datetime


class LedgerEntry(Snapshot):
    id: str
    user_id: str
    type: TransactionType
    amount: int
    status: TransactionStatus
    gateway_ref: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @property
    def amount_minor_units(self) -> int:
        return self.amount * 100


class CheckoutSession(Snapshot):
    session_id: str
    url: str


# Populated views

class View(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        from_attributes=True,
        alias_generator=AliasGenerator(serialization_alias=to_camel),
    )


class UserView(View):
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None


class ProductView(View):
    id: str
    name: str
    price: int
    images: list[str] = Field(default_factory=list)

    @field_validator("images", mode="before")
    @classmethod
    def _no_images(cls, value):
        return value or []


class AddressView(View):
    id: str
    street: str
    city: str
    state: str
    postal_code: str
    country: str


class OrderItemView(View):
    product: Optional[ProductView]
    quantity: int
    price: int


class OrderView(View):
    id: str
    user: Optional[UserView]
    items: list[OrderItemView]
    shipping_address: Optional[AddressView]
    subtotal: int
    status: OrderStatus
    payment_status: PaymentStatus
    created_at: datetime
    updated_at: datetime


def api_response(success: bool, message: str, data: Any = None) -> dict:
    body = {"success": success, "message": message}
    if data is not None:
        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json", by_alias=True)
        elif isinstance(data, list):
            data = [item.model_dump(mode="json", by_alias=True) for item in data]
        body["data"] = data
    return body
