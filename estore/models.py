import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship

from estore.database import Base


def new_id():
    return uuid.uuid4().hex


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Reference tables, owned by the auth/catalog/address services and only read here

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_id)
    first_name = Column(String)
    last_name = Column(String)
    email = Column(String, unique=True, index=True)


class Product(Base):
    __tablename__ = "products"

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    price = Column(Integer, nullable=False)
    images = Column(JSON, default=list)


class Address(Base):
    __tablename__ = "addresses"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, index=True, nullable=False)
    street = Column(String, nullable=False)
    city = Column(String, nullable=False)
    state = Column(String, nullable=False)
    postal_code = Column(String, nullable=False)
    country = Column(String, nullable=False)


# Core tables

class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, index=True, nullable=False)
    shipping_address_id = Column(String, nullable=False)
    subtotal = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default="pending")          # pending | processing | shipped | delivered | cancelled
    payment_status = Column(String, nullable=False, default="pending")  # pending | paid | failed | refunded
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    items = relationship(
        "OrderItem",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String, ForeignKey("orders.id"), index=True, nullable=False)
    position = Column(Integer, nullable=False)
    product_id = Column(String, index=True, nullable=False)  # snapshot, not a live reference
    quantity = Column(Integer, nullable=False)
    price = Column(Integer, nullable=False)


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, index=True, nullable=False)
    type = Column(String, nullable=False)      # deposit | checkout
    amount = Column(Integer, nullable=False)
    status = Column(String, nullable=False)    # pending | completed | failed
    gateway_ref = Column(String, nullable=True)  # Stripe checkout session ID
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
