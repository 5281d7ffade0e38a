from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from pydantic import ValidationError
from sqlalchemy.orm import Session

from estore.auth import verify_token
from estore.database import get_db
from estore.errors import OrderValidationError
from estore.orders import OrderService
from estore.schemas import OrderFilter, StatusUpdateRequest, api_response, first_error_message

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.post("/pay-on-delivery")
def create_gateway_order(
    payload: Any = Body(None),
    user_id: str = Depends(verify_token),
    db: Session = Depends(get_db),
):
    url = OrderService(db).create_gateway_order(user_id, payload)
    return {"url": url}


@router.post("/cash-on-delivery", status_code=201)
def create_cash_order(
    payload: Any = Body(None),
    user_id: str = Depends(verify_token),
    db: Session = Depends(get_db),
):
    order = OrderService(db).create_cash_order(user_id, payload)
    return api_response(True, "Order created successfully", order)


@router.get("")
def list_orders(
    status: str | None = None,
    product_id: str | None = Query(None, alias="productId"),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    page: str = "1",
    limit: str = "10",
    user_id: str = Depends(verify_token),
    db: Session = Depends(get_db),
):
    try:
        flt = OrderFilter(
            status=status or None,
            product_id=product_id or None,
            start_date=start_date or None,
            end_date=end_date or None,
            sort_by=sort_by,
            sort_order=sort_order,
            page=page,
            limit=limit,
        )
    except ValidationError as exc:
        raise OrderValidationError(first_error_message(exc)) from exc

    orders = OrderService(db).list_orders(user_id, flt)
    return api_response(True, "Orders retrieved successfully", orders)


@router.get("/{order_id}")
def get_order(order_id: str, user_id: str = Depends(verify_token), db: Session = Depends(get_db)):
    order = OrderService(db).get_order(user_id, order_id)
    return api_response(True, "Order retrieved successfully", order)


@router.patch("/{order_id}/status")
def update_order_status(
    order_id: str,
    payload: Any = Body(None),
    user_id: str = Depends(verify_token),
    db: Session = Depends(get_db),
):
    try:
        request = StatusUpdateRequest.model_validate(payload or {})
    except ValidationError as exc:
        raise OrderValidationError("Invalid status value") from exc

    order = OrderService(db).update_status(user_id, order_id, request.status)
    return api_response(True, "Order status updated successfully", order)


@router.patch("/{order_id}/cancel")
def cancel_order(order_id: str, user_id: str = Depends(verify_token), db: Session = Depends(get_db)):
    order = OrderService(db).cancel(user_id, order_id)
    return api_response(True, "Order cancelled successfully", order)
