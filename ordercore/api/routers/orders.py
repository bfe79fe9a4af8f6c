# ordercore/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends, Query

from ordercore.api.deps import get_order_service
from ordercore.api.errors import http_error
from ordercore.domain.errors import OrderCoreError
from ordercore.domain.schemas import (
    CancelIn,
    OrderCreate,
    OrderOut,
    OrderStatusUpdate,
    OwnerKey,
    StatusHistoryOut,
)
from ordercore.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderOut, status_code=201)
def create_order(
    payload: OrderCreate,
    svc: OrderService = Depends(get_order_service),
):
    """
    Tworzy zamowienie z koszyka usera albo sesji.
    Koszyk jest czyszczony, powiadomienie wysylane asynchronicznie.
    """
    try:
        owner = OwnerKey(user_id=payload.user_id, session_id=payload.session_id)
        return svc.create_order(
            owner,
            payload.shipping_address,
            payload.billing_address,
            payload.shipping_method,
            payload.notes,
        )
    except OrderCoreError as e:
        raise http_error(e)


@router.get("", response_model=List[OrderOut])
def list_orders(
    user_id: int = Query(..., gt=0),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    svc: OrderService = Depends(get_order_service),
):
    try:
        return svc.list_user_orders(user_id, page, limit)
    except OrderCoreError as e:
        raise http_error(e)


@router.get("/by-number/{order_number}", response_model=OrderOut)
def get_order_by_number(order_number: str, svc: OrderService = Depends(get_order_service)):
    try:
        return svc.get_order_by_number(order_number)
    except OrderCoreError as e:
        raise http_error(e)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: int, svc: OrderService = Depends(get_order_service)):
    """
    Pobiera szczegoly zamowienia razem z pozycjami.
    """
    try:
        return svc.get_order(order_id)
    except OrderCoreError as e:
        raise http_error(e)


@router.get("/{order_id}/history", response_model=List[StatusHistoryOut])
def get_history(order_id: int, svc: OrderService = Depends(get_order_service)):
    try:
        return svc.get_history(order_id)
    except OrderCoreError as e:
        raise http_error(e)


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: int,
    payload: CancelIn,
    svc: OrderService = Depends(get_order_service),
):
    try:
        return svc.cancel_order(order_id, payload.reason, payload.actor)
    except OrderCoreError as e:
        raise http_error(e)


@router.post("/{order_id}/status", response_model=OrderOut)
def advance_order(
    order_id: int,
    payload: OrderStatusUpdate,
    svc: OrderService = Depends(get_order_service),
):
    try:
        return svc.advance_order(order_id, payload)
    except OrderCoreError as e:
        raise http_error(e)
