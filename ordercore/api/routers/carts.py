# ordercore/api/routers/carts.py
from fastapi import APIRouter, Depends, Query

from ordercore.api.deps import get_cart_service
from ordercore.api.errors import http_error
from ordercore.domain.errors import OrderCoreError
from ordercore.domain.schemas import (
    CartOut,
    ItemIn,
    MergeIn,
    MergeResult,
    OwnerKey,
    QuantityIn,
)
from ordercore.services.cart_service import CartService

router = APIRouter(prefix="/carts", tags=["carts"])


def owner_key(
    user_id: int | None = Query(None, gt=0),
    session_id: str | None = Query(None, min_length=1),
) -> OwnerKey:
    # koszyk usera albo goscia, nigdy oba
    try:
        return OwnerKey(user_id=user_id, session_id=session_id)
    except OrderCoreError as e:
        raise http_error(e)


@router.get("", response_model=CartOut)
def get_cart(
    owner: OwnerKey = Depends(owner_key),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.get_cart(owner)
    except OrderCoreError as e:
        raise http_error(e)


@router.post("/items", response_model=CartOut)
def add_item(
    payload: ItemIn,
    owner: OwnerKey = Depends(owner_key),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.add_item(owner, payload.product_id, payload.variant_id, payload.quantity)
    except OrderCoreError as e:
        raise http_error(e)


@router.put("/items/{product_id}", response_model=CartOut)
def set_item_quantity(
    product_id: int,
    payload: QuantityIn,
    owner: OwnerKey = Depends(owner_key),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.set_item_quantity(owner, product_id, payload.variant_id, payload.quantity)
    except OrderCoreError as e:
        raise http_error(e)


@router.delete("/items/{product_id}", response_model=CartOut)
def remove_item(
    product_id: int,
    variant_id: int | None = Query(None, gt=0),
    owner: OwnerKey = Depends(owner_key),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.remove_item(owner, product_id, variant_id)
    except OrderCoreError as e:
        raise http_error(e)


@router.delete("", status_code=204)
def clear_cart(
    owner: OwnerKey = Depends(owner_key),
    svc: CartService = Depends(get_cart_service),
):
    try:
        svc.clear(owner)
    except OrderCoreError as e:
        raise http_error(e)


@router.post("/merge", response_model=MergeResult)
def merge_carts(payload: MergeIn, svc: CartService = Depends(get_cart_service)):
    """
    Wolane po zalogowaniu: koszyk sesji -> koszyk usera.
    Koszyk sesji znika nawet jesli czesc linii sie nie scalila (pole skipped).
    """
    try:
        return svc.merge_guest_into_user(payload.session_id, payload.user_id)
    except OrderCoreError as e:
        raise http_error(e)
