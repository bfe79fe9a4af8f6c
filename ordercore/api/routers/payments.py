# ordercore/api/routers/payments.py
from typing import List

from fastapi import APIRouter, Depends

from ordercore.api.deps import get_payment_service
from ordercore.api.errors import http_error
from ordercore.domain.errors import OrderCoreError
from ordercore.domain.schemas import (
    FailureIn,
    OrderOut,
    PaymentIntentOut,
    PaymentOut,
    RefundIn,
    VerifyIn,
)
from ordercore.services.payment_service import PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/refunds", response_model=PaymentOut)
def refund(payload: RefundIn, svc: PaymentService = Depends(get_payment_service)):
    try:
        return svc.refund(payload.gateway_payment_id, payload.amount, payload.reason)
    except OrderCoreError as e:
        raise http_error(e)


@router.post("/{order_id}/intent", response_model=PaymentIntentOut, status_code=201)
def open_payment_intent(order_id: int, svc: PaymentService = Depends(get_payment_service)):
    """
    Otwiera platnosc w bramce. Frontend dostaje gateway_order_id
    i public_key do checkoutu bramki.
    """
    try:
        return svc.open_payment_intent(order_id)
    except OrderCoreError as e:
        raise http_error(e)


@router.post("/{order_id}/verify", response_model=OrderOut)
def verify_payment(
    order_id: int,
    payload: VerifyIn,
    svc: PaymentService = Depends(get_payment_service),
):
    try:
        return svc.verify_payment(
            order_id,
            payload.gateway_order_id,
            payload.gateway_payment_id,
            payload.signature,
        )
    except OrderCoreError as e:
        raise http_error(e)


@router.post("/{order_id}/failure", response_model=OrderOut)
def report_failure(
    order_id: int,
    payload: FailureIn,
    svc: PaymentService = Depends(get_payment_service),
):
    try:
        return svc.report_failure(order_id, payload.reason, payload.code)
    except OrderCoreError as e:
        raise http_error(e)


@router.get("/{order_id}", response_model=List[PaymentOut])
def list_payments(order_id: int, svc: PaymentService = Depends(get_payment_service)):
    try:
        return svc.get_payments(order_id)
    except OrderCoreError as e:
        raise http_error(e)
