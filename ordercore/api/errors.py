# ordercore/api/errors.py
from fastapi import HTTPException

from ordercore.domain.errors import (
    AlreadyPaid,
    AmountMismatch,
    CatalogError,
    GatewayError,
    InsufficientInventory,
    InvalidStateTransition,
    ItemNotFound,
    OrderCoreError,
    OrderNotFound,
    PaymentInProgress,
    PaymentNotFound,
    ProductUnavailable,
    SignatureMismatch,
    StorageError,
    ValidationError,
)

# kolejnosc ma znaczenie - pierwsze dopasowanie wygrywa
_STATUS_CODES = (
    (ValidationError, 400),
    (SignatureMismatch, 400),
    (AmountMismatch, 400),
    ((ItemNotFound, OrderNotFound, PaymentNotFound), 404),
    ((InvalidStateTransition, PaymentInProgress, AlreadyPaid), 409),
    ((ProductUnavailable, InsufficientInventory), 409),
    (GatewayError, 502),
    ((CatalogError, StorageError), 503),
)


def http_error(e: OrderCoreError) -> HTTPException:
    for error_types, status_code in _STATUS_CODES:
        if isinstance(e, error_types):
            return HTTPException(status_code=status_code, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))
