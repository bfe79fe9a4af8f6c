# ordercore/domain/errors.py


class OrderCoreError(Exception):
    """Bazowy wyjatek domeny."""


# bledy biznesowe - nigdy nie ponawiamy

class ValidationError(OrderCoreError):
    pass


class ProductUnavailable(OrderCoreError):
    pass


class InsufficientInventory(OrderCoreError):
    def __init__(self, product_id: int, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient inventory for product {product_id}. "
            f"Requested: {requested}, available: {available}"
        )


class ItemNotFound(OrderCoreError):
    pass


class OrderNotFound(OrderCoreError):
    pass


class PaymentNotFound(OrderCoreError):
    pass


class InvalidStateTransition(OrderCoreError):
    pass


class PaymentInProgress(OrderCoreError):
    pass


class AlreadyPaid(OrderCoreError):
    pass


class SignatureMismatch(OrderCoreError):
    pass


class AmountMismatch(OrderCoreError):
    def __init__(self, expected: int, actual: int, currency: str | None = None):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Payment amount mismatch. Expected: {expected}, got: {actual}"
            + (f" ({currency})" if currency else "")
        )


# bledy infrastruktury - wywolujacy decyduje o retry

class GatewayError(OrderCoreError):
    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class StorageError(OrderCoreError):
    pass


class CatalogError(OrderCoreError):
    pass
