# ordercore/domain/schemas.py
from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ordercore.domain.enums import OrderStatus
from ordercore.domain.errors import ValidationError


class OwnerKey(BaseModel):
    """Wlasciciel koszyka: user (trwaly) albo sesja (redis) - nigdy oba naraz."""

    user_id: int | None = None
    session_id: str | None = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def exactly_one_owner(self) -> "OwnerKey":
        # blad domeny, nie ValueError - pydantic przepuszcza go bez opakowania
        if (self.user_id is None) == (not self.session_id):
            raise ValidationError("Exactly one of user_id or session_id is required")
        return self

    @classmethod
    def for_user(cls, user_id: int) -> "OwnerKey":
        return cls(user_id=user_id)

    @classmethod
    def for_session(cls, session_id: str) -> "OwnerKey":
        return cls(session_id=session_id)

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    def __str__(self) -> str:
        return f"user:{self.user_id}" if self.user_id is not None else f"session:{self.session_id}"


# ---------------------------------------------------------------- catalog

class ProductInfo(BaseModel):
    id: int
    name: str
    sku: str
    active: bool
    track_quantity: bool
    available_quantity: int
    price: int


class VariantInfo(BaseModel):
    id: int
    product_id: int
    name: str
    sku: str | None = None
    active: bool
    available_quantity: int
    price: int = 0


# ---------------------------------------------------------------- cart

class ItemIn(BaseModel):
    """Schema dla dodawania produktu do koszyka."""

    product_id: int = Field(..., gt=0)
    variant_id: int | None = Field(None, gt=0)
    quantity: int = Field(..., gt=0)


class QuantityIn(BaseModel):
    """Schema dla zmiany ilosci, 0 usuwa linie."""

    quantity: int = Field(..., ge=0)
    variant_id: int | None = Field(None, gt=0)


class MergeIn(BaseModel):
    session_id: str = Field(..., min_length=1)
    user_id: int = Field(..., gt=0)


class CartLine(BaseModel):
    product_id: int
    variant_id: int | None = None
    quantity: int
    price: int
    added_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @property
    def line_total(self) -> int:
        return self.quantity * self.price


class SessionCart(BaseModel):
    """Dokument JSON trzymany pod kluczem cart:session:{session_id}."""

    session_id: str
    items: List[CartLine] = []
    created_at: datetime
    updated_at: datetime


class CartOut(BaseModel):
    """Snapshot koszyka z policzonymi sumami."""

    user_id: int | None = None
    session_id: str | None = None
    items: List[CartLine]
    item_count: int
    total_quantity: int
    subtotal: int


class MergeResult(BaseModel):
    user_id: int
    session_id: str
    merged: List[CartLine] = []
    skipped: List[CartLine] = []


# ---------------------------------------------------------------- orders

class Address(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    company: str | None = None
    address_line1: str = Field(..., min_length=1, max_length=255)
    address_line2: str | None = None
    city: str = Field(..., min_length=1, max_length=100)
    state: str | None = None
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field(..., min_length=2, max_length=2)
    phone: str | None = None


class OrderCreate(BaseModel):
    """Schema dla tworzenia zamowienia z koszyka (user albo sesja)."""

    user_id: int | None = Field(None, gt=0)
    session_id: str | None = None
    shipping_address: Address
    billing_address: Address | None = None
    shipping_method: str = "standard"
    notes: str | None = None


class OrderStatusUpdate(BaseModel):
    """
    Jedyne pola zamowienia, ktore mozna zmienic po utworzeniu.
    Kwoty, pozycje i adresy sa zamrozone.
    """

    status: OrderStatus
    comment: str = ""
    actor: str = "system"
    tracking_number: str | None = Field(None, max_length=100)
    shipping_carrier: str | None = Field(None, max_length=50)

    model_config = ConfigDict(extra="forbid")


class CancelIn(BaseModel):
    reason: str = Field(..., min_length=1)
    actor: str = "system"

    model_config = ConfigDict(extra="forbid")


class OrderItemOut(BaseModel):
    product_id: int
    variant_id: int | None
    sku: str
    name: str
    variant_title: str | None
    quantity: int
    unit_price: int
    line_total: int

    model_config = ConfigDict(from_attributes=True)


class StatusHistoryOut(BaseModel):
    status: str
    payment_status: str
    comment: str
    actor: str
    reference: str | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    """Schema dla zamowienia (response)."""

    id: int
    order_number: str
    user_id: int | None
    status: str
    payment_status: str
    subtotal: int
    tax: int
    shipping: int
    discount: int
    total: int
    currency: str
    shipping_method: str
    shipping_address: Address
    billing_address: Address
    notes: str | None
    tracking_number: str | None
    shipping_carrier: str | None
    items: List[OrderItemOut]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------- payments

class PaymentOut(BaseModel):
    id: int
    order_id: int
    provider_reference: str | None
    gateway_payment_id: str | None
    amount: int
    currency: str
    status: str
    failure_reason: str | None
    failure_code: str | None
    refund_reference: str | None
    refunded_amount: int | None
    processed_at: datetime | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentIntentOut(BaseModel):
    """To, czego frontend potrzebuje do otwarcia checkoutu bramki."""

    payment_id: int
    order_id: int
    order_number: str
    gateway_order_id: str
    amount: int
    currency: str
    receipt: str
    public_key: str


class VerifyIn(BaseModel):
    gateway_order_id: str = Field(..., min_length=1)
    gateway_payment_id: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1)


class FailureIn(BaseModel):
    reason: str = Field(..., min_length=1)
    code: str = ""


class RefundIn(BaseModel):
    gateway_payment_id: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)
    reason: str = ""


# ---------------------------------------------------------------- gateway payloads

class GatewayIntent(BaseModel):
    id: str
    amount: int
    currency: str
    receipt: str | None = None
    status: str | None = None
    notes: Dict[str, Any] | List[Any] | None = None


class GatewayPayment(BaseModel):
    id: str
    order_id: str | None = None
    amount: int
    currency: str
    status: str
    method: str | None = None


class GatewayRefund(BaseModel):
    id: str
    payment_id: str
    amount: int
    currency: str | None = None
    status: str | None = None
