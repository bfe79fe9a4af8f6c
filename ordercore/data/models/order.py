from datetime import datetime, timezone

from sqlalchemy import JSON, BigInteger, Column, DateTime, Integer, String, Text, event, inspect
from sqlalchemy.orm import relationship

from ordercore.data.database import Base
from ordercore.domain.enums import OrderStatus, PaymentStatus
from ordercore.domain.errors import StorageError

FROZEN_AMOUNTS = ("subtotal", "tax", "shipping", "discount", "total")


def _now():
    return datetime.now(timezone.utc)


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    # ORD-YYYYMMDD-NNNNN, nadawany po flush (potrzebne id)
    order_number = Column(String(50), unique=True, nullable=True)
    user_id = Column(Integer, nullable=True, index=True)  # None = guest checkout

    status = Column(String(32), nullable=False, default=OrderStatus.PENDING.value)
    payment_status = Column(String(32), nullable=False, default=PaymentStatus.PENDING.value)

    subtotal = Column(BigInteger, nullable=False)
    tax = Column(BigInteger, nullable=False, default=0)
    shipping = Column(BigInteger, nullable=False, default=0)
    discount = Column(BigInteger, nullable=False, default=0)
    total = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False)

    shipping_method = Column(String(50), nullable=False)
    shipping_address = Column(JSON, nullable=False)
    billing_address = Column(JSON, nullable=False)
    notes = Column(Text, nullable=True)

    tracking_number = Column(String(100), nullable=True)
    shipping_carrier = Column(String(50), nullable=True)

    processed_at = Column(DateTime(timezone=True), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.id",
    )
    status_history = relationship(
        "OrderStatusHistoryModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistoryModel.id",
    )
    payments = relationship(
        "PaymentModel",
        back_populates="order",
        order_by="PaymentModel.id",
    )


@event.listens_for(OrderModel, "before_update")
def _guard_frozen_amounts(mapper, connection, target):
    state = inspect(target)
    for name in FROZEN_AMOUNTS:
        if state.attrs[name].history.has_changes():
            raise StorageError(f"Order {target.id}: '{name}' is frozen at creation")
