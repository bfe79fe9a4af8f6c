from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship

from ordercore.data.database import Base
from ordercore.domain.enums import PaymentStatus


def _now():
    return datetime.now(timezone.utc)


class PaymentModel(Base):
    """Jedna proba platnosci; wszystkie proby zamowienia to log retry."""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    provider_reference = Column(String(255), nullable=True, index=True)  # gateway order id
    gateway_payment_id = Column(String(255), nullable=True, index=True)

    amount = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(32), nullable=False, default=PaymentStatus.PROCESSING.value)

    failure_reason = Column(Text, nullable=True)
    failure_code = Column(String(100), nullable=True)
    gateway_response = Column(Text, nullable=True)

    refund_reference = Column(String(255), nullable=True)
    refunded_amount = Column(BigInteger, nullable=True)

    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    order = relationship("OrderModel", back_populates="payments")

    __table_args__ = (
        # najwyzej jedna otwarta proba na zamowienie
        Index(
            "u_payments_one_processing",
            "order_id",
            unique=True,
            postgresql_where=text("status = 'processing'"),
            sqlite_where=text("status = 'processing'"),
        ),
    )
