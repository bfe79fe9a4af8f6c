from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, event
from sqlalchemy.orm import relationship

from ordercore.data.database import Base
from ordercore.domain.errors import StorageError


class OrderStatusHistoryModel(Base):
    """Ledger przejsc statusu - append only."""

    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(String(32), nullable=False)
    payment_status = Column(String(32), nullable=False)
    comment = Column(Text, nullable=False, default="")
    actor = Column(String(100), nullable=False)
    reference = Column(String(255), nullable=True, index=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    order = relationship("OrderModel", back_populates="status_history")


@event.listens_for(OrderStatusHistoryModel, "before_update")
def _reject_update(mapper, connection, target):
    raise StorageError(f"Ledger entry {target.id} is append-only")


@event.listens_for(OrderStatusHistoryModel, "before_delete")
def _reject_delete(mapper, connection, target):
    raise StorageError(f"Ledger entry {target.id} is append-only")
