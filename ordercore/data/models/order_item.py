from sqlalchemy import BigInteger, Column, ForeignKey, Integer, String, event
from sqlalchemy.orm import relationship

from ordercore.data.database import Base
from ordercore.domain.errors import StorageError


class OrderItemModel(Base):
    """Snapshot linii koszyka z chwili zlozenia zamowienia - tylko insert."""

    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False)
    variant_id = Column(Integer, nullable=True)

    sku = Column(String(100), nullable=False)
    name = Column(String(255), nullable=False)
    variant_title = Column(String(255), nullable=True)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(BigInteger, nullable=False)
    line_total = Column(BigInteger, nullable=False)

    order = relationship("OrderModel", back_populates="items")


@event.listens_for(OrderItemModel, "before_update")
def _reject_update(mapper, connection, target):
    raise StorageError(f"Order item {target.id} is immutable")


@event.listens_for(OrderItemModel, "before_delete")
def _reject_delete(mapper, connection, target):
    raise StorageError(f"Order item {target.id} is immutable")
