#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from ordercore.data.models.cart_item import CartItemModel
from ordercore.data.models.order import OrderModel
from ordercore.data.models.order_item import OrderItemModel
from ordercore.data.models.payment import PaymentModel
from ordercore.data.models.status_history import OrderStatusHistoryModel

__all__ = [
    "CartItemModel",
    "OrderModel",
    "OrderItemModel",
    "PaymentModel",
    "OrderStatusHistoryModel",
]
