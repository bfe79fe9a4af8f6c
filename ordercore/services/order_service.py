# ordercore/services/order_service.py
from datetime import datetime, timezone
from typing import Dict, List

from sqlalchemy.orm import Session

from ordercore.data.database import transaction
from ordercore.data.models.order import OrderModel
from ordercore.data.models.order_item import OrderItemModel
from ordercore.domain.enums import NotificationEvent, OrderStatus, PaymentStatus
from ordercore.domain.errors import OrderCoreError, OrderNotFound, ValidationError
from ordercore.domain.schemas import (
    Address,
    OrderOut,
    OrderStatusUpdate,
    OwnerKey,
    StatusHistoryOut,
)
from ordercore.domain.state_machine import OrderStateMachine
from ordercore.repos.ledger_repo import SYSTEM_ACTOR, StatusLedger
from ordercore.repos.order_repo import OrderRepo
from ordercore.repos.payment_repo import PaymentRepo
from ordercore.services.cart_service import CartService, resolve_stock
from ordercore.services.notification_service import NotificationService
from ordercore.services.product_client import ProductClient
from ordercore.utils.settings import DEFAULT_CURRENCY, SHIPPING_RATES
from ordercore.utils.logging import get_logger

logger = get_logger(__name__)


def generate_order_number(created_at: datetime, order_id: int) -> str:
    # Format: ORD-YYYYMMDD-XXXXX
    return f"ORD-{created_at:%Y%m%d}-{order_id:05d}"


class OrderService:
    """
    Serwis odpowiedzialny za domene zamowien.
    Separacja od CartService: zamowienie to zamrozona kopia koszyka,
    po utworzeniu ceny i kwoty sie nie zmieniaja.
    """

    def __init__(
        self,
        db: Session,
        cart_service: CartService,
        product_client: ProductClient,
        notifier: NotificationService,
        currency: str = DEFAULT_CURRENCY,
        shipping_rates: Dict[str, int] | None = None,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.payments = PaymentRepo(db)
        self.ledger = StatusLedger(db)
        self.state_machine = OrderStateMachine(self.ledger)
        self.cart_service = cart_service
        self.product_client = product_client
        self.notifier = notifier
        self.currency = currency
        self.shipping_rates = shipping_rates if shipping_rates is not None else SHIPPING_RATES

    def create_order(
        self,
        owner: OwnerKey,
        shipping_address: Address,
        billing_address: Address | None,
        shipping_method: str,
        notes: str | None = None,
    ) -> OrderOut:
        """
        Use Case: Tworzenie zamowienia z koszyka.

        1. Koszyk nie moze byc pusty
        2. Kazda linia sprawdzona ponownie z katalogiem (aktywnosc, magazyn)
        3. Ceny zamrozone po aktualnym cenniku, total policzony raz
        4. Zamowienie + pozycje + pierwszy wpis ledgera w jednej transakcji
        5. Czyszczenie koszyka i powiadomienie dopiero po commit
        """
        shipping = self.shipping_rates.get(shipping_method)
        if shipping is None:
            raise ValidationError(f"Unknown shipping method: {shipping_method}")

        cart = self.cart_service.get_cart(owner)
        if not cart.items:
            raise ValidationError("Cart is empty")

        priced = []
        for line in cart.items:
            stock = resolve_stock(self.product_client, line.product_id, line.variant_id)
            stock.ensure(line.quantity)
            priced.append((line, stock))

        subtotal = sum(stock.price * line.quantity for line, stock in priced)
        # podatki i kupony poza zakresem - stale 0
        tax = 0
        discount = 0
        total = subtotal + tax + shipping - discount

        now = datetime.now(timezone.utc)
        with transaction(self.db):
            order = OrderModel(
                user_id=owner.user_id,
                status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                subtotal=subtotal,
                tax=tax,
                shipping=shipping,
                discount=discount,
                total=total,
                currency=self.currency,
                shipping_method=shipping_method,
                shipping_address=shipping_address.model_dump(),
                billing_address=(billing_address or shipping_address).model_dump(),
                notes=notes,
                created_at=now,
            )
            self.repo.add_order(order)
            order.order_number = generate_order_number(now, order.id)

            for line, stock in priced:
                order.items.append(
                    OrderItemModel(
                        product_id=line.product_id,
                        variant_id=line.variant_id,
                        sku=(stock.variant.sku if stock.variant and stock.variant.sku else stock.product.sku),
                        name=stock.product.name,
                        variant_title=stock.variant.name if stock.variant else None,
                        quantity=line.quantity,
                        unit_price=stock.price,
                        line_total=stock.price * line.quantity,
                    )
                )

            self.state_machine.open_order(order, str(owner))

        logger.info(f"Order {order.order_number} (id {order.id}) created from cart {owner}, total {total}")

        try:
            self.cart_service.clear(owner)
        except OrderCoreError as e:
            logger.warning(f"Failed to clear cart {owner} after order {order.id}: {e}")

        self.notifier.notify(NotificationEvent.ORDER_STATUS_CHANGED, order.id)
        return OrderOut.model_validate(order)

    def _load(self, order_id: int) -> OrderModel:
        order = self.repo.get_order(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found")
        return order

    def get_order(self, order_id: int) -> OrderOut:
        """
        Use Case: Pobranie zamowienia (Query).
        """
        return OrderOut.model_validate(self._load(order_id))

    def get_order_by_number(self, order_number: str) -> OrderOut:
        order = self.repo.get_by_number(order_number)
        if not order:
            raise OrderNotFound(f"Order {order_number} not found")
        return OrderOut.model_validate(order)

    def list_user_orders(self, user_id: int, page: int = 1, limit: int = 20) -> List[OrderOut]:
        if page < 1 or not 1 <= limit <= 100:
            raise ValidationError("page must be >= 1 and limit between 1 and 100")
        orders = self.repo.list_for_user(user_id, offset=(page - 1) * limit, limit=limit)
        return [OrderOut.model_validate(o) for o in orders]

    def get_history(self, order_id: int) -> List[StatusHistoryOut]:
        self._load(order_id)
        return [StatusHistoryOut.model_validate(e) for e in self.ledger.history(order_id)]

    def cancel_order(self, order_id: int, reason: str, actor: str = SYSTEM_ACTOR) -> OrderOut:
        with transaction(self.db):
            order = self.repo.get_for_update(order_id)
            if not order:
                raise OrderNotFound(f"Order {order_id} not found")
            self.state_machine.cancel(order, self.payments.list_for_order(order_id), reason, actor)

        logger.info(f"Order {order_id} cancelled by {actor}: {reason}")
        self.notifier.notify(NotificationEvent.ORDER_STATUS_CHANGED, order_id)
        return OrderOut.model_validate(order)

    def advance_order(self, order_id: int, update: OrderStatusUpdate) -> OrderOut:
        with transaction(self.db):
            order = self.repo.get_for_update(order_id)
            if not order:
                raise OrderNotFound(f"Order {order_id} not found")
            previous = order.status
            self.state_machine.advance(order, update)

        logger.info(f"Order {order_id} moved from {previous} to {order.status} by {update.actor}")
        self.notifier.notify(NotificationEvent.ORDER_STATUS_CHANGED, order_id)
        return OrderOut.model_validate(order)
