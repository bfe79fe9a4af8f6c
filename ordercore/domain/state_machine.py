# ordercore/domain/state_machine.py
"""
Reguly przejsc OrderStatus / PaymentStatus.

OrderStateMachine to jedyne miejsce, ktore zmienia pola statusu zamowienia
i platnosci. Kazda zmiana dopisuje wpis do ledgera w transakcji
wywolujacego - commit/rollback robi serwis (data.database.transaction).
"""
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, FrozenSet, Iterable

from ordercore.data.models.order import OrderModel
from ordercore.data.models.payment import PaymentModel
from ordercore.domain.enums import OrderStatus, PaymentStatus
from ordercore.domain.errors import InvalidStateTransition
from ordercore.domain.schemas import GatewayRefund, OrderStatusUpdate
from ordercore.repos.ledger_repo import SYSTEM_ACTOR, StatusLedger
from ordercore.utils.settings import PAYMENT_TIMEOUT_SECONDS

ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAYMENT_PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PAYMENT_PROCESSING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.COMPLETED, OrderStatus.REFUNDED}),
    OrderStatus.COMPLETED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PROCESSING, PaymentStatus.CANCELLED}),
    PaymentStatus.PROCESSING: frozenset(
        {PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.CANCELLED}
    ),
    # failed nie jest terminalny - retry
    PaymentStatus.FAILED: frozenset({PaymentStatus.PROCESSING, PaymentStatus.CANCELLED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.CANCELLED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}

CANCELLABLE = frozenset(
    {OrderStatus.PENDING, OrderStatus.PAYMENT_PROCESSING, OrderStatus.CONFIRMED}
)
REFUNDABLE = frozenset({OrderStatus.DELIVERED, OrderStatus.COMPLETED})

# tylko przez cancel()/refund(), nie przez advance()
_NOT_ADVANCEABLE = frozenset({OrderStatus.CANCELLED, OrderStatus.REFUNDED})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # sqlite zwraca naive datetime
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS[current]


def can_accept_payment(order: OrderModel) -> bool:
    status = OrderStatus(order.status)
    if status in (OrderStatus.PENDING, OrderStatus.PAYMENT_PROCESSING):
        return True
    # potwierdzone zamowienie po nieudanej platnosci - retry
    return status == OrderStatus.CONFIRMED and order.payment_status == PaymentStatus.FAILED.value


def can_be_cancelled(order: OrderModel) -> bool:
    return OrderStatus(order.status) in CANCELLABLE and order.payment_status not in (
        PaymentStatus.PAID.value,
        PaymentStatus.REFUNDED.value,
    )


def can_be_refunded(order: OrderModel) -> bool:
    return (
        order.payment_status == PaymentStatus.PAID.value
        and OrderStatus(order.status) in REFUNDABLE
    )


class OrderStateMachine:
    def __init__(
        self,
        ledger: StatusLedger,
        payment_timeout_seconds: int = PAYMENT_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.ledger = ledger
        self.payment_timeout = timedelta(seconds=payment_timeout_seconds)
        self.clock = clock

    # ------------------------------------------------------------ primitives

    def _move_order(self, order: OrderModel, target: OrderStatus) -> None:
        current = OrderStatus(order.status)
        if current == target:
            return
        if not can_transition(current, target):
            raise InvalidStateTransition(
                f"Order {order.id}: invalid status transition from {current.value} to {target.value}"
            )
        order.status = target.value

    @staticmethod
    def _move_payment(owner, target: PaymentStatus, what: str) -> None:
        # owner: OrderModel (os payment_status) albo PaymentModel (status)
        attr = "payment_status" if isinstance(owner, OrderModel) else "status"
        current = PaymentStatus(getattr(owner, attr))
        if current == target:
            return
        if target not in PAYMENT_TRANSITIONS[current]:
            raise InvalidStateTransition(
                f"{what} {owner.id}: invalid payment transition from {current.value} to {target.value}"
            )
        setattr(owner, attr, target.value)

    # ------------------------------------------------------------ lifecycle

    def open_order(self, order: OrderModel, actor: str) -> None:
        order.status = OrderStatus.PENDING.value
        order.payment_status = PaymentStatus.PENDING.value
        self.ledger.append(order, "Order created", actor)

    def is_expired(self, payment: PaymentModel) -> bool:
        return self.clock() - as_utc(payment.created_at) > self.payment_timeout

    def expire_attempt(self, order: OrderModel, payment: PaymentModel) -> None:
        self._move_payment(payment, PaymentStatus.FAILED, "Payment")
        payment.failure_reason = "timeout"
        if order.payment_status == PaymentStatus.PROCESSING.value:
            self._move_payment(order, PaymentStatus.FAILED, "Order")
        self.ledger.append(
            order,
            f"Payment attempt {payment.id} expired after timeout",
            reference=payment.provider_reference,
        )

    def abandon_attempt(self, payment: PaymentModel, reason: str, code: str | None = None) -> None:
        # rezerwacja proby, ktorej bramka nie utworzyla - zamowienie bez zmian
        self._move_payment(payment, PaymentStatus.FAILED, "Payment")
        payment.failure_reason = reason
        payment.failure_code = code

    def start_payment(
        self,
        order: OrderModel,
        payment: PaymentModel,
        gateway_order_id: str,
        attempt: int,
        actor: str = SYSTEM_ACTOR,
    ) -> None:
        if OrderStatus(order.status) == OrderStatus.PENDING:
            self._move_order(order, OrderStatus.PAYMENT_PROCESSING)
        self._move_payment(order, PaymentStatus.PROCESSING, "Order")
        payment.provider_reference = gateway_order_id
        self.ledger.append(
            order,
            f"Payment intent opened (attempt {attempt})",
            actor,
            reference=gateway_order_id,
        )

    def confirm_payment(
        self,
        order: OrderModel,
        payment: PaymentModel,
        gateway_payment_id: str,
        gateway_response: str | None = None,
        actor: str = SYSTEM_ACTOR,
    ) -> None:
        if order.payment_status != PaymentStatus.PROCESSING.value:
            raise InvalidStateTransition(
                f"Order {order.id} has no payment in progress (payment status: {order.payment_status})"
            )
        self._move_payment(payment, PaymentStatus.PAID, "Payment")
        payment.gateway_payment_id = gateway_payment_id
        payment.gateway_response = gateway_response
        payment.processed_at = self.clock()

        self._move_order(order, OrderStatus.CONFIRMED)
        self._move_payment(order, PaymentStatus.PAID, "Order")
        self.ledger.append(
            order,
            f"Payment confirmed. Payment ID: {gateway_payment_id}",
            actor,
            reference=gateway_payment_id,
        )

    def fail_payment(
        self,
        order: OrderModel,
        payment: PaymentModel,
        reason: str,
        code: str = "",
        actor: str = SYSTEM_ACTOR,
    ) -> None:
        self._move_payment(payment, PaymentStatus.FAILED, "Payment")
        payment.failure_reason = reason
        payment.failure_code = code or None
        payment.processed_at = self.clock()

        # zostaje confirmed (nie wraca do pending), zeby zamowienie dalo sie oplacic ponownie
        self._move_order(order, OrderStatus.CONFIRMED)
        self._move_payment(order, PaymentStatus.FAILED, "Order")
        comment = f"Payment failed: {reason}" + (f" ({code})" if code else "")
        self.ledger.append(order, comment, actor, reference=payment.provider_reference)

    def cancel(
        self,
        order: OrderModel,
        payments: Iterable[PaymentModel],
        reason: str,
        actor: str = SYSTEM_ACTOR,
    ) -> None:
        payments = list(payments)
        if any(p.status in (PaymentStatus.PAID.value, PaymentStatus.REFUNDED.value) for p in payments):
            raise InvalidStateTransition(f"Order {order.id} has a completed payment and cannot be cancelled")
        if not can_be_cancelled(order):
            raise InvalidStateTransition(
                f"Order {order.id} cannot be cancelled in current status: {order.status}"
            )

        for payment in payments:
            if payment.status == PaymentStatus.PROCESSING.value:
                self._move_payment(payment, PaymentStatus.CANCELLED, "Payment")
                payment.failure_reason = "order cancelled"

        self._move_order(order, OrderStatus.CANCELLED)
        self._move_payment(order, PaymentStatus.CANCELLED, "Order")
        self.ledger.append(order, f"Order cancelled: {reason}", actor)

    def advance(self, order: OrderModel, update: OrderStatusUpdate) -> None:
        target = OrderStatus(update.status)
        if target in _NOT_ADVANCEABLE:
            raise InvalidStateTransition(f"Status {target.value} is reachable only through cancel/refund")
        if target == OrderStatus.PROCESSING and order.payment_status != PaymentStatus.PAID.value:
            raise InvalidStateTransition(f"Order {order.id} is not paid (payment status: {order.payment_status})")
        if OrderStatus(order.status) == target:
            raise InvalidStateTransition(f"Order {order.id} is already {target.value}")

        self._move_order(order, target)

        now = self.clock()
        if target == OrderStatus.PROCESSING:
            order.processed_at = now
        elif target == OrderStatus.SHIPPED:
            order.shipped_at = now
        elif target == OrderStatus.DELIVERED:
            order.delivered_at = now

        if update.tracking_number is not None:
            order.tracking_number = update.tracking_number
        if update.shipping_carrier is not None:
            order.shipping_carrier = update.shipping_carrier

        self.ledger.append(order, update.comment or f"Status changed to {target.value}", update.actor)

    def refund(
        self,
        order: OrderModel,
        payment: PaymentModel,
        refund: GatewayRefund,
        reason: str,
        actor: str = SYSTEM_ACTOR,
    ) -> None:
        if not can_be_refunded(order):
            raise InvalidStateTransition(
                f"Order {order.id} cannot be refunded (status: {order.status}, payment status: {order.payment_status})"
            )
        self._move_payment(payment, PaymentStatus.REFUNDED, "Payment")
        payment.refund_reference = refund.id
        payment.refunded_amount = refund.amount

        self._move_order(order, OrderStatus.REFUNDED)
        self._move_payment(order, PaymentStatus.REFUNDED, "Order")
        comment = f"Payment refunded: {refund.amount}" + (f" ({reason})" if reason else "")
        self.ledger.append(order, comment, actor, reference=refund.id)
