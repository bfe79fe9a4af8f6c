# ordercore/services/payment_service.py
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, List, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ordercore.data.database import transaction
from ordercore.data.models.payment import PaymentModel
from ordercore.domain.enums import NotificationEvent, OrderStatus, PaymentStatus
from ordercore.domain.errors import (
    AlreadyPaid,
    AmountMismatch,
    GatewayError,
    InvalidStateTransition,
    OrderCoreError,
    OrderNotFound,
    PaymentInProgress,
    PaymentNotFound,
    SignatureMismatch,
    ValidationError,
)
from ordercore.domain.schemas import OrderOut, PaymentIntentOut, PaymentOut
from ordercore.domain.state_machine import (
    OrderStateMachine,
    can_accept_payment,
    can_be_refunded,
    utcnow,
)
from ordercore.repos.ledger_repo import SYSTEM_ACTOR, StatusLedger
from ordercore.repos.order_repo import OrderRepo
from ordercore.repos.payment_repo import PaymentRepo
from ordercore.services.gateway_client import GatewayClient
from ordercore.services.lock_service import LockService
from ordercore.services.notification_service import NotificationService
from ordercore.utils.settings import PAYMENT_LOCK_TTL_SECONDS, PAYMENT_TIMEOUT_SECONDS
from ordercore.utils.logging import get_logger

logger = get_logger(__name__)

# statusy platnosci w bramce, przy ktorych pieniadze sa zablokowane albo pobrane
SETTLED_GATEWAY_STATUSES = frozenset({"captured", "authorized"})


class PaymentService:
    """
    Orkiestracja platnosci: lock w redis -> transakcja w bazie -> bramka -> transakcja.

    Wywolania bramki NIGDY nie sa wewnatrz transakcji bazy - blokada wiersza
    zamowienia nie moze czekac na siec. Serializacje prob na jednym zamowieniu
    zapewnia lock order:{id}:payment:lock plus czesciowy unique index
    (jedna proba processing na zamowienie).
    """

    def __init__(
        self,
        db: Session,
        gateway: GatewayClient,
        lock_service: LockService,
        notifier: NotificationService,
        payment_timeout_seconds: int = PAYMENT_TIMEOUT_SECONDS,
        lock_ttl: int = PAYMENT_LOCK_TTL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.orders = OrderRepo(db)
        self.payments = PaymentRepo(db)
        self.ledger = StatusLedger(db)
        self.state_machine = OrderStateMachine(self.ledger, payment_timeout_seconds, clock)
        self.gateway = gateway
        self.lock_service = lock_service
        self.notifier = notifier
        self.lock_ttl = lock_ttl

    @contextmanager
    def _order_lock(self, order_id: int):
        token = self.lock_service.new_token()
        if not self.lock_service.acquire_order_lock(order_id, token, self.lock_ttl):
            logger.warning(f"Order {order_id} is locked by another payment operation")
            raise PaymentInProgress(f"Payment operation already in progress for order {order_id}")
        try:
            yield
        finally:
            self.lock_service.release_order_lock(order_id, token)

    def _locked_order(self, order_id: int):
        order = self.orders.get_for_update(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found")
        return order

    # ------------------------------------------------------------ open intent

    def open_payment_intent(self, order_id: int, actor: str = SYSTEM_ACTOR) -> PaymentIntentOut:
        """
        Use Case: Otwarcie proby platnosci.

        1. Lock zamowienia w redis (drugi rownolegly request -> PaymentInProgress)
        2. Tx1: walidacja stanu, wygaszenie starej proby, rezerwacja nowej (placeholder)
        3. Bramka: utworzenie intentu (poza transakcja)
        4. Tx2: podpiecie id bramki, zamowienie -> payment_processing
        Blad bramki zamyka placeholder jako failed, zamowienie bez zmian.
        """
        with self._order_lock(order_id):
            order, payment, attempt = self._reserve_attempt(order_id)

            try:
                intent = self.gateway.open_intent(order, attempt)
                if intent.amount != order.total:
                    raise AmountMismatch(order.total, intent.amount, intent.currency)
            except (GatewayError, AmountMismatch) as e:
                logger.error(f"Opening payment intent for order {order_id} failed: {e}")
                with transaction(self.db):
                    code = str(e.status_code) if isinstance(e, GatewayError) and e.status_code else None
                    self.state_machine.abandon_attempt(payment, "gateway_error", code)
                raise

            with transaction(self.db):
                order = self._locked_order(order_id)
                self.db.refresh(payment)
                if payment.status != PaymentStatus.PROCESSING.value or not can_accept_payment(order):
                    raise InvalidStateTransition(
                        f"Order {order_id} changed while opening payment (status: {order.status})"
                    )
                payment.gateway_response = intent.model_dump_json()
                self.state_machine.start_payment(order, payment, intent.id, attempt, actor)

        logger.info(f"Payment intent {intent.id} opened for order {order_id} (attempt {attempt})")
        return PaymentIntentOut(
            payment_id=payment.id,
            order_id=order.id,
            order_number=order.order_number,
            gateway_order_id=intent.id,
            amount=intent.amount,
            currency=intent.currency,
            receipt=intent.receipt or order.order_number,
            public_key=self.gateway.public_key,
        )

    def _reserve_attempt(self, order_id: int) -> Tuple:
        with transaction(self.db):
            order = self._locked_order(order_id)
            payments = self.payments.list_for_order(order_id)

            if order.payment_status == PaymentStatus.PAID.value or any(
                p.status == PaymentStatus.PAID.value for p in payments
            ):
                raise AlreadyPaid(f"Order {order_id} is already paid")
            if not can_accept_payment(order):
                raise InvalidStateTransition(
                    f"Order {order_id} cannot accept payment in current status: {order.status}"
                )

            for existing in payments:
                if existing.status != PaymentStatus.PROCESSING.value:
                    continue
                if not self.state_machine.is_expired(existing):
                    raise PaymentInProgress(f"Payment {existing.id} for order {order_id} is still in progress")
                logger.info(f"Expiring stale payment attempt {existing.id} for order {order_id}")
                self.state_machine.expire_attempt(order, existing)
            self.db.flush()

            payment = PaymentModel(
                order_id=order.id,
                amount=order.total,
                currency=order.currency,
                status=PaymentStatus.PROCESSING.value,
            )
            try:
                self.payments.add_payment(payment)
            except IntegrityError as e:
                # partial unique index - ktos inny zarezerwowal juz platnosc
                raise PaymentInProgress(f"Payment for order {order_id} is already in progress") from e

        return order, payment, len(payments) + 1

    # ------------------------------------------------------------ verify

    def verify_payment(
        self,
        order_id: int,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
        actor: str = SYSTEM_ACTOR,
    ) -> OrderOut:
        """
        Use Case: Potwierdzenie platnosci po powrocie z bramki.

        Podpis HMAC -> pobranie platnosci z bramki -> porownanie kwoty
        i waluty z zamrozonym totalem -> paid/confirmed w jednej transakcji.
        Powtorzone potwierdzenie tej samej platnosci nic nie zmienia.
        """
        if not self.gateway.verify_signature(gateway_order_id, gateway_payment_id, signature):
            logger.warning(f"Invalid signature for order {order_id}, gateway order {gateway_order_id}")
            raise SignatureMismatch("Invalid payment signature")

        remote = self.gateway.fetch_payment(gateway_payment_id)
        if remote.order_id is not None and remote.order_id != gateway_order_id:
            logger.warning(
                f"Payment {gateway_payment_id} belongs to {remote.order_id}, not {gateway_order_id}"
            )
            raise SignatureMismatch("Payment does not belong to this gateway order")

        replay = False
        with transaction(self.db):
            order = self._locked_order(order_id)
            payment = self.payments.get_by_reference(order_id, gateway_order_id)
            if payment is None:
                raise InvalidStateTransition(
                    f"No payment attempt {gateway_order_id} for order {order_id}"
                )

            if (
                payment.status == PaymentStatus.PAID.value
                and payment.gateway_payment_id == gateway_payment_id
                and self.ledger.was_applied(order.id, OrderStatus.CONFIRMED.value, gateway_payment_id)
            ):
                replay = True
            else:
                if remote.status not in SETTLED_GATEWAY_STATUSES:
                    logger.warning(
                        f"Payment {gateway_payment_id} for order {order_id} has gateway status {remote.status}"
                    )
                    raise InvalidStateTransition(
                        f"Gateway payment {gateway_payment_id} is not settled (status: {remote.status})"
                    )
                if remote.amount != order.total or remote.currency.upper() != order.currency.upper():
                    logger.warning(
                        f"fraud-suspect: order {order_id} total {order.total} {order.currency}, "
                        f"gateway reports {remote.amount} {remote.currency} for {gateway_payment_id}"
                    )
                    raise AmountMismatch(order.total, remote.amount, remote.currency)
                if payment.status != PaymentStatus.PROCESSING.value:
                    raise InvalidStateTransition(
                        f"Payment {payment.id} is not in progress (status: {payment.status})"
                    )
                self.state_machine.confirm_payment(
                    order, payment, gateway_payment_id, remote.model_dump_json(), actor
                )

        if replay:
            logger.info(f"Payment {gateway_payment_id} for order {order_id} already confirmed")
        else:
            logger.info(f"Payment {gateway_payment_id} confirmed for order {order_id}")
            self.notifier.notify(NotificationEvent.PAYMENT_SUCCEEDED, order_id)
        return OrderOut.model_validate(order)

    # ------------------------------------------------------------ failure

    def report_failure(self, order_id: int, reason: str, code: str = "", actor: str = SYSTEM_ACTOR) -> OrderOut:
        with transaction(self.db):
            order = self._locked_order(order_id)
            payment = self.payments.get_processing(order_id)
            if payment is None:
                raise InvalidStateTransition(f"Order {order_id} has no payment in progress")
            self.state_machine.fail_payment(order, payment, reason, code, actor)

        logger.info(f"Payment {payment.id} for order {order_id} failed: {reason}")
        self.notifier.notify(NotificationEvent.PAYMENT_FAILED, order_id)
        return OrderOut.model_validate(order)

    # ------------------------------------------------------------ refund

    def refund(self, gateway_payment_id: str, amount: int, reason: str = "", actor: str = SYSTEM_ACTOR) -> PaymentOut:
        payment = self.payments.get_by_gateway_payment_id(gateway_payment_id)
        if payment is None:
            raise PaymentNotFound(f"Payment {gateway_payment_id} not found")
        if not 0 < amount <= payment.amount:
            raise ValidationError(f"Refund amount must be between 1 and {payment.amount}")

        order_id = payment.order_id
        with self._order_lock(order_id):
            with transaction(self.db):
                order = self._locked_order(order_id)
                if not can_be_refunded(order) or payment.status != PaymentStatus.PAID.value:
                    raise InvalidStateTransition(
                        f"Order {order_id} cannot be refunded "
                        f"(status: {order.status}, payment status: {order.payment_status})"
                    )

            refund = self.gateway.create_refund(gateway_payment_id, amount, reason)

            try:
                with transaction(self.db):
                    order = self._locked_order(order_id)
                    self.db.refresh(payment)
                    self.state_machine.refund(order, payment, refund, reason, actor)
            except OrderCoreError:
                logger.error(
                    f"Refund {refund.id} created at gateway but not recorded for order {order_id}"
                )
                raise

        logger.info(f"Refund {refund.id} of {refund.amount} recorded for payment {gateway_payment_id}")
        self.notifier.notify(NotificationEvent.ORDER_STATUS_CHANGED, order_id)
        return PaymentOut.model_validate(payment)

    # ------------------------------------------------------------ query

    def get_payments(self, order_id: int) -> List[PaymentOut]:
        if self.orders.get_order(order_id) is None:
            raise OrderNotFound(f"Order {order_id} not found")
        return [PaymentOut.model_validate(p) for p in self.payments.list_for_order(order_id)]
