# ordercore/repos/ledger_repo.py
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from ordercore.data.models.order import OrderModel
from ordercore.data.models.status_history import OrderStatusHistoryModel

SYSTEM_ACTOR = "system"


class StatusLedger:
    """
    Append-only historia przejsc statusu zamowienia.
    Sluzy do audytu i do wykrywania powtorzonych callbackow (reference).
    Nie robi commit - zapis idzie w transakcji wywolujacego.
    """

    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        order: OrderModel,
        comment: str,
        actor: str = SYSTEM_ACTOR,
        reference: str | None = None,
    ) -> OrderStatusHistoryModel:
        entry = OrderStatusHistoryModel(
            order_id=order.id,
            status=order.status,
            payment_status=order.payment_status,
            comment=comment,
            actor=actor,
            reference=reference,
        )
        self.db.add(entry)
        return entry

    def history(self, order_id: int) -> List[OrderStatusHistoryModel]:
        return list(
            self.db.execute(
                select(OrderStatusHistoryModel)
                .where(OrderStatusHistoryModel.order_id == order_id)
                .order_by(OrderStatusHistoryModel.id)
            ).scalars()
        )

    def was_applied(self, order_id: int, status: str, reference: str) -> bool:
        found = self.db.execute(
            select(OrderStatusHistoryModel.id)
            .where(
                OrderStatusHistoryModel.order_id == order_id,
                OrderStatusHistoryModel.status == status,
                OrderStatusHistoryModel.reference == reference,
            )
            .limit(1)
        ).scalar_one_or_none()
        return found is not None
