# ordercore/repos/payment_repo.py
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from ordercore.data.models.payment import PaymentModel
from ordercore.domain.enums import PaymentStatus


class PaymentRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_payment(self, payment: PaymentModel) -> PaymentModel:
        self.db.add(payment)
        self.db.flush()
        return payment

    def get_payment(self, payment_id: int) -> PaymentModel | None:
        return self.db.get(PaymentModel, payment_id)

    def list_for_order(self, order_id: int) -> List[PaymentModel]:
        """Log prob platnosci, najnowsze najpierw."""
        return list(
            self.db.execute(
                select(PaymentModel)
                .where(PaymentModel.order_id == order_id)
                .order_by(PaymentModel.id.desc())
            ).scalars()
        )

    def get_by_reference(self, order_id: int, provider_reference: str) -> PaymentModel | None:
        return self.db.execute(
            select(PaymentModel).where(
                PaymentModel.order_id == order_id,
                PaymentModel.provider_reference == provider_reference,
            )
        ).scalar_one_or_none()

    def get_by_gateway_payment_id(self, gateway_payment_id: str) -> PaymentModel | None:
        return self.db.execute(
            select(PaymentModel).where(PaymentModel.gateway_payment_id == gateway_payment_id)
        ).scalar_one_or_none()

    def get_processing(self, order_id: int) -> PaymentModel | None:
        return self.db.execute(
            select(PaymentModel).where(
                PaymentModel.order_id == order_id,
                PaymentModel.status == PaymentStatus.PROCESSING.value,
            )
        ).scalar_one_or_none()
