# ordercore/repos/order_repo.py
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from ordercore.data.models.order import OrderModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.get(OrderModel, order_id)

    def get_for_update(self, order_id: int) -> OrderModel | None:
        # SELECT ... FOR UPDATE - blokada wiersza do konca transakcji
        return self.db.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_by_number(self, order_number: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(OrderModel.order_number == order_number)
        ).scalar_one_or_none()

    def list_for_user(self, user_id: int, offset: int, limit: int) -> List[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .where(OrderModel.user_id == user_id)
                .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
                .offset(offset)
                .limit(limit)
            ).scalars()
        )
