# ordercore/repos/cart_repo.py
from typing import List

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from ordercore.data.models.cart_item import CartItemModel


def _variant_clause(variant_id: int | None):
    # NULL = NULL w SQL to nie True, wiec osobno
    if variant_id is None:
        return CartItemModel.variant_id.is_(None)
    return CartItemModel.variant_id == variant_id


class CartRepo:
    """Trwaly koszyk usera. Bez commit - granice transakcji trzyma serwis."""

    def __init__(self, db: Session):
        self.db = db

    def get_items(self, user_id: int) -> List[CartItemModel]:
        return list(
            self.db.execute(
                select(CartItemModel)
                .where(CartItemModel.user_id == user_id)
                .order_by(CartItemModel.id)
            ).scalars()
        )

    def get_item(self, user_id: int, product_id: int, variant_id: int | None) -> CartItemModel | None:
        return self.db.execute(
            select(CartItemModel).where(
                CartItemModel.user_id == user_id,
                CartItemModel.product_id == product_id,
                _variant_clause(variant_id),
            )
        ).scalar_one_or_none()

    def add_item(self, item: CartItemModel) -> CartItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def increment(
        self,
        user_id: int,
        product_id: int,
        variant_id: int | None,
        quantity: int,
        price: int | None = None,
    ) -> int:
        """
        UPDATE ... SET quantity = quantity + :n - read-modify-write po stronie bazy,
        rownolegle add/merge nie gubia ilosci. Zwraca rowcount.
        """
        values = {"quantity": CartItemModel.quantity + quantity}
        if price is not None:
            values["price"] = price
        result = self.db.execute(
            update(CartItemModel)
            .where(
                CartItemModel.user_id == user_id,
                CartItemModel.product_id == product_id,
                _variant_clause(variant_id),
            )
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def set_quantity(
        self,
        user_id: int,
        product_id: int,
        variant_id: int | None,
        quantity: int,
        price: int,
    ) -> int:
        result = self.db.execute(
            update(CartItemModel)
            .where(
                CartItemModel.user_id == user_id,
                CartItemModel.product_id == product_id,
                _variant_clause(variant_id),
            )
            .values(quantity=quantity, price=price)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def delete_item(self, user_id: int, product_id: int, variant_id: int | None) -> int:
        result = self.db.execute(
            delete(CartItemModel)
            .where(
                CartItemModel.user_id == user_id,
                CartItemModel.product_id == product_id,
                _variant_clause(variant_id),
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def clear(self, user_id: int) -> int:
        result = self.db.execute(
            delete(CartItemModel)
            .where(CartItemModel.user_id == user_id)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount
