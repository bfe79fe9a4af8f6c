from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, UniqueConstraint

from ordercore.data.database import Base


def _now():
    return datetime.now(timezone.utc)


class CartItemModel(Base):
    """Trwaly koszyk zalogowanego usera, jedna linia na (user, produkt, wariant)."""

    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    product_id = Column(Integer, nullable=False)
    variant_id = Column(Integer, nullable=True)

    quantity = Column(Integer, nullable=False)
    price = Column(BigInteger, nullable=False)  # minor units, cena z chwili dodania

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "product_id",
            "variant_id",
            name="u_cart_user_product_variant",
            postgresql_nulls_not_distinct=True,
        ),
    )
