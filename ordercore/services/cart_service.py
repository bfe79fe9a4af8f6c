# ordercore/services/cart_service.py
from datetime import datetime, timezone
from typing import List

from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ordercore.data.database import transaction
from ordercore.data.models.cart_item import CartItemModel
from ordercore.domain.errors import (
    InsufficientInventory,
    ItemNotFound,
    ProductUnavailable,
    StorageError,
    ValidationError,
)
from ordercore.domain.schemas import (
    CartLine,
    CartOut,
    MergeResult,
    OwnerKey,
    ProductInfo,
    VariantInfo,
)
from ordercore.repos.cart_repo import CartRepo
from ordercore.repos.session_cart_repo import SessionCartRepo
from ordercore.services.product_client import ProductClient
from ordercore.utils.logging import get_logger

logger = get_logger(__name__)


class StockLevel(BaseModel):
    """Aktualny stan produktu/wariantu z katalogu."""

    product: ProductInfo
    variant: VariantInfo | None
    price: int
    available: int

    model_config = ConfigDict(frozen=True)

    def ensure(self, requested: int) -> None:
        if self.product.track_quantity and self.available < requested:
            raise InsufficientInventory(self.product.id, requested, self.available)


def resolve_stock(product_client: ProductClient, product_id: int, variant_id: int | None) -> StockLevel:
    product = product_client.fetch_product(product_id)
    if product is None or not product.active:
        raise ProductUnavailable(f"Product {product_id} not found or inactive")

    variant = None
    price = product.price
    available = product.available_quantity

    if variant_id is not None:
        variant = product_client.fetch_variant(variant_id)
        if variant is None or not variant.active or variant.product_id != product_id:
            raise ProductUnavailable(f"Variant {variant_id} of product {product_id} not found or inactive")
        available = variant.available_quantity
        if variant.price > 0:
            price = variant.price

    return StockLevel(product=product, variant=variant, price=price, available=available)


class CartService:
    """
    Koszyk per owner key:
    -user -> tabela cart_items (trwaly)
    -sesja -> redis cart:session:{id} z TTL 24h
    commands (add, set, remove, clear, merge) modyfikuja stan,
    query (get) tylko odczyt i nigdy nie failuje na braku koszyka
    """

    def __init__(
        self,
        db: Session,
        product_client: ProductClient,
        session_carts: SessionCartRepo,
    ):
        self.db = db
        self.repo = CartRepo(db)
        self.product_client = product_client
        self.session_carts = session_carts

    #query - odczyt
    def get_cart(self, owner: OwnerKey) -> CartOut:
        return self._snapshot(owner, self._lines(owner))

    def _lines(self, owner: OwnerKey) -> List[CartLine]:
        if owner.is_guest:
            return list(self.session_carts.load(owner.session_id).items)
        return [
            CartLine(
                product_id=i.product_id,
                variant_id=i.variant_id,
                quantity=i.quantity,
                price=i.price,
                added_at=i.created_at,
            )
            for i in self.repo.get_items(owner.user_id)
        ]

    @staticmethod
    def _snapshot(owner: OwnerKey, lines: List[CartLine]) -> CartOut:
        return CartOut(
            user_id=owner.user_id,
            session_id=owner.session_id,
            items=lines,
            item_count=len(lines),
            total_quantity=sum(line.quantity for line in lines),
            subtotal=sum(line.line_total for line in lines),
        )

    #commands
    def add_item(
        self,
        owner: OwnerKey,
        product_id: int,
        variant_id: int | None,
        quantity: int,
    ) -> CartOut:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")

        logger.info(f"Fetching product {product_id} (variant {variant_id}) for cart {owner}")
        stock = resolve_stock(self.product_client, product_id, variant_id)

        if owner.is_guest:
            self._add_to_session_cart(owner.session_id, product_id, variant_id, quantity, stock)
        else:
            self._add_to_user_cart(owner.user_id, product_id, variant_id, quantity, stock)

        logger.info(f"Added {quantity} x product {product_id} to cart {owner}")
        return self.get_cart(owner)

    def _write_line(self, write) -> None:
        """
        Zapis linii koszyka usera w transakcji. Gdy rownolegly request wstawil
        te sama linie (u_cart_user_product_variant), cala transakcja jest
        powtarzana raz - druga proba trafia juz w istniejacy wiersz.
        """
        try:
            with transaction(self.db):
                write()
        except StorageError as e:
            if not isinstance(e.__cause__, IntegrityError):
                raise
            logger.info(f"Cart line inserted concurrently, retrying: {e}")
            with transaction(self.db):
                write()

    def _add_to_user_cart(self, user_id, product_id, variant_id, quantity, stock: StockLevel):
        def write():
            existing = self.repo.get_item(user_id, product_id, variant_id)
            if existing:
                # inventory sprawdzany na sume, nie tylko na dokladana ilosc
                stock.ensure(existing.quantity + quantity)
                self.repo.increment(user_id, product_id, variant_id, quantity, price=stock.price)
            else:
                stock.ensure(quantity)
                self.repo.add_item(
                    CartItemModel(
                        user_id=user_id,
                        product_id=product_id,
                        variant_id=variant_id,
                        quantity=quantity,
                        price=stock.price,
                    )
                )

        self._write_line(write)

    def _add_to_session_cart(self, session_id, product_id, variant_id, quantity, stock: StockLevel):
        cart = self.session_carts.load(session_id)
        line = self._find_line(cart.items, product_id, variant_id)

        if line:
            stock.ensure(line.quantity + quantity)
            line.quantity += quantity
            line.price = stock.price  # update ceny
        else:
            stock.ensure(quantity)
            cart.items.append(
                CartLine(
                    product_id=product_id,
                    variant_id=variant_id,
                    quantity=quantity,
                    price=stock.price,
                    added_at=datetime.now(timezone.utc),
                )
            )
        self.session_carts.save(cart)

    @staticmethod
    def _find_line(lines: List[CartLine], product_id: int, variant_id: int | None) -> CartLine | None:
        for line in lines:
            if line.product_id == product_id and line.variant_id == variant_id:
                return line
        return None

    def set_item_quantity(
        self,
        owner: OwnerKey,
        product_id: int,
        variant_id: int | None,
        quantity: int,
    ) -> CartOut:
        if quantity < 0:
            raise ValidationError("Quantity cannot be negative")

        if quantity == 0:
            return self.remove_item(owner, product_id, variant_id)

        if self._find_line(self._lines(owner), product_id, variant_id) is None:
            raise ItemNotFound(f"Product {product_id} (variant {variant_id}) is not in cart {owner}")

        stock = resolve_stock(self.product_client, product_id, variant_id)
        stock.ensure(quantity)

        if owner.is_guest:
            cart = self.session_carts.load(owner.session_id)
            line = self._find_line(cart.items, product_id, variant_id)
            if line is None:
                raise ItemNotFound(f"Product {product_id} (variant {variant_id}) is not in cart {owner}")
            line.quantity = quantity
            line.price = stock.price
            self.session_carts.save(cart)
        else:
            with transaction(self.db):
                updated = self.repo.set_quantity(owner.user_id, product_id, variant_id, quantity, stock.price)
                if updated == 0:
                    raise ItemNotFound(f"Product {product_id} (variant {variant_id}) is not in cart {owner}")

        logger.info(f"Cart {owner}: product {product_id} quantity set to {quantity}")
        return self.get_cart(owner)

    def remove_item(self, owner: OwnerKey, product_id: int, variant_id: int | None) -> CartOut:
        logger.info(f"Removing product {product_id} (variant {variant_id}) from cart {owner}")

        if owner.is_guest:
            cart = self.session_carts.load(owner.session_id)
            line = self._find_line(cart.items, product_id, variant_id)
            if line is not None:
                cart.items.remove(line)
                self.session_carts.save(cart)
        else:
            with transaction(self.db):
                self.repo.delete_item(owner.user_id, product_id, variant_id)

        return self.get_cart(owner)

    def clear(self, owner: OwnerKey) -> None:
        logger.info(f"Clearing cart {owner}")
        if owner.is_guest:
            self.session_carts.delete(owner.session_id)
        else:
            with transaction(self.db):
                self.repo.clear(owner.user_id)

    def merge_guest_into_user(self, session_id: str, user_id: int) -> MergeResult:
        """
        Jednorazowe, best-effort scalenie koszyka goscia do koszyka usera po logowaniu.
        Ilosci sa sumowane bez sprawdzania magazynu (sprawdzi kolejna mutacja
        albo checkout). Koszyk sesji jest usuwany zawsze, nawet po czesciowym bledzie,
        zeby ten sam koszyk nie zostal scalony drugi raz.
        """
        result = MergeResult(user_id=user_id, session_id=session_id)

        try:
            guest = self.session_carts.load(session_id)
            logger.info(f"Merging {len(guest.items)} lines from session {session_id} into user {user_id}")

            for line in guest.items:
                try:
                    self._write_line(lambda: self._merge_line(user_id, line))
                    result.merged.append(line)
                except StorageError as e:
                    logger.warning(
                        f"Merge of product {line.product_id} (variant {line.variant_id}) "
                        f"into user {user_id} failed: {e}"
                    )
                    result.skipped.append(line)
        finally:
            self.session_carts.delete(session_id)

        return result

    def _merge_line(self, user_id: int, line: CartLine) -> None:
        updated = self.repo.increment(user_id, line.product_id, line.variant_id, line.quantity)
        if updated == 0:
            self.repo.add_item(
                CartItemModel(
                    user_id=user_id,
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    quantity=line.quantity,
                    price=line.price,
                    created_at=line.added_at,
                )
            )
