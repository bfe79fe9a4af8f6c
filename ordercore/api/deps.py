# ordercore/api/deps.py
from functools import lru_cache

import redis
from fastapi import Depends
from sqlalchemy.orm import Session

from ordercore.data.database import get_db
from ordercore.repos.session_cart_repo import SessionCartRepo
from ordercore.services.cart_service import CartService
from ordercore.services.gateway_client import GatewayClient
from ordercore.services.lock_service import LockService
from ordercore.services.notification_service import NotificationService
from ordercore.services.order_service import OrderService
from ordercore.services.payment_service import PaymentService
from ordercore.services.product_client import ProductClient
from ordercore.utils.settings import REDIS_URL, SESSION_CART_TTL_SECONDS

# jedyne miejsce, gdzie serwisy dostaja swoje zaleznosci z ustawien


@lru_cache
def get_redis() -> redis.Redis:
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


@lru_cache
def get_product_client() -> ProductClient:
    return ProductClient()


@lru_cache
def get_gateway() -> GatewayClient:
    return GatewayClient()


def get_notifier() -> NotificationService:
    return NotificationService()


def get_cart_service(
    db: Session = Depends(get_db),
    client: redis.Redis = Depends(get_redis),
    product_client: ProductClient = Depends(get_product_client),
) -> CartService:
    return CartService(
        db=db,
        product_client=product_client,
        session_carts=SessionCartRepo(client, SESSION_CART_TTL_SECONDS),
    )


def get_order_service(
    db: Session = Depends(get_db),
    cart_service: CartService = Depends(get_cart_service),
    product_client: ProductClient = Depends(get_product_client),
    notifier: NotificationService = Depends(get_notifier),
) -> OrderService:
    return OrderService(
        db=db,
        cart_service=cart_service,
        product_client=product_client,
        notifier=notifier,
    )


def get_payment_service(
    db: Session = Depends(get_db),
    client: redis.Redis = Depends(get_redis),
    gateway: GatewayClient = Depends(get_gateway),
    notifier: NotificationService = Depends(get_notifier),
) -> PaymentService:
    return PaymentService(
        db=db,
        gateway=gateway,
        lock_service=LockService(client=client),
        notifier=notifier,
    )
