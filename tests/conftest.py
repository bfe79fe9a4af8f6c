import hashlib
import hmac
import os

# zanim cokolwiek z ordercore zaimportuje settings
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
import redis
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ordercore.data import models  # noqa: F401
from ordercore.data.database import Base
from ordercore.domain.errors import CatalogError, GatewayError
from ordercore.domain.schemas import Address, OwnerKey, ProductInfo, VariantInfo
from ordercore.repos.session_cart_repo import SessionCartRepo
from ordercore.services.cart_service import CartService
from ordercore.services.gateway_client import GatewayClient
from ordercore.services.lock_service import LockService
from ordercore.services.notification_service import NotificationService
from ordercore.services.order_service import OrderService
from ordercore.services.payment_service import PaymentService
from ordercore.services.product_client import ProductClient

GATEWAY_SECRET = "test_secret"

SHIPPING_ADDRESS = {
    "first_name": "Jan",
    "last_name": "Kowalski",
    "address_line1": "ul. Prosta 1",
    "city": "Warszawa",
    "postal_code": "00-001",
    "country": "PL",
}


def sign(gateway_order_id, gateway_payment_id, secret=GATEWAY_SECRET):
    message = f"{gateway_order_id}|{gateway_payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class FakeRedis:
    """Slownik zamiast redisa: get/set(nx, ex)/delete/eval(compare-and-delete)/ping."""

    def __init__(self):
        self.store = {}
        self.ttls = {}
        self.down = False

    def _check(self):
        if self.down:
            raise redis.ConnectionError("redis is down")

    def get(self, name):
        self._check()
        return self.store.get(name)

    def set(self, name, value, ex=None, nx=False):
        self._check()
        if nx and name in self.store:
            return None
        self.store[name] = value
        self.ttls[name] = ex
        return True

    def delete(self, *names):
        self._check()
        removed = 0
        for name in names:
            if self.store.pop(name, None) is not None:
                removed += 1
            self.ttls.pop(name, None)
        return removed

    def eval(self, script, numkeys, key, token):
        self._check()
        if self.store.get(key) == token:
            return self.delete(key)
        return 0

    def ping(self):
        self._check()
        return True


class FakeCatalog(ProductClient):
    def __init__(self):
        super().__init__(base_url="http://catalog.test")
        self.down = False
        self.products = {
            1: ProductInfo(id=1, name="Keyboard", sku="KB-1", active=True,
                           track_quantity=True, available_quantity=10, price=10000),
            2: ProductInfo(id=2, name="Mouse", sku="MS-1", active=True,
                           track_quantity=True, available_quantity=5, price=2500),
            3: ProductInfo(id=3, name="Gift card", sku="GC-1", active=True,
                           track_quantity=False, available_quantity=0, price=5000),
            4: ProductInfo(id=4, name="Old webcam", sku="WC-1", active=False,
                           track_quantity=True, available_quantity=3, price=3000),
        }
        self.variants = {
            11: VariantInfo(id=11, product_id=1, name="PL layout", sku="KB-1-PL",
                            active=True, available_quantity=3, price=12000),
            12: VariantInfo(id=12, product_id=1, name="US layout", active=True,
                            available_quantity=1, price=0),
        }

    def fetch_product(self, product_id):
        if self.down:
            raise CatalogError("Catalog unavailable")
        return self.products.get(product_id)

    def fetch_variant(self, variant_id):
        if self.down:
            raise CatalogError("Catalog unavailable")
        return self.variants.get(variant_id)

    def set_stock(self, product_id, available):
        self.products[product_id] = self.products[product_id].model_copy(
            update={"available_quantity": available}
        )

    def set_price(self, product_id, price):
        self.products[product_id] = self.products[product_id].model_copy(update={"price": price})


class FakeGateway(GatewayClient):
    """Bramka w pamieci - podmieniony tylko transport HTTP."""

    def __init__(self):
        super().__init__(base_url="http://gateway.test/v1", key_id="key_test", key_secret=GATEWAY_SECRET)
        self.calls = []
        self.intents = {}
        self.payments = {}
        self.fail_with = None
        self._seq = 0

    def _next_id(self, prefix):
        self._seq += 1
        return f"{prefix}_{self._seq:04d}"

    def _request(self, method, path, payload=None):
        self.calls.append((method, path, payload))
        if self.fail_with is not None:
            error, self.fail_with = self.fail_with, None
            raise error

        if method == "POST" and path == "/orders":
            intent_id = self._next_id("order")
            self.intents[intent_id] = dict(payload)
            return {
                "id": intent_id,
                "amount": payload["amount"],
                "currency": payload["currency"],
                "receipt": payload["receipt"],
                "status": "created",
                "notes": payload["notes"],
            }
        if method == "POST" and path.endswith("/refund"):
            payment_id = path.split("/")[2]
            return {
                "id": self._next_id("rfnd"),
                "payment_id": payment_id,
                "amount": payload["amount"],
                "currency": self.payments[payment_id]["currency"],
                "status": "processed",
            }
        if method == "GET" and path.startswith("/payments/"):
            payment_id = path.split("/")[2]
            if payment_id not in self.payments:
                raise GatewayError("Gateway call failed with status 404", status_code=404, body="not found")
            return self.payments[payment_id]
        raise AssertionError(f"unexpected gateway call {method} {path}")

    def capture(self, gateway_order_id, amount=None, currency=None, status="captured"):
        """Klient placi w bramce - zwraca gateway payment id."""
        intent = self.intents[gateway_order_id]
        payment_id = self._next_id("pay")
        self.payments[payment_id] = {
            "id": payment_id,
            "order_id": gateway_order_id,
            "amount": intent["amount"] if amount is None else amount,
            "currency": currency or intent["currency"],
            "status": status,
            "method": "card",
        }
        return payment_id


class RecordingNotifier(NotificationService):
    def __init__(self):
        self.sent = []

    def notify(self, event, order_id):
        self.sent.append((event, order_id))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def cart_service(db, catalog, fake_redis):
    return CartService(db, catalog, SessionCartRepo(fake_redis, ttl=86400))


@pytest.fixture
def order_service(db, cart_service, catalog, notifier):
    return OrderService(db, cart_service, catalog, notifier, currency="USD",
                        shipping_rates={"standard": 999, "express": 1999})


@pytest.fixture
def make_payment_service(db, gateway, fake_redis, notifier):
    def make(**kwargs):
        return PaymentService(db, gateway, LockService(client=fake_redis), notifier, **kwargs)

    return make


@pytest.fixture
def payment_service(make_payment_service):
    return make_payment_service()


@pytest.fixture
def place_order(cart_service, order_service):
    """Koszyk usera -> zamowienie. Domyslnie 2 x Keyboard (10000) + standard (999)."""

    def place(user_id=1, items=((1, None, 2),), shipping_method="standard"):
        owner = OwnerKey.for_user(user_id)
        for product_id, variant_id, quantity in items:
            cart_service.add_item(owner, product_id, variant_id, quantity)
        return order_service.create_order(owner, Address(**SHIPPING_ADDRESS), None, shipping_method)

    return place


@pytest.fixture
def paid_order(place_order, payment_service, gateway):
    """Zamowienie oplacone: intent -> capture -> verify."""
    order = place_order()
    intent = payment_service.open_payment_intent(order.id)
    payment_id = gateway.capture(intent.gateway_order_id)
    payment_service.verify_payment(order.id, intent.gateway_order_id, payment_id,
                                   sign(intent.gateway_order_id, payment_id))
    return order, intent, payment_id
