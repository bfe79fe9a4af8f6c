import json

import pytest

from ordercore.domain.errors import StorageError
from ordercore.domain.schemas import OwnerKey
from ordercore.repos.session_cart_repo import SessionCartRepo

GUEST = OwnerKey.for_session("s-1")


def test_session_cart_stored_as_json_under_session_key(cart_service, fake_redis):
    cart_service.add_item(GUEST, 1, None, 2)

    raw = fake_redis.store["cart:session:s-1"]
    doc = json.loads(raw)
    assert doc["session_id"] == "s-1"
    assert doc["items"][0]["product_id"] == 1
    assert doc["items"][0]["quantity"] == 2
    assert doc["items"][0]["price"] == 10000


def test_every_write_refreshes_ttl(cart_service, fake_redis):
    cart_service.add_item(GUEST, 1, None, 1)
    fake_redis.ttls["cart:session:s-1"] = None

    cart_service.set_item_quantity(GUEST, 1, None, 2)

    assert fake_redis.ttls["cart:session:s-1"] == 86400


def test_missing_key_loads_empty_cart(fake_redis):
    cart = SessionCartRepo(fake_redis, ttl=60).load("never-seen")
    assert cart.items == []
    assert cart.session_id == "never-seen"


def test_expired_cart_reads_as_empty(cart_service, fake_redis):
    cart_service.add_item(GUEST, 1, None, 1)
    # redis usunal klucz po TTL
    fake_redis.store.clear()

    assert cart_service.get_cart(GUEST).items == []


def test_redis_outage_is_storage_error(cart_service, fake_redis):
    fake_redis.down = True
    with pytest.raises(StorageError):
        cart_service.get_cart(GUEST)


def test_guest_carts_are_isolated(cart_service):
    other = OwnerKey.for_session("s-2")
    cart_service.add_item(GUEST, 1, None, 1)

    assert cart_service.get_cart(other).items == []
