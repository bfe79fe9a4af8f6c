from unittest import mock

import pytest
import requests

from ordercore.domain.errors import CatalogError
from ordercore.services.product_client import ProductClient

PRODUCT = {
    "id": 1,
    "name": "Keyboard",
    "sku": "KB-1",
    "active": True,
    "track_quantity": True,
    "available_quantity": 10,
    "price": 19999,
}


def _response(status_code, payload=None):
    resp = mock.Mock()
    resp.status_code = status_code
    resp.json.return_value = payload
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    return resp


@pytest.fixture
def client():
    return ProductClient(base_url="http://catalog.test/")


def test_fetch_product(client):
    with mock.patch("ordercore.services.product_client.requests.get", return_value=_response(200, PRODUCT)) as get:
        product = client.fetch_product(1)

    assert product.name == "Keyboard"
    assert product.price == 19999
    get.assert_called_once_with("http://catalog.test/products/1", timeout=2)


def test_fetch_variant(client):
    variant = {"id": 11, "product_id": 1, "name": "PL", "active": True, "available_quantity": 2}
    with mock.patch("ordercore.services.product_client.requests.get", return_value=_response(200, variant)):
        result = client.fetch_variant(11)

    assert result.product_id == 1
    assert result.price == 0


def test_missing_product(client):
    with mock.patch("ordercore.services.product_client.requests.get", return_value=_response(404)):
        assert client.fetch_product(99) is None


def test_server_error(client):
    with mock.patch("ordercore.services.product_client.requests.get", return_value=_response(500)) as get:
        with pytest.raises(CatalogError):
            client.fetch_product(1)
    # bledy HTTP nie sa ponawiane
    assert get.call_count == 1


def test_connection_errors_are_retried(client):
    responses = [requests.ConnectionError("refused"), _response(200, PRODUCT)]
    with mock.patch("ordercore.services.product_client.requests.get", side_effect=responses) as get:
        product = client.fetch_product(1)

    assert product.id == 1
    assert get.call_count == 2


def test_catalog_down(client):
    with mock.patch(
        "ordercore.services.product_client.requests.get",
        side_effect=requests.ConnectionError("refused"),
    ) as get:
        with pytest.raises(CatalogError):
            client.fetch_product(1)
    assert get.call_count == 3
