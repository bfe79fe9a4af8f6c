# ordercore/services/gateway_client.py
import hashlib
import hmac
import time
from typing import Any, Dict

import requests
from pydantic import ValidationError as PayloadError
from requests import RequestException

from ordercore.data.models.order import OrderModel
from ordercore.domain.errors import GatewayError
from ordercore.domain.schemas import GatewayIntent, GatewayPayment, GatewayRefund
from ordercore.utils.settings import (
    GATEWAY_BASE_URL,
    GATEWAY_KEY_ID,
    GATEWAY_KEY_SECRET,
    GATEWAY_TIMEOUT_SECONDS,
)
from ordercore.utils.logging import get_logger

logger = get_logger(__name__)


class GatewayClient:
    """
    Adapter bramki platnosci - jedyne miejsce z wywolaniami sieciowymi do providera.

    Kazde wywolanie ma twardy timeout i NIE ma retry (inaczej niz ProductClient):
    ponowienie to decyzja wywolujacego (nowe open intent). Odpowiedz spoza 2xx
    zawsze konczy sie GatewayError ze status code i surowym body.
    """

    def __init__(
        self,
        base_url: str | None = None,
        key_id: str | None = None,
        key_secret: str | None = None,
        timeout: float = GATEWAY_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or GATEWAY_BASE_URL).rstrip("/")
        self.key_id = key_id if key_id is not None else GATEWAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else GATEWAY_KEY_SECRET
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def public_key(self) -> str:
        return self.key_id

    def _request(self, method: str, path: str, payload: Dict[str, Any] | None = None) -> Dict[str, Any]:
        if not self.key_id or not self.key_secret:
            raise GatewayError("Payment gateway credentials not configured")

        url = f"{self.base_url}{path}"
        logger.info(f"GatewayClient {method} {url}")
        try:
            resp = self.session.request(
                method,
                url,
                json=payload,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
            )
        except RequestException as e:
            logger.error(f"Gateway call {method} {path} failed: {e}")
            raise GatewayError(f"Gateway call failed: {e}") from e

        if not 200 <= resp.status_code < 300:
            logger.error(f"Gateway {method} {path} returned {resp.status_code}: {resp.text}")
            raise GatewayError(
                f"Gateway call failed with status {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text,
            )

        try:
            return resp.json()
        except ValueError as e:
            raise GatewayError(
                "Gateway returned a non-JSON body",
                status_code=resp.status_code,
                body=resp.text,
            ) from e

    @staticmethod
    def _parse(model, data):
        try:
            return model.model_validate(data)
        except PayloadError as e:
            raise GatewayError(f"Unexpected gateway payload for {model.__name__}: {e}", body=str(data)) from e

    def open_intent(self, order: OrderModel, attempt: int = 1) -> GatewayIntent:
        payload = {
            "amount": order.total,
            "currency": order.currency,
            "receipt": order.order_number,
            "notes": {
                "order_id": order.id,
                "user_id": order.user_id,
                "order_number": order.order_number,
                "attempt": attempt,
            },
        }
        return self._parse(GatewayIntent, self._request("POST", "/orders", payload))

    def verify_signature(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        if not self.key_secret:
            logger.error("Signature check requested without a merchant secret")
            return False
        message = f"{gateway_order_id}|{gateway_payment_id}".encode()
        expected = hmac.new(self.key_secret.encode(), message, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected.encode(), (signature or "").encode())

    def fetch_payment(self, gateway_payment_id: str) -> GatewayPayment:
        data = self._request("GET", f"/payments/{gateway_payment_id}")
        return self._parse(GatewayPayment, data)

    def create_refund(self, gateway_payment_id: str, amount: int, reason: str) -> GatewayRefund:
        payload = {
            "amount": amount,
            "speed": "normal",
            "notes": {"reason": reason},
            "receipt": f"refund_{int(time.time())}",
        }
        data = self._request("POST", f"/payments/{gateway_payment_id}/refund", payload)
        return self._parse(GatewayRefund, data)
