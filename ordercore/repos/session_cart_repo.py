# ordercore/repos/session_cart_repo.py
from datetime import datetime, timezone

import redis
from redis.exceptions import RedisError

from ordercore.domain.errors import StorageError
from ordercore.domain.schemas import SessionCart
from ordercore.utils.retry import redis_retry
from ordercore.utils.settings import SESSION_CART_TTL_SECONDS
from ordercore.utils.logging import get_logger

logger = get_logger(__name__)


class SessionCartRepo:
    """
    Koszyk goscia w redis:
    -klucz cart:session:{session_id}
    -JSON z lista linii
    -TTL odnawiany przy kazdym zapisie
    """

    def __init__(self, client: redis.Redis, ttl: int = SESSION_CART_TTL_SECONDS):
        self.redis = client
        self.ttl = ttl

    @staticmethod
    def key(session_id: str) -> str:
        return f"cart:session:{session_id}"

    @redis_retry()
    def _get(self, key: str):
        return self.redis.get(key)

    @redis_retry()
    def _set(self, key: str, value: str):
        return self.redis.set(name=key, value=value, ex=self.ttl)

    @redis_retry()
    def _delete(self, key: str):
        return self.redis.delete(key)

    def load(self, session_id: str) -> SessionCart:
        try:
            raw = self._get(self.key(session_id))
        except RedisError as e:
            raise StorageError(f"Session cart {session_id} unavailable: {e}") from e

        if raw is None:
            # brak koszyka == pusty koszyk
            now = datetime.now(timezone.utc)
            return SessionCart(session_id=session_id, items=[], created_at=now, updated_at=now)
        return SessionCart.model_validate_json(raw)

    def save(self, cart: SessionCart) -> None:
        cart.updated_at = datetime.now(timezone.utc)
        try:
            self._set(self.key(cart.session_id), cart.model_dump_json())
        except RedisError as e:
            raise StorageError(f"Session cart {cart.session_id} not saved: {e}") from e

    def delete(self, session_id: str) -> None:
        try:
            self._delete(self.key(session_id))
        except RedisError as e:
            raise StorageError(f"Session cart {session_id} not deleted: {e}") from e
