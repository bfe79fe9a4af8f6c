import uuid

import redis
from redis.exceptions import RedisError
from ordercore.domain.errors import StorageError
from ordercore.utils.retry import redis_retry
from ordercore.utils.settings import REDIS_URL
from ordercore.utils.logging import get_logger

logger = get_logger(__name__)

#LUA porownaj i usun, atomicity
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""

#redis wykonuje atomowo przez lua, skrypt dziala jako jedna nieprzerywalna operacja
#nie mozna wcisnac sie miedzy GET a DEL, wiec get + porownanie + del wszystko naraz


class LockService:
    """
    -blokada zamowienia na czas otwierania platnosci / refundu
    -zwalnianie locka tylko przez wlasciciela tokena
    -atomowosc przy pomocy lua
    """

    def __init__(self, client: redis.Redis | None = None, url: str | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def order_key(order_id: int) -> str:
        return f"order:{order_id}:payment:lock"

    @staticmethod
    def new_token() -> str:
        return uuid.uuid4().hex

    @redis_retry()
    def _acquire(self, key: str, token: str, ttl: int) -> bool:
        #SET order:1:payment:lock "<token>" NX EX 60
        return bool(
            self.redis.set(
                name=key,
                value=token,
                nx=True, #jesli klucz jest to nic nie rob i None
                ex=ttl, #wygasa sam, crash procesu nie zostawi locka na zawsze
            )
        )

    @redis_retry()
    def _release(self, key: str, token: str) -> bool:
        return bool(self.redis.eval(_RELEASE_LUA, 1, key, token))

    def acquire_order_lock(self, order_id: int, token: str, ttl: int) -> bool:
        key = self.order_key(order_id)
        logger.info(f"Acquire lock {key}")
        try:
            return self._acquire(key, token, ttl)
        except RedisError as e:
            raise StorageError(f"Lock {key} unavailable: {e}") from e

    def release_order_lock(self, order_id: int, token: str) -> bool:
        key = self.order_key(order_id)
        logger.info(f"Release lock {key}")
        try:
            return self._release(key, token)
        except RedisError as e:
            # lock i tak wygasnie po TTL
            logger.warning(f"Failed to release lock {key}: {e}")
            return False
