# merchies/services/lock_service.py
import redis

from merchies.utils.logging import get_logger
from merchies.utils.retry import redis_retry
from merchies.utils.settings import REDIS_URL

logger = get_logger(__name__)

# compare-and-delete in one step: only the holder may release
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class LockService:
    """
    In-flight payment lock, one per order.

    SET order:<id>:payment <attempt_id> NX EX <ttl>
    The TTL matches the payment window, so a lost callback never blocks the
    order forever.
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(url or REDIS_URL, decode_responses=True)

    @staticmethod
    def payment_key(order_id: str) -> str:
        return f"order:{order_id}:payment"

    @redis_retry()
    def acquire_payment_lock(self, order_id: str, attempt_id: str, ttl: int) -> bool:
        key = self.payment_key(order_id)
        acquired = bool(self.redis.set(name=key, value=attempt_id, nx=True, ex=ttl))
        logger.info("Acquire payment lock", key=key, attempt_id=attempt_id, acquired=acquired)
        return acquired

    @redis_retry()
    def release_payment_lock(self, order_id: str, attempt_id: str) -> bool:
        key = self.payment_key(order_id)
        released = bool(self.redis.eval(_RELEASE_LUA, 1, key, attempt_id))
        logger.info("Release payment lock", key=key, attempt_id=attempt_id, released=released)
        return released

    @redis_retry()
    def current_holder(self, order_id: str) -> str | None:
        return self.redis.get(self.payment_key(order_id))
