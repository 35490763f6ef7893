# backend/lesson_booking/services/store/redis_locks.py
"""
Reservation locks in Redis.

Key format: locks:slot:{slot_id}
Value: random owner token; TTL = lock lifetime.

Acquire: SET key token NX EX ttl → only one attempt wins per slot.
Release: WATCH / compare token / MULTI DEL, so an attempt whose lock has
already expired cannot delete the lock of the attempt that replaced it.
"""

import logging
import uuid

from redis import Redis
from redis.exceptions import RedisError, WatchError

from ...errors import StoreUnavailable

logger = logging.getLogger(__name__)


class RedisLockStore:
    """Redis wrapper implementing the LockStore contract."""

    KEY_PREFIX = "locks:slot"

    def __init__(self, redis: Redis):
        self.redis = redis

    def _key(self, slot_id: str) -> str:
        return f"{self.KEY_PREFIX}:{slot_id}"

    def acquire(self, key: str, ttl_seconds: int) -> str | None:
        token = uuid.uuid4().hex
        try:
            ok = self.redis.set(self._key(key), token, nx=True, ex=ttl_seconds)
        except RedisError as e:
            raise StoreUnavailable(f"Lock acquire failed: {e}") from e
        return token if ok else None

    def release(self, key: str, token: str) -> bool:
        redis_key = self._key(key)
        try:
            with self.redis.pipeline() as pipe:
                try:
                    pipe.watch(redis_key)
                    current = pipe.get(redis_key)
                    if isinstance(current, bytes):
                        current = current.decode()
                    if current != token:
                        pipe.unwatch()
                        return False
                    pipe.multi()
                    pipe.delete(redis_key)
                    pipe.execute()
                    return True
                except WatchError:
                    # Key changed between GET and DEL: no longer ours
                    return False
        except RedisError as e:
            # Lock expires on its own; never mask the attempt's outcome
            logger.warning(f"Lock release failed for {key}: {e}")
            return False

    def ttl(self, key: str) -> int:
        """Remaining lifetime in seconds (-2 = no lock)."""
        return self.redis.ttl(self._key(key))
