# storefront/services/rate_limiter.py
import time
import uuid

import redis
from redis.exceptions import RedisError

from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL, RATE_LIMIT_WINDOW_SECONDS, RATE_LIMIT_MAX_REQUESTS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

#sliding window on a sorted set, scores are timestamps in ms
#trim + count + add + expire run as one atomic step inside redis
_SLIDING_WINDOW_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])

redis.call('ZREMRANGEBYSCORE', key, 0, now - window)
if redis.call('ZCARD', key) >= limit then
    return 0
end
redis.call('ZADD', key, now, ARGV[4])
redis.call('PEXPIRE', key, window)
return 1
"""


class RateLimiter:
    """
    Request counter shared by every instance of the service.
    Keyed by client identity (user id or ip), counts requests in the last window.
    """

    def __init__(
        self,
        client: redis.Redis | None = None,
        window_seconds: int = RATE_LIMIT_WINDOW_SECONDS,
        limit: int = RATE_LIMIT_MAX_REQUESTS,
        prefix: str = "ratelimit",
    ):
        self.redis = client or redis.Redis.from_url(REDIS_URL, decode_responses=True)
        self.window_ms = window_seconds * 1000
        self.limit = limit
        self.prefix = prefix

    def key(self, scope: str, identity: str) -> str:
        return f"{self.prefix}:{scope}:{identity}"

    @redis_retry()
    def _hit(self, key: str) -> bool:
        now_ms = int(time.time() * 1000)
        res = self.redis.eval(
            _SLIDING_WINDOW_LUA,
            1,
            key,
            now_ms,
            self.window_ms,
            self.limit,
            f"{now_ms}:{uuid.uuid4().hex}",
        )
        return bool(int(res))

    def allow(self, scope: str, identity: str) -> bool:
        key = self.key(scope, identity)
        try:
            allowed = self._hit(key)
        except RedisError as e:
            #counter store down: let the request through rather than lock every shopper out
            logger.warning(f"Rate limiter unavailable for {key}, allowing request: {e}")
            return True

        if not allowed:
            logger.info(f"Rate limit exceeded for {key}")
        return allowed
