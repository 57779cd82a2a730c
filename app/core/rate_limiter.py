import threading
import time
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from uuid import uuid4

import redis

from app.core.config import settings


class RateLimiter(ABC):
    """Sliding-window counter keyed by an arbitrary string (usually client IP)."""

    @abstractmethod
    def hit(self, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        """Record one event for ``key``; return ``(allowed, retry_after_seconds)``."""
        raise NotImplementedError

    @abstractmethod
    def is_blocked(self, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        raise NotImplementedError

    @abstractmethod
    def clear(self, key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def reset(self) -> None:
        raise NotImplementedError


class InMemoryRateLimiter(RateLimiter):
    def __init__(self) -> None:
        self._events: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def _prune(self, key: str, now: float, window_seconds: int) -> deque[float]:
        queue = self._events[key]
        window_start = now - window_seconds
        while queue and queue[0] <= window_start:
            queue.popleft()
        return queue

    def hit(self, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        now = time.time()
        with self._lock:
            queue = self._prune(key, now, window_seconds)
            if len(queue) >= limit:
                return False, max(1, int(queue[0] + window_seconds - now))
            queue.append(now)
            return True, 0

    def is_blocked(self, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        now = time.time()
        with self._lock:
            queue = self._prune(key, now, window_seconds)
            if len(queue) >= limit:
                return True, max(1, int(queue[0] + window_seconds - now))
            return False, 0

    def clear(self, key: str) -> None:
        with self._lock:
            self._events.pop(key, None)

    def reset(self) -> None:
        with self._lock:
            self._events.clear()


class RedisRateLimiter(RateLimiter):
    def __init__(self, redis_url: str, prefix: str = "auth-fail") -> None:
        self._client = redis.Redis.from_url(
            redis_url,
            socket_connect_timeout=0.2,
            socket_timeout=0.2,
            decode_responses=False,
        )
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def _count(self, redis_key: str, now_ms: int, window_ms: int) -> int:
        pipe = self._client.pipeline()
        pipe.zremrangebyscore(redis_key, 0, now_ms - window_ms)
        pipe.zcard(redis_key)
        _, current_count = pipe.execute()
        return current_count

    def _retry_after(self, redis_key: str, now_ms: int, window_seconds: int) -> int:
        oldest = self._client.zrange(redis_key, 0, 0, withscores=True)
        if not oldest:
            return max(1, window_seconds)
        return max(1, int((int(oldest[0][1]) + window_seconds * 1000 - now_ms) / 1000))

    def hit(self, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        redis_key = self._key(key)
        now_ms = int(time.time() * 1000)
        if self._count(redis_key, now_ms, window_seconds * 1000) >= limit:
            return False, self._retry_after(redis_key, now_ms, window_seconds)

        pipe = self._client.pipeline()
        pipe.zadd(redis_key, {f"{now_ms}:{uuid4().hex}".encode(): now_ms})
        pipe.expire(redis_key, window_seconds + 5)
        pipe.execute()
        return True, 0

    def is_blocked(self, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        redis_key = self._key(key)
        now_ms = int(time.time() * 1000)
        if self._count(redis_key, now_ms, window_seconds * 1000) >= limit:
            return True, self._retry_after(redis_key, now_ms, window_seconds)
        return False, 0

    def clear(self, key: str) -> None:
        self._client.delete(self._key(key))

    def reset(self) -> None:
        keys = self._client.keys(f"{self._prefix}:*")
        if keys:
            self._client.delete(*keys)


class FallbackRateLimiter(RateLimiter):
    """Uses Redis while it answers and the in-process limiter when it does not."""

    def __init__(self, primary: RateLimiter, fallback: RateLimiter) -> None:
        self._primary = primary
        self._fallback = fallback

    def hit(self, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        try:
            return self._primary.hit(key=key, limit=limit, window_seconds=window_seconds)
        except redis.RedisError:
            return self._fallback.hit(key=key, limit=limit, window_seconds=window_seconds)

    def is_blocked(self, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        try:
            return self._primary.is_blocked(key=key, limit=limit, window_seconds=window_seconds)
        except redis.RedisError:
            return self._fallback.is_blocked(key=key, limit=limit, window_seconds=window_seconds)

    def clear(self, key: str) -> None:
        try:
            self._primary.clear(key)
        except redis.RedisError:
            pass
        self._fallback.clear(key)

    def reset(self) -> None:
        try:
            self._primary.reset()
        except redis.RedisError:
            pass
        self._fallback.reset()


def _build_rate_limiter() -> RateLimiter:
    backend = settings.rate_limit_backend.strip().lower()
    memory = InMemoryRateLimiter()
    if backend == "redis":
        return FallbackRateLimiter(primary=RedisRateLimiter(redis_url=settings.rate_limit_redis_url), fallback=memory)
    return memory


rate_limiter: RateLimiter = _build_rate_limiter()
