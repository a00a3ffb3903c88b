"""
Redis cache facade with best-effort semantics.

Caching is optional infrastructure:
- A client that never connected is permanently disabled for the process;
  every operation returns its neutral value (None / False / 0).
- Store errors, timeouts and an open circuit are logged and bypassed, never
  raised to the caller.
- Malformed stored values are treated as misses.

Key format is `{resource}:{canonical-json-params}` (see build_key). TTLs:
list endpoints 5 minutes, single entities 1 hour, generic default 1 hour.
Invalidation is explicit: writers call delete_pattern("products:*") and
friends; TTL expiry is the consistency guarantee.
"""
import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional
from urllib.parse import urlsplit

from redis.asyncio import Redis
from redis.exceptions import RedisError

from catalog.core.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from catalog.core.config import Settings
from catalog.core.logging import get_logger
from catalog.core.metrics import (
    record_cache_error,
    record_cache_hit,
    record_cache_invalidation,
    record_cache_miss,
)

logger = get_logger(__name__)

DEFAULT_TTL = 3600
LIST_TTL = 300
ENTITY_TTL = 3600

# Upper bound for a single cache round trip once connected
OPERATION_TIMEOUT_SECONDS = 0.5

_FAILED = object()


def build_key(resource: str, params: Mapping[str, Any]) -> str:
    """
    Deterministic cache key for a resource and its query parameters.

    Keys are sorted and None values dropped, so parameter insertion order and
    unset optionals do not change the key.
    """
    canonical = {name: value for name, value in params.items() if value is not None}
    return f"{resource}:{json.dumps(canonical, sort_keys=True, separators=(',', ':'))}"


def _describe_url(url: str) -> Dict[str, Any]:
    """Host and port of a Redis URL, without credentials, for logging."""
    parts = urlsplit(url)
    return {"host": parts.hostname, "port": parts.port}


async def connect_redis(
    settings: Settings,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Optional[Redis]:
    """
    Connect to Redis once at startup.

    One initial attempt plus `redis_max_retries` retries with exponential
    backoff (100ms, 200ms, 400ms, ... capped at 1s). Each attempt is bounded
    by `redis_connect_timeout`. When every attempt fails a single warning is
    logged and None is returned: caching stays disabled for the process.
    """
    url = settings.get_redis_url()
    target = _describe_url(url)
    attempts = max(settings.redis_max_retries, 0) + 1
    last_error: Optional[BaseException] = None

    for attempt in range(attempts):
        client = Redis.from_url(
            url,
            max_connections=20,
            socket_connect_timeout=settings.redis_connect_timeout,
            socket_timeout=settings.redis_connect_timeout,
            decode_responses=True,
        )
        try:
            await asyncio.wait_for(client.ping(), timeout=settings.redis_connect_timeout)
            logger.info("redis_connected", attempt=attempt + 1, **target)
            return client
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            last_error = e
            logger.debug(
                "redis_connect_attempt_failed",
                attempt=attempt + 1,
                error=str(e),
                error_type=type(e).__name__,
                **target,
            )
            await close_redis(client, quiet=True)

        if attempt < attempts - 1:
            await sleep(min(0.1 * (2 ** attempt), 1.0))

    logger.warning(
        "redis_unavailable_caching_disabled",
        attempts=attempts,
        error=str(last_error) if last_error else None,
        error_type=type(last_error).__name__ if last_error else None,
        **target,
    )
    return None


async def close_redis(client: Optional[Redis], quiet: bool = False) -> None:
    """Close a Redis client and its pool."""
    if client is None:
        return
    try:
        await client.aclose()
        if not quiet:
            logger.info("redis_closed")
    except Exception as e:
        if not quiet:
            logger.error("redis_close_failed", error=str(e), exc_info=True)


class CacheClient:
    """
    Read-through / write-through cache in front of Redis.

    `with_cache` is the read-through combinator. Concurrent misses for the same
    key share one producer call while `single_flight` is on; with it off every
    miss runs the producer.
    """

    def __init__(
        self,
        redis: Optional[Redis],
        circuit_breaker: Optional[CircuitBreaker] = None,
        single_flight: bool = True,
        default_ttl: int = DEFAULT_TTL,
        operation_timeout: float = OPERATION_TIMEOUT_SECONDS,
    ):
        self._redis = redis
        self.circuit_breaker = circuit_breaker
        self.single_flight = single_flight
        self.default_ttl = default_ttl
        self.operation_timeout = operation_timeout
        self._in_flight: Dict[str, "asyncio.Future[Any]"] = {}

    @property
    def is_connected(self) -> bool:
        return self._redis is not None

    @staticmethod
    def full_key(key: str, prefix: Optional[str] = None) -> str:
        return f"{prefix}:{key}" if prefix else key

    async def _execute(self, operation: str, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Run one store call under the circuit breaker and timeout; _FAILED on error."""

        async def bounded() -> Any:
            return await asyncio.wait_for(factory(), timeout=self.operation_timeout)

        try:
            if self.circuit_breaker:
                return await self.circuit_breaker.call_async(bounded)
            return await bounded()
        except CircuitBreakerOpenError:
            logger.debug("cache_circuit_breaker_open", operation=operation, key=key)
            return _FAILED
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            record_cache_error(operation)
            logger.warning(
                f"cache_{operation}_error",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return _FAILED
        except Exception as e:
            record_cache_error(operation)
            logger.error(
                f"cache_{operation}_unexpected_error",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return _FAILED

    async def get(self, key: str) -> Optional[Any]:
        """Cached value, or None on miss, error, malformed data or disabled cache."""
        if self._redis is None:
            return None

        raw = await self._execute("get", key, lambda: self._redis.get(key))
        if raw is _FAILED or raw is None:
            return None

        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            record_cache_error("decode")
            logger.warning("cache_value_malformed", key=key)
            return None

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        prefix: Optional[str] = None,
    ) -> bool:
        """
        Store a JSON-serializable value under `prefix:key` (or `key`).

        Returns:
            True if written, False on any failure
        """
        if self._redis is None:
            return False

        ttl = self.default_ttl if ttl is None else ttl
        full_key = self.full_key(key, prefix)
        if ttl <= 0:
            logger.warning("cache_set_invalid_ttl", key=full_key, ttl=ttl)
            return False

        try:
            serialized = json.dumps(value)
        except (TypeError, ValueError) as e:
            record_cache_error("encode")
            logger.warning("cache_value_not_serializable", key=full_key, error=str(e))
            return False

        result = await self._execute(
            "set", full_key, lambda: self._redis.setex(full_key, ttl, serialized)
        )
        return result is not _FAILED

    async def delete(self, key: str, prefix: Optional[str] = None) -> bool:
        if self._redis is None:
            return False
        full_key = self.full_key(key, prefix)
        result = await self._execute("delete", full_key, lambda: self._redis.delete(full_key))
        return result is not _FAILED

    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete every key matching a glob pattern such as `products:*`.

        Keys are collected with SCAN and removed in one DEL call.

        Returns:
            Number of keys deleted (0 when unavailable or nothing matched)
        """
        if self._redis is None:
            return 0

        redis = self._redis

        async def scan_and_delete() -> int:
            keys = [key async for key in redis.scan_iter(match=pattern, count=500)]
            if not keys:
                return 0
            return await redis.delete(*keys)

        deleted = await self._execute("delete_pattern", pattern, scan_and_delete)
        if deleted is _FAILED:
            return 0

        record_cache_invalidation(deleted)
        logger.info("cache_pattern_deleted", pattern=pattern, count=deleted)
        return deleted

    async def clear(self) -> bool:
        """Flush the whole logical database."""
        if self._redis is None:
            return False
        result = await self._execute("clear", "*", lambda: self._redis.flushdb())
        if result is _FAILED:
            return False
        logger.warning("cache_cleared")
        return True

    async def with_cache(
        self,
        key: str,
        producer: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
        prefix: Optional[str] = None,
        cache_type: str = "default",
    ) -> Any:
        """
        Return the cached value for `key`, computing and storing it on a miss.

        The producer's exceptions propagate and nothing is cached for them.
        A None result is returned but not stored.
        """
        full_key = self.full_key(key, prefix)

        cached = await self.get(full_key)
        if cached is not None:
            record_cache_hit(cache_type)
            logger.debug("cache_hit", cache_type=cache_type, key=full_key)
            return cached

        record_cache_miss(cache_type)
        logger.debug("cache_miss", cache_type=cache_type, key=full_key)

        if not self.single_flight:
            return await self._produce_and_store(full_key, producer, ttl)

        pending = self._in_flight.get(full_key)
        if pending is None:
            pending = asyncio.ensure_future(self._produce_and_store(full_key, producer, ttl))
            self._in_flight[full_key] = pending
            pending.add_done_callback(lambda fut, k=full_key: self._forget(k, fut))
        else:
            logger.debug("cache_fill_joined", cache_type=cache_type, key=full_key)

        # A cancelled caller must not cancel the fill other callers await
        return await asyncio.shield(pending)

    async def _produce_and_store(
        self,
        full_key: str,
        producer: Callable[[], Awaitable[Any]],
        ttl: Optional[int],
    ) -> Any:
        result = await producer()
        # null would read back as a miss
        if result is not None:
            await self.set(full_key, result, ttl=ttl)
        return result

    def _forget(self, key: str, future: "asyncio.Future[Any]") -> None:
        if self._in_flight.get(key) is future:
            del self._in_flight[key]
        if not future.cancelled():
            # Mark the exception retrieved when every waiter went away
            future.exception()

    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def get_circuit_breaker_metrics(self) -> Optional[dict]:
        if self.circuit_breaker:
            return self.circuit_breaker.get_metrics()
        return None
