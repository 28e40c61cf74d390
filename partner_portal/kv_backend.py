from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from partner_portal.config import PortalSettings
from partner_portal.errors import KVCommandError, StoreUnavailable

logger = logging.getLogger(__name__)

# Commands that may be queued in a write batch.
BATCH_COMMANDS = frozenset(
    {
        "set",
        "delete",
        "incr",
        "hset",
        "sadd",
        "srem",
        "zadd",
        "zrem",
    }
)

Command = tuple[str, tuple[Any, ...]]


def _score_key(item: tuple[str, float]) -> tuple[float, str]:
    member, score = item
    return (score, member)


class InMemoryKVBackend:
    """Process-local stand-in for the remote store, used by tests and local runs.

    Mirrors the subset of Redis semantics the portal relies on: typed keys
    (``WRONGTYPE`` on mismatch), sorted-set ordering by ``(score, member)``,
    cursor-based ``SSCAN`` that returns ``0`` when the scan is complete, and
    string expiry.
    """

    backend_name = "memory"

    def __init__(self, *, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.monotonic
        self._strings: dict[str, str] = {}
        self._hashes: dict[str, dict[str, str]] = {}
        self._sets: dict[str, set[str]] = {}
        self._zsets: dict[str, dict[str, float]] = {}
        self._expires_at: dict[str, float] = {}

    def _expire_if_due(self, key: str) -> None:
        deadline = self._expires_at.get(key)
        if deadline is not None and deadline <= self._clock():
            self._drop(key)

    def _drop(self, key: str) -> bool:
        self._expires_at.pop(key, None)
        removed = False
        for space in (self._strings, self._hashes, self._sets, self._zsets):
            if key in space:
                del space[key]
                removed = True
        return removed

    def _check_type(self, key: str, expected: dict[str, Any]) -> None:
        self._expire_if_due(key)
        for space in (self._strings, self._hashes, self._sets, self._zsets):
            if space is not expected and key in space:
                raise KVCommandError(f"WRONGTYPE Operation against a key holding the wrong kind of value: {key}")

    # Strings
    async def get(self, key: str) -> str | None:
        self._check_type(key, self._strings)
        return self._strings.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self._drop(key)
        self._strings[key] = str(value)
        if ex is not None:
            if int(ex) <= 0:
                raise KVCommandError("invalid expire time in 'set' command")
            self._expires_at[key] = self._clock() + int(ex)
        return True

    async def incr(self, key: str) -> int:
        self._check_type(key, self._strings)
        raw = self._strings.get(key, "0")
        try:
            value = int(raw, 10) + 1
        except ValueError as exc:
            raise KVCommandError("value is not an integer or out of range") from exc
        self._strings[key] = str(value)
        return value

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            self._expire_if_due(key)
            if self._drop(key):
                removed += 1
        return removed

    async def exists(self, key: str) -> bool:
        self._expire_if_due(key)
        return any(key in space for space in (self._strings, self._hashes, self._sets, self._zsets))

    async def ttl(self, key: str) -> int:
        if not await self.exists(key):
            return -2
        deadline = self._expires_at.get(key)
        if deadline is None:
            return -1
        return max(0, int(round(deadline - self._clock())))

    async def key_type(self, key: str) -> str:
        self._expire_if_due(key)
        for name, space in (
            ("string", self._strings),
            ("hash", self._hashes),
            ("set", self._sets),
            ("zset", self._zsets),
        ):
            if key in space:
                return name
        return "none"

    # Hashes
    async def hgetall(self, key: str) -> dict[str, str]:
        self._check_type(key, self._hashes)
        return dict(self._hashes.get(key, {}))

    async def hset(self, key: str, mapping: Mapping[str, str]) -> int:
        if not mapping:
            raise KVCommandError("wrong number of arguments for 'hset' command")
        self._check_type(key, self._hashes)
        row = self._hashes.setdefault(key, {})
        added = sum(1 for field in mapping if field not in row)
        row.update({str(k): str(v) for k, v in mapping.items()})
        return added

    async def hdel(self, key: str, *fields: str) -> int:
        self._check_type(key, self._hashes)
        row = self._hashes.get(key)
        if row is None:
            return 0
        removed = sum(1 for field in fields if row.pop(field, None) is not None)
        if not row:
            del self._hashes[key]
        return removed

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        self._check_type(key, self._hashes)
        try:
            value = int(self._hashes.get(key, {}).get(field, "0"), 10) + int(amount)
        except ValueError as exc:
            raise KVCommandError("hash value is not an integer") from exc
        self._hashes.setdefault(key, {})[field] = str(value)
        return value

    # Sets
    async def sadd(self, key: str, *members: str) -> int:
        if not members:
            raise KVCommandError("wrong number of arguments for 'sadd' command")
        self._check_type(key, self._sets)
        bucket = self._sets.setdefault(key, set())
        before = len(bucket)
        bucket.update(str(m) for m in members)
        return len(bucket) - before

    async def srem(self, key: str, *members: str) -> int:
        self._check_type(key, self._sets)
        bucket = self._sets.get(key)
        if bucket is None:
            return 0
        removed = 0
        for member in members:
            if member in bucket:
                bucket.discard(member)
                removed += 1
        if not bucket:
            del self._sets[key]
        return removed

    async def smembers(self, key: str) -> set[str]:
        self._check_type(key, self._sets)
        return set(self._sets.get(key, set()))

    async def scard(self, key: str) -> int:
        self._check_type(key, self._sets)
        return len(self._sets.get(key, set()))

    async def sscan(self, key: str, cursor: int = 0, count: int = 10) -> tuple[int, list[str]]:
        self._check_type(key, self._sets)
        members = sorted(self._sets.get(key, set()))
        start = max(0, int(cursor))
        end = start + max(1, int(count))
        page = members[start:end]
        next_cursor = end if end < len(members) else 0
        return next_cursor, page

    # Sorted sets
    async def zadd(self, key: str, mapping: Mapping[str, float]) -> int:
        if not mapping:
            raise KVCommandError("wrong number of arguments for 'zadd' command")
        self._check_type(key, self._zsets)
        zset = self._zsets.setdefault(key, {})
        added = sum(1 for member in mapping if member not in zset)
        for member, score in mapping.items():
            zset[str(member)] = float(score)
        return added

    async def zrem(self, key: str, *members: str) -> int:
        self._check_type(key, self._zsets)
        zset = self._zsets.get(key)
        if zset is None:
            return 0
        removed = 0
        for member in members:
            if zset.pop(member, None) is not None:
                removed += 1
        if not zset:
            del self._zsets[key]
        return removed

    def _ordered(self, key: str, desc: bool) -> list[str]:
        items = sorted(self._zsets.get(key, {}).items(), key=_score_key, reverse=desc)
        return [member for member, _ in items]

    async def zrange(self, key: str, start: int, end: int, desc: bool = False) -> list[str]:
        self._check_type(key, self._zsets)
        ordered = self._ordered(key, desc)
        size = len(ordered)
        if start < 0:
            start = max(0, size + start)
        if end < 0:
            end = size + end
        if start > end or start >= size:
            return []
        return ordered[start : end + 1]

    async def zcard(self, key: str) -> int:
        self._check_type(key, self._zsets)
        return len(self._zsets.get(key, {}))

    async def zscore(self, key: str, member: str) -> float | None:
        self._check_type(key, self._zsets)
        return self._zsets.get(key, {}).get(member)

    # Keyspace
    async def scan_keys(self, prefix: str) -> list[str]:
        found: list[str] = []
        for space in (self._strings, self._hashes, self._sets, self._zsets):
            for key in list(space):
                if key.startswith(prefix):
                    self._expire_if_due(key)
                    if await self.exists(key):
                        found.append(key)
        return sorted(set(found))

    async def execute_batch(self, commands: Sequence[Command]) -> list[Any]:
        results: list[Any] = []
        for op, args in commands:
            if op not in BATCH_COMMANDS:
                raise ValueError(f"command not allowed in a write batch: {op}")
            try:
                results.append(await getattr(self, op)(*args))
            except KVCommandError as exc:
                results.append(exc)
        return results

    async def close(self) -> None:
        return None

    def reset(self) -> None:
        self._strings.clear()
        self._hashes.clear()
        self._sets.clear()
        self._zsets.clear()
        self._expires_at.clear()


def _import_redis() -> Any:
    try:
        import redis.asyncio as redis_asyncio  # type: ignore
    except ImportError as exc:
        raise RuntimeError("redis is required for PORTAL_STORE_BACKEND=redis; install redis>=5") from exc
    return redis_asyncio


class RedisKVBackend:
    """Redis-backed store; every call is one round trip bounded by the socket timeout.

    A refused connection or a timeout on any call surfaces as
    :class:`StoreUnavailable`.
    """

    backend_name = "redis"

    def __init__(self, *, dsn: str, timeout_seconds: float = 5.0) -> None:
        if not dsn.strip():
            raise ValueError("REDIS_DSN must be provided for redis store backend")
        self._dsn = dsn.strip()
        redis = _import_redis()
        self._redis = redis
        self._client = redis.Redis.from_url(
            self._dsn,
            decode_responses=True,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
        )

    def _unavailable(self, command: str, exc: Exception) -> StoreUnavailable:
        logger.warning("store_unavailable backend=redis command=%s error=%s", command, exc)
        return StoreUnavailable(f"redis {command} failed: {exc}")

    async def _call(self, command: str, *args: Any, **kwargs: Any) -> Any:
        try:
            return await getattr(self._client, command)(*args, **kwargs)
        except (self._redis.ConnectionError, self._redis.TimeoutError) as exc:
            raise self._unavailable(command, exc) from exc

    async def get(self, key: str) -> str | None:
        return await self._call("get", key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        return bool(await self._call("set", key, value, ex=ex))

    async def incr(self, key: str) -> int:
        return int(await self._call("incr", key))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._call("delete", *keys))

    async def exists(self, key: str) -> bool:
        return bool(await self._call("exists", key))

    async def ttl(self, key: str) -> int:
        return int(await self._call("ttl", key))

    async def key_type(self, key: str) -> str:
        return str(await self._call("type", key))

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(await self._call("hgetall", key) or {})

    async def hset(self, key: str, mapping: Mapping[str, str]) -> int:
        return int(await self._call("hset", key, mapping=dict(mapping)))

    async def hdel(self, key: str, *fields: str) -> int:
        return int(await self._call("hdel", key, *fields))

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        return int(await self._call("hincrby", key, field, amount))

    async def sadd(self, key: str, *members: str) -> int:
        return int(await self._call("sadd", key, *members))

    async def srem(self, key: str, *members: str) -> int:
        return int(await self._call("srem", key, *members))

    async def smembers(self, key: str) -> set[str]:
        return set(await self._call("smembers", key) or set())

    async def scard(self, key: str) -> int:
        return int(await self._call("scard", key))

    async def sscan(self, key: str, cursor: int = 0, count: int = 10) -> tuple[int, list[str]]:
        next_cursor, members = await self._call("sscan", key, cursor=cursor, count=count)
        return int(next_cursor), list(members)

    async def zadd(self, key: str, mapping: Mapping[str, float]) -> int:
        return int(await self._call("zadd", key, dict(mapping)))

    async def zrem(self, key: str, *members: str) -> int:
        return int(await self._call("zrem", key, *members))

    async def zrange(self, key: str, start: int, end: int, desc: bool = False) -> list[str]:
        return list(await self._call("zrange", key, start, end, desc=desc))

    async def zcard(self, key: str) -> int:
        return int(await self._call("zcard", key))

    async def zscore(self, key: str, member: str) -> float | None:
        score = await self._call("zscore", key, member)
        return None if score is None else float(score)

    async def scan_keys(self, prefix: str) -> list[str]:
        found: list[str] = []
        try:
            async for key in self._client.scan_iter(match=f"{prefix}*", count=500):
                found.append(key)
        except (self._redis.ConnectionError, self._redis.TimeoutError) as exc:
            raise self._unavailable("scan", exc) from exc
        return sorted(set(found))

    async def execute_batch(self, commands: Sequence[Command]) -> list[Any]:
        for op, _ in commands:
            if op not in BATCH_COMMANDS:
                raise ValueError(f"command not allowed in a write batch: {op}")
        try:
            async with self._client.pipeline(transaction=False) as pipe:
                for op, args in commands:
                    if op == "hset":
                        key, mapping = args
                        pipe.hset(key, mapping=dict(mapping))
                    elif op == "zadd":
                        key, mapping = args
                        pipe.zadd(key, dict(mapping))
                    else:
                        getattr(pipe, op)(*args)
                raw = await pipe.execute(raise_on_error=False)
        except (self._redis.ConnectionError, self._redis.TimeoutError) as exc:
            raise self._unavailable("pipeline", exc) from exc
        return [KVCommandError(str(item)) if isinstance(item, Exception) else item for item in raw]

    async def close(self) -> None:
        await self._client.aclose()


def create_kv_from_env(
    environ: Mapping[str, str] | None = None,
    *,
    settings: PortalSettings | None = None,
) -> InMemoryKVBackend | RedisKVBackend:
    settings = settings or PortalSettings.from_env(environ)
    backend = settings.store_backend
    if settings.require_true_stack and backend != "redis":
        raise RuntimeError("PORTAL_STORE_BACKEND must be redis when PORTAL_REQUIRE_TRUESTACK=true")
    if backend == "memory":
        return InMemoryKVBackend()
    if backend == "redis":
        if not settings.redis_dsn:
            raise ValueError("REDIS_DSN must be set when PORTAL_STORE_BACKEND=redis")
        logger.info("store_backend_selected backend=redis timeout_s=%s", settings.store_timeout_seconds)
        return RedisKVBackend(dsn=settings.redis_dsn, timeout_seconds=settings.store_timeout_seconds)
    raise RuntimeError(f"unsupported store backend: {backend}")
