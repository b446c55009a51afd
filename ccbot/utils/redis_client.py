"""
Redis helpers for the history store.

Provides one place to construct the async client plus small helpers for
JSON-style key access.
"""

from __future__ import annotations

import json
from typing import Any

from redis.asyncio import Redis


def create_redis_client(url: str, *, tls_verify: bool = True) -> Redis:
    """Build an async Redis client from a URL.

    ``rediss://`` URLs connect over TLS. Hosted Redis often presents a
    self-signed certificate, in which case ``tls_verify=False`` skips
    certificate validation.
    """
    kwargs: dict[str, Any] = {"decode_responses": True}
    if url.startswith("rediss://") and not tls_verify:
        kwargs["ssl_cert_reqs"] = "none"
    return Redis.from_url(url, **kwargs)


async def redis_get_json(redis: Redis, key: str) -> Any | None:
    """
    Load a JSON value from Redis.

    Returns None on missing key or malformed payload.
    """
    raw = await redis.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return None


async def redis_set_json(
    redis: Redis, key: str, value: Any, *, ttl_seconds: int | None = None
) -> None:
    """Store a JSON-serialisable value under the given key with optional TTL."""
    data = json.dumps(value, ensure_ascii=False)
    if ttl_seconds is not None:
        await redis.set(key, data, ex=ttl_seconds)
    else:
        await redis.set(key, data)


async def redis_delete(redis: Redis, *keys: str) -> None:
    """Delete keys if they exist."""
    if keys:
        await redis.delete(*keys)


__all__ = ["create_redis_client", "redis_get_json", "redis_set_json", "redis_delete"]
