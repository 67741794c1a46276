# Overview: Read-through cache over Redis; best-effort side channel to the database.

from __future__ import annotations

import json

import redis
from flask import current_app


def inventory_key(outlet_id) -> str:
    return f"inventory:{outlet_id}"


def menu_key(outlet_id) -> str:
    return f"menu:{outlet_id}"


def outlet_stats_key(outlet_id) -> str:
    return f"outlet:stats:{outlet_id}"


def wallets_key(outlet_id) -> str:
    return f"wallets:{outlet_id}"


def monthly_key(outlet_id, month: str) -> str:
    return f"monthly:{outlet_id}:{month}"


def register_key(outlet_id, business_date) -> str:
    return f"register:{outlet_id}:{business_date}"


def dashboard_key(tenant_id) -> str:
    return f"dash:stats:{tenant_id}"


class LedgerCache:
    """
    Read-through cache used by listings and rollups.

    - No REDIS_URL configured: every read goes straight to fetch().
    - Store unavailable: errors are logged and swallowed; reads fall back to
      fetch(), invalidations are lost (staleness bounded by TTL).
    - None results are never cached.

    Values are JSON; anything json can't encode natively goes through str().
    """

    def __init__(self, client=None):
        self.client = client
        self.default_ttl = 300

    def init_app(self, app):
        self.default_ttl = app.config.get("CACHE_DEFAULT_TTL", 300)
        url = app.config.get("REDIS_URL")
        if self.client is None and url:
            self.client = redis.Redis.from_url(url, socket_timeout=1.0)
        app.extensions["ledger_cache"] = self

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def get_or_set(self, key: str, fetch, ttl: int | None = None):
        if self.client is None:
            return fetch()

        try:
            cached = self.client.get(key)
        except redis.exceptions.RedisError as exc:
            current_app.logger.warning("cache read failed for %s: %s", key, exc)
            return fetch()

        if cached is not None:
            try:
                return json.loads(cached)
            except ValueError:
                current_app.logger.warning("discarding undecodable cache entry %s", key)

        value = fetch()
        if value is None:
            return None

        try:
            self.client.set(key, json.dumps(value, default=str), ex=ttl or self.default_ttl)
        except redis.exceptions.RedisError as exc:
            current_app.logger.warning("cache write failed for %s: %s", key, exc)
        return value

    def invalidate(self, *keys: str) -> None:
        if self.client is None or not keys:
            return
        try:
            self.client.delete(*keys)
        except redis.exceptions.RedisError as exc:
            current_app.logger.warning("cache invalidation failed for %s: %s", ", ".join(keys), exc)

    def invalidate_pattern(self, prefix: str) -> int:
        """Delete every key starting with prefix. Returns the number deleted."""
        if self.client is None:
            return 0
        try:
            keys = list(self.client.scan_iter(match=f"{prefix}*"))
            if keys:
                self.client.delete(*keys)
        except redis.exceptions.RedisError as exc:
            current_app.logger.warning("cache pattern invalidation failed for %s*: %s", prefix, exc)
            return 0
        current_app.logger.info("invalidated %d cache keys matching %s*", len(keys), prefix)
        return len(keys)

    def invalidate_outlet_stock(self, outlet_id) -> None:
        self.invalidate(inventory_key(outlet_id), menu_key(outlet_id))

    def invalidate_outlet_sales(self, tenant_id, outlet_id, business_date, month: str) -> None:
        self.invalidate(
            outlet_stats_key(outlet_id),
            monthly_key(outlet_id, month),
            register_key(outlet_id, business_date),
            dashboard_key(tenant_id),
        )
