"""
Product listing cache backed by Redis.

Read-through cache for an organization's product listing:
- HIT: cached payload younger than PRODUCT_CACHE_MAX_AGE_SECONDS
- MISS: payload recomputed from the database and stored (best-effort)
- STALE: database read failed; last cached payload served regardless of age
- BYPASS: no cache configured

Keys:
    products:<org_id>                 JSON list of product dicts
    products:<org_id>:last_modified   epoch milliseconds of the last write

Cache failures never fail a read or a write. They are logged instead.
"""
from __future__ import annotations

import json
import time
from typing import Callable

import redis
from flask import current_app

from ..errors import AccessDeniedError


EXTENSION_KEY = "product_cache"

STATUS_HIT = "HIT"
STATUS_MISS = "MISS"
STATUS_STALE = "STALE"
STATUS_BYPASS = "BYPASS"

_CACHE_ERRORS = (redis.RedisError, OSError, ValueError, TypeError)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ProductCache:
    """Flask extension wrapping a redis-py client for product listings."""

    def __init__(self, app=None, client=None):
        if app is not None:
            self.init_app(app, client=client)

    def init_app(self, app, client=None) -> None:
        if client is None:
            url = app.config.get("CACHE_REDIS_URL")
            if url:
                client = redis.Redis.from_url(
                    url,
                    decode_responses=True,
                    socket_timeout=1,
                    socket_connect_timeout=1,
                )
        app.extensions[EXTENSION_KEY] = client

    @property
    def client(self):
        return current_app.extensions.get(EXTENSION_KEY)

    @property
    def enabled(self) -> bool:
        return self.client is not None

    @staticmethod
    def products_key(org_id: int) -> str:
        return f"products:{org_id}"

    @staticmethod
    def last_modified_key(org_id: int) -> str:
        return f"products:{org_id}:last_modified"

    # -- raw operations (raise on cache failure) --

    def get_products(self, org_id: int) -> list | None:
        raw = self.client.get(self.products_key(org_id))
        if raw is None:
            return None
        return json.loads(raw)

    def get_last_modified(self, org_id: int) -> int | None:
        raw = self.client.get(self.last_modified_key(org_id))
        return int(raw) if raw is not None else None

    def set_products(self, org_id: int, items: list) -> None:
        pipe = self.client.pipeline()
        pipe.set(self.products_key(org_id), json.dumps(items))
        pipe.set(self.last_modified_key(org_id), _now_ms())
        pipe.execute()

    def invalidate_products(self, org_id: int) -> None:
        if not self.enabled:
            return
        self.client.delete(self.products_key(org_id), self.last_modified_key(org_id))

    # -- coordinated operations (never raise on cache failure) --

    def _safe_get(self, org_id: int) -> tuple[list | None, int | None]:
        try:
            return self.get_products(org_id), self.get_last_modified(org_id)
        except _CACHE_ERRORS as exc:
            current_app.logger.warning("Product cache read failed for org %s: %s", org_id, exc)
            return None, None

    def store(self, org_id: int, items: list) -> bool:
        if not self.enabled:
            return False
        try:
            self.set_products(org_id, items)
            return True
        except _CACHE_ERRORS as exc:
            current_app.logger.warning("Product cache write failed for org %s: %s", org_id, exc)
            return False

    def serve_stale(self, org_id: int) -> dict | None:
        """Last cached payload for org_id regardless of age, or None."""
        if not self.enabled:
            return None
        fallback, fallback_modified = self._safe_get(org_id)
        if fallback is None:
            return None
        current_app.logger.warning(
            "Serving stale product cache for org %s after database failure", org_id, exc_info=True
        )
        age = round((_now_ms() - fallback_modified) / 1000) if fallback_modified else None
        return {"items": fallback, "cache": {"status": STATUS_STALE, "age_seconds": age}}

    def read_through(self, org_id: int, loader: Callable[[], list]) -> dict:
        """
        Return {"items": [...], "cache": {"status": ..., "age_seconds": ...}}.

        `loader` recomputes the listing from the database. If it raises
        (other than AccessDeniedError) the cached payload is served as STALE
        when one exists; otherwise the error propagates.
        """
        if not self.enabled:
            return {"items": loader(), "cache": {"status": STATUS_BYPASS, "age_seconds": None}}

        max_age_ms = current_app.config.get("PRODUCT_CACHE_MAX_AGE_SECONDS", 300) * 1000

        cached, last_modified = self._safe_get(org_id)
        if cached is not None and last_modified is not None:
            age_ms = _now_ms() - last_modified
            if age_ms < max_age_ms:
                current_app.logger.debug("Product cache HIT for org %s (age %ss)", org_id, age_ms // 1000)
                return {"items": cached, "cache": {"status": STATUS_HIT, "age_seconds": round(age_ms / 1000)}}
            current_app.logger.debug("Product cache expired for org %s (age %ss)", org_id, age_ms // 1000)

        try:
            items = loader()
        except AccessDeniedError:
            raise
        except Exception:
            stale = self.serve_stale(org_id)
            if stale is None:
                raise
            return stale

        self.store(org_id, items)
        current_app.logger.debug("Product cache MISS for org %s; cached %s products", org_id, len(items))
        return {"items": items, "cache": {"status": STATUS_MISS, "age_seconds": 0}}


def invalidate_after_write(org_id: int) -> bool:
    """
    Invalidate an organization's listing after a committed write.

    Returns False (and logs) when invalidation fails; the write stands.
    """
    from ..extensions import product_cache

    try:
        product_cache.invalidate_products(org_id)
    except Exception as exc:
        current_app.logger.warning(
            "Product cache invalidation failed for org %s; listing may be stale for up to %ss: %s",
            org_id, current_app.config.get("PRODUCT_CACHE_MAX_AGE_SECONDS", 300), exc,
        )
        return False
    return True
