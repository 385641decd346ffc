from __future__ import annotations

import logging
import threading
import time

import requests

logger = logging.getLogger(__name__)


class JwksCache:
    """Per-URI cache of JWKS signing keys, refreshed after ``ttl_sec`` or on an unknown kid."""

    def __init__(self, *, ttl_sec: int, timeout_sec: int) -> None:
        self.ttl_sec = max(0, int(ttl_sec))
        self.timeout_sec = max(1, int(timeout_sec))
        self._lock = threading.Lock()
        self._keys_by_uri: dict[str, dict[str, dict]] = {}
        self._fetched_at: dict[str, float] = {}

    def _fetch(self, jwks_uri: str) -> dict[str, dict]:
        response = requests.get(jwks_uri, timeout=self.timeout_sec)
        response.raise_for_status()
        payload = response.json() or {}
        keys: dict[str, dict] = {}
        for key in payload.get("keys") or []:
            kid = key.get("kid")
            if kid:
                keys[str(kid)] = key
        return keys

    def _is_fresh(self, jwks_uri: str) -> bool:
        fetched_at = self._fetched_at.get(jwks_uri)
        if fetched_at is None:
            return False
        return (time.monotonic() - fetched_at) < self.ttl_sec

    def get_key(self, jwks_uri: str, kid: str) -> dict | None:
        if not jwks_uri or not kid:
            return None
        with self._lock:
            if self._is_fresh(jwks_uri):
                cached = self._keys_by_uri.get(jwks_uri, {}).get(kid)
                if cached is not None:
                    return cached
            try:
                keys = self._fetch(jwks_uri)
            except (requests.RequestException, ValueError) as exc:
                logger.warning("jwks_fetch_failed uri=%s error=%s", jwks_uri, exc)
                return self._keys_by_uri.get(jwks_uri, {}).get(kid)
            self._keys_by_uri[jwks_uri] = keys
            self._fetched_at[jwks_uri] = time.monotonic()
            return keys.get(kid)
