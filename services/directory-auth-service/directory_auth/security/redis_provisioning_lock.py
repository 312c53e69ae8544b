"""Redis-backed single-flight lock serialising principal provisioning across processes."""

from __future__ import annotations

import secrets
import time
from contextlib import contextmanager
from typing import Final, Iterator

from redis import Redis
from redis.exceptions import ResponseError

from .provisioning_lock import ProvisioningLockTimeout


class RedisProvisioningLock:
    """Distributed lock implemented with ``SET NX PX`` and a token-checked release."""

    _RELEASE_SCRIPT: Final[str] = """
    if redis.call('GET', KEYS[1]) == ARGV[1] then
        return redis.call('DEL', KEYS[1])
    end
    return 0
    """

    def __init__(
        self,
        client: Redis,
        *,
        timeout_seconds: float = 10.0,
        lease_seconds: float = 30.0,
        poll_interval: float = 0.05,
        key_prefix: str = "provision"
    ) -> None:
        """Initialise the Redis client, timing configuration, and Lua script cache."""
        self._client = client
        self._timeout = timeout_seconds
        self._lease_ms = int(lease_seconds * 1000)
        self._poll_interval = poll_interval
        self._key_prefix = key_prefix
        self._script = client.register_script(self._RELEASE_SCRIPT)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the distributed lock for ``key`` for the duration of the ``with`` block."""
        redis_key = f"{self._key_prefix}:{key.lower()}"
        token = secrets.token_hex(16)
        deadline = time.monotonic() + self._timeout
        while not self._client.set(redis_key, token, nx=True, px=self._lease_ms):
            if time.monotonic() >= deadline:
                raise ProvisioningLockTimeout(f"timed out waiting for provisioning lock on {redis_key!r}")
            time.sleep(self._poll_interval)
        try:
            yield
        finally:
            self._release(redis_key, token)

    def _release(self, redis_key: str, token: str) -> None:
        try:
            self._script(keys=[redis_key], args=[token])
        except ResponseError as exc:
            message = str(exc).lower()
            if "unknown command" in message and "eval" in message:
                self._release_fallback(redis_key, token)
                return
            raise

    def _release_fallback(self, redis_key: str, token: str) -> None:
        """Fallback pure-Python release used when Lua is unavailable."""
        current = self._client.get(redis_key)
        if isinstance(current, bytes):
            current = current.decode("utf-8")
        if current == token:
            self._client.delete(redis_key)
