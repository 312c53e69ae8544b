"""In-memory single-flight lock serialising principal provisioning per username."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Iterator


class ProvisioningLockTimeout(RuntimeError):
    """Raised when the lock for a username could not be acquired in time."""


@dataclass(slots=True)
class _KeyedLock:
    lock: Lock = field(default_factory=Lock)
    holders: int = 0


class InMemoryProvisioningLock:
    """Thread-safe lock keyed by lower-cased username, scoped to one process."""

    def __init__(self, timeout_seconds: float = 10.0) -> None:
        """Initialise the acquisition timeout and per-key storage."""
        self._timeout = timeout_seconds
        self._locks: dict[str, _KeyedLock] = {}
        self._guard = Lock()

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the ``with`` block."""
        name = key.lower()
        with self._guard:
            entry = self._locks.setdefault(name, _KeyedLock())
            entry.holders += 1
        try:
            if not entry.lock.acquire(timeout=self._timeout):
                raise ProvisioningLockTimeout(f"timed out waiting for provisioning lock on {name!r}")
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    self._locks.pop(name, None)
