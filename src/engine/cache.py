"""TTL store and provider cooldown state.

Both are plain objects passed to whoever needs them (API app, LLM
collaborator, tests); nothing here is a module-level singleton.
"""

from __future__ import annotations

import hashlib
import threading
import time
from typing import Any, Callable


class TTLStore:
    """In-memory key/value store whose entries expire after a per-entry TTL."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def make_key(*parts: Any) -> str:
        return hashlib.sha1("|".join(str(part) for part in parts).encode()).hexdigest()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return default
            return value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        with self._lock:
            now = self._clock()
            expired = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
            for k in expired:
                del self._entries[k]
            self._entries[key] = (now + ttl_seconds, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for expires_at, _ in self._entries.values() if now < expires_at)


class ProviderRuntime:
    """Circuit breaker: after `threshold` consecutive failures a provider is
    skipped for `cooldown_seconds`. State lives in the injected TTLStore."""

    def __init__(
        self,
        store: TTLStore | None = None,
        threshold: int = 3,
        cooldown_seconds: float = 120.0,
    ) -> None:
        self.store = store if store is not None else TTLStore()
        self.threshold = threshold
        self.cooldown_seconds = cooldown_seconds

    def should_skip(self, provider: str) -> bool:
        return bool(self.store.get(f"cooldown:{provider}", False))

    def mark_success(self, provider: str) -> None:
        self.store.delete(f"failures:{provider}")
        self.store.delete(f"cooldown:{provider}")

    def mark_failure(self, provider: str) -> None:
        failures = int(self.store.get(f"failures:{provider}", 0)) + 1
        if failures >= self.threshold:
            self.store.delete(f"failures:{provider}")
            self.store.set(f"cooldown:{provider}", True, self.cooldown_seconds)
        else:
            self.store.set(f"failures:{provider}", failures, self.cooldown_seconds * 5)
