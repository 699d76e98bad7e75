"""TTL store and provider cooldown tests."""

from __future__ import annotations

from src.engine.cache import ProviderRuntime, TTLStore


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_entries_expire():
    clock = FakeClock()
    store = TTLStore(clock=clock)
    store.set("a", {"answer": 1}, ttl_seconds=10)

    assert store.get("a") == {"answer": 1}
    assert len(store) == 1
    clock.now += 10
    assert store.get("a") is None
    assert store.get("a", "missing") == "missing"
    assert len(store) == 0


def test_make_key_is_stable():
    assert TTLStore.make_key("chat", '{"prompt":"hi"}') == TTLStore.make_key("chat", '{"prompt":"hi"}')
    assert TTLStore.make_key("chat", "a") != TTLStore.make_key("chat", "b")


def test_cooldown_after_consecutive_failures():
    clock = FakeClock()
    runtime = ProviderRuntime(TTLStore(clock=clock), threshold=3, cooldown_seconds=120)

    runtime.mark_failure("gpt")
    runtime.mark_failure("gpt")
    assert not runtime.should_skip("gpt")
    runtime.mark_failure("gpt")
    assert runtime.should_skip("gpt")
    assert not runtime.should_skip("other")

    clock.now += 121
    assert not runtime.should_skip("gpt")


def test_success_resets_failures():
    runtime = ProviderRuntime(threshold=2)
    runtime.mark_failure("gpt")
    runtime.mark_success("gpt")
    runtime.mark_failure("gpt")
    assert not runtime.should_skip("gpt")


def test_set_prunes_expired_entries():
    clock = FakeClock()
    store = TTLStore(clock=clock)
    for i in range(5):
        store.set(f"old-{i}", i, ttl_seconds=5)
    clock.now += 6
    store.set("fresh", "x", ttl_seconds=5)

    assert list(store._entries) == ["fresh"]
