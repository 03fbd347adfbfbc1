import json
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from kb_chat.domain.cache import fingerprint_messages
from kb_chat.domain.exceptions import CacheError
from kb_chat.domain.models import ChatMessage
from kb_chat.infrastructure.cache.json_cache import JsonFileResponseCache
from kb_chat.infrastructure.cache.memory_cache import MemoryResponseCache, NullResponseCache


def _msgs(*pairs):
    return [ChatMessage(role=role, content=content) for role, content in pairs]


def test_fingerprint_is_deterministic_and_ignores_meta():
    a = _msgs(("system", "kb"), ("user", "hi"))
    b = _msgs(("system", "kb"), ("user", "hi"))
    b[1].meta["cached"] = True
    assert fingerprint_messages(a) == fingerprint_messages(b)
    assert len(fingerprint_messages(a)) == 64


def test_fingerprint_is_order_sensitive():
    a = _msgs(("user", "one"), ("user", "two"))
    b = _msgs(("user", "two"), ("user", "one"))
    assert fingerprint_messages(a) != fingerprint_messages(b)


def test_fingerprint_distinguishes_roles_namespace_and_boundaries():
    base = _msgs(("user", "hi"))
    assert fingerprint_messages(base) != fingerprint_messages(_msgs(("assistant", "hi")))
    assert fingerprint_messages(base, namespace="openai:gpt-4") != fingerprint_messages(base, namespace="glm:glm-4.6")
    assert fingerprint_messages(_msgs(("user", "ab"), ("user", "c"))) != fingerprint_messages(
        _msgs(("user", "a"), ("user", "bc"))
    )


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


def test_memory_cache_get_put_and_expiry():
    clock = FakeClock()
    cache = MemoryResponseCache(clock=clock)
    assert cache.get("k") is None
    cache.put("k", "v", ttl=10)
    assert cache.get("k") == "v"
    clock.now = 9.9
    assert cache.get("k") == "v"
    clock.now = 10.0
    assert cache.get("k") is None
    assert len(cache) == 0


def test_memory_cache_without_ttl_never_expires():
    clock = FakeClock()
    cache = MemoryResponseCache(clock=clock)
    cache.put("k", "v", ttl=None)
    clock.now = 10**9
    assert cache.get("k") == "v"


def test_memory_cache_evicts_oldest():
    cache = MemoryResponseCache(max_entries=2)
    cache.put("a", "1", ttl=None)
    cache.put("b", "2", ttl=None)
    cache.put("c", "3", ttl=None)
    assert cache.get("a") is None
    assert cache.get("b") == "2"
    assert cache.get("c") == "3"


def test_memory_cache_read_refreshes_entry():
    cache = MemoryResponseCache(max_entries=2)
    cache.put("a", "1", ttl=None)
    cache.put("b", "2", ttl=None)
    assert cache.get("a") == "1"
    cache.put("c", "3", ttl=None)
    assert cache.get("b") is None
    assert cache.get("a") == "1"
    assert cache.get("c") == "3"


def test_null_cache_always_misses():
    cache = NullResponseCache()
    cache.put("k", "v", ttl=10)
    assert cache.get("k") is None


def test_json_cache_roundtrip_and_persistence():
    fp = fingerprint_messages(_msgs(("user", "hi")))
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / "cache"
        JsonFileResponseCache(root=root).put(fp, "héllo", ttl=60)
        # a fresh instance reads what the previous one wrote
        assert JsonFileResponseCache(root=root).get(fp) == "héllo"
        data = json.loads((root / f"{fp}.json").read_text(encoding="utf-8"))
        assert data["response"] == "héllo"
        assert data["expires_at"].endswith("Z")
        assert not list(root.glob("*.tmp"))


def test_json_cache_expiry_removes_entry():
    fp = fingerprint_messages(_msgs(("user", "hi")))
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    now = {"value": start}
    with tempfile.TemporaryDirectory() as d:
        cache = JsonFileResponseCache(root=d, clock=lambda: now["value"])
        cache.put(fp, "v", ttl=30)
        now["value"] = start + timedelta(seconds=29)
        assert cache.get(fp) == "v"
        now["value"] = start + timedelta(seconds=31)
        assert cache.get(fp) is None
        assert not (Path(d) / f"{fp}.json").exists()


def test_json_cache_corrupt_entry_is_a_miss():
    fp = fingerprint_messages(_msgs(("user", "hi")))
    with tempfile.TemporaryDirectory() as d:
        (Path(d) / f"{fp}.json").write_text("{not json", encoding="utf-8")
        cache = JsonFileResponseCache(root=d)
        assert cache.get(fp) is None
        cache.put(fp, "fixed", ttl=None)
        assert cache.get(fp) == "fixed"


def test_json_cache_rejects_bad_keys_and_clears():
    with tempfile.TemporaryDirectory() as d:
        cache = JsonFileResponseCache(root=d)
        with pytest.raises(CacheError):
            cache.put("../escape", "v", ttl=None)
        fp = fingerprint_messages(_msgs(("user", "x")))
        cache.put(fp, "v", ttl=None)
        cache.clear()
        assert cache.get(fp) is None


@pytest.mark.parametrize("expires_at", ["not-a-date", 12345])
def test_json_cache_bad_expiry_is_a_miss(expires_at):
    fp = fingerprint_messages(_msgs(("user", "hi")))
    with tempfile.TemporaryDirectory() as d:
        entry = {"fingerprint": fp, "response": "stale", "expires_at": expires_at}
        (Path(d) / f"{fp}.json").write_text(json.dumps(entry), encoding="utf-8")
        assert JsonFileResponseCache(root=d).get(fp) is None
