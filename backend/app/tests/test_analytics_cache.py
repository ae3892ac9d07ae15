import pytest

from app.analytics_cache import AnalyticsCache, BoundedCache, build_cache_key


def test_cache_key_sorts_params():
    assert build_cache_key("character", "abc") == "character:abc:"
    assert build_cache_key("analytics", "u1", {"b": 2, "a": 1}) == 'analytics:u1:{"a": 1, "b": 2}'


def test_full_cache_evicts_oldest_insert():
    cache = BoundedCache(max_size=2)
    cache.set("a", 1)
    cache.set("b", 2)
    # Reads do not refresh position.
    assert cache.get("a") == 1
    cache.set("c", 3)
    assert "a" not in cache
    assert cache.keys() == ["b", "c"]


def test_overwrite_keeps_position_and_evicts_nothing():
    cache = BoundedCache(max_size=2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 10)
    assert len(cache) == 2
    assert cache.get("a") == 10
    cache.set("c", 3)
    assert cache.keys() == ["b", "c"]


def test_delete_reports_whether_key_existed():
    cache = BoundedCache(max_size=3)
    cache.set("a", None)
    assert cache.delete("a") is True
    assert cache.delete("a") is False


def test_size_must_be_positive():
    with pytest.raises(ValueError):
        BoundedCache(max_size=0)


def test_invalidate_character_across_namespaces():
    cache = AnalyticsCache()
    cache.set("character", "c1", "report", {"report": "consistency"})
    cache.set("realtime", "c1", "analysis", {"content": "once upon a time"})
    cache.set("realtime", "c10", "other", {"content": "x"})
    cache.set("analytics", "u1", "dashboard")

    assert cache.invalidate_character("c1") == 2
    assert cache.get("realtime", "c10", {"content": "x"}) == "other"
    assert cache.get("analytics", "u1") == "dashboard"
    assert cache.stats()["realtime"] == {"size": 1, "max_size": 100}


def test_clear_single_namespace():
    cache = AnalyticsCache({"character": 2, "realtime": 2})
    cache.set("character", "c1", 1)
    cache.set("realtime", "c1", 2)
    cache.clear("character")
    assert cache.stats() == {
        "character": {"size": 0, "max_size": 2},
        "realtime": {"size": 1, "max_size": 2},
    }
    cache.clear()
    assert cache.stats()["realtime"]["size"] == 0


def test_unknown_namespace():
    with pytest.raises(ValueError):
        AnalyticsCache().get("sessions", "x")
