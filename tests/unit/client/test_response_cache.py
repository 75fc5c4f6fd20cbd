"""响应缓存测试"""

from taskweave.client.response_cache import CacheConfig, ResponseCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestResponseCache:
    """ResponseCache 测试"""

    def test_hit_and_expiry(self):
        clock = FakeClock()
        cache = ResponseCache(CacheConfig(default_ttl=10), clock=clock)
        cache.set("/api/tasks", ["a"])

        assert cache.get("/api/tasks") == ["a"]
        clock.now = 10
        assert cache.get("/api/tasks") is None
        assert len(cache) == 0

    def test_params_are_part_of_key(self):
        cache = ResponseCache(CacheConfig())
        cache.set("/api/tasks", [1], params={"status": "Done", "page": 1})

        assert cache.get("/api/tasks", {"page": 1, "status": "Done"}) == [1]
        assert cache.get("/api/tasks") is None

    def test_invalidate_prefix(self):
        cache = ResponseCache(CacheConfig())
        cache.set("/api/tasks", [1])
        cache.set("/api/tasks/blocked", [2])
        cache.set("/api/users", [3])

        assert cache.invalidate("/api/tasks") == 2
        assert cache.get("/api/users") == [3]
        assert cache.get("/api/tasks/blocked") is None

    def test_eviction_keeps_size_bounded(self):
        clock = FakeClock()
        cache = ResponseCache(CacheConfig(max_size=3), clock=clock)
        for i in range(5):
            clock.now = i
            cache.set(f"/api/item/{i}", i)

        assert len(cache) == 3
        assert cache.get("/api/item/0") is None
        assert cache.get("/api/item/4") == 4

    def test_stats(self):
        cache = ResponseCache(CacheConfig(), name="test")
        cache.set("/a", 1)
        cache.get("/a")
        cache.get("/b")

        stats = cache.get_stats()
        assert stats["name"] == "test"
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 50.0
