"""
Tests for the response cache: key building, TTL, prefix invalidation, the
Redis backend and the HTTP-level invalidation wiring.
"""

import fnmatch
import json
import threading

import redis

from taphoa.cache import (
    CATEGORIES,
    PRODUCTS,
    MemoryResponseCache,
    RedisResponseCache,
    invalidate_categories,
    invalidate_products,
    make_cache_key,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class FakeRedis:
    """In-memory stand-in for the handful of redis.Redis calls the cache makes."""

    def __init__(self, fail=False):
        self.store = {}
        self.ttls = {}
        self.fail = fail

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("down")

    def ping(self):
        self._check()
        return True

    def get(self, key):
        self._check()
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self._check()
        self.store[key] = value
        self.ttls[key] = ttl

    def scan_iter(self, match="*", count=None):
        self._check()
        return [k for k in list(self.store) if fnmatch.fnmatchcase(k, match)]

    def delete(self, *keys):
        self._check()
        return sum(1 for k in keys if self.store.pop(k, None) is not None)


class TestCacheKey:
    def test_query_order_does_not_matter(self):
        a = make_cache_key("/api/products", [("page", "1"), ("limit", "12")])
        b = make_cache_key("/api/products", [("limit", "12"), ("page", "1")])
        assert a == b

    def test_bare_path(self):
        assert make_cache_key("/api/categories") == "/api/categories"

    def test_different_params_differ(self):
        assert make_cache_key("/api/products", [("page", "1")]) != make_cache_key("/api/products", [("page", "2")])


class TestMemoryResponseCache:
    def test_expires_after_ttl(self):
        clock = FakeClock()
        cache = MemoryResponseCache(ttl_seconds=60, clock=clock)
        cache.set("/api/categories", [1, 2])
        clock.now += 59
        assert cache.get("/api/categories") == [1, 2]
        clock.now += 2
        assert cache.get("/api/categories") is None
        assert len(cache) == 0

    def test_invalidate_prefix_only(self):
        cache = MemoryResponseCache()
        cache.set("/api/products?page=1", "p1")
        cache.set("/api/products/abc", "p")
        cache.set("/api/categories", "c")
        assert cache.invalidate(PRODUCTS) == 2
        assert cache.get("/api/categories") == "c"
        assert cache.get("/api/products?page=1") is None

    def test_category_invalidation_drops_products_too(self):
        cache = MemoryResponseCache()
        cache.set("/api/products", "p")
        cache.set("/api/categories/1", "c")
        invalidate_categories(cache)
        assert len(cache) == 0

    def test_product_invalidation_keeps_categories(self):
        cache = MemoryResponseCache()
        cache.set("/api/products", "p")
        cache.set(CATEGORIES, "c")
        invalidate_products(cache)
        assert len(cache) == 1

    def test_clear(self):
        cache = MemoryResponseCache()
        cache.set("a", 1)
        cache.clear()
        assert cache.get("a") is None

    def test_invalidate_while_another_thread_writes(self):
        cache = MemoryResponseCache()
        errors = []
        done = threading.Event()

        def writer():
            for n in range(20000):
                cache.set(f"/api/products?page={n}", n)
            done.set()

        thread = threading.Thread(target=writer)
        thread.start()
        try:
            while not done.is_set():
                try:
                    cache.invalidate(PRODUCTS)
                except RuntimeError as e:
                    errors.append(e)
                    break
        finally:
            thread.join()
        assert errors == []


class TestRedisResponseCache:
    def test_roundtrip_with_ttl(self):
        client = FakeRedis()
        cache = RedisResponseCache(client, ttl_seconds=30)
        cache.set("/api/categories", [{"id": "1"}])
        assert cache.get("/api/categories") == [{"id": "1"}]
        assert client.ttls["taphoa:resp:/api/categories"] == 30
        assert json.loads(client.store["taphoa:resp:/api/categories"]) == [{"id": "1"}]

    def test_invalidate_by_prefix(self):
        client = FakeRedis()
        cache = RedisResponseCache(client)
        cache.set("/api/products?page=1", 1)
        cache.set("/api/products/x", 2)
        cache.set("/api/categories", 3)
        assert cache.invalidate(PRODUCTS) == 2
        assert cache.get("/api/categories") == 3

    def test_errors_are_misses(self):
        cache = RedisResponseCache(FakeRedis(fail=True))
        cache.set("k", 1)
        assert cache.get("k") is None
        assert cache.invalidate(None) == 0
        assert cache.ping() is False


class TestHttpCaching:
    def test_category_list_served_from_cache_until_invalidated(self, client, db, cache, category, admin_headers):
        first = client.get("/api/categories")
        assert [c["name"] for c in first.json()] == ["Đồ uống"]

        category.name = "Đổi tên trực tiếp"
        db.commit()
        assert [c["name"] for c in client.get("/api/categories").json()] == ["Đồ uống"]

        created = client.post("/api/admin/categories", headers=admin_headers, json={"name": "Bánh kẹo"})
        assert created.status_code == 201
        names = [c["name"] for c in client.get("/api/categories").json()]
        assert names == ["Bánh kẹo", "Đổi tên trực tiếp"]

    def test_product_edit_invalidates_product_pages(self, client, make_product, admin_headers):
        product = make_product(name="Nước suối", price=5000, stock_quantity=10)
        assert client.get(f"/api/products/{product.id}").json()["price"] == 5000

        response = client.put(f"/api/admin/products/{product.id}", headers=admin_headers, json={"price": 6000})
        assert response.status_code == 200
        assert client.get(f"/api/products/{product.id}").json()["price"] == 6000

    def test_order_placement_invalidates_stock(self, client, customer, customer_headers, make_product, add_to_cart):
        product = make_product(name="Bia", price=15000, stock_quantity=10)
        assert client.get(f"/api/products/{product.id}").json()["stock_quantity"] == 10

        add_to_cart(customer, product, 3)
        placed = client.post("/api/orders", headers=customer_headers, json={
            "shippingName": "A",
            "shippingPhone": "0900",
            "shippingAddress": "HN",
        })
        assert placed.status_code == 201
        assert client.get(f"/api/products/{product.id}").json()["stock_quantity"] == 7

    def test_query_string_order_shares_entry(self, client, cache, make_product):
        make_product(name="Trà", price=8000)
        client.get("/api/products?page=1&limit=12")
        client.get("/api/products?limit=12&page=1")
        assert len(cache) == 1
