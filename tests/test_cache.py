from marketplace_scrape.cache import StateStore, TTLCache
from marketplace_scrape.schema import Marketplace


def test_ttl_cache_expires_lazily():
    now = [0.0]
    cache = TTLCache(clock=lambda: now[0])
    cache.set("https://a.com/p/1", None, ttl=10)
    assert cache.get("https://a.com/p/1") == (True, None)
    now[0] = 10
    assert cache.get("https://a.com/p/1") == (False, None)
    assert len(cache) == 0


class TestStateStore:

    def test_round_trip_and_cookie_filter(self, tmp_path):
        store = StateStore(tmp_path)
        store.save(Marketplace.SHOPEE, {"cookies": [
            {"name": "SPC_EC", "value": "abc", "domain": ".shopee.com.br"},
            {"name": "_ga", "value": "x", "domain": ".google.com"},
        ], "origins": []})
        assert store.path_for(Marketplace.SHOPEE).name == "shopee-playwright.json"
        assert store.cookies(Marketplace.SHOPEE, "shopee") == {"SPC_EC": "abc"}
        assert len(store.cookies(Marketplace.SHOPEE)) == 2

    def test_missing_or_corrupt_state(self, tmp_path):
        store = StateStore(tmp_path)
        assert store.load(Marketplace.AMAZON) is None
        store.path_for(Marketplace.AMAZON).write_text("{not json")
        assert store.load(Marketplace.AMAZON) is None
        assert store.cookies(Marketplace.AMAZON) == {}
