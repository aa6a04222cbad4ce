from decimal import Decimal

from cryptoledger.core.cache import RedisCache, TokenPriceCache


def test_set_get_invalidate():
    cache = TokenPriceCache(ttl=60)
    cache.set("Ethereum", Decimal("3000.5"))

    assert cache.get("ethereum") == Decimal("3000.5")

    cache.invalidate("ethereum")
    assert cache.get("ethereum") is None


def test_entries_expire():
    cache = TokenPriceCache(ttl=0)
    cache.set("bitcoin", Decimal("64000"))
    assert cache.get("bitcoin") is None


def test_clear():
    cache = TokenPriceCache(ttl=60)
    cache.set("bitcoin", Decimal("1"))
    cache.set("ethereum", Decimal("2"))

    cache.clear()

    assert cache.get("bitcoin") is None
    assert cache.get("ethereum") is None


def test_disconnected_backend_falls_back_to_memory():
    cache = TokenPriceCache(backend=RedisCache(), ttl=60)
    cache.set("solana", Decimal("150"))
    assert cache.get("solana") == Decimal("150")
