import asyncio
import logging
from typing import Dict, List

import httpx
import pytest

from product_assistant.catalog.fetcher import (
    WEAK_MATCH_SCORE,
    CatalogFetcher,
    match_score,
    rank_products,
    related_products,
)
from product_assistant.catalog.models import BLACK_FRIDAY_CATEGORY, DEFAULT_CATEGORIES, Product

BASE = "https://shop.example.com"

HOME = """
<html><body>
  <h1>Black Friday deals now on</h1>
  <div class="product-card"><h3>AirRAM 3</h3><span class="price">£249.99 £299.99</span><a href="/airram-3">View</a></div>
</body></html>
"""
FLOORCARE = """
<html><body>
  <div class="product-card"><h3>Orca Wet Dry</h3><span class="price">£129.99</span><a href="/orca">View</a></div>
  <div class="product-card"><h3>HT50 Hedge Trimmer</h3><span class="price">£149.99</span><a href="/ht50">View</a></div>
  <div class="product-card"><h3>LHT50 Hedge Trimmer</h3><span class="price">£119.99</span><a href="/lht50">View</a></div>
</body></html>
"""
BLACK_FRIDAY = """
<html><body>
  <div class="product-card"><h3>Koala Pet</h3><span class="price">£79.99 £119.99</span><a href="/koala">View</a></div>
</body></html>
"""
DETAIL = """
<html><body><h1>Penguin Wet Dry</h1><div class="price">£89.99</div>
<table><tr><th>Capacity</th><td>12L</td></tr></table></body></html>
"""


class Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def make_fetcher(pages: Dict[str, str], requests: List[str], clock=None, status: int = 200) -> CatalogFetcher:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request.url.path)
        if request.url.path in pages:
            return httpx.Response(status, text=pages[request.url.path])
        return httpx.Response(404, text="not found")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CatalogFetcher(
        BASE,
        cache_ttl=300,
        client=client,
        clock=clock or Clock(),
        seed_pages=("", "/black-friday", "/products/floorcare"),
        product_slugs={"penguin": "/products/penguin"},
    )


SITE = {"/": HOME, "": HOME, "/black-friday": BLACK_FRIDAY, "/products/floorcare": FLOORCARE, "/products/penguin": DETAIL}


def test_fetch_catalog_builds_snapshot_with_sale_views():
    requests: List[str] = []
    fetcher = make_fetcher(SITE, requests)
    snapshot = asyncio.run(fetcher.fetch_catalog())

    names = [product.name for product in snapshot.products]
    assert {"AirRAM 3", "Koala Pet", "Orca Wet Dry", "HT50 Hedge Trimmer"} <= set(names)
    assert snapshot.has_sales
    assert snapshot.has_black_friday
    assert {product.name for product in snapshot.sales} == {"AirRAM 3", "Koala Pet"}
    koala = next(product for product in snapshot.products if product.name == "Koala Pet")
    assert koala.category == BLACK_FRIDAY_CATEGORY
    assert koala in snapshot.black_friday


def test_fetch_catalog_serves_cache_within_ttl():
    requests: List[str] = []
    clock = Clock()
    fetcher = make_fetcher(SITE, requests, clock=clock)

    async def scenario():
        first = await fetcher.fetch_catalog()
        count = len(requests)
        clock.now += 100
        second = await fetcher.fetch_catalog()
        assert second is first
        assert len(requests) == count
        clock.now += 300
        third = await fetcher.fetch_catalog()
        assert third is not first
        assert len(requests) == count * 2

    asyncio.run(scenario())


def test_concurrent_callers_share_one_crawl():
    requests: List[str] = []
    fetcher = make_fetcher(SITE, requests)

    async def scenario():
        return await asyncio.gather(fetcher.fetch_catalog(), fetcher.fetch_catalog())

    first, second = asyncio.run(scenario())
    assert first is second
    assert len(requests) == 3


def test_slow_crawl_still_fills_cache_after_caller_gives_up():
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/black-friday":
            await asyncio.sleep(0.3)
        if request.url.path in SITE:
            return httpx.Response(200, text=SITE[request.url.path])
        return httpx.Response(404, text="not found")

    fetcher = CatalogFetcher(
        BASE,
        page_timeout=1.0,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        clock=Clock(),
        seed_pages=("", "/black-friday", "/products/floorcare"),
    )

    async def scenario():
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(fetcher.fetch_catalog(), timeout=0.1)
        assert fetcher.snapshot is None
        await asyncio.sleep(0.5)
        assert fetcher.snapshot is not None
        assert "Koala Pet" in [product.name for product in fetcher.snapshot.products]
        assert await fetcher.fetch_catalog() is fetcher.snapshot

    asyncio.run(scenario())


def test_failed_crawl_serves_default_snapshot_without_caching():
    requests: List[str] = []
    fetcher = make_fetcher({}, requests)

    async def scenario():
        snapshot = await fetcher.fetch_catalog()
        assert snapshot.products == []
        assert snapshot.categories == list(DEFAULT_CATEGORIES)
        assert fetcher.snapshot is None

    asyncio.run(scenario())


def test_failed_crawl_keeps_previous_snapshot():
    requests: List[str] = []
    pages = dict(SITE)
    clock = Clock()
    fetcher = make_fetcher(pages, requests, clock=clock)

    async def scenario():
        first = await fetcher.fetch_catalog()
        pages.clear()
        clock.now += 1000
        again = await fetcher.fetch_catalog()
        assert again is first

    asyncio.run(scenario())


def test_not_found_is_silent(caplog):
    fetcher = make_fetcher({}, [])
    with caplog.at_level(logging.DEBUG, logger="assistant.catalog"):
        html = asyncio.run(fetcher.fetch_html(f"{BASE}/missing"))
    assert html is None
    assert not [record for record in caplog.records if record.name == "assistant.catalog"]


def test_server_error_returns_none_with_warning(caplog):
    fetcher = make_fetcher({"/broken": "oops"}, [], status=500)
    with caplog.at_level(logging.WARNING, logger="assistant.catalog"):
        html = asyncio.run(fetcher.fetch_html(f"{BASE}/broken"))
    assert html is None
    assert any(
        record.name == "assistant.catalog" and "status=500" in record.getMessage() for record in caplog.records
    )


def test_search_products_prefers_exact_code():
    fetcher = make_fetcher(SITE, [])
    results = asyncio.run(fetcher.search_products("How much is the HT50?"))
    assert results[0].name == "HT50 Hedge Trimmer"


def test_search_falls_back_to_slug_detail_page():
    requests: List[str] = []
    fetcher = make_fetcher(SITE, requests)
    results = asyncio.run(fetcher.search_products("tell me about the penguin"))
    assert [product.name for product in results] == ["Penguin Wet Dry"]
    assert results[0].specs == {"capacity": "12L"}
    assert "/products/penguin" in requests


def test_search_without_match_returns_empty():
    fetcher = make_fetcher(SITE, [])
    assert asyncio.run(fetcher.search_products("hello there")) == []


def test_get_product_by_name_and_related():
    fetcher = make_fetcher(SITE, [])

    async def scenario():
        product = await fetcher.get_product_by_name("orca wet dry")
        assert product is not None and product.name == "Orca Wet Dry"
        return await fetcher.get_related_products(product)

    related = asyncio.run(scenario())
    assert "Orca Wet Dry" not in [item.name for item in related]


def test_rank_products_scoring_order():
    products = [
        Product(name="LHT50 Lightweight Hedge Trimmer"),
        Product(name="HT50 Hedge Trimmer"),
        Product(name="Orca", description="Wet and dry hedge cleaner"),
    ]
    ranked = rank_products("ht50", products)
    assert ranked[0].name == "HT50 Hedge Trimmer"
    assert rank_products("", products) == []


def test_related_products_share_category_or_feature():
    base = Product(name="A", category="Floorcare", features=["Quiet"])
    same_category = Product(name="B", category="Floorcare")
    shared_feature = Product(name="C", category="Garden", features=["Quiet"])
    unrelated = Product(name="D", category="Garden")
    assert related_products(base, [base, same_category, shared_feature, unrelated]) == [same_category, shared_feature]


def test_description_words_match_whole_words_only():
    products = [
        Product(name="AirRAM 3", description="Lightweight cordless vacuum"),
        Product(name="Koala Pet", description="Lightweight pet vacuum"),
    ]
    assert rank_products("how much does it weigh?", products) == []
    assert [product.name for product in rank_products("a lightweight one", products)] == ["AirRAM 3", "Koala Pet"]
    assert match_score("a lightweight one", products[0]) == WEAK_MATCH_SCORE
    assert match_score("airram 3", products[0]) > WEAK_MATCH_SCORE
