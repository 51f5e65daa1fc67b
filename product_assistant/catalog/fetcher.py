from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, List, NamedTuple, Optional, Sequence, Set, Tuple

import httpx

from ..utils import extract_product_codes, normalize_text
from .extractors import (
    Extractor,
    Page,
    default_extractors,
    detect_sale_signal,
    harvest_sections,
    parse_product_details,
    run_extractors,
)
from .models import (
    BLACK_FRIDAY_CATEGORY,
    GENERIC_CATEGORIES,
    SALE_CATEGORY,
    CatalogSnapshot,
    Product,
    SaleSignal,
    build_snapshot,
    default_snapshot,
)

logger = logging.getLogger("assistant.catalog")

SEED_PAGES: Tuple[str, ...] = (
    "",
    "/black-friday",
    "/black-friday-deals",
    "/sale",
    "/products",
    "/products/floorcare",
    "/products/power-tools",
    "/products/garden-tools",
    "/products/hair-care",
)

PRODUCT_SLUGS: Dict[str, str] = {
    "airram 3 plus": "/products/floorcare/cordless-upright-vacuums/airram-3-plus",
    "air ram 3 plus": "/products/floorcare/cordless-upright-vacuums/airram-3-plus",
    "airram 3": "/products/floorcare/cordless-upright-vacuums/airram-3",
    "air ram 3": "/products/floorcare/cordless-upright-vacuums/airram-3",
    "airram 2": "/products/floorcare/cordless-upright-vacuums/airram-2",
    "air ram 2": "/products/floorcare/cordless-upright-vacuums/airram-2",
    "airram": "/products/floorcare/cordless-upright-vacuums",
    "orca": "/products/floorcare/wet-and-dry-vacuums/orca",
    "koala": "/products/floorcare/wet-and-dry-vacuums/koala",
    "penguin": "/products/floorcare/wet-and-dry-vacuums/penguin",
    "dryonic": "/products/hair-care/hair-dryers/dryonic",
    "styleonic": "/products/hair-care/hair-straighteners/styleonic",
    "combi drill": "/products/power-tools/cordless-drills-drivers/combi-drill",
    "lawnmower clm50": "/products/garden-tools/cordless-lawn-mowers/clm50",
    "lawnmower": "/products/garden-tools/cordless-lawn-mowers",
    "hedge trimmer ht50": "/products/garden-tools/cordless-hedge-trimmers/ht50",
    "hedge trimmer": "/products/garden-tools/cordless-hedge-trimmers",
    "lht50": "/lightweight-hedge-trimmer-lht50",
    "ht50": "/products/garden-tools/cordless-hedge-trimmers/ht50",
    "gt50": "/products/garden-tools/grass-trimmers/gt50",
    "grass trimmer": "/products/garden-tools/grass-trimmers",
}

SEARCH_STOPWORDS = {
    "the", "and", "for", "with", "what", "which", "how", "much", "does", "your", "you",
    "have", "any", "about", "tell", "show", "price", "cost", "is", "are", "this", "that",
    "can", "get", "buy", "want", "need", "please", "some", "me", "of", "a", "an",
    "order", "ordering", "purchase", "it", "these", "them", "those", "they", "one",
    "sale", "sales", "offer", "offers", "deal", "deals", "discount", "discounts",
    "promotion", "promotions", "black", "friday", "products", "product",
}

WEAK_MATCH_SCORE = 1

USER_AGENT = "Mozilla/5.0 (compatible; ProductAssistant/1.0)"


class CatalogFetcher:
    """Crawls the product site into cached snapshots and answers product lookups."""

    def __init__(
        self,
        base_url: str,
        cache_ttl: float = 300.0,
        page_timeout: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
        extractors: Optional[Sequence[Extractor]] = None,
        clock: Callable[[], float] = time.monotonic,
        seed_pages: Sequence[str] = SEED_PAGES,
        product_slugs: Optional[Dict[str, str]] = None,
    ) -> None:
        """Purpose: Configure the crawler, its HTTP client, and the snapshot cache.
        Inputs/Outputs: Inputs are the site base URL, cache TTL and per-page timeout
            (seconds), and optional injected client/extractors/clock; no output.
        Side Effects / State: Creates an httpx.AsyncClient when none is supplied.
        Dependencies: Uses httpx for HTTP and the extractor strategies for parsing.
        Failure Modes: None at construction; network errors surface on fetch.
        If Removed: The assistant has no live product data.
        Testing Notes: Inject httpx.MockTransport and a fake clock to test caching.
        """
        # Store collaborators; the snapshot starts empty until the first crawl.
        self.base_url = base_url.rstrip("/")
        self.cache_ttl = cache_ttl
        self.page_timeout = page_timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT, "Accept": "text/html,application/xhtml+xml"},
        )
        self._extractors = list(extractors) if extractors is not None else default_extractors()
        self._clock = clock
        self._seed_pages = tuple(seed_pages)
        self._product_slugs = dict(product_slugs if product_slugs is not None else PRODUCT_SLUGS)
        self._snapshot: Optional[CatalogSnapshot] = None
        self._expires_at = 0.0
        self._crawl_task: Optional["asyncio.Future[CatalogSnapshot]"] = None

    @property
    def snapshot(self) -> Optional[CatalogSnapshot]:
        return self._snapshot

    async def aclose(self) -> None:
        task = self._crawl_task
        if task is not None and not task.done() and task.get_loop() is asyncio.get_running_loop():
            task.cancel()
        if self._owns_client:
            await self._client.aclose()

    def page_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}{path}"

    async def fetch_html(self, url: str) -> Optional[str]:
        """Purpose: GET one page under a hard timeout, never raising.
        Inputs/Outputs: Input is an absolute URL; output is HTML text or None.
        Side Effects / State: Network I/O; logs timeouts at DEBUG and errors at WARNING.
        Dependencies: Uses httpx.AsyncClient wrapped in asyncio.wait_for.
        Failure Modes: 404 returns None silently; timeouts/errors return None.
        If Removed: Crawls and detail lookups have no transport.
        Testing Notes: A 404 page must not produce a log record.
        """
        # Race the request against the page timeout and map every failure to None.
        try:
            response = await asyncio.wait_for(self._client.get(url), timeout=self.page_timeout)
        except asyncio.TimeoutError:
            logger.debug("page timeout url=%s timeout=%s", url, self.page_timeout)
            return None
        except httpx.TimeoutException:
            logger.debug("page timeout url=%s", url)
            return None
        except httpx.HTTPError as exc:
            logger.warning("page fetch failed url=%s error=%s", url, exc)
            return None
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            logger.warning("page fetch failed url=%s status=%s", url, response.status_code)
            return None
        return response.text

    async def fetch_catalog(self) -> CatalogSnapshot:
        """Purpose: Return the cached snapshot or crawl the site for a fresh one.
        Inputs/Outputs: No inputs; output is a CatalogSnapshot (never raises).
        Side Effects / State: Starts at most one crawl task at a time; the task replaces
            the cached snapshot wholesale when it succeeds.
        Dependencies: Uses _refresh, asyncio.shield, and the injected clock for expiry.
        Failure Modes: Failed crawls return the previous snapshot, else a default one.
            A caller that stops waiting leaves the crawl running so it can still fill
            the cache.
        If Removed: Every request would crawl the whole site.
        Testing Notes: Two calls within the TTL return the identical object; a crawl
            slower than the caller's timeout still lands in the cache.
        """
        # Serve from cache until the absolute expiry passes, else join the running crawl.
        now = self._clock()
        if self._snapshot is not None and now < self._expires_at:
            return self._snapshot

        task = self._crawl_task
        if task is None or task.done() or task.get_loop() is not asyncio.get_running_loop():
            task = asyncio.ensure_future(self._refresh(now))
            self._crawl_task = task
        return await asyncio.shield(task)

    async def _refresh(self, now: float) -> CatalogSnapshot:
        try:
            snapshot = await self._crawl(now)
        except Exception:
            logger.exception("catalog crawl failed base_url=%s", self.base_url)
            snapshot = None

        if snapshot is None:
            if self._snapshot is not None:
                logger.info("catalog crawl empty, serving previous snapshot")
                return self._snapshot
            return default_snapshot()

        self._snapshot = snapshot
        self._expires_at = now + self.cache_ttl
        logger.info(
            "catalog refreshed products=%s sales=%s black_friday=%s has_sales=%s",
            len(snapshot.products),
            len(snapshot.sales),
            len(snapshot.black_friday),
            snapshot.has_sales,
        )
        return snapshot

    async def get_comprehensive_data(self) -> CatalogSnapshot:
        """Snapshot including the derived sales, Black Friday and trending views."""
        return await self.fetch_catalog()

    async def _crawl(self, now: float) -> Optional[CatalogSnapshot]:
        urls = [self.page_url(path) for path in self._seed_pages]
        pages = await asyncio.gather(*(self.fetch_html(url) for url in urls))
        if not any(pages):
            return None

        home_html = pages[0] or ""
        signal = detect_sale_signal(home_html)
        products: List[Product] = []
        promotional_keys: Set[str] = set()
        sections: List[str] = []

        for url, html in zip(urls, pages):
            if not html:
                continue
            path = url[len(self.base_url):].lower()
            is_black_friday_page = "black-friday" in path
            is_sale_page = "sale" in path
            is_home = not path.strip("/")
            page_signal = signal if is_home else detect_sale_signal(html)
            if not is_home and page_signal.has_black_friday and not signal.has_black_friday:
                signal = SaleSignal(
                    has_sales=True,
                    has_black_friday=True,
                    sale_text=page_signal.sale_text or signal.sale_text,
                )
            is_promotional = is_black_friday_page or is_sale_page or (is_home and signal.has_sales)
            page = Page.parse(url, html, self.base_url, is_promotional=is_promotional)

            found = run_extractors(page, self._extractors)
            if is_home:
                page_sections, promo_products = harvest_sections(page)
                sections.extend(page_sections)
                found = promo_products + found

            for product in found:
                if is_black_friday_page:
                    product.category = BLACK_FRIDAY_CATEGORY
                elif is_sale_page or (product.on_sale and product.category in GENERIC_CATEGORIES):
                    product.category = SALE_CATEGORY
                if is_promotional:
                    promotional_keys.add(product.key)
                products.append(product)

        return build_snapshot(
            products,
            signal,
            promotional_keys=promotional_keys,
            sections=sections,
            fetched_at=now,
        )

    async def fetch_product_details(self, url: str) -> Optional[Product]:
        """Fetch and parse one product detail page; None when unreachable or unparseable."""
        html = await self.fetch_html(self.page_url(url))
        if not html:
            return None
        try:
            return parse_product_details(self.page_url(url), html)
        except Exception:
            logger.warning("detail parse failed url=%s", url, exc_info=True)
            return None

    async def search_products(self, query: str) -> List[Product]:
        """Purpose: Find catalog products for a free-text query, best matches first.
        Inputs/Outputs: Input is the user query; output is an ordered product list.
        Side Effects / State: May crawl (through the cache) and fetch one detail page.
        Dependencies: Uses fetch_catalog, rank_products, and the nickname slug table.
        Failure Modes: Network failures degrade to an empty list.
        If Removed: Product questions cannot be grounded in catalog data.
        Testing Notes: "HT50" must rank the HT50 product ahead of "LHT50".
        """
        # Rank the snapshot first and only then try the nickname table.
        snapshot = await self.fetch_catalog()
        results = rank_products(query, snapshot.products)
        if results:
            return results
        product = await self._lookup_slug(query)
        return [product] if product else []

    async def get_product_by_name(self, name: str) -> Optional[Product]:
        snapshot = await self.fetch_catalog()
        ranked = rank_products(name, snapshot.products)
        if ranked:
            return ranked[0]
        return await self._lookup_slug(name)

    async def get_related_products(self, product: Product, limit: int = 3) -> List[Product]:
        snapshot = await self.fetch_catalog()
        return related_products(product, snapshot.products, limit=limit)

    async def _lookup_slug(self, query: str) -> Optional[Product]:
        normalized = normalize_text(query)
        if not normalized:
            return None
        padded = f" {normalized} "
        for key in sorted(self._product_slugs, key=len, reverse=True):
            if f" {key} " not in padded:
                continue
            product = await self.fetch_product_details(self._product_slugs[key])
            if product:
                return product
        return None


def rank_products(query: str, products: Sequence[Product]) -> List[Product]:
    """Purpose: Score products against a query and return matches, best first.
    Inputs/Outputs: Inputs are the query and candidate products; output is a ranked list.
    Side Effects / State: None.
    Dependencies: Uses _QueryTerms and _score.
    Failure Modes: Empty queries return an empty list.
    If Removed: Search falls back to nickname lookups only.
    Testing Notes: Exact code tokens outrank word-subset matches; description words
        only match whole words.
    """
    terms = _QueryTerms.parse(query)
    if terms is None:
        return []
    scored: List[Tuple[int, int, Product]] = []
    for index, product in enumerate(products):
        score = _score(terms, product)
        if score:
            scored.append((score, index, product))

    scored.sort(key=lambda item: (-item[0], item[1]))
    return [product for _, _, product in scored]


def match_score(query: str, product: Product) -> int:
    """How strongly one product matches a query; WEAK_MATCH_SCORE means description words only."""
    terms = _QueryTerms.parse(query)
    return _score(terms, product) if terms is not None else 0


class _QueryTerms(NamedTuple):
    normalized: str
    compact: str
    codes: List[str]
    words: List[str]

    @classmethod
    def parse(cls, query: str) -> Optional["_QueryTerms"]:
        normalized = normalize_text(query)
        if not normalized:
            return None
        return cls(
            normalized=normalized,
            compact=normalized.replace(" ", ""),
            codes=[code.lower() for code in extract_product_codes(query)],
            words=[word for word in normalized.split() if len(word) > 2 and word not in SEARCH_STOPWORDS],
        )


def _score(terms: _QueryTerms, product: Product) -> int:
    name = normalize_text(product.name)
    if not name:
        return 0
    if terms.codes:
        if any(code in set(name.split()) for code in terms.codes):
            return 10
        if any(code in name.replace(" ", "") for code in terms.codes):
            return 6
    if terms.normalized in name or terms.compact in name.replace(" ", ""):
        return 5
    if name in terms.normalized:
        return 4
    if terms.words and all(word in name for word in terms.words):
        return 3
    secondary = set(_secondary_text(product).split())
    if any(word in secondary for word in terms.words if len(word) > 3):
        return WEAK_MATCH_SCORE
    return 0


def related_products(product: Product, products: Sequence[Product], limit: int = 3) -> List[Product]:
    """Other products sharing the category or at least one feature."""
    features = set(product.features)
    related = [
        candidate
        for candidate in products
        if candidate.key != product.key
        and (
            (candidate.category and candidate.category == product.category)
            or features.intersection(candidate.features)
        )
    ]
    return related[:limit]


def _secondary_text(product: Product) -> str:
    parts = [product.description, product.category, " ".join(product.features), " ".join(product.specs.values())]
    return normalize_text(" ".join(part for part in parts if part))
