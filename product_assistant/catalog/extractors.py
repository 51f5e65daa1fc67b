"""Heuristic HTML extraction strategies for product listing and detail pages.

Each Extractor looks at a parsed Page independently; run_extractors unions their
results with a shared case-insensitive seen-name set so a later strategy can never
re-add a product an earlier one already found on the same page.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Set, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from ..utils import normalize_key
from .models import (
    BLACK_FRIDAY_CATEGORY,
    DEFAULT_CATEGORY,
    DEFAULT_PRICE,
    PROMOTIONS_CATEGORY,
    SALE_CATEGORY,
    Product,
    SaleSignal,
)

PRICE_RE = re.compile(r"[£$€]\d[\d,]*(?:\.\d+)?")

CARD_SELECTOR = '[class*="product"], article, [data-product], [class*="item"], [class*="card"]'
NAME_SELECTOR = 'h1, h2, h3, h4, [class*="name"], [class*="title"]'
PRICE_SELECTOR = '[class*="price"], [data-price], [class*="cost"]'
DESCRIPTION_SELECTOR = '[class*="description"], p, [class*="summary"]'
PRODUCT_LINK_SELECTOR = 'a[href*="/product"], a[href*="/p/"]'
SECTION_SELECTOR = 'section, [class*="section"], [class*="category"]'
SECTION_TITLE_SELECTOR = 'h1, h2, h3, [class*="title"], [class*="heading"]'
PROMO_SECTION_SELECTOR = (
    '[class*="black"], [class*="friday"], [class*="sale"], [class*="promotion"], '
    '[class*="deal"], [class*="discount"], [class*="offer"]'
)

DETAIL_NAME_SELECTOR = 'h1, [class*="product-name"], [class*="product-title"]'
DETAIL_PRICE_SELECTOR = '[class*="price"], [class*="special-price"], [data-price]'
DETAIL_DESCRIPTION_SELECTOR = '[class*="description"], [class*="product-description"]'
SPEC_CONTAINER_SELECTOR = 'table, [class*="spec"], [class*="specification"], [class*="details"]'
SPEC_ROW_SELECTOR = 'tr, [class*="row"], [class*="item"]'
SPEC_LABEL_SELECTOR = 'th:first-child, td:first-child, [class*="label"], [class*="key"], dt'
SPEC_VALUE_SELECTOR = 'td:last-child, [class*="value"], [class*="data"], dd'
FEATURE_CONTAINER_SELECTOR = '[class*="feature"], [class*="benefit"]'
FEATURE_ITEM_SELECTOR = 'li, [class*="item"]'

SPEC_TEXT_PATTERNS: Tuple[Tuple[str, "re.Pattern[str]"], ...] = (
    ("weight", re.compile(r"(?:weight|wt\.?)[:\s]+([^\n]+)", re.IGNORECASE)),
    ("dimensions", re.compile(r"(?:dimensions?|size)[:\s]+([^\n]+)", re.IGNORECASE)),
    ("power", re.compile(r"(?:power|wattage)[:\s]+([^\n]+)", re.IGNORECASE)),
    ("battery", re.compile(r"(?:battery|runtime)[:\s]+([^\n]+)", re.IGNORECASE)),
    ("capacity", re.compile(r"(?:capacity|volume)[:\s]+([^\n]+)", re.IGNORECASE)),
)

DEFAULT_PRODUCT_FAMILIES: Tuple[str, ...] = (
    "AirRAM",
    "Orca",
    "Koala",
    "Penguin",
    "DryOnic",
    "StyleOnic",
    "Combi Drill",
    "Lawnmower",
    "Hedge Trimmer",
    "Grass Trimmer",
    "Long Reach",
    "ProLite",
    "Multi",
    "AirFOX",
)

SALE_VOCAB_RE = re.compile(
    r"\b(sales?|discounts?|discounted|promotions?|promotional|deals?|offers?|special price|clearance)\b"
)
WAS_NOW_RE = re.compile(r"\bwas\b.{0,60}?\bnow\b", re.DOTALL)
SALE_MARKUP_RE = re.compile(r"class=\"[^\"]*\b(sale|promo|promotion|offer|deal|discount)", re.IGNORECASE)
IGNORED_HREF_PREFIXES = ("#", "javascript:", "mailto:", "tel:")
MAX_NAME_LENGTH = 120
MAX_FEATURES = 20


@dataclass
class Page:
    """A fetched HTML page parsed once and shared by every extractor."""
    url: str
    html: str
    soup: BeautifulSoup
    text: str
    base_url: str
    is_promotional: bool = False

    @classmethod
    def parse(cls, url: str, html: str, base_url: str, is_promotional: bool = False) -> "Page":
        soup = BeautifulSoup(html or "", "lxml")
        root = soup.body or soup
        return cls(
            url=url,
            html=html or "",
            soup=soup,
            text=root.get_text(" ", strip=True),
            base_url=base_url,
            is_promotional=is_promotional,
        )

    @property
    def default_category(self) -> str:
        return PROMOTIONS_CATEGORY if self.is_promotional else DEFAULT_CATEGORY


class Extractor:
    """Common interface for one product-finding heuristic."""

    name = "extractor"

    def extract(self, page: Page) -> List[Product]:
        raise NotImplementedError


class CardExtractor(Extractor):
    """Structural selection of elements whose class or attributes look like a product card."""

    name = "card"

    def extract(self, page: Page) -> List[Product]:
        products: List[Product] = []
        for element in page.soup.select(CARD_SELECTOR):
            product = card_to_product(element, page)
            if product:
                products.append(product)
        return products


class AnchorExtractor(Extractor):
    """Links pointing at product-shaped paths, named from a nested heading or the link text."""

    name = "anchor"

    def extract(self, page: Page) -> List[Product]:
        products: List[Product] = []
        for link in page.soup.select(PRODUCT_LINK_SELECTOR):
            href = (link.get("href") or "").strip()
            if not href or href.startswith(IGNORED_HREF_PREFIXES):
                continue
            name = _text(link.select_one(NAME_SELECTOR))
            if not name:
                lines = link.get_text("\n", strip=True).split("\n")
                name = lines[0].strip() if lines else ""
            if len(name) <= 3 or len(name) > MAX_NAME_LENGTH:
                continue
            container = _closest(link, _is_price_container)
            price_text = _text(container.select_one(PRICE_SELECTOR)) if container else ""
            if not price_text:
                price_text = _text(link.select_one(PRICE_SELECTOR))
            price, original_price = extract_prices(price_text)
            products.append(
                Product(
                    name=name,
                    price=price,
                    original_price=original_price,
                    description=_text(link.select_one('[class*="description"], p')),
                    category=page.default_category,
                    url=resolve_url(href, page.base_url),
                )
            )
        return products


class PatternExtractor(Extractor):
    """Known product-family tokens followed by a price, matched against the page text."""

    name = "pattern"

    def __init__(self, families: Sequence[str] = DEFAULT_PRODUCT_FAMILIES) -> None:
        self._patterns = [
            re.compile(
                rf"({re.escape(family)}[^\n£$€]{{0,60}}?)(?:[£$€]|Price|Now|Was)\s*[£$€]?(\d[\d,]*\.?\d*)",
                re.IGNORECASE,
            )
            for family in families
        ]

    def extract(self, page: Page) -> List[Product]:
        products: List[Product] = []
        currency = _page_currency(page.text)
        for pattern in self._patterns:
            for match in pattern.finditer(page.text):
                name = match.group(1).strip(" -|:")
                amount = match.group(2)
                if not name or not amount or len(name) > MAX_NAME_LENGTH:
                    continue
                products.append(
                    Product(
                        name=name,
                        price=f"{currency}{amount}",
                        category=page.default_category,
                        url=page.base_url,
                    )
                )
        return products


def default_extractors() -> List[Extractor]:
    return [CardExtractor(), AnchorExtractor(), PatternExtractor()]


def run_extractors(page: Page, extractors: Iterable[Extractor]) -> List[Product]:
    """Purpose: Union the results of every extractor for one page without duplicates.
    Inputs/Outputs: Inputs are a parsed Page and ordered extractors; output is a product list.
    Side Effects / State: None.
    Dependencies: Uses Extractor.extract and normalize_key.
    Failure Modes: None; extractors return empty lists when markup is missing.
    If Removed: Each heuristic could re-add products found by an earlier one.
    Testing Notes: A card product repeated by a text pattern must appear once.
    """
    seen: Set[str] = set()
    products: List[Product] = []
    for extractor in extractors:
        for product in extractor.extract(page):
            key = normalize_key(product.name)
            if not key or key in seen:
                continue
            seen.add(key)
            products.append(product)
    return products


def card_to_product(element: Tag, page: Page, require_price: bool = False) -> Optional[Product]:
    name = _text(element.select_one(NAME_SELECTOR))
    if len(name) < 3 or len(name) > MAX_NAME_LENGTH:
        return None
    price, original_price = extract_prices(_text(element.select_one(PRICE_SELECTOR)))
    if require_price and price == DEFAULT_PRICE:
        return None
    link = element.select_one("a[href]")
    href = (link.get("href") or "").strip() if link else ""
    return Product(
        name=name,
        price=price,
        original_price=original_price,
        description=_text(element.select_one(DESCRIPTION_SELECTOR)),
        category=_section_heading(element) or page.default_category,
        url=resolve_url(href, page.base_url),
    )


def extract_prices(text: str) -> Tuple[str, Optional[str]]:
    """First currency token is the current price, a second one the pre-discount price."""
    matches = PRICE_RE.findall(text or "")
    if not matches:
        return DEFAULT_PRICE, None
    original = matches[1] if len(matches) > 1 else None
    return matches[0], original


def resolve_url(href: str, base_url: str) -> str:
    if not href or href.startswith(IGNORED_HREF_PREFIXES):
        return base_url
    if href.startswith(("http://", "https://")):
        return href
    return urljoin(base_url + "/", href)


def detect_sale_signal(html: str) -> SaleSignal:
    """Purpose: Detect site-wide sale and Black Friday signals from one page.
    Inputs/Outputs: Input is raw HTML; output is a SaleSignal.
    Side Effects / State: None.
    Dependencies: Uses BeautifulSoup for visible text and regex vocab checks on markup.
    Failure Modes: Empty HTML returns a signal with every flag False.
    If Removed: Sale answers would depend on individually parsed discounts only.
    Testing Notes: A page saying "Black Friday deals" must set both flags.
    """
    if not html:
        return SaleSignal()
    soup = BeautifulSoup(html, "lxml")
    root = soup.body or soup
    text = root.get_text(" ", strip=True).lower()
    markup = html.lower()

    has_black_friday = (
        "black friday" in text or "blackfriday" in text or "black-friday" in markup or "blackfriday" in markup
    )
    has_sales = bool(
        SALE_VOCAB_RE.search(text) or WAS_NOW_RE.search(text) or SALE_MARKUP_RE.search(html) or has_black_friday
    )

    if has_black_friday:
        sale_text = "Black Friday"
    elif re.search(r"\bsales?\b", text):
        sale_text = "Sale"
    elif "promotion" in text:
        sale_text = "Promotion"
    elif re.search(r"\bdeals?\b", text):
        sale_text = "Deal"
    elif re.search(r"\boffers?\b", text):
        sale_text = "Offer"
    else:
        sale_text = ""
    return SaleSignal(has_sales=has_sales, has_black_friday=has_black_friday, sale_text=sale_text)


def harvest_sections(page: Page) -> Tuple[List[str], List[Product]]:
    """Purpose: Collect section titles and priced cards inside promotional sections.
    Inputs/Outputs: Input is the parsed home page; output is (section titles, promo products).
    Side Effects / State: None.
    Dependencies: Uses card_to_product with require_price=True.
    Failure Modes: Pages without sections return two empty lists.
    If Removed: Promotional banners outside product grids are never counted as sales.
    Testing Notes: A "black-friday" section with a priced card yields a Black Friday product.
    """
    sections: List[str] = []
    for element in page.soup.select(SECTION_SELECTOR):
        title = _text(element.select_one(SECTION_TITLE_SELECTOR))
        if 2 < len(title) < 50 and title not in sections:
            sections.append(title)

    promo_products: List[Product] = []
    seen: Set[str] = set()
    for element in page.soup.select(PROMO_SECTION_SELECTOR):
        section_text = element.get_text(" ", strip=True).lower()
        is_black_friday = "black friday" in section_text or "blackfriday" in section_text
        if not (is_black_friday or "sale" in section_text or "promotion" in section_text or "deal" in section_text):
            continue
        labels = ["Promotions", "Sales"] + (["Black Friday"] if is_black_friday else [])
        for label in labels:
            if label not in sections:
                sections.append(label)
        for card in element.select(CARD_SELECTOR):
            product = card_to_product(card, page, require_price=True)
            if not product or product.key in seen:
                continue
            product.category = BLACK_FRIDAY_CATEGORY if is_black_friday else SALE_CATEGORY
            seen.add(product.key)
            promo_products.append(product)
    return sections, promo_products


def parse_product_details(url: str, html: str) -> Optional[Product]:
    """Purpose: Parse a product detail page into a Product with specs and features.
    Inputs/Outputs: Inputs are the page URL and HTML; output is a Product or None.
    Side Effects / State: None.
    Dependencies: Uses BeautifulSoup selectors, extract_prices, and SPEC_TEXT_PATTERNS.
    Failure Modes: Returns None when no product name can be found.
    If Removed: Price/spec questions for unlisted products cannot be answered.
    Testing Notes: Table rows become normalized spec keys; free-text weight is backfilled.
    """
    if not html:
        return None
    soup = BeautifulSoup(html, "lxml")
    name = _text(soup.select_one(DETAIL_NAME_SELECTOR))
    if not name:
        return None

    price, original_price = extract_prices(_text(soup.select_one(DETAIL_PRICE_SELECTOR)))
    description = _text(soup.select_one(DETAIL_DESCRIPTION_SELECTOR))

    specs = {}
    for container in soup.select(SPEC_CONTAINER_SELECTOR):
        for row in container.select(SPEC_ROW_SELECTOR):
            label = _text(row.select_one(SPEC_LABEL_SELECTOR))
            value = _text(row.select_one(SPEC_VALUE_SELECTOR))
            if not label or not value or label == value:
                continue
            if len(label) < 50 and len(value) < 200:
                specs.setdefault(normalize_spec_key(label), value)

    features = _collect_features(soup.select(FEATURE_CONTAINER_SELECTOR))
    if not features:
        lists = [element for element in soup.select("ul, ol") if not _closest(element, _is_page_chrome)]
        features = _collect_features(lists)

    root = soup.body or soup
    page_text = root.get_text("\n", strip=True)
    for key, pattern in SPEC_TEXT_PATTERNS:
        if key in specs:
            continue
        match = pattern.search(page_text)
        if match:
            value = match.group(1).strip()[:100]
            if value:
                specs[key] = value

    return Product(
        name=name,
        price=price,
        original_price=original_price,
        description=description,
        category=DEFAULT_CATEGORY,
        url=url,
        features=features[:MAX_FEATURES],
        specs=specs,
    )


def normalize_spec_key(label: str) -> str:
    return re.sub(r"[:\s\-/]+", "_", label.strip().lower()).strip("_")


def _collect_features(containers: Iterable[Tag]) -> List[str]:
    features: List[str] = []
    for container in containers:
        for item in container.select(FEATURE_ITEM_SELECTOR):
            feature = item.get_text(" ", strip=True)
            if feature and len(feature) < 200 and feature not in features:
                features.append(feature)
    return features


def _text(element: Optional[Tag]) -> str:
    if element is None:
        return ""
    return element.get_text(" ", strip=True)


def _closest(element: Tag, predicate: Callable[[Tag], bool]) -> Optional[Tag]:
    for parent in element.parents:
        if isinstance(parent, Tag) and predicate(parent):
            return parent
    return None


def _class_text(element: Tag) -> str:
    classes = element.get("class") or []
    if isinstance(classes, str):
        return classes.lower()
    return " ".join(classes).lower()


def _is_price_container(element: Tag) -> bool:
    return element.name in {"article", "div", "section", "li"} or "product" in _class_text(element)


def _is_page_chrome(element: Tag) -> bool:
    return element.name in {"nav", "header", "footer"}


def _section_heading(element: Tag) -> str:
    for parent in element.parents:
        if not isinstance(parent, Tag) or parent.name in {"body", "html", "[document]"}:
            continue
        class_text = _class_text(parent)
        if parent.name == "section" or "category" in class_text or "section" in class_text:
            return _text(parent.select_one("h1, h2, h3"))
    return ""


def _page_currency(text: str) -> str:
    match = re.search(r"[£$€]", text or "")
    return match.group(0) if match else "£"
