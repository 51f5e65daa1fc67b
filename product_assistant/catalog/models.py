"""Catalog records and the immutable snapshot built from one crawl cycle."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..utils import normalize_key

DEFAULT_PRICE = "Check website for current price"
DEFAULT_CATEGORY = "General"
PROMOTIONS_CATEGORY = "Promotions"
SALE_CATEGORY = "Sale"
BLACK_FRIDAY_CATEGORY = "Black Friday"
DEFAULT_CATEGORIES = ("Floorcare", "Power Tools", "Garden Tools", "Hair Care")

BLACK_FRIDAY_SUBSTITUTE_LIMIT = 30
TRENDING_LIMIT = 10
GENERIC_CATEGORIES = {"", DEFAULT_CATEGORY, PROMOTIONS_CATEGORY}


@dataclass
class Product:
    """Normalized catalog entry scraped from the live site."""
    name: str
    price: str = DEFAULT_PRICE
    original_price: Optional[str] = None
    description: str = ""
    category: str = DEFAULT_CATEGORY
    url: str = ""
    features: List[str] = field(default_factory=list)
    specs: Dict[str, str] = field(default_factory=dict)

    @property
    def key(self) -> str:
        # Nameless records (pending backfill) fall back to their URL so they stay distinct.
        name_key = normalize_key(self.name)
        if name_key:
            return name_key
        return f"url:{self.url}" if self.url else ""

    @property
    def has_price(self) -> bool:
        return bool(self.price and self.price.strip()) and self.price != DEFAULT_PRICE

    @property
    def on_sale(self) -> bool:
        return bool((self.original_price or "").strip())

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class SaleSignal:
    """Site-wide sale indicators, independent of any parsed product."""
    has_sales: bool = False
    has_black_friday: bool = False
    sale_text: str = ""


@dataclass(frozen=True)
class CatalogSnapshot:
    """Result of one crawl cycle; replaced wholesale, never mutated in place."""
    products: List[Product] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    sections: List[str] = field(default_factory=list)
    promotions: List[Product] = field(default_factory=list)
    sales: List[Product] = field(default_factory=list)
    black_friday: List[Product] = field(default_factory=list)
    trending: List[Product] = field(default_factory=list)
    has_sales: bool = False
    has_black_friday: bool = False
    sale_text: str = ""
    fetched_at: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.products and not self.has_sales


def default_snapshot() -> CatalogSnapshot:
    """Snapshot served when no crawl has ever succeeded."""
    return CatalogSnapshot(categories=list(DEFAULT_CATEGORIES))


def mentions_black_friday(text: str) -> bool:
    lowered = (text or "").lower()
    return "black friday" in lowered or "blackfriday" in lowered or "black-friday" in lowered


def merge_products(primary: Product, secondary: Product) -> Product:
    """Purpose: Merge two records for the same product, first-seen record winning.
    Inputs/Outputs: Inputs are the first-seen and a later duplicate; output is a new Product.
    Side Effects / State: None; neither input is mutated.
    Dependencies: Uses dataclasses.replace and Product helpers.
    Failure Modes: None; missing fields simply stay at their defaults.
    If Removed: Deduplication would drop specs/features found only on the later record.
    Testing Notes: Merge a spec-less record with a spec-bearing duplicate and keep the specs;
        the merged price and was-price must come from one record.
    """
    # Keep every populated field of the primary and fill the gaps from the secondary.
    price, original_price = _price_pair(primary, secondary)
    return replace(
        primary,
        name=primary.name or secondary.name,
        price=price,
        original_price=original_price,
        description=primary.description or secondary.description,
        category=(
            primary.category
            if primary.category not in GENERIC_CATEGORIES or secondary.category in GENERIC_CATEGORIES
            else secondary.category
        ),
        url=primary.url or secondary.url,
        features=list(primary.features) or list(secondary.features),
        specs={**secondary.specs, **primary.specs},
    )


def _price_pair(primary: Product, secondary: Product) -> Tuple[str, Optional[str]]:
    # Current and was prices always come from the same record.
    if primary.on_sale:
        return primary.price, primary.original_price
    if secondary.on_sale and secondary.has_price:
        return secondary.price, secondary.original_price
    if primary.has_price:
        return primary.price, primary.original_price
    return secondary.price or primary.price, None


def dedupe_products(products: Iterable[Product]) -> List[Product]:
    """Collapse records sharing a normalized name, preserving first-seen order."""
    merged: Dict[str, Product] = {}
    order: List[str] = []
    for product in products:
        if product is None:
            continue
        key = product.key
        if not key:
            continue
        if key in merged:
            merged[key] = merge_products(merged[key], product)
        else:
            merged[key] = product
            order.append(key)
    return [merged[key] for key in order]


def build_snapshot(
    products: Iterable[Product],
    signal: SaleSignal,
    promotional_keys: Optional[Set[str]] = None,
    sections: Optional[List[str]] = None,
    fetched_at: float = 0.0,
) -> CatalogSnapshot:
    """Purpose: Assemble a snapshot and its derived sale/promotion/Black Friday views.
    Inputs/Outputs: Inputs are crawled products, the site sale signal, keys of products seen
        on promotional pages, and harvested section titles; output is a CatalogSnapshot.
    Side Effects / State: None.
    Dependencies: Uses dedupe_products and mentions_black_friday.
    Failure Modes: None; empty inputs give an empty snapshot carrying the signal.
    If Removed: Sale queries cannot be answered from crawl results.
    Testing Notes: A product with original_price must land in sales; one without must not.
    """
    unique = dedupe_products(products)
    promo_keys = promotional_keys or set()
    section_list = _unique(sections or [])

    sales = [product for product in unique if product.on_sale]
    promotions = [product for product in unique if product.on_sale or product.key in promo_keys]

    black_friday = [
        product
        for product in unique
        if mentions_black_friday(product.name)
        or mentions_black_friday(product.category)
        or mentions_black_friday(product.description)
        or mentions_black_friday(product.url)
        or (signal.has_black_friday and product.on_sale)
    ]
    if signal.has_black_friday and not black_friday and sales:
        black_friday = sales[:BLACK_FRIDAY_SUBSTITUTE_LIMIT]

    known = {category.lower() for category in DEFAULT_CATEGORIES}
    categories = _unique(
        [product.category for product in unique if product.category]
        + [section for section in section_list if section.lower() in known]
    )

    return CatalogSnapshot(
        products=unique,
        categories=categories,
        sections=section_list,
        promotions=promotions,
        sales=sales,
        black_friday=black_friday,
        trending=sales[:TRENDING_LIMIT],
        has_sales=signal.has_sales,
        has_black_friday=signal.has_black_friday,
        sale_text=signal.sale_text,
        fetched_at=fetched_at,
    )


def _unique(values: Iterable[str]) -> List[str]:
    seen: Set[str] = set()
    result: List[str] = []
    for value in values:
        cleaned = (value or "").strip()
        if cleaned and cleaned.lower() not in seen:
            seen.add(cleaned.lower())
            result.append(cleaned)
    return result
