from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .catalog.models import CatalogSnapshot, Product
from .knowledge.knowledge_store import format_row

MAX_CONTEXT_PRODUCTS = 10
MAX_KNOWLEDGE_ROWS = 10
MAX_SALE_ITEMS = 20
MAX_SPECS = 12
MAX_FEATURES = 8

PRICE_RULE = (
    "If a product below lists a price, was-price, specification or feature, you MUST repeat "
    "that value in your answer. Never say a price or specification is unavailable when it is listed here."
)


@dataclass
class ContextBundle:
    """Evidence gathered for one message, serialized into the oracle prompt."""
    matched_products: List[Product] = field(default_factory=list)
    knowledge_hits: List[Dict[str, Any]] = field(default_factory=list)
    snapshot: CatalogSnapshot = field(default_factory=CatalogSnapshot)
    sale_products: List[Product] = field(default_factory=list)
    focus_product: Optional[Product] = None
    focus_products: List[Product] = field(default_factory=list)
    resolved_product: Optional[Product] = None
    resolved_products: List[Product] = field(default_factory=list)
    model_code: Optional[str] = None
    awaiting_problem_detail: bool = False

    @property
    def has_sales(self) -> bool:
        return self.snapshot.has_sales

    @property
    def has_black_friday(self) -> bool:
        return self.snapshot.has_black_friday

    @property
    def referenced_products(self) -> List[Product]:
        if self.resolved_product is not None:
            return [self.resolved_product]
        return list(self.resolved_products)


def serialize_context(bundle: ContextBundle) -> str:
    """Purpose: Render the context bundle as a deterministic text block for the oracle.
    Inputs/Outputs: Input is a ContextBundle; output is a multi-section string.
    Side Effects / State: None; identical bundles give identical text.
    Dependencies: Uses format_product and format_row.
    Failure Modes: Empty sections are omitted; the sale-status section is always present.
    If Removed: The oracle answers without catalog, knowledge, or focus evidence.
    Testing Notes: A matched product with a price must appear with the MUST-echo rule.
    """
    # Emit sections in a fixed order so prompts are reproducible.
    sections: List[str] = []

    referenced = bundle.referenced_products
    if referenced:
        lines = ["--- PRODUCT THE USER IS REFERRING TO ---", PRICE_RULE]
        lines.extend(format_product(product, index) for index, product in enumerate(referenced, start=1))
        lines.append("--- END PRODUCT THE USER IS REFERRING TO ---")
        sections.append("\n".join(lines))

    if bundle.matched_products:
        lines = ["--- MATCHED PRODUCTS (live website) ---", PRICE_RULE]
        lines.extend(
            format_product(product, index)
            for index, product in enumerate(bundle.matched_products[:MAX_CONTEXT_PRODUCTS], start=1)
        )
        lines.append("--- END MATCHED PRODUCTS ---")
        sections.append("\n".join(lines))

    if bundle.knowledge_hits:
        lines = ["--- KNOWLEDGE BASE ---", "Use this for product names, model numbers, URLs and policies."]
        lines.extend(
            f"{index}. {format_row(row)}"
            for index, row in enumerate(bundle.knowledge_hits[:MAX_KNOWLEDGE_ROWS], start=1)
        )
        lines.append("--- END KNOWLEDGE BASE ---")
        sections.append("\n".join(lines))

    snapshot = bundle.snapshot
    sale_lines = [
        "--- SALE STATUS (live website) ---",
        (
            f"hasSales={_flag(snapshot.has_sales)} hasBlackFriday={_flag(snapshot.has_black_friday)} "
            f"saleCount={len(bundle.sale_products)} blackFridayCount={len(snapshot.black_friday)} "
            f"promotionCount={len(snapshot.promotions)}"
        ),
    ]
    if snapshot.has_sales and not bundle.sale_products:
        sale_lines.append(
            "The website shows a sale is running even though no individual sale items were parsed. "
            "Confirm the sale and point the user to the offers page."
        )
    if bundle.sale_products:
        sale_lines.append(f"If the user asks about sales or offers, list these items (up to {MAX_SALE_ITEMS}):")
        sale_lines.extend(
            f"{index}. {summary_line(product)}"
            for index, product in enumerate(bundle.sale_products[:MAX_SALE_ITEMS], start=1)
        )
    sale_lines.append("--- END SALE STATUS ---")
    sections.append("\n".join(sale_lines))

    focus_lines: List[str] = []
    if bundle.focus_product is not None:
        focus_lines.append(f"Last product discussed: {summary_line(bundle.focus_product)}")
    if bundle.focus_products:
        focus_lines.append("Last products discussed:")
        focus_lines.extend(f"- {summary_line(product)}" for product in bundle.focus_products[:MAX_CONTEXT_PRODUCTS])
    if focus_lines:
        sections.append("\n".join(["--- CONVERSATION FOCUS ---", *focus_lines, "--- END CONVERSATION FOCUS ---"]))

    if bundle.awaiting_problem_detail:
        model = bundle.model_code or "unknown (ask the user for the model number)"
        sections.append(
            "\n".join(
                [
                    "--- REPORTED PROBLEM ---",
                    f"The user reported a product problem. Model: {model}.",
                    "Ask a short clarifying question about the symptom before suggesting fixes.",
                    "--- END REPORTED PROBLEM ---",
                ]
            )
        )

    return "\n\n".join(sections)


def format_product(product: Product, index: int) -> str:
    lines = [f"{index}. {summary_line(product)}"]
    if product.category:
        lines.append(f"   Category: {product.category}")
    if product.description:
        lines.append(f"   Description: {product.description}")
    for key, value in list(product.specs.items())[:MAX_SPECS]:
        lines.append(f"   Spec {key}: {value}")
    if product.features:
        lines.append("   Features: " + "; ".join(product.features[:MAX_FEATURES]))
    return "\n".join(lines)


def summary_line(product: Product) -> str:
    name = (product.name or "").strip() or "Product"
    was = f" (was {product.original_price})" if product.on_sale else ""
    url = f" | {product.url}" if product.url else ""
    return f"{name} | {product.price}{was}{url}"


def _flag(value: bool) -> str:
    return "true" if value else "false"
