"""Deterministic answers used when the oracle is unconfigured, slow, or fails."""

from __future__ import annotations

from typing import List, Optional, Sequence

from .catalog.fetcher import related_products
from .catalog.models import Product
from .context_bundle import MAX_SALE_ITEMS, ContextBundle
from .intents import (
    CATEGORY_LABELS,
    category_path,
    detect_intent,
    is_formatting_query,
    is_offer_query,
    is_ordering_question,
    is_product_list_query,
    mentions_black_friday,
)
from .knowledge.troubleshooting import SupportContact

OFFERS_PATH = "/offers.html"
NEWSLETTER_PATH = "/newsletter"
MAX_LISTED_PRODUCTS = 5
MAX_DETAIL_SPECS = 8
MAX_DETAIL_FEATURES = 5


def build_fallback_response(message: str, bundle: ContextBundle, support: SupportContact) -> str:
    """Purpose: Answer from gathered evidence with an ordered first-match-wins rule list.
    Inputs/Outputs: Inputs are the user message, the context bundle, and support contact;
        output is plain text (markdown bold/links allowed) for the linkifier.
    Side Effects / State: None.
    Dependencies: Uses intents helpers, related_products, and the render_* helpers.
    Failure Modes: None expected; always returns the generic help text as a last resort.
    If Removed: The assistant is silent whenever the oracle is unavailable.
    Testing Notes: An ordering question with a focus product must include its URL.
    """
    # Walk the decision list in priority order.
    if is_formatting_query(message):
        return (
            "I'm here to help you with our products and services. I can assist with product "
            "information, pricing, sales, ordering, and support.\n\nWhat product can I help you with today?"
        )

    if is_ordering_question(message):
        focus = _ordering_focus(bundle)
        if focus:
            return render_ordering_instructions(focus, support)

    if is_offer_query(message) and not bundle.matched_products:
        return render_offer_answer(bundle, support, black_friday=mentions_black_friday(message))

    support_answer = render_support_topic(detect_intent(message).intent, support)
    if support_answer:
        return support_answer

    if not bundle.matched_products and not bundle.referenced_products:
        path = category_path(message)
        if path:
            url = f"{support.website}{path}"
            return f"You can browse that range here: {url}\n\nTell me which product you are interested in."
        if is_product_list_query(message):
            return render_category_overview(support)

    products = bundle.matched_products or bundle.referenced_products
    if len(products) == 1:
        product = products[0]
        related = related_products(product, bundle.snapshot.products, limit=3)
        return render_product_detail(product, related, support)
    if len(products) > 1:
        return render_product_list(products, support)

    return (
        "I'm here to help with product information, prices, offers, ordering, and support.\n\n"
        f"You can browse our products here: {support.website}\n\n"
        "What product name or model number can I help you with?"
    )


def render_offer_answer(bundle: ContextBundle, support: SupportContact, black_friday: bool = False) -> str:
    """Purpose: Deterministic sale/offer answer used by the shortcut and the fallback.
    Inputs/Outputs: Inputs are the bundle, support contact and whether Black Friday was asked
        about; output is the answer text with offers-page and newsletter links.
    Side Effects / State: None.
    Dependencies: Uses the bundle's sale list and snapshot flags.
    Failure Modes: None.
    If Removed: Offer questions go to free generation, which stalls on long lists.
    Testing Notes: hasSales with an empty item list must still confirm the sale.
    """
    # Prefer the Black Friday list when that is what was asked about.
    snapshot = bundle.snapshot
    items = list(bundle.sale_products)
    label = "on sale"
    if black_friday and snapshot.black_friday:
        items = list(snapshot.black_friday)
        label = "in our Black Friday event"

    links = _offer_links(support)
    if items:
        shown = items[:MAX_SALE_ITEMS]
        lines = [f"Yes, we currently have products {label}. Here are {len(shown)} of them:", ""]
        for index, product in enumerate(shown, start=1):
            lines.append(f"**{index}. {_name(product)}**")
            lines.append(f"Price: {_price_text(product)}")
            if product.url:
                lines.append(f"[View product]({product.url})")
            lines.append("")
        lines.append(links)
        return "\n".join(lines)

    if snapshot.has_sales:
        event = "Black Friday sale" if snapshot.has_black_friday else "sale"
        return (
            f"Yes, there is a {event} running on our website right now. "
            "I can't list the individual items at the moment.\n\n" + links
        )

    return "At the moment I can't see any sale items on the website.\n\n" + links


def render_category_overview(support: SupportContact) -> str:
    lines = ["We offer products across four main categories:", ""]
    for title, examples, path in CATEGORY_LABELS:
        lines.append(f"**{title}** (e.g. {examples}): {support.website}{path}")
    lines.append("")
    lines.append(
        f"You can browse everything at {support.website}. "
        "If you tell me a product name or model number, I can help you straight away."
    )
    return "\n".join(lines)


def render_ordering_instructions(products: Sequence[Product], support: SupportContact) -> str:
    steps = [
        "1. Open the product page using the link above.",
        "2. Choose any options and click **Add to basket**.",
        "3. Go to the basket and follow the checkout steps.",
    ]
    contact = f"If you would rather order by phone, call us on {support.phone}."
    if len(products) == 1:
        product = products[0]
        url = product.url or support.website
        lines = [
            f"To order the **{_name(product)}**, go to its product page: {url}",
            f"Current price: {_price_text(product)}",
            "",
            *steps,
            "",
            contact,
        ]
        return "\n".join(lines)

    lines = ["Here is where to order each of these products:", ""]
    for product in products[:MAX_SALE_ITEMS]:
        lines.append(f"- **{_name(product)}** ({_price_text(product)}): {product.url or support.website}")
    lines.extend(["", *(step.replace("the link above", "the links above") for step in steps), "", contact])
    return "\n".join(lines)


def render_support_topic(intent: str, support: SupportContact) -> Optional[str]:
    contact = f"email {support.email} or call {support.phone}"
    if intent == "order":
        return f"To check the status of an order, please {contact} with your order number."
    if intent == "warranty":
        return (
            "Warranty details depend on your product and where you bought it. "
            f"For a warranty claim or question, please {contact} with your model number."
        )
    if intent == "return":
        return f"For returns and refunds, please {contact}. Have your order number ready."
    if intent == "delivery":
        return f"Delivery options are shown at checkout on {support.website}. For delivery questions, please {contact}."
    if intent == "contact":
        return f"You can reach our support team by email at {support.email} or by phone on {support.phone}."
    return None


def render_product_detail(product: Product, related: Sequence[Product], support: SupportContact) -> str:
    lines = [f"**{_name(product)}**", f"Price: {_price_text(product)}"]
    if product.description:
        lines.extend(["", product.description])
    if product.specs:
        lines.extend(["", "Specifications:"])
        for key, value in list(product.specs.items())[:MAX_DETAIL_SPECS]:
            lines.append(f"- {key.replace('_', ' ').capitalize()}: {value}")
    if product.features:
        lines.extend(["", "Key features:"])
        lines.extend(f"- {feature}" for feature in product.features[:MAX_DETAIL_FEATURES])
    lines.append("")
    lines.append(_product_link(product, support))
    if related:
        lines.extend(["", "You might also like:"])
        lines.extend(f"- {_name(item)}: {item.url or support.website}" for item in related)
    return "\n".join(lines)


def render_product_list(products: Sequence[Product], support: SupportContact) -> str:
    shown = list(products[:MAX_LISTED_PRODUCTS])
    lines = [f"I found {len(products)} matching products:", ""]
    for index, product in enumerate(shown, start=1):
        url = f" - {product.url}" if product.url else ""
        lines.append(f"{index}. **{_name(product)}** - {_price_text(product)}{url}")
    remaining = len(products) - len(shown)
    if remaining > 0:
        lines.extend(["", f"...and {remaining} more. See the full range at {support.website}"])
    lines.extend(["", "Which one would you like to know more about?"])
    return "\n".join(lines)


def _ordering_focus(bundle: ContextBundle) -> List[Product]:
    if bundle.referenced_products:
        return bundle.referenced_products
    if bundle.focus_product is not None:
        return [bundle.focus_product]
    if bundle.focus_products:
        return list(bundle.focus_products)
    if len(bundle.matched_products) == 1:
        return list(bundle.matched_products)
    return []


def _offer_links(support: SupportContact) -> str:
    return (
        f"You can see all current offers here: {support.website}{OFFERS_PATH}\n"
        f"Sign up to our newsletter to hear about new deals first: {support.website}{NEWSLETTER_PATH}"
    )


def _product_link(product: Product, support: SupportContact) -> str:
    url = product.url or support.website
    if url.startswith(("http://", "https://")):
        return f"[View product]({url})"
    return f"View product: {url}"


def _name(product: Product) -> str:
    return (product.name or "").strip() or "Product"


def _price_text(product: Product) -> str:
    if product.on_sale:
        return f"{product.price} (was {product.original_price})"
    return product.price
