from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional

from .utils import first_product_code

ACTION_RE = re.compile(r"^\s*action\s*:\s*([A-Za-z0-9_\- ]+?)\s*$", re.IGNORECASE)
PROBLEM_RE = re.compile(
    r"\b("
    r"not working|isn'?t working|is not working|doesn'?t work|does not work|stopped working|"
    r"broken|broke|faulty|fault|defective|not charging|won'?t charge|won'?t (?:turn|switch) on|"
    r"not turning on|not switching on|won'?t start|cuts? out|keeps? cutting out|"
    r"problem with|issue with|something wrong|malfunction\w*|jammed|blocked|dead"
    r")\b",
    re.IGNORECASE,
)
OFFER_RE = re.compile(
    r"\b(sales?|on sale|offers?|discounts?|discounted|promotions?|promos?|promotional|deals?|"
    r"black\s?friday|clearance|reduced)\b",
    re.IGNORECASE,
)
BLACK_FRIDAY_RE = re.compile(r"\bblack[\s\-]?friday\b", re.IGNORECASE)
SINGLE_REFERENCE_RE = re.compile(r"\b(it|this|this one|that one)\b", re.IGNORECASE)
MULTIPLE_REFERENCE_RE = re.compile(r"\b(these|them|those|they)\b", re.IGNORECASE)
ORDERING_RE = re.compile(r"\b(order|buy|purchase|checkout|basket|get one)\b", re.IGNORECASE)
ORDER_TRACKING_RE = re.compile(r"\b(track|tracking|status|where is my|cancel)\b", re.IGNORECASE)
CATEGORY_OVERVIEW_RE = re.compile(
    r"\b(what|which)\s+(product\s+)?categor(y|ies)\b|"
    r"\bwhat\s+(kind|kinds|types?)\s+of\s+products\b|"
    r"\bwhat\s+do\s+you\s+(sell|offer)\b|"
    r"\b(list|show)\s+(me\s+)?(all\s+)?(your\s+)?categories\b",
    re.IGNORECASE,
)
PRODUCT_LIST_RE = re.compile(
    r"\b(what products|show me products|products available|what products do you have)\b",
    re.IGNORECASE,
)
FORMATTING_RE = re.compile(r"\b(markdown|formatting|code example|code snippet|syntax)\b", re.IGNORECASE)

PRODUCT_KEYWORDS = (
    "airram", "orca", "koala", "penguin", "dryonic", "styleonic", "combi drill", "lawnmower",
    "hedge trimmer", "grass trimmer", "vacuum", "drill", "mower", "cleaner",
)
CATEGORY_PATHS = {
    "power tools": "/cordless-power-tools.html",
    "garden tools": "/garden-tools.html",
    "floorcare": "/cordless-vacuum-cleaners.html",
    "floor care": "/cordless-vacuum-cleaners.html",
    "hair care": "/haircare.html",
    "haircare": "/haircare.html",
}
CATEGORY_LABELS = (
    ("Floor Care", "vacuums", "/cordless-vacuum-cleaners.html"),
    ("Garden Tools", "trimmers and mowers", "/garden-tools.html"),
    ("Power Tools", "drills and drivers", "/cordless-power-tools.html"),
    ("Hair Care", "hair dryers and straighteners", "/haircare.html"),
)
CATEGORY_WORDS = ("floorcare", "floor care", "power tools", "garden tools", "hair care", "haircare",
                  "vacuum", "drill", "mower", "trimmer")


@dataclass
class QueryIntent:
    """Rule-based reading of one user message."""
    intent: str
    confidence: float
    product_name: Optional[str] = None
    category: Optional[str] = None
    product_code: Optional[str] = None
    keywords: List[str] = field(default_factory=list)


def detect_intent(message: str) -> QueryIntent:
    """Purpose: Classify a message into a coarse intent with keywords.
    Inputs/Outputs: Input is the raw message; output is a QueryIntent.
    Side Effects / State: None.
    Dependencies: Uses the module regexes and keyword tables.
    Failure Modes: Unrecognized messages return intent "general".
    If Removed: Shortcuts and the fallback responder cannot pick a route.
    Testing Notes: "Any Black Friday deals?" must map to black_friday, not sale.
    """
    # Check the most specific vocabulary first.
    text = (message or "").lower()
    code = first_product_code(message or "")

    if BLACK_FRIDAY_RE.search(text):
        return QueryIntent("black_friday", 0.95, product_code=code, keywords=["black friday"])
    if "promotion" in text or "promo" in text:
        return QueryIntent("promotion", 0.9, product_code=code, keywords=["promotion", "promo"])
    if OFFER_RE.search(text):
        return QueryIntent("sale", 0.9, product_code=code, keywords=["sale", "discount", "deal", "offer"])

    product = next((keyword for keyword in PRODUCT_KEYWORDS if keyword in text), None)
    if product or code or any(word in text for word in ("product", "price", "spec", "feature")):
        return QueryIntent(
            "product_search",
            0.8,
            product_name=product,
            product_code=code,
            keywords=[product or code or "product"],
        )

    category = detect_category(text)
    if category:
        return QueryIntent("category", 0.8, category=category, keywords=[category])

    if "order" in text and ("track" in text or "status" in text):
        return QueryIntent("order", 0.9)
    if "warranty" in text or "guarantee" in text:
        return QueryIntent("warranty", 0.9)
    if "return" in text or "refund" in text:
        return QueryIntent("return", 0.9)
    if "delivery" in text or "shipping" in text:
        return QueryIntent("delivery", 0.9)
    if "contact" in text or "support" in text or "phone" in text or "email" in text:
        return QueryIntent("contact", 0.9)
    return QueryIntent("general", 0.5)


def parse_action(message: str) -> Optional[str]:
    match = ACTION_RE.match(message or "")
    if not match:
        return None
    return match.group(1).strip().lower().replace(" ", "_")


def is_problem_report(message: str) -> bool:
    return bool(PROBLEM_RE.search(message or ""))


def is_offer_query(message: str) -> bool:
    return bool(OFFER_RE.search(message or ""))


def mentions_black_friday(message: str) -> bool:
    return bool(BLACK_FRIDAY_RE.search(message or ""))


def is_category_overview(message: str) -> bool:
    return bool(CATEGORY_OVERVIEW_RE.search(message or ""))


def is_product_list_query(message: str) -> bool:
    return bool(PRODUCT_LIST_RE.search(message or ""))


def is_formatting_query(message: str) -> bool:
    text = (message or "").lower()
    if FORMATTING_RE.search(text):
        return True
    return "show me" in text and ("format" in text or "code" in text)


def is_ordering_question(message: str) -> bool:
    text = message or ""
    return bool(ORDERING_RE.search(text)) and not ORDER_TRACKING_RE.search(text)


def reference_kind(message: str) -> Optional[str]:
    """Return "multiple" for these/them, "single" for it/this, else None."""
    if MULTIPLE_REFERENCE_RE.search(message or ""):
        return "multiple"
    if SINGLE_REFERENCE_RE.search(message or ""):
        return "single"
    return None


def detect_category(text: str) -> Optional[str]:
    lowered = (text or "").lower()
    for key in CATEGORY_PATHS:
        if key in lowered:
            return key
    return next((word for word in CATEGORY_WORDS if word in lowered), None)


def category_path(text: str) -> Optional[str]:
    lowered = (text or "").lower()
    for key, path in CATEGORY_PATHS.items():
        if key in lowered:
            return path
    return None
