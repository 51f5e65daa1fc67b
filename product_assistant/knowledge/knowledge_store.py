from __future__ import annotations

import json
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..catalog.models import Product
from ..utils import extract_product_codes, normalize_text, strip_trailing_slash

logger = logging.getLogger("assistant.knowledge")

NAME_FIELDS = ("name", "title", "product_name")
URL_FIELDS = ("url", "URL", "link", "product_url")
WAS_PRICE_FIELDS = ("originalPrice", "original_price", "wasPrice", "was_price")


class KnowledgeStore:
    """Static knowledge rows (FAQs, product notes, policies) with keyword retrieval."""

    def __init__(self, path: Optional[Path] = None, rows: Optional[List[Dict[str, Any]]] = None) -> None:
        self._path = path
        self._rows: Optional[List[Dict[str, Any]]] = list(rows) if rows is not None else None
        self._mtime = 0.0

    @property
    def rows(self) -> List[Dict[str, Any]]:
        return self._load()

    def search(self, query: str, limit: int = 8) -> List[Dict[str, Any]]:
        """Purpose: Retrieve the knowledge rows most relevant to a query.
        Inputs/Outputs: Input is query string and limit; output is a list of row dicts.
        Side Effects / State: Loads or reloads the JSON file when it changes.
        Dependencies: Uses _tokenize and _score_row.
        Failure Modes: Empty query, disabled store, or empty file returns an empty list.
        If Removed: The oracle prompt loses policy and product-note evidence.
        Testing Notes: A product code in the query must outrank plain word overlap.
        """
        # Score every row, drop zero scores, and keep the best first.
        if not query or limit <= 0:
            return []
        if os.getenv("KNOWLEDGE_ENABLED", "1") == "0":
            return []

        rows = self._load()
        if not rows:
            return []

        query_tokens = _tokenize(query)
        if not query_tokens:
            return []
        codes = extract_product_codes(query)

        scored: List[Tuple[float, int, Dict[str, Any]]] = []
        for index, row in enumerate(rows):
            score = _score_row(query_tokens, codes, _flatten(row))
            if score > 0:
                scored.append((score, index, row))

        scored.sort(key=lambda item: (-item[0], item[1]))
        return [row for _, _, row in scored[:limit]]

    def _load(self) -> List[Dict[str, Any]]:
        if self._path is None:
            return self._rows or []
        try:
            mtime = self._path.stat().st_mtime
        except OSError:
            if self._rows is None:
                logger.warning("knowledge file missing path=%s", self._path)
                self._rows = []
            return self._rows

        if self._rows is not None and mtime == self._mtime:
            return self._rows

        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("knowledge file unreadable path=%s error=%s", self._path, exc)
            payload = []

        if isinstance(payload, dict):
            payload = payload.get("items", [])
        self._rows = [row for row in payload if isinstance(row, dict)] if isinstance(payload, list) else []
        self._mtime = mtime
        logger.info("knowledge loaded rows=%s path=%s", len(self._rows), self._path)
        return self._rows


def fill_missing_names(products: Iterable[Product], rows: Iterable[Dict[str, Any]]) -> List[Product]:
    """Purpose: Name sale items whose listing card carried no readable title.
    Inputs/Outputs: Inputs are sale products and knowledge rows; output is a new list.
    Side Effects / State: None; unnamed products are replaced by copies.
    Dependencies: Uses dataclasses.replace through Product copies.
    Failure Modes: Unmatched products are named "Product".
    If Removed: Sale listings can show blank entries.
    Testing Notes: Match by URL ignoring trailing slashes, then by price pair.
    """
    # Index rows by URL, then fall back to price/was-price equality.
    row_list = [row for row in rows if isinstance(row, dict)]
    by_url: Dict[str, Dict[str, Any]] = {}
    for row in row_list:
        url = strip_trailing_slash(str(_first(row, URL_FIELDS) or ""))
        if url:
            by_url[url] = row

    result: List[Product] = []
    for product in products:
        if product.name and product.name.strip():
            result.append(product)
            continue

        hit = by_url.get(strip_trailing_slash(product.url)) if product.url else None
        if hit is None:
            hit = _match_by_price(product, row_list)
        name = str(_first(hit, NAME_FIELDS) or "") if hit else ""
        result.append(replace(product, name=name or "Product"))
    return result


def format_row(row: Dict[str, Any]) -> str:
    parts = []
    for key, value in row.items():
        if value in (None, "", [], {}):
            continue
        if isinstance(value, (list, tuple)):
            value = ", ".join(str(item) for item in value)
        parts.append(f"{key}: {value}")
    return "; ".join(parts)


def _match_by_price(product: Product, rows: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    price = _normalize_price(product.price) if product.has_price else ""
    was = _normalize_price(product.original_price)
    if not price:
        return None
    for row in rows:
        if _normalize_price(row.get("price")) != price:
            continue
        if was and _normalize_price(_first(row, WAS_PRICE_FIELDS)) != was:
            continue
        return row
    return None


def _first(row: Dict[str, Any], fields: Tuple[str, ...]) -> Any:
    for field_name in fields:
        value = row.get(field_name)
        if value:
            return value
    return None


def _normalize_price(value: Any) -> str:
    return str(value or "").strip().lower().replace(" ", "")


def _flatten(row: Dict[str, Any]) -> str:
    values = []
    for value in row.values():
        if isinstance(value, (list, tuple)):
            values.extend(str(item) for item in value)
        elif isinstance(value, dict):
            values.extend(str(item) for item in value.values())
        elif value is not None:
            values.append(str(value))
    return " ".join(values)


def _tokenize(text: str) -> List[str]:
    normalized = normalize_text(text)
    return [token for token in normalized.split() if token]


def _score_row(tokens: List[str], codes: List[str], content: str) -> float:
    content_tokens = _tokenize(content)
    if not content_tokens:
        return 0.0
    content_counts: Dict[str, int] = {}
    for token in content_tokens:
        content_counts[token] = content_counts.get(token, 0) + 1

    score = 0.0
    for code in codes:
        score += content_counts.get(code.lower(), 0) * 10.0
    for token in set(tokens):
        if len(token) < 2:
            continue
        if token in content_counts:
            score += 1.0
    return score
