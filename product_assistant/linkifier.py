"""Convert raw assistant text (markdown, stray HTML, bare URLs) into safe-to-render HTML.

Already-valid markup is lifted out behind placeholder tokens before anything else runs,
so later substitutions and escaping can never corrupt it; the tokens are restored
byte-for-byte at the end.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Tuple

logger = logging.getLogger("assistant.linkifier")

_OPEN = "\ue000"
_CLOSE = "\ue001"

PLACEHOLDER_RE = re.compile(_OPEN + r"([A-Z]+)(\d+)" + _CLOSE)
LEGACY_PLACEHOLDER_RE = re.compile(r"__[A-Z_]+_\d+__")
BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
BOLD_MD_RE = re.compile(r"\*\*(.+?)\*\*")
STRONG_RE = re.compile(r"<strong>(.*?)</strong>", re.IGNORECASE | re.DOTALL)
URL_RE = re.compile(r"https?://[^\s<>\"'" + _OPEN + _CLOSE + r"]+")
TRAILING_PUNCT_RE = re.compile(r"^(.+?)([)\].,!?;:]+)$")
BARE_AMP_RE = re.compile(r"&(?!(?:#\d+|#[xX][0-9a-fA-F]+|[A-Za-z][A-Za-z0-9]*);)")
OPEN_ANCHOR_RE = re.compile(r"(?:<|&lt;)a(?=[\s>]|&gt;)")
CLOSE_ANCHOR_RE = re.compile(r"</a>|&lt;/a&gt;")

ANCHOR_TEMPLATE = '<a href="{href}" target="_blank" rel="noopener noreferrer">{label}</a>'


def linkify(text: str) -> str:
    """Purpose: Turn raw assistant text into HTML that is safe to render as-is.
    Inputs/Outputs: Input is raw text; output is HTML with escaped plain text, preserved
        anchors/<br>/<strong>, converted markdown bold and links, and linkified URLs.
    Side Effects / State: None; pure function.
    Dependencies: Uses _Protector placeholders and the module regexes.
    Failure Modes: Any internal error degrades to newline-to-<br> conversion only.
    If Removed: Oracle output would reach the UI raw and links would not be clickable.
    Testing Notes: Running linkify on its own output must return the same string.
    """
    if not text:
        return ""
    try:
        return _linkify(text)
    except Exception:
        logger.warning("linkify failed, returning text with line breaks only", exc_info=True)
        return text.replace("\n", "<br>")


def _linkify(text: str) -> str:
    protector = _Protector()
    processed = text.replace(_OPEN, "").replace(_CLOSE, "").replace("\r\n", "\n")

    processed = _protect_anchors(processed, protector)
    processed = BR_RE.sub(lambda _: protector.protect("BR", "<br>"), processed)
    processed = BOLD_MD_RE.sub(lambda m: f"<strong>{m.group(1)}</strong>", processed)
    processed = STRONG_RE.sub(
        lambda m: protector.protect("BOLD", f"<strong>{escape_text(m.group(1))}</strong>"),
        processed,
    )
    processed = _protect_markdown_links(processed, protector)
    processed = _linkify_bare_urls(processed)

    html = protector.restore(processed)
    html = LEGACY_PLACEHOLDER_RE.sub("", html)
    return html.replace("\n", "<br>")


class _Protector:
    """Registry of placeholder tokens standing in for markup that must not be touched."""

    def __init__(self) -> None:
        self._values: Dict[str, str] = {}

    def protect(self, kind: str, html: str) -> str:
        token = f"{_OPEN}{kind}{len(self._values)}{_CLOSE}"
        self._values[token] = html
        return token

    def restore(self, text: str) -> str:
        # Protected values can nest (a <br> inside a bold span), so resolve until stable.
        for _ in range(len(self._values) + 1):
            if not PLACEHOLDER_RE.search(text):
                break
            text = PLACEHOLDER_RE.sub(lambda m: self._values.get(m.group(0), ""), text)
        return PLACEHOLDER_RE.sub("", text)


def escape_text(text: str) -> str:
    """Entity-escape &<>"' without re-escaping entities that are already present."""
    escaped = BARE_AMP_RE.sub("&amp;", text)
    return (
        escaped.replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#39;")
    )


def split_trailing_punctuation(url: str) -> Tuple[str, str]:
    """Split sentence punctuation that was captured at the end of a URL."""
    if url.endswith("/"):
        return url, ""
    match = TRAILING_PUNCT_RE.match(url)
    if not match:
        return url, ""
    return match.group(1), match.group(2)


def build_anchor(href: str, label_html: str) -> str:
    return ANCHOR_TEMPLATE.format(href=escape_text(href), label=label_html)


def _protect_anchors(text: str, protector: _Protector) -> str:
    # Locate "<a" then the next "</a>" so long link text is never truncated.
    parts: List[str] = []
    position = 0
    search = 0
    while True:
        start = text.find("<a", search)
        if start == -1:
            break
        tag_end = text.find(">", start)
        if tag_end == -1:
            break
        close = text.find("</a>", tag_end)
        if close == -1:
            break
        opening = text[start : tag_end + 1]
        boundary = text[start + 2 : start + 3]
        if (boundary.isspace() or boundary == ">") and "href" in opening:
            parts.append(text[position:start])
            parts.append(protector.protect("LINK", text[start : close + 4]))
            position = close + 4
            search = position
        else:
            search = tag_end + 1
    parts.append(text[position:])
    return "".join(parts)


def _protect_markdown_links(text: str, protector: _Protector) -> str:
    parts: List[str] = []
    position = 0
    search = 0
    while True:
        open_bracket = text.find("[", search)
        if open_bracket == -1:
            break
        close_bracket = text.find("]", open_bracket + 1)
        if close_bracket == -1:
            break
        if text[close_bracket + 1 : close_bracket + 2] != "(":
            search = open_bracket + 1
            continue
        close_paren = text.find(")", close_bracket + 2)
        if close_paren == -1:
            break
        raw_url = text[close_bracket + 2 : close_paren].strip()
        if not raw_url.startswith(("http://", "https://")) or any(ch.isspace() for ch in raw_url):
            search = open_bracket + 1
            continue
        href, trailing = split_trailing_punctuation(raw_url)
        label = text[open_bracket + 1 : close_bracket].strip() or href
        parts.append(text[position:open_bracket])
        parts.append(protector.protect("MDLINK", build_anchor(href, escape_text(label)) + escape_text(trailing)))
        position = close_paren + 1
        search = position
    parts.append(text[position:])
    return "".join(parts)


def _linkify_bare_urls(text: str) -> str:
    # Escapes every plain segment and wraps each free-standing URL in an anchor.
    parts: List[str] = []
    position = 0
    for match in URL_RE.finditer(text):
        if _inside_open_anchor(text[: match.start()]):
            continue
        href, trailing = split_trailing_punctuation(match.group(0))
        parts.append(escape_text(text[position : match.start()]))
        parts.append(build_anchor(href, escape_text(href)) + escape_text(trailing))
        position = match.end()
    parts.append(escape_text(text[position:]))
    return "".join(parts)


def _inside_open_anchor(before: str) -> bool:
    last_open = max((m.start() for m in OPEN_ANCHOR_RE.finditer(before)), default=-1)
    last_close = max((m.start() for m in CLOSE_ANCHOR_RE.finditer(before)), default=-1)
    return last_open > last_close
