import re
import unicodedata
from typing import List, Optional

PRODUCT_CODE_RE = re.compile(r"\b([A-Za-z]{2,}\d+)\b")


def normalize_text(text: str) -> str:
    """Purpose: Normalize free-form text for stable matching in the pipeline.
    Inputs/Outputs: Input is a raw string; output is a lowercase ASCII-only string with
        diacritics and punctuation removed and whitespace collapsed.
    Side Effects / State: None; pure function.
    Dependencies: Uses unicodedata and regex; called by intent, search, and knowledge lookup.
    Failure Modes: Returns an empty string when input is falsy.
    If Removed: Query matching and product identity checks become punctuation sensitive.
    Testing Notes: Validate "AirRAM 3 Plus!" -> "airram 3 plus".
    """
    # Normalize to lowercase and strip diacritics for consistent matching.
    if not text:
        return ""
    lowered = str(text).lower()
    decomposed = unicodedata.normalize("NFKD", lowered)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    cleaned = re.sub(r"[^a-z0-9\s]+", " ", stripped)
    return re.sub(r"\s+", " ", cleaned).strip()


def normalize_key(text: str) -> str:
    """Purpose: Produce a compact normalization key without spaces.
    Inputs/Outputs: Input is a raw string; output is normalized string with spaces removed.
    Side Effects / State: None; pure function.
    Dependencies: Calls normalize_text; used as the product identity key.
    Failure Modes: Returns empty string for falsy input; otherwise deterministic.
    If Removed: Duplicate products with different casing/spacing are no longer merged.
    Testing Notes: Ensure "Orca  Wet" and "orca wet" share a key.
    """
    # Collapse normalization output into a compact key.
    return normalize_text(text).replace(" ", "")


def extract_product_codes(text: str) -> List[str]:
    """Return alphanumeric model codes (letters followed by digits) in upper case, in order."""
    if not text:
        return []
    codes: List[str] = []
    for match in PRODUCT_CODE_RE.finditer(text):
        code = match.group(1).upper()
        if code not in codes:
            codes.append(code)
    return codes


def first_product_code(text: str) -> Optional[str]:
    codes = extract_product_codes(text)
    return codes[0] if codes else None


def strip_trailing_slash(url: str) -> str:
    return (url or "").strip().rstrip("/")
