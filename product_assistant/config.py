from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

BASE_DIR = Path(__file__).resolve().parent


@dataclass(frozen=True)
class Settings:
    """Configuration container for the oracle, catalog site, and runtime limits."""
    gemini_api_key: str
    gemini_model: str
    site_base_url: str
    brand_name: str
    support_email: str
    support_phone: str
    knowledge_path: Path
    prompts_dir: Path
    cache_ttl: float
    page_timeout: float
    catalog_timeout: float
    search_timeout: float
    detail_timeout: float
    generation_timeout: float
    history_window: int
    max_sessions: int
    default_session_id: str
    cors_origins: Tuple[str, ...]


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables and filesystem paths.
    Dependencies: Uses os.getenv and BASE_DIR for default paths.
    Failure Modes: Invalid numeric env values raise ValueError.
    If Removed: App cannot configure the oracle, catalog, or timeouts and fails at startup.
    Testing Notes: Verify defaults and overrides via environment variables.
    """
    # Resolve knowledge and prompt paths, then build Settings.
    knowledge_path = os.getenv("KNOWLEDGE_PATH")
    if knowledge_path:
        knowledge_file = Path(knowledge_path)
    else:
        knowledge_file = (BASE_DIR / ".." / "data" / "knowledge.json").resolve()

    prompts_dir = (BASE_DIR / "prompts").resolve()
    origins = os.getenv("CORS_ORIGINS", "*")

    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        site_base_url=os.getenv("SITE_BASE_URL", "https://www.gtech.co.uk").rstrip("/"),
        brand_name=os.getenv("BRAND_NAME", "Gtech"),
        support_email=os.getenv("SUPPORT_EMAIL", "support@gtech.co.uk"),
        support_phone=os.getenv("SUPPORT_PHONE", "08000 308 794"),
        knowledge_path=knowledge_file,
        prompts_dir=prompts_dir,
        cache_ttl=float(os.getenv("CATALOG_CACHE_TTL", "300")),
        page_timeout=float(os.getenv("PAGE_TIMEOUT", "20")),
        catalog_timeout=float(os.getenv("CATALOG_TIMEOUT", "9")),
        search_timeout=float(os.getenv("SEARCH_TIMEOUT", "4.5")),
        detail_timeout=float(os.getenv("DETAIL_TIMEOUT", "3.5")),
        generation_timeout=float(os.getenv("GENERATION_TIMEOUT", "20")),
        history_window=int(os.getenv("HISTORY_WINDOW", "8")),
        max_sessions=int(os.getenv("MAX_SESSIONS", "0")),
        default_session_id=os.getenv("DEFAULT_SESSION_ID", "default"),
        cors_origins=tuple(origin.strip() for origin in origins.split(",") if origin.strip()),
    )
