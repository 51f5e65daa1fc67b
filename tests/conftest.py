from __future__ import annotations

import asyncio
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

from product_assistant.catalog.models import CatalogSnapshot, Product
from product_assistant.config import Settings
from product_assistant.knowledge.troubleshooting import SupportContact

PACKAGE_DIR = Path(__file__).resolve().parents[1] / "product_assistant"
BASE_URL = "https://shop.example.com"


def make_settings(**overrides) -> Settings:
    settings = Settings(
        gemini_api_key="",
        gemini_model="gemini-2.5-flash",
        site_base_url=BASE_URL,
        brand_name="Gtech",
        support_email="support@example.com",
        support_phone="0800 000 000",
        knowledge_path=Path("/nonexistent/knowledge.json"),
        prompts_dir=PACKAGE_DIR / "prompts",
        cache_ttl=300.0,
        page_timeout=1.0,
        catalog_timeout=0.5,
        search_timeout=0.5,
        detail_timeout=0.5,
        generation_timeout=0.5,
        history_window=8,
        max_sessions=0,
        default_session_id="default",
        cors_origins=("*",),
    )
    return replace(settings, **overrides)


class FakeOracle:
    """Records every call and answers with a fixed reply."""

    def __init__(self, reply: str = "Here you go.", delay: float = 0.0, error: Optional[Exception] = None) -> None:
        self.reply = reply
        self.delay = delay
        self.error = error
        self.calls: List[Dict[str, object]] = []

    async def generate_reply(self, system_instruction: str, history: Sequence[Dict[str, str]], message: str) -> str:
        self.calls.append({"system": system_instruction, "history": list(history), "message": message})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


class FakeCatalog:
    """In-memory catalog with a name-substring search."""

    def __init__(
        self,
        snapshot: Optional[CatalogSnapshot] = None,
        details: Optional[Dict[str, Product]] = None,
        delay: float = 0.0,
    ) -> None:
        self.snapshot = snapshot or CatalogSnapshot()
        self.details = details or {}
        self.delay = delay
        self.detail_requests: List[str] = []
        self.closed = False

    async def get_comprehensive_data(self) -> CatalogSnapshot:
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.snapshot

    async def search_products(self, query: str) -> List[Product]:
        if self.delay:
            await asyncio.sleep(self.delay)
        lowered = query.lower()
        return [product for product in self.snapshot.products if product.name.lower() in lowered]

    async def fetch_product_details(self, url: str) -> Optional[Product]:
        self.detail_requests.append(url)
        return self.details.get(url)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def support() -> SupportContact:
    return SupportContact(email="support@example.com", phone="0800 000 000", website=BASE_URL)


@pytest.fixture
def airram() -> Product:
    return Product(
        name="AirRAM 3",
        price="£249.99",
        original_price="£299.99",
        description="Cordless upright vacuum",
        category="Floorcare",
        url=f"{BASE_URL}/airram-3",
        features=["40 minute runtime"],
        specs={"weight": "3.5kg"},
    )


@pytest.fixture
def hedge_trimmer() -> Product:
    return Product(
        name="HT50 Hedge Trimmer",
        price="£149.99",
        category="Garden Tools",
        url=f"{BASE_URL}/ht50",
        specs={"blade_length": "55cm"},
    )
