from product_assistant.catalog.models import CatalogSnapshot, Product
from product_assistant.context_bundle import PRICE_RULE, ContextBundle, serialize_context, summary_line


def test_sale_status_section_is_always_present():
    text = serialize_context(ContextBundle())
    assert "--- SALE STATUS (live website) ---" in text
    assert "hasSales=false hasBlackFriday=false saleCount=0" in text
    assert "MATCHED PRODUCTS" not in text
    assert "KNOWLEDGE BASE" not in text


def test_sale_running_without_items_is_spelled_out():
    bundle = ContextBundle(snapshot=CatalogSnapshot(has_sales=True, has_black_friday=True))
    text = serialize_context(bundle)
    assert "hasSales=true hasBlackFriday=true" in text
    assert "Confirm the sale" in text


def test_matched_product_lists_price_and_rule(airram):
    text = serialize_context(ContextBundle(matched_products=[airram]))
    assert PRICE_RULE in text
    assert "AirRAM 3 | £249.99 (was £299.99)" in text
    assert "Spec weight: 3.5kg" in text


def test_resolved_reference_comes_first(airram, hedge_trimmer):
    bundle = ContextBundle(matched_products=[hedge_trimmer], resolved_product=airram, focus_product=airram)
    text = serialize_context(bundle)
    assert text.index("PRODUCT THE USER IS REFERRING TO") < text.index("MATCHED PRODUCTS")
    assert "Last product discussed: AirRAM 3" in text


def test_knowledge_and_problem_sections():
    bundle = ContextBundle(
        knowledge_hits=[{"topic": "Warranty", "notes": "Quote the model"}],
        awaiting_problem_detail=True,
        model_code="HT50",
    )
    text = serialize_context(bundle)
    assert "1. topic: Warranty; notes: Quote the model" in text
    assert "Model: HT50." in text


def test_serialization_is_deterministic(airram):
    bundle = ContextBundle(matched_products=[airram], sale_products=[airram])
    assert serialize_context(bundle) == serialize_context(bundle)


def test_summary_line_names_blank_products():
    assert summary_line(Product(name=" ", price="£5")) == "Product | £5"
