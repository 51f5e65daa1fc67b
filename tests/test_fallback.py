from product_assistant.catalog.models import CatalogSnapshot, Product
from product_assistant.context_bundle import ContextBundle
from product_assistant.fallback import (
    NEWSLETTER_PATH,
    OFFERS_PATH,
    build_fallback_response,
    render_category_overview,
    render_offer_answer,
)


def test_formatting_questions_are_redirected(support):
    answer = build_fallback_response("show me a markdown example", ContextBundle(), support)
    assert "What product can I help you with today?" in answer


def test_ordering_with_focus_product_links_it(support, airram):
    answer = build_fallback_response("How do I order this?", ContextBundle(focus_product=airram), support)
    assert airram.url in answer
    assert "AirRAM 3" in answer
    assert "£249.99" in answer


def test_ordering_multiple_referenced_products(support, airram, hedge_trimmer):
    bundle = ContextBundle(resolved_products=[airram, hedge_trimmer])
    answer = build_fallback_response("how do I buy these?", bundle, support)
    assert airram.url in answer
    assert hedge_trimmer.url in answer


def test_offer_answer_lists_sale_items(support, airram):
    answer = render_offer_answer(ContextBundle(sale_products=[airram]), support)
    assert "**1. AirRAM 3**" in answer
    assert "£249.99 (was £299.99)" in answer
    assert OFFERS_PATH in answer
    assert NEWSLETTER_PATH in answer


def test_offer_answer_confirms_sale_without_items(support):
    bundle = ContextBundle(snapshot=CatalogSnapshot(has_sales=True, has_black_friday=True))
    answer = render_offer_answer(bundle, support, black_friday=True)
    assert answer.startswith("Yes, there is a Black Friday sale running")
    assert f"{support.website}{OFFERS_PATH}" in answer


def test_offer_answer_without_any_sale(support):
    answer = render_offer_answer(ContextBundle(), support)
    assert answer.startswith("At the moment I can't see any sale items")
    assert NEWSLETTER_PATH in answer


def test_black_friday_list_preferred(support, airram, hedge_trimmer):
    snapshot = CatalogSnapshot(black_friday=[hedge_trimmer], has_sales=True, has_black_friday=True)
    bundle = ContextBundle(snapshot=snapshot, sale_products=[airram])
    answer = render_offer_answer(bundle, support, black_friday=True)
    assert "HT50 Hedge Trimmer" in answer
    assert "AirRAM 3" not in answer


def test_support_topics(support):
    answer = build_fallback_response("what is your returns policy", ContextBundle(), support)
    assert support.email in answer and support.phone in answer


def test_category_link_when_nothing_matched(support):
    answer = build_fallback_response("do you do garden tools", ContextBundle(), support)
    assert f"{support.website}/garden-tools.html" in answer


def test_category_overview_mentions_all_four(support):
    answer = render_category_overview(support)
    for title in ("Floor Care", "Garden Tools", "Power Tools", "Hair Care"):
        assert title in answer


def test_single_product_detail_with_related(support, airram):
    other = Product(name="Orca", price="£129.99", category="Floorcare", url="https://shop.example.com/orca")
    bundle = ContextBundle(matched_products=[airram], snapshot=CatalogSnapshot(products=[airram, other]))
    answer = build_fallback_response("tell me about the AirRAM 3", bundle, support)
    assert answer.startswith("**AirRAM 3**")
    assert "Weight: 3.5kg" in answer
    assert "You might also like:" in answer
    assert "Orca" in answer


def test_product_list_overflow(support):
    products = [Product(name=f"Vacuum {index}", price="£10") for index in range(7)]
    answer = build_fallback_response("vacuum", ContextBundle(matched_products=products), support)
    assert "I found 7 matching products" in answer
    assert "...and 2 more" in answer


def test_generic_help(support):
    answer = build_fallback_response("hello", ContextBundle(), support)
    assert support.website in answer
