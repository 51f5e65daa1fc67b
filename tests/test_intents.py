import pytest

from product_assistant.intents import (
    category_path,
    detect_intent,
    is_category_overview,
    is_formatting_query,
    is_offer_query,
    is_ordering_question,
    is_problem_report,
    parse_action,
    reference_kind,
)


def test_parse_action():
    assert parse_action("action:troubleshoot_power") == "troubleshoot_power"
    assert parse_action("  Action : Troubleshoot Other ") == "troubleshoot_other"
    assert parse_action("what is the action on this?") is None


@pytest.mark.parametrize(
    "message",
    ["My HT50 is not working", "the vacuum won't charge", "It keeps cutting out", "hair dryer is broken"],
)
def test_problem_reports(message):
    assert is_problem_report(message)


def test_not_a_problem_report():
    assert not is_problem_report("How much is the AirRAM?")


def test_offer_queries():
    assert is_offer_query("Do you have any sales on?")
    assert is_offer_query("black friday deals")
    assert not is_offer_query("How heavy is the Orca?")


def test_detect_intent_priority():
    assert detect_intent("Any Black Friday deals?").intent == "black_friday"
    assert detect_intent("any promotions?").intent == "promotion"
    assert detect_intent("is there a sale").intent == "sale"
    result = detect_intent("price of the HT50")
    assert result.intent == "product_search"
    assert result.product_code == "HT50"
    assert detect_intent("where do I track my order status").intent == "order"
    assert detect_intent("hello").intent == "general"


def test_reference_kind():
    assert reference_kind("how do I order these?") == "multiple"
    assert reference_kind("how much is it") == "single"
    assert reference_kind("tell me about the Orca") is None


def test_ordering_excludes_tracking():
    assert is_ordering_question("How do I order this?")
    assert not is_ordering_question("How do I track my order?")


def test_category_helpers():
    assert is_category_overview("What categories do you have?")
    assert category_path("show me your garden tools") == "/garden-tools.html"
    assert category_path("hello") is None


def test_formatting_queries():
    assert is_formatting_query("can you give me a markdown table")
    assert is_formatting_query("show me some code")
    assert not is_formatting_query("show me the Orca")
