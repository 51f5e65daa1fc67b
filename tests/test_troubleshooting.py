import pytest

from product_assistant.knowledge.troubleshooting import (
    PRODUCT_TYPE_FLOORCARE,
    PRODUCT_TYPE_GARDEN,
    PRODUCT_TYPE_GENERIC,
    PRODUCT_TYPE_HAIR_CARE,
    infer_product_type,
    normalize_identifier,
    problem_options,
    resolve_guide,
)


def test_problem_options_are_copies():
    options = problem_options()
    assert [option["action"] for option in options] == [
        "troubleshoot_power",
        "troubleshoot_charging",
        "troubleshoot_mechanical",
        "troubleshoot_battery",
        "troubleshoot_blockage",
        "troubleshoot_other",
    ]
    options[0]["label"] = "changed"
    assert problem_options()[0]["label"] != "changed"


@pytest.mark.parametrize(
    "hints, expected",
    [
        (("DryOnic",), PRODUCT_TYPE_HAIR_CARE),
        (("HT50",), PRODUCT_TYPE_GARDEN),
        ((None, "AirRAM 3", "Floorcare"), PRODUCT_TYPE_FLOORCARE),
        ((None,), PRODUCT_TYPE_GENERIC),
    ],
)
def test_infer_product_type(hints, expected):
    assert infer_product_type(*hints) == expected


def test_normalize_identifier():
    assert normalize_identifier("troubleshoot_power") == "power"
    assert normalize_identifier("Troubleshoot Blockage") == "blockage"


def test_guide_includes_model_and_support_footer(support):
    guide = resolve_guide("troubleshoot_mechanical", support, product_type=PRODUCT_TYPE_GARDEN, model_code="HT50")
    assert guide.startswith("**Mechanical issue / Not cutting properly**")
    assert "Model: HT50" in guide
    assert "1. Remove the battery" in guide
    assert support.email in guide
    assert support.phone in guide
    assert "quote model HT50" in guide


@pytest.mark.parametrize("action", ["troubleshoot_power", "troubleshoot_charging", "troubleshoot_battery",
                                    "troubleshoot_other", "troubleshoot_blockage", "troubleshoot_mechanical"])
def test_hair_care_guides_never_mention_batteries(support, action):
    guide = resolve_guide(action, support, product_type=PRODUCT_TYPE_HAIR_CARE)
    body = guide.split("Still not working?")[0].lower()
    assert "battery" not in body
    assert "charg" not in body


def test_unknown_guide_falls_back_to_other(support):
    guide = resolve_guide("troubleshoot_smell", support)
    assert guide.startswith("**Other problem**")
    assert "Model:" not in guide
