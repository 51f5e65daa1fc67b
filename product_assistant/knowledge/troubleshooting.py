from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..utils import normalize_text

PRODUCT_TYPE_HAIR_CARE = "hair_care"
PRODUCT_TYPE_GARDEN = "garden"
PRODUCT_TYPE_FLOORCARE = "floorcare"
PRODUCT_TYPE_POWER_TOOL = "power_tool"
PRODUCT_TYPE_GENERIC = "generic"

DEFAULT_GUIDE = "other"

PROBLEM_OPTIONS: Tuple[Dict[str, str], ...] = (
    {"label": "Not turning on / Power issue", "value": "power issue", "action": "troubleshoot_power"},
    {"label": "Charging problem", "value": "charging problem", "action": "troubleshoot_charging"},
    {
        "label": "Mechanical issue / Not cutting properly",
        "value": "mechanical issue",
        "action": "troubleshoot_mechanical",
    },
    {"label": "Battery not holding charge", "value": "battery issue", "action": "troubleshoot_battery"},
    {"label": "Blockage or jammed", "value": "blockage", "action": "troubleshoot_blockage"},
    {"label": "Other problem", "value": "other problem", "action": "troubleshoot_other"},
)

TYPE_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    (PRODUCT_TYPE_HAIR_CARE, ("hair", "dryer", "dryonic", "styleonic", "straightener", "styler")),
    (PRODUCT_TYPE_GARDEN, ("hedge", "trimmer", "mower", "lawn", "garden", "ht50", "lht50", "gt50", "clm50", "chainsaw")),
    (PRODUCT_TYPE_FLOORCARE, ("vacuum", "airram", "orca", "koala", "penguin", "floor", "hoover", "sweeper")),
    (PRODUCT_TYPE_POWER_TOOL, ("drill", "driver", "saw", "sander", "impact", "power tool")),
)


@dataclass(frozen=True)
class SupportContact:
    email: str
    phone: str
    website: str


def problem_options() -> List[Dict[str, str]]:
    return [dict(option) for option in PROBLEM_OPTIONS]


def infer_product_type(*hints: Optional[str]) -> str:
    """Guess the product family from a model code, product name, or category."""
    text = normalize_text(" ".join(hint for hint in hints if hint))
    if not text:
        return PRODUCT_TYPE_GENERIC
    for product_type, keywords in TYPE_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return product_type
    return PRODUCT_TYPE_GENERIC


def normalize_identifier(identifier: str) -> str:
    cleaned = normalize_text(identifier).replace(" ", "_")
    if cleaned.startswith("troubleshoot_"):
        cleaned = cleaned[len("troubleshoot_"):]
    return cleaned


def resolve_guide(
    identifier: str,
    support: SupportContact,
    product_type: str = PRODUCT_TYPE_GENERIC,
    model_code: Optional[str] = None,
) -> str:
    """Purpose: Render the troubleshooting guide for an action selection.
    Inputs/Outputs: Inputs are the action identifier (e.g. "troubleshoot_power"), support
        contact, inferred product type and optional model code; output is guide text.
    Side Effects / State: None.
    Dependencies: Uses the GUIDE_BUILDERS table and normalize_identifier.
    Failure Modes: Unknown identifiers render the generic "other" guide.
    If Removed: Option buttons offered after a problem report lead nowhere.
    Testing Notes: Hair-care guides must not mention batteries or charging.
    """
    # Look up the builder, falling back to the generic guide.
    key = normalize_identifier(identifier)
    builder = GUIDE_BUILDERS.get(key) or GUIDE_BUILDERS[DEFAULT_GUIDE]
    title, steps = builder(product_type)
    lines = [f"**{title}**"]
    if model_code:
        lines.append(f"Model: {model_code}")
    lines.append("")
    lines.extend(f"{index}. {step}" for index, step in enumerate(steps, start=1))
    lines.append("")
    lines.append(_support_footer(support, model_code))
    return "\n".join(lines)


def _power_guide(product_type: str) -> Tuple[str, List[str]]:
    if product_type == PRODUCT_TYPE_HAIR_CARE:
        return "Power issue", [
            "Check the plug is fully inserted and the wall socket is switched on.",
            "Try a different socket to rule out the outlet.",
            "Inspect the cable for kinks or damage and stop using it if any is visible.",
            "Let the appliance cool for 15 minutes, as the thermal cut-out may have tripped.",
        ]
    return "Power issue", [
        "Make sure the battery is fully charged and clicked firmly into place.",
        "Check the power switch or safety lock-off is fully engaged.",
        "Remove and reinsert the battery, then try again.",
        "Leave the product to cool for 30 minutes if it has been running for a long time.",
    ]


def _charging_guide(product_type: str) -> Tuple[str, List[str]]:
    if product_type == PRODUCT_TYPE_HAIR_CARE:
        return "Power supply problem", [
            "This is a mains-powered product, so check the plug and socket first.",
            "Try a different socket and make sure any extension lead is switched on.",
            "Inspect the cable along its full length for damage.",
        ]
    return "Charging problem", [
        "Use only the original charger supplied with your product.",
        "Check the charger light comes on when plugged into the wall.",
        "Clean the battery and charger contacts with a dry cloth.",
        "Charge at room temperature, away from direct heat or cold.",
        "Try a different wall socket.",
    ]


def _mechanical_guide(product_type: str) -> Tuple[str, List[str]]:
    if product_type == PRODUCT_TYPE_HAIR_CARE:
        return "Mechanical issue", [
            "Unplug the appliance and let it cool completely.",
            "Clean the air intake filter at the back of the unit.",
            "Check attachments are clicked fully into place.",
        ]
    if product_type == PRODUCT_TYPE_GARDEN:
        return "Mechanical issue / Not cutting properly", [
            "Remove the battery before checking the blade or line.",
            "Clear any grass or debris caught around the blade or cutting head.",
            "Check the blade for damage or bluntness and replace it if needed.",
            "Make sure the guard and any attachments are fitted correctly.",
        ]
    return "Mechanical issue", [
        "Switch off and remove the battery before inspecting the product.",
        "Check brush bars, heads, or bits for tangles and debris.",
        "Make sure every removable part is fitted and locked into place.",
    ]


def _battery_guide(product_type: str) -> Tuple[str, List[str]]:
    if product_type == PRODUCT_TYPE_HAIR_CARE:
        return "Power issue", [
            "This product runs from mains power only.",
            "If it cuts out, let it cool and clean the air filter before using it again.",
        ]
    return "Battery not holding charge", [
        "Fully charge the battery, then run the product until it stops, and repeat twice.",
        "Store the battery indoors at room temperature.",
        "Check the runtime against the figure for the power mode you are using.",
        "Batteries are consumable parts, so a replacement may be needed after heavy use.",
    ]


def _blockage_guide(product_type: str) -> Tuple[str, List[str]]:
    if product_type == PRODUCT_TYPE_FLOORCARE:
        return "Blockage or jammed", [
            "Switch off and remove the battery.",
            "Empty the bin and clean the filter.",
            "Check the floorhead, neck, and any tubes for blockages.",
            "Remove hair or threads wrapped around the brush bar.",
        ]
    if product_type == PRODUCT_TYPE_HAIR_CARE:
        return "Blockage", [
            "Unplug and let the appliance cool.",
            "Remove and clean the rear filter to clear trapped hair and dust.",
        ]
    return "Blockage or jammed", [
        "Switch off and remove the battery before touching any moving part.",
        "Clear debris from the blade, chuck, or cutting head.",
        "Check nothing is trapped in the ventilation slots.",
    ]


def _other_guide(product_type: str) -> Tuple[str, List[str]]:
    steps = [
        "Check the user manual for your model, which covers most common issues.",
        "Note any lights, sounds, or error codes the product shows.",
    ]
    if product_type != PRODUCT_TYPE_HAIR_CARE:
        steps.insert(1, "Make sure the battery is charged and fitted correctly.")
    return "Other problem", steps


GUIDE_BUILDERS = {
    "power": _power_guide,
    "charging": _charging_guide,
    "mechanical": _mechanical_guide,
    "battery": _battery_guide,
    "blockage": _blockage_guide,
    "other": _other_guide,
}


def _support_footer(support: SupportContact, model_code: Optional[str]) -> str:
    reference = f" and quote model {model_code}" if model_code else ""
    return (
        "Still not working? Contact our support team at "
        f"{support.email} or call {support.phone}{reference}. "
        f"You can also visit {support.website}"
    )
