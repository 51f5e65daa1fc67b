import pytest

from product_assistant.gemini_client import GeminiClient, _flatten_contents, _normalize_model_name, build_contents

from .conftest import make_settings


def test_missing_key_raises():
    with pytest.raises(ValueError):
        GeminiClient(make_settings(gemini_api_key=""))


def test_normalize_model_name():
    assert _normalize_model_name(" models/gemini-2.5-flash ") == "gemini-2.5-flash"
    assert _normalize_model_name(None) == ""


def test_build_contents_maps_roles_and_skips_blank_turns():
    contents = build_contents(
        [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}, {"role": "user", "content": " "}],
        "price?",
    )
    assert [entry["role"] for entry in contents] == ["user", "model", "user"]
    assert contents[-1]["parts"] == [{"text": "price?"}]


def test_flatten_contents():
    text = _flatten_contents(build_contents([{"role": "assistant", "content": "hello"}], "price?"))
    assert text == "MODEL: hello\n\nUSER: price?"
