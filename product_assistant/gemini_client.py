from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

import google.generativeai as genai
from google.generativeai.types import HarmBlockThreshold, HarmCategory

from .config import Settings

logger = logging.getLogger("assistant.oracle")

DEFAULT_SAFETY_SETTINGS = [
    {"category": HarmCategory.HARM_CATEGORY_HARASSMENT, "threshold": HarmBlockThreshold.BLOCK_ONLY_HIGH},
    {"category": HarmCategory.HARM_CATEGORY_HATE_SPEECH, "threshold": HarmBlockThreshold.BLOCK_ONLY_HIGH},
    {"category": HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT, "threshold": HarmBlockThreshold.BLOCK_ONLY_HIGH},
    {"category": HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT, "threshold": HarmBlockThreshold.BLOCK_ONLY_HIGH},
]

ROLE_MAP = {"assistant": "model", "model": "model", "user": "user"}


class GeminiClient:
    """Thin async wrapper around the Gemini SDK used as the generation oracle."""

    def __init__(self, settings: Settings) -> None:
        """Purpose: Configure the Gemini SDK for the configured chat model.
        Inputs/Outputs: Input is Settings; no return value.
        Side Effects / State: Configures SDK global API key and caches model instances.
        Dependencies: Uses google.generativeai and Settings from config.
        Failure Modes: Raises ValueError if API key or model name is missing.
        If Removed: The assistant answers only from the deterministic fallback.
        Testing Notes: Validate missing key raises ValueError.
        """
        # Configure API key and remember the default model name.
        if not settings.gemini_api_key:
            raise ValueError("GEMINI_API_KEY is required")
        self._default_model = _normalize_model_name(settings.gemini_model)
        if not self._default_model:
            raise ValueError("Gemini model name is required")
        genai.configure(api_key=settings.gemini_api_key)
        self._models: Dict[str, genai.GenerativeModel] = {}

    async def generate_reply(
        self,
        system_instruction: str,
        history: Sequence[Dict[str, str]],
        message: str,
        model: Optional[str] = None,
        temperature: float = 0.4,
        max_output_tokens: int = 2048,
    ) -> str:
        """Purpose: Generate one assistant reply from a system prompt and chat turns.
        Inputs/Outputs: Inputs are the system instruction, prior turns as role/content
            dicts, and the current message; output is the reply text ("" when empty).
        Side Effects / State: Network call to the Gemini API; caches model instances.
        Dependencies: Uses GenerativeModel.generate_content_async and _flatten_contents.
        Failure Modes: SDK/network errors propagate; blocked responses return "".
        If Removed: Free-form answers are unavailable.
        Testing Notes: Use a fake client in pipeline tests; never call the real API.
        """
        # Build role-tagged contents and call the model with the system instruction.
        model_name = _normalize_model_name(model) if model else self._default_model
        contents = build_contents(history, message)
        generation_config = {"temperature": temperature, "max_output_tokens": max_output_tokens}

        try:
            instance = self._model(model_name, system_instruction)
            response = await instance.generate_content_async(
                contents,
                generation_config=generation_config,
                safety_settings=DEFAULT_SAFETY_SETTINGS,
            )
        except TypeError:
            logger.debug("structured contents rejected, retrying flattened model=%s", model_name)
            combined = f"{system_instruction}\n\n{_flatten_contents(contents)}"
            response = await self._model(model_name, None).generate_content_async(
                combined,
                generation_config=generation_config,
                safety_settings=DEFAULT_SAFETY_SETTINGS,
            )
        return _response_text(response)

    def _model(self, model_name: str, system_instruction: Optional[str]) -> genai.GenerativeModel:
        if system_instruction:
            return genai.GenerativeModel(model_name, system_instruction=system_instruction)
        if model_name not in self._models:
            self._models[model_name] = genai.GenerativeModel(model_name)
        return self._models[model_name]


def build_contents(history: Sequence[Dict[str, str]], message: str) -> List[Dict[str, object]]:
    contents: List[Dict[str, object]] = []
    for turn in history:
        text = (turn.get("content") or "").strip()
        if not text:
            continue
        role = ROLE_MAP.get(turn.get("role", "user"), "user")
        contents.append({"role": role, "parts": [{"text": text}]})
    contents.append({"role": "user", "parts": [{"text": message}]})
    return contents


def _response_text(response: object) -> str:
    # .text raises ValueError when the candidate was blocked or carries no parts.
    try:
        text: Optional[str] = getattr(response, "text", None)
    except ValueError:
        logger.warning("oracle response had no text parts")
        return ""
    return (text or "").strip()


def _normalize_model_name(name: Optional[str]) -> str:
    """Purpose: Normalize model names by stripping prefix and whitespace.
    Inputs/Outputs: Input is a model name string; output is normalized name.
    Side Effects / State: None.
    Dependencies: None; used by GeminiClient.
    Failure Modes: Returns empty string for falsy input.
    If Removed: Model selection may use "models/" prefixed names inconsistently.
    Testing Notes: Ensure "models/foo" becomes "foo" and whitespace is trimmed.
    """
    # Strip "models/" prefix and whitespace.
    if not name:
        return ""
    cleaned = name.strip()
    if cleaned.startswith("models/"):
        return cleaned.split("/", 1)[1]
    return cleaned


def _flatten_contents(contents: list) -> str:
    # Flatten role-tagged parts into a readable plain-text prompt.
    parts: List[str] = []
    for entry in contents:
        if not isinstance(entry, dict):
            continue
        role = entry.get("role", "")
        texts = [
            str(segment.get("text"))
            for segment in entry.get("parts", []) or []
            if isinstance(segment, dict) and segment.get("text")
        ]
        if texts:
            prefix = f"{role.upper()}: " if role else ""
            parts.append(prefix + "\n".join(texts))
    return "\n\n".join(parts)
