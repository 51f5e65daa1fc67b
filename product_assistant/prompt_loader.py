from __future__ import annotations

import re
from pathlib import Path
from typing import Mapping

PLACEHOLDER_RE = re.compile(r"<<([A-Z_]+)>>")


def load_prompt(prompt_path: Path) -> str:
    """Purpose: Load a prompt file as UTF-8 text and strip BOM if present.
    Inputs/Outputs: Input is a Path to the prompt file; output is the decoded string.
    Side Effects / State: None; pure function reading the filesystem.
    Dependencies: Uses Path.read_text/read_bytes; used by the generation step.
    Failure Modes: UnicodeDecodeError triggers a fallback decode with errors ignored,
        which can drop invalid bytes. A missing file raises OSError to the caller.
    If Removed: The oracle receives no system instruction.
    Testing Notes: Validate BOM-stripping and fallback decoding on non-UTF8 files.
    """
    # Read as UTF-8 and fall back to a tolerant decode if needed.
    try:
        return prompt_path.read_text(encoding="utf-8").lstrip("\ufeff")
    except UnicodeDecodeError:
        raw = prompt_path.read_bytes()
        return raw.decode("utf-8", errors="ignore").lstrip("\ufeff")


def render_prompt(template: str, values: Mapping[str, object]) -> str:
    """Replace <<NAME>> placeholders; unknown names are left untouched."""
    def substitute(match: "re.Match[str]") -> str:
        key = match.group(1)
        if key in values:
            return str(values[key])
        return match.group(0)

    return PLACEHOLDER_RE.sub(substitute, template)
