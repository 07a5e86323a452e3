from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal, Optional, Pattern, Tuple

PromptKind = Literal["confirm-no", "confirm-yes", "danger-confirm", "text-input"]

DANGER_KEYWORD = "CONFIRM"

# CSI sequences (colours, styles, cursor movement) emitted by the deploy scripts.
_ANSI_ESCAPE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]")


@dataclass(frozen=True)
class PromptSignature:
    pattern: Pattern[str]
    kind: PromptKind
    message: str


@dataclass(frozen=True)
class PendingPrompt:
    kind: PromptKind
    message: str
    raw_line: str


# Ordered: first match wins.
PROMPT_SIGNATURES: Tuple[PromptSignature, ...] = (
    PromptSignature(
        pattern=re.compile(r"continue\s+anyway\s*\?\s*\[\s*y\s*/\s*n\s*\]", re.IGNORECASE),
        kind="confirm-no",
        message=(
            "This model will push RAM usage close to the limit. "
            "The system may slow down while it runs. Continue anyway?"
        ),
    ),
    PromptSignature(
        pattern=re.compile(r"proceed\s*\?\s*\[\s*y\s*/\s*n\s*\]", re.IGNORECASE),
        kind="confirm-yes",
        message="The model fits in available memory. Proceed with the deployment?",
    ),
    PromptSignature(
        pattern=re.compile(r"type\s+confirm\s+to\s+proceed", re.IGNORECASE),
        kind="danger-confirm",
        message=(
            "This model is likely to exceed available RAM and can make the "
            f"system unresponsive. Type {DANGER_KEYWORD} to proceed anyway."
        ),
    ),
    PromptSignature(
        pattern=re.compile(r"enter\s+the\s+parameter\s+count", re.IGNORECASE),
        kind="text-input",
        message=(
            "The model size could not be inferred from its name. "
            "Enter the parameter count in billions (e.g. 7 for a 7B model)."
        ),
    ),
)


def strip_ansi(text: str) -> str:
    return _ANSI_ESCAPE.sub("", text)


def detect_prompt(line: str) -> Optional[PendingPrompt]:
    clean = strip_ansi(line or "")
    for signature in PROMPT_SIGNATURES:
        if signature.pattern.search(clean):
            return PendingPrompt(kind=signature.kind, message=signature.message, raw_line=line)
    return None
