from __future__ import annotations

import logging
from typing import Callable, Literal, Mapping, Optional

from .prompts import DANGER_KEYWORD, PendingPrompt, detect_prompt

LOGGER = logging.getLogger(__name__)

DeployState = Literal["idle", "deploying", "completed", "failed"]
PromptState = Literal["idle", "awaiting-prompt-answer"]

AFFIRMATIVE = "y"
NEGATIVE = "n"
DANGER_CANCEL = "cancel"


class PromptOrchestrator:
    """
    Watches a deployment's events and turns detected prompts into answers.

    At most one prompt is pending; a new one replaces an unanswered one.
    Answers go out through `send`, which delivers text to the script's stdin.

    Answer mapping:
      confirm-yes / confirm-no -> "y" / "n" (confirm-no defaults to "n")
      danger-confirm           -> the typed keyword verbatim / "cancel"
      text-input               -> the typed text verbatim / nothing
    """

    def __init__(self, send: Callable[[str], None]) -> None:
        self._send = send
        self.state: DeployState = "idle"
        self.pending: Optional[PendingPrompt] = None

    @property
    def prompt_state(self) -> PromptState:
        return "awaiting-prompt-answer" if self.pending is not None else "idle"

    @property
    def default_answer(self) -> Optional[str]:
        if self.pending is None:
            return None
        if self.pending.kind == "confirm-yes":
            return AFFIRMATIVE
        if self.pending.kind == "confirm-no":
            return NEGATIVE
        return None

    def begin(self) -> None:
        self.state = "deploying"
        self.pending = None

    def handle_event(self, event: Mapping[str, object]) -> Optional[PendingPrompt]:
        kind = event.get("type")
        data = str(event.get("data") or "")

        if kind == "complete":
            self.state = "completed" if data == "completed" else "failed"
            self.pending = None
            return None

        if kind not in {"output", "error"}:
            return None

        prompt = detect_prompt(data)
        if prompt is not None:
            if self.pending is not None:
                LOGGER.debug("unanswered %s prompt replaced by %s", self.pending.kind, prompt.kind)
            self.pending = prompt
        return prompt

    def can_confirm(self, text: str = "") -> bool:
        if self.pending is None:
            return False
        if self.pending.kind == "danger-confirm":
            return text == DANGER_KEYWORD
        if self.pending.kind == "text-input":
            return bool(text.strip())
        return True

    def confirm(self, text: str = "") -> str:
        prompt = self._require_pending()
        if not self.can_confirm(text):
            raise ValueError(f"answer not accepted for {prompt.kind} prompt")
        if prompt.kind in {"confirm-yes", "confirm-no"}:
            answer = AFFIRMATIVE
        else:
            answer = text
        self._deliver(answer)
        return answer

    def cancel(self) -> Optional[str]:
        prompt = self._require_pending()
        if prompt.kind in {"confirm-yes", "confirm-no"}:
            answer: Optional[str] = NEGATIVE
        elif prompt.kind == "danger-confirm":
            answer = DANGER_CANCEL
        else:
            answer = None

        if answer is None:
            self.dismiss()
            return None
        self._deliver(answer)
        return answer

    def dismiss(self) -> None:
        self.pending = None

    def _require_pending(self) -> PendingPrompt:
        if self.pending is None:
            raise RuntimeError("no prompt is pending")
        return self.pending

    def _deliver(self, answer: str) -> None:
        self._send(answer)
        self.pending = None
