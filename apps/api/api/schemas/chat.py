from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import Field, field_validator

from .common import CamelModel, validate_model_name


class ChatMessage(CamelModel):
    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(CamelModel):
    model: str
    backend: Literal["cpu", "gpu"] = "cpu"
    message: str = Field(..., min_length=1)
    conversation_history: List[ChatMessage] = Field(default_factory=list)
    gpu_slot: Optional[Literal[0, 1]] = None

    @field_validator("model")
    @classmethod
    def _check_model(cls, v: str) -> str:
        return validate_model_name(v)

    def messages(self) -> List[dict]:
        history = [m.model_dump() for m in self.conversation_history]
        return history + [{"role": "user", "content": self.message}]
