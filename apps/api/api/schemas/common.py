from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

MODEL_NAME_MAX_LENGTH = 200

# Model identifiers end up as process arguments; this is the injection guard.
_MODEL_NAME_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9._\-/:]*")


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def validate_model_name(value: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValueError("Model name is required")
    if len(value) > MODEL_NAME_MAX_LENGTH:
        raise ValueError("Model name is too long")
    if not _MODEL_NAME_RE.fullmatch(value):
        raise ValueError(
            "Model name contains invalid characters. Only alphanumeric, dots, "
            "hyphens, underscores, slashes, and colons are allowed."
        )
    return value
