from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .service import DeploymentRegistry

__all__ = ["DeploymentRegistry"]


def __getattr__(name: str):
    if name == "DeploymentRegistry":
        from .service import DeploymentRegistry

        return DeploymentRegistry
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
