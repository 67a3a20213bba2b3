"""Models package: model profile registry and backend providers."""

from .model_manager import (
    ModelManager,
    ModelProfile,
    ModelNotFoundError,
    ModelDisabledError,
    default_profiles,
)

__all__ = [
    "ModelManager",
    "ModelProfile",
    "ModelNotFoundError",
    "ModelDisabledError",
    "default_profiles",
]
