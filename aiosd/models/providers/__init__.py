"""LLM backend providers."""

from .base import BaseLLMProvider
from .ollama import OllamaProvider

__all__ = [
    "BaseLLMProvider",
    "OllamaProvider",
]
