"""LLM service clients."""

from .ollama import OllamaClient

__all__ = ["OllamaClient"]
