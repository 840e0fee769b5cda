"""Ollama integration for gymagent."""

from gymagent.ollama.client import OllamaClient
from gymagent.ollama.models import ChatResponse

__all__ = ["ChatResponse", "OllamaClient"]
