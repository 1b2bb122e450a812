from leadrelay.services.llm.base import LLMProvider, LLMResponse
from leadrelay.services.llm.openrouter_provider import OpenRouterProvider

__all__ = ["LLMProvider", "LLMResponse", "OpenRouterProvider"]
