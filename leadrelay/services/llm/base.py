from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

SYSTEM_PROMPT = "You are a helpful sales assistant."


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Generate response from LLM."""
        pass

    def complete(self, model: Optional[str], prompt: str, temperature: float) -> str:
        """Single-turn completion under the fixed sales-assistant system role."""
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        return self.generate(messages, model=model, temperature=temperature).content
