import json
from typing import List, Optional

import httpx

from leadrelay.logging_config import get_logger
from leadrelay.services.errors import GatewayError
from leadrelay.services.llm.base import LLMProvider, LLMResponse

logger = get_logger("llm.openrouter")


class OpenRouterProvider(LLMProvider):
    """OpenRouter chat-completions provider (OpenAI-compatible wire format)."""

    def __init__(
        self,
        api_key: Optional[str],
        api_url: str,
        default_model: str,
        max_tokens: int = 512,
        timeout_seconds: float = 60.0,
    ):
        self.api_key = api_key
        self.base_url = api_url
        self.default_model = default_model
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds

    def _post(self, payload: dict) -> httpx.Response:
        if not self.api_key:
            raise GatewayError("OpenRouter API key is not configured")

        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(
                    self.base_url,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.TimeoutException as exc:
            raise GatewayError(f"OpenRouter request timed out after {self.timeout_seconds}s") from exc
        except httpx.HTTPError as exc:
            raise GatewayError(f"OpenRouter transport error: {exc}") from exc

        logger.debug(f"OpenRouter response status: {response.status_code}")

        if not response.is_success:
            logger.error(f"OpenRouter error: {response.status_code} - {response.text[:500]}")
            raise GatewayError(
                f"OpenRouter API error: {response.status_code} - {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Generate response from OpenRouter.

        An unexpected response shape is not an error: the raw body is returned
        as the content so callers always get a string back.
        """
        model = model or self.default_model
        payload = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens or self.max_tokens,
            "temperature": temperature,
        }
        logger.debug(f"OpenRouter request: model={model}, messages_count={len(messages)}")

        response = self._post(payload)

        try:
            data = response.json()
        except ValueError:
            return LLMResponse(content=response.text, model=model)

        content = None
        if isinstance(data, dict):
            choices = data.get("choices")
            if isinstance(choices, list) and choices and isinstance(choices[0], dict):
                message = choices[0].get("message") or {}
                if isinstance(message, dict):
                    content = message.get("content")

        if not isinstance(content, str) or not content:
            logger.warning("OpenRouter response has no message content, returning raw body")
            content = data if isinstance(data, str) else json.dumps(data, ensure_ascii=False)

        usage = data.get("usage") if isinstance(data, dict) else None
        model_used = data.get("model", model) if isinstance(data, dict) else model
        return LLMResponse(content=content, model=model_used, usage=usage)

    def forward(self, payload: dict) -> dict:
        """Send a caller-built chat-completions payload and return the decoded body."""
        response = self._post(payload)
        try:
            return response.json()
        except ValueError as exc:
            raise GatewayError("OpenRouter returned a non-JSON body") from exc
