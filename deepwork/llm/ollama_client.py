"""
Ollama-backed model gateway.

Maps pipeline tiers onto concrete Ollama models and speaks the /api/chat
endpoint over httpx:
- Tier to model resolution
- Optional fallback models per request
- Token usage from Ollama's eval counters
- Errors returned on the response, never raised
"""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from ..config.settings import GatewaySettings
from .gateway import ModelRequest, ModelResponse, ModelTier, TokenUsage

logger = logging.getLogger(__name__)


class OllamaGateway:
    """
    Model gateway implementation for a local or cloud Ollama server.
    """

    def __init__(
        self,
        settings: Optional[GatewaySettings] = None,
        fallback_models: Optional[List[str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or GatewaySettings()
        self.base_url = self.settings.ollama_url.rstrip("/")
        self.fallback_models = fallback_models or []
        self._client = client

        # Stats tracking
        self._request_count = 0
        self._total_tokens = 0
        self._total_time = 0.0
        self._error_count = 0

    def model_for_tier(self, tier: ModelTier) -> str:
        try:
            return self.settings.tier_models[tier.value]
        except KeyError:
            raise ValueError(f"No model configured for tier {tier.value}")

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.api_key:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"
        return headers

    def _payload(self, request: ModelRequest, model: str) -> Dict[str, Any]:
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.user_message})
        return {
            "model": model,
            "messages": messages,
            "stream": False,
            "options": {"temperature": self.settings.temperature},
        }

    async def _post_chat(self, client: httpx.AsyncClient, request: ModelRequest, model: str) -> ModelResponse:
        response = await client.post(
            f"{self.base_url}/api/chat",
            json=self._payload(request, model),
            headers=self._headers(),
        )
        if response.status_code >= 400:
            return ModelResponse.failure(f"Ollama HTTP {response.status_code}: {response.text[:200]}")

        data = response.json()
        content = ((data.get("message") or {}).get("content") or "").strip()
        if not content:
            return ModelResponse.failure(f"Empty response from {model}")

        return ModelResponse(
            content=content,
            usage=TokenUsage(
                prompt_tokens=int(data.get("prompt_eval_count") or 0),
                completion_tokens=int(data.get("eval_count") or 0),
            ),
            model=data.get("model", model),
        )

    async def call(self, request: ModelRequest) -> ModelResponse:
        """
        Run one chat completion at the requested tier.
        """
        model = self.model_for_tier(request.tier)
        models_to_try = [model] + [m for m in self.fallback_models if m != model]
        last_error = None
        start_time = time.time()

        client = self._client or httpx.AsyncClient(timeout=self.settings.request_timeout_s)
        try:
            for attempt_model in models_to_try:
                try:
                    result = await self._post_chat(client, request, attempt_model)
                except (httpx.HTTPError, ValueError) as e:
                    result = ModelResponse.failure(f"{type(e).__name__}: {e}")

                if result.success:
                    self._request_count += 1
                    self._total_tokens += result.usage.total
                    self._total_time += time.time() - start_time
                    return result

                last_error = result.error
                logger.warning(f"Request failed with model {attempt_model}: {last_error}")
        finally:
            if self._client is None:
                await client.aclose()

        self._error_count += 1
        return ModelResponse.failure(f"All models failed. Last error: {last_error}")

    def get_stats(self) -> Dict[str, Any]:
        """Get client usage statistics"""
        return {
            "request_count": self._request_count,
            "total_tokens": self._total_tokens,
            "total_time": self._total_time,
            "error_count": self._error_count,
            "avg_time_per_request": self._total_time / max(1, self._request_count),
        }
