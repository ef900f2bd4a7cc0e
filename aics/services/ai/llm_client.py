"""
Async language-model gateway shared by every agent.

Contract: send a system prompt, a user message and explicit history; get back
text plus token counts. The gateway keeps no conversation state between calls.

Design constraints:
- No vendor SDKs: httpx against an OpenAI-compatible /chat/completions API
- Every call is bounded by an HTTP timeout and guarded by a circuit breaker
- Errors propagate; the orchestrator decides how a stage degrades

Configuration comes from aics.core.config (LLM_API_BASE, LLM_API_KEY, AI_MODEL,
AI_MAX_TOKENS_PER_REQUEST, AI_TEMPERATURE_DEFAULT, LLM_TIMEOUT_SECONDS).
"""
import time
from typing import Any, Dict, List, Literal, Optional

import httpx
from pydantic import BaseModel, Field

from aics.core.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from aics.core.config import Settings, get_settings
from aics.core.logging import get_logger
from aics.core.metrics import (
    record_llm_error,
    record_llm_request,
    record_llm_tokens_and_cost,
)
from aics.services.ai.tokens import estimate_cost, estimate_tokens

logger = get_logger(__name__)


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class LLMRequest(BaseModel):
    """One completion request."""

    system_prompt: str
    user_message: str
    model: Optional[str] = None
    max_tokens: Optional[int] = Field(None, gt=0)
    temperature: Optional[float] = Field(None, ge=0.0, le=2.0)
    conversation_history: List[ChatTurn] = Field(default_factory=list)


class LLMResponse(BaseModel):
    """Completion text plus usage."""

    content: str
    token_input: int = 0
    token_output: int = 0
    model: str


class LLMClient:
    """Async HTTP client for completion calls."""

    def __init__(
        self,
        api_base: str,
        api_key: Optional[str],
        default_model: str,
        default_max_tokens: int = 4096,
        default_temperature: float = 0.3,
        timeout_seconds: float = 30.0,
    ):
        self.api_base = api_base.rstrip("/")
        self.api_key = api_key
        self.default_model = default_model
        self.default_max_tokens = default_max_tokens
        self.default_temperature = default_temperature
        self.timeout_seconds = timeout_seconds

        self.circuit_breaker = CircuitBreaker(
            name="llm_gateway",
            failure_threshold=0.5,
            time_window_seconds=60,
            open_duration_seconds=30,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "LLMClient":
        return cls(
            api_base=settings.llm_api_base,
            api_key=settings.llm_api_key,
            default_model=settings.model,
            default_max_tokens=settings.max_tokens,
            default_temperature=settings.temperature,
            timeout_seconds=settings.llm_timeout_seconds,
        )

    async def _post(self, path: str, json_payload: Dict[str, Any]) -> httpx.Response:
        """Low-level POST helper (isolated for circuit breaker)."""
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        url = f"{self.api_base}{path}"
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.post(url, headers=headers, json=json_payload)
            # Raise inside the breaker so 5xx responses count as failures.
            response.raise_for_status()
            return response

    def _build_payload(self, request: LLMRequest, model: str) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = [{"role": "system", "content": request.system_prompt}]
        messages.extend(turn.model_dump() for turn in request.conversation_history)
        messages.append({"role": "user", "content": request.user_message})

        return {
            "model": model,
            "messages": messages,
            "max_tokens": request.max_tokens or self.default_max_tokens,
            "temperature": (
                request.temperature
                if request.temperature is not None
                else self.default_temperature
            ),
        }

    async def complete(self, request: LLMRequest, agent: str = "unknown") -> LLMResponse:
        """
        Run one completion.

        Args:
            request: Prompt, history and sampling options
            agent: Logical caller name for logs and metrics ("team-3", "classifier", ...)

        Raises:
            RuntimeError if no API key is configured, CircuitBreakerOpenError,
            httpx errors (including timeouts). Callers isolate these per stage.
        """
        if not self.api_key:
            record_llm_error(agent, "missing_api_key")
            raise RuntimeError("LLM API key not configured")

        model = request.model or self.default_model
        payload = self._build_payload(request, model)
        start = time.time()

        try:
            response: httpx.Response = await self.circuit_breaker.call_async(
                self._post,
                "/chat/completions",
                json_payload=payload,
            )
        except CircuitBreakerOpenError:
            record_llm_error(agent, "circuit_open")
            logger.warning("llm_circuit_open", agent=agent)
            raise
        except httpx.TimeoutException as exc:
            record_llm_error(agent, "timeout")
            logger.warning(
                "llm_timeout",
                agent=agent,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise
        except httpx.HTTPError as exc:
            record_llm_error(agent, "http_error")
            logger.warning(
                "llm_http_error",
                agent=agent,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise
        finally:
            duration_ms = (time.time() - start) * 1000.0
            record_llm_request(agent, model, duration_ms)

        data = response.json()
        content = self._extract_text(data)

        # Providers that omit usage still get an estimate for cost dashboards.
        usage = data.get("usage") or {}
        input_tokens = int(usage.get("prompt_tokens") or 0) or estimate_tokens(
            "".join(message["content"] for message in payload["messages"])
        )
        output_tokens = int(usage.get("completion_tokens") or 0) or estimate_tokens(content)

        record_llm_tokens_and_cost(
            agent=agent,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=estimate_cost(input_tokens, output_tokens),
        )

        return LLMResponse(
            content=content,
            token_input=input_tokens,
            token_output=output_tokens,
            model=data.get("model") or model,
        )

    @staticmethod
    def _extract_text(data: Dict[str, Any]) -> str:
        """choices[0].message.content, tolerating content-part lists."""
        choices = data.get("choices") or [{}]
        content = (choices[0].get("message") or {}).get("content") or ""
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") for part in content if isinstance(part, dict)
            )
        return content


_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Global gateway instance built from settings."""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient.from_settings(get_settings())
    return _llm_client
