"""
Lightweight OpenAI-compatible LLM client for funnel analysis.

Uses httpx to call a chat completions endpoint with retry and exponential
backoff. Failures surface as CollaboratorError; ``completed`` tells the
caller whether the upstream actually answered.
"""

import asyncio
import logging
from dataclasses import dataclass

import httpx

from core.config import get_settings
from core.exceptions import CollaboratorError, CollaboratorTimeoutError

logger = logging.getLogger(__name__)

# Retry config matching project conventions (3 attempts, 2/4/8s backoff)
MAX_RETRIES = 3
RETRY_DELAYS = [2, 4, 8]


@dataclass
class LLMResult:
    """Text returned by the model plus token accounting."""

    content: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class LLMClient:
    """Async chat-completions client."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.moonshot.cn/v1",
        model: str = "kimi-k2-250905",
        timeout: float = 30.0,
        max_tokens: int = 2000,
        retry_delays: list[float] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout = timeout
        self._max_tokens = max_tokens
        self._retry_delays = retry_delays if retry_delays is not None else RETRY_DELAYS
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def model(self) -> str:
        return self._model

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def generate(
        self,
        prompt: str,
        system_message: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> LLMResult:
        """
        Call chat completions and return the text response.

        Retries on transient errors with exponential backoff.

        Raises:
            CollaboratorTimeoutError: If the endpoint never answered
            CollaboratorError: If it answered with an error or an unusable body
        """
        messages = []
        if system_message:
            messages.append({"role": "system", "content": system_message})
        messages.append({"role": "user", "content": prompt})

        payload = {
            "model": self._model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens or self._max_tokens,
        }

        last_error: str | None = None
        answered = False
        client = await self._get_client()

        for attempt in range(MAX_RETRIES):
            try:
                response = await client.post("/chat/completions", json=payload)
                answered = True

                if response.status_code in (200, 201):
                    return self._parse_completion(response)

                error_msg = self._extract_error(response)
                last_error = error_msg

                # Fail fast on client errors (auth, bad request, etc.)
                if 400 <= response.status_code < 500:
                    logger.warning(f"[LLMClient] Client error {response.status_code}: {error_msg}")
                    break

                # Retry on transient server errors, but not if the error
                # indicates an authentication/authorization problem
                if (
                    response.status_code in (502, 503, 504)
                    and attempt < MAX_RETRIES - 1
                    and not self._is_auth_error(error_msg)
                ):
                    delay = self._retry_delays[attempt]
                    logger.warning(
                        f"[LLMClient] Retryable error (attempt {attempt + 1}): {error_msg}. "
                        f"Retrying in {delay}s..."
                    )
                    await asyncio.sleep(delay)
                    continue

                break

            except (httpx.ConnectError, httpx.TimeoutException) as e:
                answered = False
                last_error = str(e) or type(e).__name__
                if attempt < MAX_RETRIES - 1:
                    delay = self._retry_delays[attempt]
                    logger.warning(
                        f"[LLMClient] Connection error (attempt {attempt + 1}): {last_error}. "
                        f"Retrying in {delay}s..."
                    )
                    await asyncio.sleep(delay)
                    continue
                break

        if not answered:
            raise CollaboratorTimeoutError(
                message=f"LLM unreachable after {MAX_RETRIES} attempts: {last_error}",
            )
        raise CollaboratorError(message=f"LLM call failed: {last_error}")

    @staticmethod
    def _parse_completion(response: httpx.Response) -> LLMResult:
        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise CollaboratorError(
                message="LLM returned an unexpected response body",
                error_code="analysis_output_invalid",
            ) from e

        usage = data.get("usage") or {}
        return LLMResult(
            content=(content or "").strip(),
            prompt_tokens=int(usage.get("prompt_tokens") or 0),
            completion_tokens=int(usage.get("completion_tokens") or 0),
            total_tokens=int(usage.get("total_tokens") or 0),
        )

    @staticmethod
    def _is_auth_error(error_msg: str) -> bool:
        """Check if an error message indicates an authentication failure."""
        lower = error_msg.lower()
        return any(
            keyword in lower
            for keyword in ("authenticat", "unauthoriz", "api key", "invalid key", "forbidden")
        )

    @staticmethod
    def _extract_error(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return f"HTTP {response.status_code}"
        if isinstance(data, dict):
            if isinstance(data.get("error"), dict):
                return data["error"].get("message", f"HTTP {response.status_code}")
            if isinstance(data.get("error"), str):
                return data["error"]
        return f"HTTP {response.status_code}"

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None


# Singleton
_llm_client: LLMClient | None = None


def get_llm_client() -> LLMClient:
    """Get or create the singleton LLM client."""
    global _llm_client
    if _llm_client is None:
        settings = get_settings()
        if not settings.llm_api_key:
            raise CollaboratorError(
                message="LLM_API_KEY is not configured",
                error_code="analysis_not_configured",
                completed=False,
            )
        _llm_client = LLMClient(
            api_key=settings.llm_api_key,
            base_url=settings.llm_base_url,
            model=settings.llm_model,
            timeout=settings.llm_request_timeout_seconds,
            max_tokens=settings.llm_max_tokens,
        )
    return _llm_client


async def close_llm_client() -> None:
    global _llm_client
    if _llm_client is not None:
        await _llm_client.close()
        _llm_client = None
