"""
LLM Client - thin transport over OpenAI-compatible chat APIs.

Works with OpenRouter (the default), vLLM, Ollama or OpenAI itself. The
agent only needs "send messages, get raw text back"; anything with a
matching chat() method can stand in for this client (tests use scripted
fakes).

Transport failures are raised as TransportError and are not retried by
default: the orchestration loop lets them propagate so the caller decides
whether to back off. Callers that want automatic retries can pass
max_retries.
"""

import logging
import time
from typing import Any, Protocol

import httpx

from codeloop.config import LLMConfig
from codeloop.errors import AuthenticationError, RateLimitError, TransportError

logger = logging.getLogger(__name__)

# Default timeout configuration (in seconds)
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_WRITE_TIMEOUT = 10.0
DEFAULT_POOL_TIMEOUT = 10.0

DEFAULT_RETRY_DELAY = 5.0

APP_TITLE = "codeloop"


class ChatClient(Protocol):
    """What the agent needs from a model client."""

    def chat(self, messages: list[dict[str, Any]], **options: Any) -> "ChatResponse": ...


class ChatResponse:
    """
    Response from a chat completion request.

    content is the raw assistant text; the agent parses it itself.
    """

    def __init__(
        self,
        content: str | None,
        finish_reason: str = "stop",
        reasoning: str | None = None,
        usage: dict[str, Any] | None = None,
        raw_response: dict[str, Any] | None = None,
    ) -> None:
        self.content = content or ""
        self.finish_reason = finish_reason
        self.reasoning = reasoning
        self.usage = usage or {}
        self.raw_response = raw_response or {}

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "ChatResponse":
        """Parse an API response into a ChatResponse."""
        choices = data.get("choices") or []
        if not choices:
            raise TransportError(f"Response contained no choices: {data.get('error') or data}")
        choice = choices[0]
        message = choice.get("message") or {}

        return cls(
            content=message.get("content"),
            finish_reason=choice.get("finish_reason") or "stop",
            reasoning=message.get("reasoning"),
            usage=data.get("usage"),
            raw_response=data,
        )

    @property
    def total_tokens(self) -> int:
        return int(self.usage.get("total_tokens", 0))


class LLMClient:
    """
    Synchronous client for OpenAI-compatible chat completion APIs.

    Uses layered timeouts so a hung read does not block the loop forever.
    """

    def __init__(
        self,
        config: LLMConfig | None = None,
        max_retries: int = 0,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client with configuration.

        Args:
            config: LLM configuration (model, API key, etc.)
            max_retries: Retries for timeouts, network errors, 429 and 503
            retry_delay: Seconds to wait before retrying
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.config = config or LLMConfig.from_env()
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        timeout = httpx.Timeout(
            connect=DEFAULT_CONNECT_TIMEOUT,
            read=self.config.timeout,
            write=DEFAULT_WRITE_TIMEOUT,
            pool=DEFAULT_POOL_TIMEOUT,
        )

        self._client = httpx.Client(
            base_url=self.config.base_url,
            headers={
                "Authorization": f"Bearer {self.config.api_key}",
                "Content-Type": "application/json",
                "X-Title": APP_TITLE,
            },
            timeout=timeout,
            transport=transport,
        )

    @property
    def model(self) -> str:
        return self.config.model

    def chat(
        self,
        messages: list[dict[str, Any]],
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> ChatResponse:
        """
        Send a chat completion request.

        Args:
            messages: The conversation in OpenAI format
            temperature: Override the configured temperature
            max_tokens: Override the configured max_tokens
            json_mode: Ask the provider for a JSON object response

        Returns:
            ChatResponse with the assistant's raw text

        Raises:
            AuthenticationError: on 401/403
            RateLimitError: on 429 once retries are exhausted
            TransportError: on any other HTTP or network failure
        """
        payload: dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "temperature": self.config.temperature if temperature is None else temperature,
            "max_tokens": self.config.max_tokens if max_tokens is None else max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        last_error: TransportError | None = None

        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                logger.info(f"Retry attempt {attempt}/{self.max_retries} after {self.retry_delay}s delay...")
                time.sleep(self.retry_delay)

            logger.debug(f"Sending chat request with {len(messages)} messages (attempt {attempt + 1})")

            try:
                response = self._client.post("/chat/completions", json=payload)
                response.raise_for_status()
                return ChatResponse.from_api_response(response.json())

            except httpx.TimeoutException as e:
                logger.warning(f"Request timed out (attempt {attempt + 1}): {e}")
                last_error = TransportError(f"Request timed out: {e}")
                continue

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status in (401, 403):
                    logger.error(f"Authentication failed: HTTP {status}")
                    raise AuthenticationError(
                        f"HTTP {status}: check CODELOOP_LLM_API_KEY", status_code=status
                    ) from e

                if status == 429:
                    retry_after = e.response.headers.get("Retry-After")
                    logger.warning(f"Rate limited (attempt {attempt + 1}), Retry-After={retry_after}")
                    last_error = RateLimitError(f"HTTP 429: {e.response.text}", status_code=status)
                    if retry_after and attempt < self.max_retries:
                        try:
                            time.sleep(float(retry_after))
                        except ValueError:
                            logger.debug(f"Ignoring non-numeric Retry-After: {retry_after}")
                    continue

                if status == 503:
                    logger.warning(f"Service unavailable (attempt {attempt + 1}): {e}")
                    last_error = TransportError(f"HTTP 503: {e.response.text}", status_code=status)
                    continue

                logger.error(f"HTTP error: {status} - {e.response.text}")
                raise TransportError(f"HTTP {status}: {e.response.text}", status_code=status) from e

            except httpx.RequestError as e:
                logger.warning(f"Request error (attempt {attempt + 1}): {e}")
                last_error = TransportError(f"Request failed: {e}")
                continue

            except ValueError as e:
                raise TransportError(f"Malformed response body: {e}") from e

        assert last_error is not None
        logger.error(f"All {self.max_retries + 1} attempts failed. Last error: {last_error}")
        raise last_error

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "LLMClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
