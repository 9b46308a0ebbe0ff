"""
Providers - Embedding and generation provider adapters

Each adapter isolates one provider's response shapes and error types behind
a single typed contract, so the rest of the pipeline never inspects raw SDK
payloads.

Part of the RAG Query Pipeline.

License: MIT
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Protocol, runtime_checkable
import logging

from ..exceptions import (
    GenerationError,
    PermanentProviderError,
    ProviderError,
    TransientProviderError,
    is_retryable_error,
)

logger = logging.getLogger(__name__)


@dataclass
class GenerationResponse:
    """Normalized output of a generation call."""

    text: str
    tokens_used: int = 0


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Anything that can turn one string into one vector."""

    async def embed(self, text: str) -> List[float]: ...


@runtime_checkable
class GenerationProvider(Protocol):
    """Anything that can answer a system/user prompt pair."""

    model: str

    async def generate(self, system_prompt: str, user_prompt: str) -> GenerationResponse: ...


def _get(obj: Any, name: str) -> Any:
    """Read ``name`` from a mapping or an attribute-style object."""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _content_to_text(content: Any) -> Optional[str]:
    """Flatten a string or a list of content parts into text."""
    if isinstance(content, str):
        return content

    if isinstance(content, (list, tuple)):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
                continue
            text = _get(part, "text")
            # Responses API nests the string one level deeper
            if text is not None and not isinstance(text, str):
                text = _get(text, "value")
            if isinstance(text, str):
                parts.append(text)
        return "".join(parts) if parts else None

    return None


def _extract_tokens(response: Any) -> int:
    usage = _get(response, "usage")
    if usage is None:
        return 0

    total = _get(usage, "total_tokens")
    if total is None:
        prompt = _get(usage, "prompt_tokens") or _get(usage, "input_tokens") or 0
        completion = _get(usage, "completion_tokens") or _get(usage, "output_tokens") or 0
        total = prompt + completion

    try:
        return int(total)
    except (TypeError, ValueError):
        return 0


def normalize_generation_response(response: Any) -> GenerationResponse:
    """
    Normalize a generation response envelope into ``GenerationResponse``.

    Accepted shapes, tried in order:
        - ``output_text`` (Responses API convenience field)
        - ``choices[0].message.content`` (Chat Completions)
        - ``message.content``
        - ``output[0].content`` as a string or a list of parts

    Args:
        response: SDK object or plain dictionary

    Returns:
        Normalized response

    Raises:
        GenerationError: If no usable text is present
    """
    text = None

    output_text = _get(response, "output_text")
    if isinstance(output_text, str):
        text = output_text

    if text is None:
        choices = _get(response, "choices")
        if choices:
            text = _content_to_text(_get(_get(choices[0], "message"), "content"))

    if text is None:
        text = _content_to_text(_get(_get(response, "message"), "content"))

    if text is None:
        output = _get(response, "output")
        if output:
            text = _content_to_text(_get(output[0], "content"))

    if text is None or not text.strip():
        raise GenerationError("Generation provider returned no usable text")

    return GenerationResponse(text=text.strip(), tokens_used=_extract_tokens(response))


def translate_openai_error(error: Exception) -> ProviderError:
    """
    Map an OpenAI SDK exception onto the pipeline's provider errors.

    Args:
        error: Exception raised by the SDK

    Returns:
        TransientProviderError or PermanentProviderError
    """
    import openai

    if isinstance(
        error, (openai.RateLimitError, openai.APIConnectionError, openai.InternalServerError)
    ):
        return TransientProviderError(str(error))

    if isinstance(error, openai.APIStatusError):
        if error.status_code >= 500 or error.status_code in (408, 409, 429):
            return TransientProviderError(str(error))
        return PermanentProviderError(str(error))

    if is_retryable_error(error):
        return TransientProviderError(str(error))

    return PermanentProviderError(str(error))


class OpenAIEmbeddingProvider:
    """Embedding provider backed by the OpenAI embeddings endpoint."""

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        client: Any = None,
    ):
        """
        Initialize the provider.

        Args:
            model: OpenAI embedding model to use
            api_key: API key; falls back to ``OPENAI_API_KEY``
            client: Pre-built ``AsyncOpenAI`` client
        """
        self.model = model
        self.api_key = api_key
        self._client = client

    @property
    def client(self):
        """Lazy initialization of OpenAI client."""
        if self._client is None:
            try:
                import openai

                self._client = openai.AsyncOpenAI(api_key=self.api_key)
            except ImportError:
                raise ImportError("OpenAI library is required. Install with: pip install openai")
        return self._client

    async def embed(self, text: str) -> List[float]:
        try:
            response = await self.client.embeddings.create(input=text, model=self.model)
        except Exception as e:
            raise translate_openai_error(e) from e

        data = _get(response, "data")
        if not data:
            raise PermanentProviderError("Embedding provider returned no data")

        return list(_get(data[0], "embedding") or [])


class OpenAIGenerationProvider:
    """Generation provider backed by OpenAI chat completions."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        max_tokens: int = 1000,
        temperature: float = 0.3,
        api_key: Optional[str] = None,
        client: Any = None,
    ):
        """
        Initialize the provider.

        Args:
            model: Chat model to use
            max_tokens: Completion token limit
            temperature: Sampling temperature
            api_key: API key; falls back to ``OPENAI_API_KEY``
            client: Pre-built ``AsyncOpenAI`` client
        """
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.api_key = api_key
        self._client = client

    @property
    def client(self):
        """Lazy initialization of OpenAI client."""
        if self._client is None:
            try:
                import openai

                self._client = openai.AsyncOpenAI(api_key=self.api_key)
            except ImportError:
                raise ImportError("OpenAI library is required. Install with: pip install openai")
        return self._client

    async def generate(self, system_prompt: str, user_prompt: str) -> GenerationResponse:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as e:
            raise translate_openai_error(e) from e

        return normalize_generation_response(response)
