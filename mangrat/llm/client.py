"""
Clients for the external text-generation service.

Everything else in the app talks to TextGenerationClient and receives a
GenerationResult or one of UpstreamError / UpstreamTimeoutError. Provider
response shapes are handled here and nowhere else.

Each generate() call has a wall-clock budget (total_timeout) shared by all
attempts. The response body is streamed and the budget is checked between
chunks, so a server that trickles bytes cannot hold a turn open. A single
stalled socket read is bounded by read_timeout.
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)
from urllib3.exceptions import ReadTimeoutError

from ..core.config import LLMSettings
from ..core.exceptions import ConfigError, UpstreamError, UpstreamTimeoutError
from ..core.logger import get_logger
from .models import GenerationRequest, GenerationResult

logger = get_logger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
CHUNK_SIZE = 8192


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, UpstreamError) and exc.retryable


def _is_read_timeout(exc: requests.RequestException) -> bool:
    """requests raises Timeout while waiting for headers, but wraps a body stall in ConnectionError."""
    if isinstance(exc, requests.Timeout):
        return True
    return isinstance(exc, requests.ConnectionError) and any(
        isinstance(arg, ReadTimeoutError) for arg in exc.args
    )


class TextGenerationClient(ABC):
    """Abstract base for any text-generation backend."""

    @abstractmethod
    def generate(self, request: GenerationRequest) -> GenerationResult:
        raise NotImplementedError


class HTTPTextGenerationClient(TextGenerationClient):
    """
    Shared HTTP plumbing: bounded timeouts, error classification and
    tenacity retries for transient failures (never for timeouts).
    """

    def __init__(
        self,
        api_base: str,
        api_token: Optional[str],
        model: str,
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
        total_timeout: float = 120.0,
        max_attempts: int = 2,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.api_token = api_token
        self.model = model
        # Use tuple timeout: (connect_timeout, read_timeout)
        self.timeout: Tuple[float, float] = (connect_timeout, read_timeout)
        self.total_timeout = total_timeout
        self.max_attempts = max_attempts
        self.retry_wait = wait_exponential(multiplier=1, min=1, max=8)
        self.monotonic: Callable[[], float] = time.monotonic
        self.session = session or requests.Session()

    @abstractmethod
    def _url(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def _payload(self, request: GenerationRequest) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def _parse(self, data: Any) -> str:
        raise NotImplementedError

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_token}",
        }

    def _deadline_exceeded(self) -> UpstreamTimeoutError:
        logger.warning(
            "Text-generation service exceeded its deadline",
            model=self.model,
            total_timeout=self.total_timeout,
        )
        return UpstreamTimeoutError(f"LLM provider did not finish within {self.total_timeout}s")

    def generate(self, request: GenerationRequest) -> GenerationResult:
        if not self.api_token:
            raise UpstreamError("LLM API token not configured.")

        deadline = self.monotonic() + self.total_timeout
        call = retry(
            stop=stop_after_attempt(self.max_attempts) | stop_after_delay(self.total_timeout),
            wait=self.retry_wait,
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )(self._post_once)
        text = call(request, deadline)
        return GenerationResult(text=text)

    def _read_body(self, resp: requests.Response, deadline: float) -> bytes:
        chunks: List[bytes] = []
        try:
            for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                chunks.append(chunk)
                if self.monotonic() >= deadline:
                    raise self._deadline_exceeded()
        finally:
            resp.close()
        return b"".join(chunks)

    def _post_once(self, request: GenerationRequest, deadline: float) -> str:
        remaining = deadline - self.monotonic()
        if remaining <= 0:
            raise self._deadline_exceeded()

        url = self._url()
        logger.info(
            "Calling text-generation service",
            model=self.model,
            max_tokens=request.max_tokens,
            temperature=request.temperature,
            prompt_length=len(request.prompt),
        )
        timeout = (self.timeout[0], min(self.timeout[1], remaining))
        try:
            resp = self.session.post(
                url,
                json=self._payload(request),
                headers=self._headers(),
                timeout=timeout,
                stream=True,
            )
            body = self._read_body(resp, deadline)
        except requests.RequestException as e:
            if _is_read_timeout(e):
                logger.warning("Text-generation service timed out", model=self.model, timeout=timeout)
                raise UpstreamTimeoutError(f"LLM provider timed out after {timeout[1]}s") from e
            logger.warning("Error contacting text-generation service", error=str(e))
            raise UpstreamError(f"Error contacting LLM provider: {e}", retryable=True) from e

        if resp.status_code != 200:
            logger.warning(
                "Text-generation service returned an error",
                status=resp.status_code,
                body=body[:500].decode("utf-8", errors="replace"),
            )
            raise UpstreamError(
                f"LLM provider returned {resp.status_code}",
                status=resp.status_code,
                retryable=resp.status_code in RETRYABLE_STATUS,
            )

        try:
            data = json.loads(body)
        except ValueError as e:
            raise UpstreamError(f"Invalid JSON from LLM provider: {e}") from e

        text = self._parse(data)
        if not text.strip():
            raise UpstreamError("LLM provider returned an empty completion")
        return text.strip()


class HuggingFaceInferenceClient(HTTPTextGenerationClient):
    """
    Client for the Hugging Face Inference API text-generation task.

    Response shape: [{"generated_text": "..."}]
    """

    def _url(self) -> str:
        return f"{self.api_base}/{self.model}"

    def _payload(self, request: GenerationRequest) -> Dict[str, Any]:
        return {
            "inputs": request.prompt,
            "parameters": {
                "max_new_tokens": request.max_tokens,
                "temperature": request.temperature,
                "return_full_text": False,
            },
        }

    def _parse(self, data: Any) -> str:
        if isinstance(data, list) and data and isinstance(data[0], dict):
            text = data[0].get("generated_text")
            if isinstance(text, str):
                return text
        raise UpstreamError("Unexpected response shape from Hugging Face")


class OpenAICompatibleClient(HTTPTextGenerationClient):
    """
    Client for OpenAI-compatible /chat/completions HTTP APIs.

    The whole prompt travels as one user message.
    """

    def _url(self) -> str:
        return f"{self.api_base}/chat/completions"

    def _payload(self, request: GenerationRequest) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": request.prompt}],
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }

    def _parse(self, data: Any) -> str:
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamError("Unexpected response shape from LLM provider") from e
        if not isinstance(text, str):
            raise UpstreamError("Unexpected response shape from LLM provider")
        return text


def build_client(settings: LLMSettings) -> TextGenerationClient:
    kwargs = dict(
        api_base=settings.api_base,
        api_token=settings.api_token,
        model=settings.model,
        connect_timeout=settings.connect_timeout_seconds,
        read_timeout=settings.read_timeout_seconds,
        total_timeout=settings.total_timeout_seconds,
        max_attempts=settings.max_attempts,
    )
    if settings.provider == "huggingface":
        return HuggingFaceInferenceClient(**kwargs)
    if settings.provider == "openai-compatible":
        return OpenAICompatibleClient(**kwargs)
    raise ConfigError(f"Unknown LLM provider: {settings.provider}")
