"""
Reasoning engine interface and HTTP adapter.
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ticketforge.core.config import settings
from ticketforge.core.exceptions import ReasoningError, ReasoningResponseError
from ticketforge.core.logging import get_logger
from ticketforge.domain.generation import ReasoningAnalysis

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)

SYSTEM_MESSAGE = (
    "You analyze user interface components for engineering teams. "
    "Answer with a single JSON object and nothing else."
)


def _extract_json_object(raw: str) -> Optional[str]:
    fenced = _FENCE_RE.search(raw)
    if fenced:
        raw = fenced.group(1)
    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end <= start:
        return None
    return raw[start : end + 1]


def parse_reasoning_response(raw: Any) -> ReasoningAnalysis:
    """
    Validate a reasoning engine answer against the analysis contract.

    Args:
        raw: Response text (optionally fenced or wrapped in prose) or a decoded dict

    Returns:
        Parsed analysis

    Raises:
        ReasoningResponseError: If no JSON object is found or fields are missing
    """
    if isinstance(raw, dict):
        data = raw
    else:
        text = str(raw or "")
        candidate = _extract_json_object(text)
        if candidate is None:
            raise ReasoningResponseError("No JSON object in response", raw=text)
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as e:
            raise ReasoningResponseError(f"Invalid JSON: {e.msg}", raw=text) from e

    if not isinstance(data, dict):
        raise ReasoningResponseError("Response JSON is not an object")
    try:
        return ReasoningAnalysis.model_validate(data)
    except ValidationError as e:
        missing = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        raise ReasoningResponseError(f"Response missing fields: {', '.join(missing)}") from e


class ReasoningEngine(ABC):
    """External collaborator that analyzes a compiled prompt."""

    @property
    @abstractmethod
    def engine_name(self) -> str:
        """Name used in logs and health checks."""
        pass

    @abstractmethod
    async def analyze(self, prompt: str) -> ReasoningAnalysis:
        """
        Send instruction text and return the structured analysis.

        Raises:
            ReasoningError: On transport failure or a malformed answer
        """
        pass

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class HTTPReasoningClient(ReasoningEngine):
    """
    Reasoning engine reached over an OpenAI-compatible chat completions API.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[int] = None,
        max_retries: Optional[int] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: API root, e.g. https://api.openai.com/v1
            api_key: Bearer token
            model: Model name sent with each request
            timeout: Request timeout in seconds
            max_retries: Attempts per call for transport errors
            temperature: Sampling temperature
            max_tokens: Completion token limit
            client: Pre-built httpx client (tests pass one with a mock transport)
        """
        config = settings.reasoning
        self.base_url = (base_url or config.base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else config.api_key
        self.model = model or config.model
        self.timeout = timeout or config.timeout
        self.max_retries = max_retries or config.max_retries
        self.temperature = config.temperature if temperature is None else temperature
        self.max_tokens = max_tokens or config.max_tokens
        self._client = client

    @property
    def engine_name(self) -> str:
        return f"http:{self.model}"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers=headers,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.post(endpoint, json=payload)
            response.raise_for_status()
            return response.json()

        except httpx.HTTPStatusError as e:
            logger.error(
                "Reasoning request failed",
                endpoint=endpoint,
                status_code=e.response.status_code,
            )
            raise ReasoningError(
                f"HTTP {e.response.status_code}",
                details={"endpoint": endpoint, "status_code": e.response.status_code},
            ) from e

        except httpx.RequestError as e:
            logger.error("Reasoning request error", endpoint=endpoint, error=str(e))
            raise ReasoningError(f"Request failed: {e}", details={"endpoint": endpoint}) from e

        except ValueError as e:
            raise ReasoningResponseError("Response body is not JSON") from e

    async def _request(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST with retries on transport failures only."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(ReasoningError)
            & retry_if_not_exception_type(ReasoningResponseError),
            reraise=True,
        ):
            with attempt:
                return await self._post(endpoint, payload)
        raise ReasoningError("Retries exhausted")

    async def analyze(self, prompt: str) -> ReasoningAnalysis:
        payload = {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": SYSTEM_MESSAGE},
                {"role": "user", "content": prompt},
            ],
        }
        data = await self._request("/chat/completions", payload)

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ReasoningResponseError("Unexpected completion payload") from e

        analysis = parse_reasoning_response(content)
        logger.info(
            "Reasoning analysis received",
            model=self.model,
            confidence=analysis.confidence,
        )
        return analysis

    async def health_check(self) -> bool:
        try:
            client = await self._get_client()
            response = await client.get("/models")
            return response.status_code < 500
        except httpx.HTTPError:
            return False

    async def __aenter__(self) -> "HTTPReasoningClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
