"""
LLM Client - The controller behind the orchestration loop.

The loop only depends on the ControllerClient protocol: send the history
and the tool schemas, get back either tool calls or a final answer.
LLMClient implements it over a Messages-style HTTP API (tool_use and
tool_result content blocks) with httpx.

Includes timeout and retry logic for resilience against API hangs. When
retries are exhausted the client raises ClientUnavailable, which ends the
run.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from fileagent.config import LLMConfig
from fileagent.errors import ClientUnavailable
from fileagent.types import ToolCallRequest

logger = logging.getLogger(__name__)

# Default timeout configuration (in seconds)
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_WRITE_TIMEOUT = 10.0
DEFAULT_POOL_TIMEOUT = 10.0

# Retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 5.0

API_VERSION = "2023-06-01"


@dataclass
class ControllerReply:
    """
    One controller turn.

    Either tool_calls is non-empty, or final_answer holds the answer.
    content is the text the controller produced alongside its tool calls.
    """
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    final_answer: str | None = None
    content: str = ""
    stop_reason: str | None = None

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "ControllerReply":
        """Parse a Messages API response body."""
        texts: list[str] = []
        tool_calls: list[ToolCallRequest] = []
        for block in data["content"]:
            if block.get("type") == "text":
                texts.append(block.get("text", ""))
            elif block.get("type") == "tool_use":
                tool_calls.append(ToolCallRequest(
                    id=block["id"],
                    tool_name=block["name"],
                    arguments=block.get("input") or {},
                ))
        content = "\n".join(t for t in texts if t)
        return cls(
            tool_calls=tool_calls,
            final_answer=None if tool_calls else content,
            content=content,
            stop_reason=data.get("stop_reason"),
        )


class ControllerClient(Protocol):
    """Anything that can drive the orchestration loop."""

    def send(
        self,
        messages: list[dict[str, Any]],
        tool_schemas: list[dict[str, Any]],
        system: str = "",
    ) -> ControllerReply: ...


class LLMClient:
    """
    Client for a Messages-style LLM API.

    Synchronous; the loop sends one request at a time.
    """

    def __init__(
        self,
        config: LLMConfig | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client with configuration.

        Args:
            config: LLM configuration (model, API key, etc.)
            max_retries: Maximum number of retries for timeout/network errors
            retry_delay: Seconds to wait before retrying
            transport: Optional httpx transport, used by tests
        """
        self.config = config or LLMConfig.from_env()
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        timeout = httpx.Timeout(
            connect=DEFAULT_CONNECT_TIMEOUT,
            read=self.config.timeout_seconds,
            write=DEFAULT_WRITE_TIMEOUT,
            pool=DEFAULT_POOL_TIMEOUT,
        )

        self._client = httpx.Client(
            headers={
                "x-api-key": self.config.api_key,
                "anthropic-version": API_VERSION,
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def send(
        self,
        messages: list[dict[str, Any]],
        tool_schemas: list[dict[str, Any]],
        system: str = "",
    ) -> ControllerReply:
        """
        Send the conversation with automatic retry.

        Raises:
            ClientUnavailable: If all retries are exhausted or a
                non-retryable error occurs
        """
        payload: dict[str, Any] = {
            "model": self.config.model_id,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "messages": messages,
        }
        if system:
            payload["system"] = system
        if tool_schemas:
            payload["tools"] = tool_schemas

        last_error: Exception | None = None

        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                logger.info(f"Retry attempt {attempt}/{self.max_retries} after {self.retry_delay}s delay...")
                time.sleep(self.retry_delay)

            logger.debug(f"Sending request with {len(messages)} messages (attempt {attempt + 1})")

            try:
                response = self._client.post(self.config.api_url, json=payload)
                response.raise_for_status()
                data = response.json()

            except httpx.TimeoutException as e:
                logger.warning(f"Request timed out (attempt {attempt + 1}): {e}")
                last_error = e
                continue

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status == 429:
                    retry_after = e.response.headers.get("Retry-After")
                    try:
                        wait_time = float(retry_after) if retry_after else 0.0
                    except ValueError:
                        wait_time = 0.0
                    if wait_time:
                        logger.warning(f"Rate limited. Waiting {wait_time}s (from Retry-After header)")
                        time.sleep(wait_time)
                    else:
                        logger.warning("Rate limited.")
                    last_error = e
                    continue

                if status in (503, 529):
                    logger.warning(f"Service unavailable (attempt {attempt + 1}): {e}")
                    last_error = e
                    continue

                logger.error(f"HTTP error: {status} - {e.response.text}")
                raise ClientUnavailable(f"HTTP {status}: {e.response.text}") from e

            except httpx.RequestError as e:
                logger.warning(f"Request error (attempt {attempt + 1}): {e}")
                last_error = e
                continue

            except ValueError as e:
                raise ClientUnavailable(f"Response body is not valid JSON: {e}") from e

            try:
                return ControllerReply.from_api_response(data)
            except (KeyError, TypeError) as e:
                raise ClientUnavailable(f"Malformed response: missing {e}") from e

        logger.error(f"All {self.max_retries + 1} attempts failed. Last error: {last_error}")
        raise ClientUnavailable(
            f"Request failed after {self.max_retries + 1} attempts: {last_error}"
        ) from last_error

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "LLMClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
