"""Text-generation oracle used to produce artifact source."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import anthropic
import httpx

logger = logging.getLogger(__name__)


class OracleError(RuntimeError):
    """The oracle call failed or returned something unusable."""


@dataclass(frozen=True)
class OracleResponse:
    text: str
    token_usage: int = 0


class TextOracle(Protocol):
    def complete(self, system_context: str, instructions: str) -> OracleResponse: ...


class AnthropicOracle:
    """Messages-API client on the anthropic SDK, with retries off.

    Every failure surfaces as ``OracleError``.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: str | None,
        timeout_seconds: float,
        max_tokens: int,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._model = model
        self._timeout = timeout_seconds
        self._max_tokens = max_tokens
        self._client = (
            anthropic.Anthropic(
                api_key=api_key,
                base_url=base_url,
                timeout=timeout_seconds,
                max_retries=0,
                http_client=http_client,
            )
            if api_key
            else None
        )

    def complete(self, system_context: str, instructions: str) -> OracleResponse:
        if self._client is None:
            raise OracleError("No API key configured for the generation oracle")

        try:
            message = self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                system=system_context,
                messages=[{"role": "user", "content": instructions}],
            )
        except anthropic.APITimeoutError as exc:
            raise OracleError(f"Oracle call timed out after {self._timeout}s") from exc
        except anthropic.APIStatusError as exc:
            raise OracleError(f"Oracle call failed: HTTP {exc.status_code}") from exc
        except anthropic.APIError as exc:
            raise OracleError(f"Oracle call failed: {exc}") from exc

        text = _first_text_block(message)
        if text is None:
            raise OracleError("Oracle response contained no text content")
        usage = getattr(message, "usage", None)
        output_tokens = getattr(usage, "output_tokens", 0) or 0
        logger.debug("Oracle returned %d characters (%s output tokens)", len(text), output_tokens)
        return OracleResponse(text=text, token_usage=int(output_tokens))


def _first_text_block(message: object) -> str | None:
    content = getattr(message, "content", None)
    if not isinstance(content, list):
        return None
    for block in content:
        if getattr(block, "type", None) == "text":
            text = getattr(block, "text", None)
            if isinstance(text, str):
                return text
    return None
