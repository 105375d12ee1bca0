"""LLM completion client.

The assistant depends only on ``CompletionClient``; the OpenAI implementation
is the production binding and tests substitute their own.
"""

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Protocol

import openai
from openai import OpenAI

from ledgerline_api.errors import UpstreamUnavailable
from ledgerline_api.settings import get_settings
from ledgerline_api.utils.metrics import llm_request_duration

logger = logging.getLogger(__name__)


@dataclass
class ToolCall:
    """Structured function call returned by the model."""

    name: str
    arguments: Optional[dict]  # None when the model emitted unparseable JSON


@dataclass
class Completion:
    """Model output: free text plus at most one tool call."""

    text: str
    tool_call: Optional[ToolCall] = None


class CompletionClient(Protocol):
    def complete(self, system_prompt: str, user_content: str, tools: list[dict]) -> Completion:
        ...


class OpenAICompletionClient:
    """Chat completions with function calling via the OpenAI SDK."""

    def __init__(self, api_key: str, model: str, timeout: float):
        """Initialize the client."""
        self.model = model
        self.client = OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    def complete(self, system_prompt: str, user_content: str, tools: list[dict]) -> Completion:
        """Run one completion; transport failures raise ``UpstreamUnavailable``."""
        try:
            with llm_request_duration.time():
                response = self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_content},
                    ],
                    tools=tools,
                    tool_choice="auto",
                )
        except openai.APIError as e:
            logger.error(f"LLM request failed: {e}", extra={"model": self.model})
            raise UpstreamUnavailable(f"LLM service unavailable: {e.__class__.__name__}") from e

        message = response.choices[0].message
        tool_call = None
        if message.tool_calls:
            function = message.tool_calls[0].function
            try:
                arguments = json.loads(function.arguments or "{}")
            except json.JSONDecodeError:
                logger.warning("Discarding tool call with malformed arguments", extra={"tool": function.name})
                arguments = None
            tool_call = ToolCall(name=function.name, arguments=arguments)

        return Completion(text=message.content or "", tool_call=tool_call)


@lru_cache()
def get_completion_client() -> Optional[CompletionClient]:
    """Process-wide client, or None when no API key is configured."""
    settings = get_settings()
    if not settings.openai_api_key:
        return None
    return OpenAICompletionClient(
        api_key=settings.openai_api_key,
        model=settings.llm_model,
        timeout=settings.llm_timeout_seconds,
    )
