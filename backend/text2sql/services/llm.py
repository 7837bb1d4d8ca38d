"""
Completion capability.

The pipeline only needs "text in, text out".  ``CompletionClient``
is that interface; ``OpenAICompletionClient`` implements it with the
OpenAI chat API and, when database tools are attached, runs the
function-calling loop internally so callers still see a single
synchronous call.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol

from openai import OpenAI

from text2sql.config import settings
from text2sql.errors import GenerationFailure
from text2sql.services.database_tools import DatabaseTools

logger = logging.getLogger(__name__)


class CompletionClient(Protocol):
    """Single-shot natural-language completion."""

    def complete(self, prompt: str) -> str:
        ...


class OpenAICompletionClient:
    """
    Completion client backed by the OpenAI chat API.

    Attributes:
        name (str): Identifier used in log messages.
        model (str): Chat model name.
        temperature (float): Sampling temperature (0 to 2).
        max_tool_rounds (int): Upper bound on tool-call round trips
            per completion.
    """

    name = "openai"

    def __init__(
        self,
        tools: Optional[DatabaseTools] = None,
        client: Optional[OpenAI] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tool_rounds: Optional[int] = None,
    ):
        self.tools = tools
        self._client = client
        self.model = model or settings.openai_model
        self.temperature = (
            temperature if temperature is not None
            else settings.llm_temperature
        )
        self.max_tool_rounds = (
            max_tool_rounds if max_tool_rounds is not None
            else settings.max_tool_rounds
        )

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
            )
        return self._client

    def complete(self, prompt: str) -> str:
        """
        Send *prompt* as a user message and return the reply text.

        Tool calls requested by the model are executed and fed
        back until the model answers in plain text.

        Parameters:
            prompt (str): Fully rendered prompt.

        Returns:
            str: Final assistant message content.

        Raises:
            GenerationFailure: If the model keeps calling tools past
                ``max_tool_rounds``.
        """
        messages: List[Dict[str, Any]] = [
            {"role": "user", "content": prompt},
        ]

        for _ in range(self.max_tool_rounds + 1):
            request: Dict[str, Any] = {
                "model": self.model,
                "messages": messages,
                "temperature": self.temperature,
            }
            if self.tools is not None:
                request["tools"] = self.tools.specs

            response = self.client.chat.completions.create(**request)
            message = response.choices[0].message
            tool_calls = getattr(message, "tool_calls", None)
            if not tool_calls:
                return message.content or ""

            messages.append({
                "role": "assistant",
                "content": message.content or "",
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.function.name,
                            "arguments": call.function.arguments,
                        },
                    }
                    for call in tool_calls
                ],
            })
            for call in tool_calls:
                messages.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": self.tools.call(
                        call.function.name,
                        call.function.arguments,
                    ),
                })

        logger.error(
            "[%s] gave up after %d tool rounds",
            self.name,
            self.max_tool_rounds,
        )
        raise GenerationFailure(
            f"model exceeded {self.max_tool_rounds} tool-call rounds"
        )
