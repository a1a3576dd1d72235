"""Chat-model backends used for candidate generation and condensation."""

import copy
import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .text import strip_code_fence

logger = logging.getLogger(__name__)

ChatMessages = List[Dict[str, str]]


def decode_json_reply(content: str) -> Dict[str, Any]:
    """
    Parse a model reply that should hold one JSON object.

    A surrounding Markdown code fence is removed first. A reply that is not
    a JSON object comes back as ``{"raw": content}`` so the caller can tell
    a malformed answer from an empty one.
    """
    try:
        parsed = json.loads(strip_code_fence(content))
    except json.JSONDecodeError:
        return {"raw": content}
    if not isinstance(parsed, dict):
        return {"raw": content}
    return parsed


class LLMProvider(ABC):
    """A chat model answering either in free text or with a JSON object."""

    @abstractmethod
    def complete(
        self,
        messages: ChatMessages,
        max_tokens: Optional[int] = None,
        temperature: float = 0.0,
    ) -> str:
        """Free-text reply to a chat transcript."""

    def complete_json(
        self,
        messages: ChatMessages,
        max_tokens: Optional[int] = None,
        temperature: float = 0.0,
    ) -> Dict[str, Any]:
        """Reply decoded with :func:`decode_json_reply`."""
        return decode_json_reply(self.complete(messages, max_tokens, temperature))


class OpenAIProvider(LLMProvider):
    """
    Chat completions from the OpenAI API or a compatible endpoint.

    ``OPENAI_API_KEY`` and ``OPENAI_BASE_URL`` fill in whatever is not passed.
    A prebuilt ``client`` skips key lookup entirely.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        client: Any = None,
    ):
        self.model = model
        if client is not None:
            self.client = client
            return

        api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OpenAI API key not provided and OPENAI_API_KEY not set")

        from openai import OpenAI

        self.client = OpenAI(
            api_key=api_key,
            base_url=base_url or os.environ.get("OPENAI_BASE_URL"),
            timeout=timeout,
        )

    def _chat(
        self,
        messages: ChatMessages,
        max_tokens: Optional[int],
        temperature: float,
        json_mode: bool,
    ) -> str:
        request: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens is not None:
            request["max_tokens"] = max_tokens
        if json_mode:
            request["response_format"] = {"type": "json_object"}

        choice = self.client.chat.completions.create(**request).choices[0]
        if choice.finish_reason == "length":
            logger.warning("Reply from %s hit the max_tokens limit", self.model)
        return choice.message.content or ""

    def complete(
        self,
        messages: ChatMessages,
        max_tokens: Optional[int] = None,
        temperature: float = 0.0,
    ) -> str:
        return self._chat(messages, max_tokens, temperature, json_mode=False)

    def complete_json(
        self,
        messages: ChatMessages,
        max_tokens: Optional[int] = None,
        temperature: float = 0.0,
    ) -> Dict[str, Any]:
        content = self._chat(messages, max_tokens, temperature, json_mode=True)
        return decode_json_reply(content)


class MockProvider(LLMProvider):
    """
    Canned replies keyed by substrings of the last prompt.

    Patterns are tried in insertion order and matched case-insensitively;
    the first hit wins. Unmatched prompts get an empty memory list (JSON)
    or a fixed sentence (text).
    """

    def __init__(
        self,
        responses: Optional[Dict[str, str]] = None,
        json_responses: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        self.responses = responses or {}
        self.json_responses = json_responses or {}

    @staticmethod
    def _lookup(table: Dict[str, Any], messages: ChatMessages) -> Any:
        prompt = (messages[-1].get("content", "") if messages else "").lower()
        for pattern, reply in table.items():
            if pattern.lower() in prompt:
                return reply
        return None

    def complete(
        self,
        messages: ChatMessages,
        max_tokens: Optional[int] = None,
        temperature: float = 0.0,
    ) -> str:
        reply = self._lookup(self.responses, messages)
        return "Mock response" if reply is None else reply

    def complete_json(
        self,
        messages: ChatMessages,
        max_tokens: Optional[int] = None,
        temperature: float = 0.0,
    ) -> Dict[str, Any]:
        reply = self._lookup(self.json_responses, messages)
        return {"memories": []} if reply is None else copy.deepcopy(reply)


def get_llm_provider(
    provider: str = "openai", model: Optional[str] = None, **kwargs
) -> LLMProvider:
    """
    Build a chat backend by name.

    Args:
        provider: "openai" or "mock"
        model: Model name; ignored by the mock
        **kwargs: Passed to the provider constructor

    Returns:
        LLMProvider instance
    """
    if provider == "openai":
        if model:
            kwargs["model"] = model
        return OpenAIProvider(**kwargs)
    if provider == "mock":
        return MockProvider(**kwargs)
    raise ValueError(f"Unknown provider: {provider}")
