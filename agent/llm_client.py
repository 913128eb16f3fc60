"""
Language-model backends behind one call shape:

    await model.complete(system, messages, capabilities=None,
                         temperature=None, max_tokens=None) -> ModelTurn

A turn is either plain text or a single function call. Both SDKs are used
through their blocking clients in a worker thread, bounded by
LLM_TIMEOUT_SECONDS.
"""
import asyncio
import json
from dataclasses import dataclass

import anthropic
import openai

from config import (
    LLM_PROVIDER,
    OPENAI_API_KEY,
    ANTHROPIC_API_KEY,
    OPENAI_ROUTING_MODEL,
    OPENAI_NARRATION_MODEL,
    ANTHROPIC_MODEL,
    LLM_TIMEOUT_SECONDS,
)

DEFAULT_MAX_TOKENS = 1024


class LLMError(Exception):
    """The model service failed or returned something unusable."""


@dataclass
class FunctionCall:
    name: str
    arguments_json: str = "{}"


@dataclass
class ModelTurn:
    content: str | None = None
    function_call: FunctionCall | None = None


class OpenAIChatModel:
    def __init__(
        self,
        api_key: str,
        routing_model: str = OPENAI_ROUTING_MODEL,
        narration_model: str = OPENAI_NARRATION_MODEL,
        timeout: float = LLM_TIMEOUT_SECONDS,
    ):
        self.client = openai.OpenAI(api_key=api_key, timeout=timeout)
        self.routing_model = routing_model
        self.narration_model = narration_model
        self.timeout = timeout

    @staticmethod
    def _tools(capabilities: list) -> list:
        return [
            {
                "type": "function",
                "function": {
                    "name": c["name"],
                    "description": c["description"],
                    "parameters": c["parameters"],
                },
            }
            for c in capabilities
        ]

    async def complete(self, system: str, messages: list, capabilities: list = None,
                       temperature: float = None, max_tokens: int = None) -> ModelTurn:
        payload = [{"role": "system", "content": system}] if system else []
        payload += [{"role": m["role"], "content": m.get("content") or ""} for m in messages]

        kwargs = {
            "model": self.routing_model if capabilities else self.narration_model,
            "messages": payload,
        }
        if capabilities:
            kwargs["tools"] = self._tools(capabilities)
            kwargs["tool_choice"] = "auto"
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(self.client.chat.completions.create, **kwargs),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise LLMError(f"OpenAI call timed out after {self.timeout:.0f}s")
        except openai.OpenAIError as e:
            raise LLMError(f"OpenAI call failed: {e}") from e

        if not response.choices:
            raise LLMError("OpenAI returned no choices")
        message = response.choices[0].message
        if message.tool_calls:
            call = message.tool_calls[0].function
            return ModelTurn(
                content=message.content,
                function_call=FunctionCall(name=call.name, arguments_json=call.arguments or "{}"),
            )
        return ModelTurn(content=message.content)


class AnthropicChatModel:
    def __init__(self, api_key: str, model: str = ANTHROPIC_MODEL, timeout: float = LLM_TIMEOUT_SECONDS):
        self.client = anthropic.Anthropic(api_key=api_key, timeout=timeout)
        self.model = model
        self.timeout = timeout

    @staticmethod
    def _tools(capabilities: list) -> list:
        return [
            {"name": c["name"], "description": c["description"], "input_schema": c["parameters"]}
            for c in capabilities
        ]

    @staticmethod
    def _messages(messages: list) -> list:
        """Messages API wants alternating user/assistant turns starting with user."""
        merged = []
        for m in messages:
            role = m.get("role")
            content = m.get("content") or ""
            if role not in ("user", "assistant") or not content.strip():
                continue
            if merged and merged[-1]["role"] == role:
                merged[-1]["content"] += "\n\n" + content
            else:
                merged.append({"role": role, "content": content})
        while merged and merged[0]["role"] != "user":
            merged.pop(0)
        return merged

    async def complete(self, system: str, messages: list, capabilities: list = None,
                       temperature: float = None, max_tokens: int = None) -> ModelTurn:
        extra_system = [m["content"] for m in messages if m.get("role") == "system" and m.get("content")]
        system_text = "\n\n".join([s for s in [system] + extra_system if s])

        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens or DEFAULT_MAX_TOKENS,
            "messages": self._messages(messages),
        }
        if not kwargs["messages"]:
            raise LLMError("No user message to send")
        if system_text:
            kwargs["system"] = system_text
        if capabilities:
            kwargs["tools"] = self._tools(capabilities)
        if temperature is not None:
            kwargs["temperature"] = temperature

        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(self.client.messages.create, **kwargs),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise LLMError(f"Claude call timed out after {self.timeout:.0f}s")
        except anthropic.AnthropicError as e:
            raise LLMError(f"Claude call failed: {e}") from e

        text_parts = []
        for block in response.content:
            if block.type == "tool_use":
                return ModelTurn(
                    content="".join(text_parts) or None,
                    function_call=FunctionCall(name=block.name, arguments_json=json.dumps(block.input or {})),
                )
            if block.type == "text":
                text_parts.append(block.text)
        return ModelTurn(content="".join(text_parts))


def build_language_model(provider: str = LLM_PROVIDER):
    provider = (provider or "openai").lower()
    if provider == "anthropic":
        if not ANTHROPIC_API_KEY:
            raise LLMError("ANTHROPIC_API_KEY is not set")
        print(f"[INIT] Language model: Anthropic ({ANTHROPIC_MODEL})")
        return AnthropicChatModel(ANTHROPIC_API_KEY)
    if not OPENAI_API_KEY:
        raise LLMError("OPENAI_API_KEY is not set")
    print(f"[INIT] Language model: OpenAI (routing={OPENAI_ROUTING_MODEL}, narration={OPENAI_NARRATION_MODEL})")
    return OpenAIChatModel(OPENAI_API_KEY)
