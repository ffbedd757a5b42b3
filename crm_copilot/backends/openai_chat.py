"""Chat Completions adapter for text mode."""

import json
import logging
from typing import Any

from openai import AsyncOpenAI

from crm_copilot.backends.base import ModelReply
from crm_copilot.config import OPENAI_API_KEY, OPENAI_CHAT_MODEL
from crm_copilot.errors import ConfigurationError
from crm_copilot.models import Role, ToolCall, Turn
from crm_copilot.tools.registry import ToolDeclaration, ToolRegistry


def to_chat_messages(history: list[Turn], system_instruction: str) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = [{"role": "system", "content": system_instruction}]
    for turn in history:
        if turn.role is Role.TOOL:
            for response in turn.tool_responses:
                messages.append({
                    "role": "tool",
                    "tool_call_id": response.id,
                    "content": json.dumps(response.result),
                })
        elif turn.role is Role.MODEL:
            message: dict[str, Any] = {"role": "assistant", "content": turn.text}
            if turn.tool_calls:
                message["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.args)},
                    }
                    for call in turn.tool_calls
                ]
            messages.append(message)
        else:
            messages.append({"role": "user", "content": turn.text or ""})
    return messages


def parse_chat_message(message) -> ModelReply:
    tool_calls = []
    for tool_call in message.tool_calls or []:
        try:
            args = json.loads(tool_call.function.arguments or "{}")
        except json.JSONDecodeError:
            args = {"_raw_arguments": tool_call.function.arguments}
        tool_calls.append(ToolCall(id=tool_call.id, name=tool_call.function.name, args=args))
    return ModelReply(text=message.content, tool_calls=tool_calls)


class OpenAIChatBackend:
    def __init__(self, client: AsyncOpenAI | None = None, model: str = OPENAI_CHAT_MODEL, logger=None):
        if client is None:
            if not OPENAI_API_KEY:
                raise ConfigurationError("OPENAI_API_KEY environment variable not set")
            client = AsyncOpenAI(api_key=OPENAI_API_KEY)
        self.client = client
        self.model = model
        self.logger = logger or logging.getLogger("OpenAIChatBackend")

    async def generate(
        self,
        history: list[Turn],
        tools: list[ToolDeclaration],
        system_instruction: str,
    ) -> ModelReply | None:
        kwargs: dict[str, Any] = {}
        if tools:
            kwargs = {"tools": ToolRegistry(tools).to_chat_specs(), "tool_choice": "auto"}
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=to_chat_messages(history, system_instruction),
            **kwargs,
        )
        if not response.choices:
            return None
        reply = parse_chat_message(response.choices[0].message)
        self.logger.debug(f"Tool calls: {len(reply.tool_calls)}")
        return reply
