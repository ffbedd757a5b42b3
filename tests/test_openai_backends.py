import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import numpy as np

from crm_copilot.audio.pcm import decode, encode
from crm_copilot.backends.base import LiveSessionConfig
from crm_copilot.backends.openai_chat import OpenAIChatBackend, parse_chat_message, to_chat_messages
from crm_copilot.backends.openai_realtime import (
    OpenAIRealtimeConnection,
    build_session_update,
    parse_server_event,
)
from crm_copilot.models import Role, ToolCall, ToolResponse, Turn
from crm_copilot.tools.registry import ToolRegistry


def test_audio_delta_events():
    assert parse_server_event({"type": "response.output_audio.delta", "delta": "AAA="}).audio == "AAA="
    assert parse_server_event({"type": "response.audio.delta", "delta": "BBB="}).audio == "BBB="
    assert parse_server_event({"type": "response.audio.delta", "delta": ""}) is None


def test_response_done_collects_function_calls():
    event = {
        "type": "response.done",
        "response": {
            "output": [
                {"type": "message", "content": []},
                {"type": "function_call", "call_id": "c1", "name": "navigateTo", "arguments": '{"page": "kanban"}'},
                {"type": "function_call", "call_id": "c2", "name": "searchCompanies", "arguments": "{oops"},
            ]
        },
    }

    stream_event = parse_server_event(event)

    assert stream_event.tool_calls == [
        ToolCall(id="c1", name="navigateTo", args={"page": "kanban"}),
        ToolCall(id="c2", name="searchCompanies", args={"_raw_arguments": "{oops"}),
    ]


def test_streamed_arguments_fill_in_missing_ones():
    pending: dict[str, str] = {}
    parse_server_event({"type": "response.function_call_arguments.delta", "call_id": "c1", "delta": '{"query"'}, pending)
    parse_server_event({"type": "response.function_call_arguments.delta", "call_id": "c1", "delta": ': "corp"}'}, pending)

    stream_event = parse_server_event(
        {"type": "response.done", "response": {"output": [{"type": "function_call", "call_id": "c1", "name": "searchCompanies"}]}},
        pending,
    )

    assert stream_event.tool_calls[0].args == {"query": "corp"}
    assert pending == {}


def test_response_done_without_calls_is_ignored():
    assert parse_server_event({"type": "response.done", "response": {"output": []}}) is None
    assert parse_server_event({"type": "session.created"}) is None


def test_session_update_declares_tools_and_voice():
    update = build_session_update(
        LiveSessionConfig(tools=ToolRegistry().list(), system_instruction="sys", voice="shimmer"),
        "gpt-realtime",
    )

    session = update["session"]
    assert update["type"] == "session.update"
    assert [tool["name"] for tool in session["tools"]] == ["navigateTo", "searchCompanies", "logActivity"]
    assert session["instructions"] == "sys"
    assert session["audio"]["output"]["voice"] == "shimmer"
    assert session["audio"]["input"]["format"]["rate"] == 24000


def _connected() -> OpenAIRealtimeConnection:
    connection = OpenAIRealtimeConnection("wss://example.test", [], {"type": "session.update"})
    connection.ws = MagicMock()
    connection.running = True
    return connection


def _sent(connection) -> list[dict]:
    return [json.loads(call.args[0]) for call in connection.ws.send.call_args_list]


async def test_send_audio_resamples_to_24k():
    connection = _connected()

    await connection.send_audio(encode(np.zeros(1600, dtype=np.float32)))

    (event,) = _sent(connection)
    assert event["type"] == "input_audio_buffer.append"
    assert len(decode(event["audio"])) == 2400


async def test_tool_results_then_one_response_create():
    connection = _connected()

    await connection.send_tool_results([
        ToolResponse(id="c1", name="navigateTo", result={"success": True}),
        ToolResponse(id="c2", name="searchCompanies", result={"error": "timeout"}),
    ])

    events = _sent(connection)
    assert [e["type"] for e in events] == ["conversation.item.create", "conversation.item.create", "response.create"]
    assert events[0]["item"] == {"type": "function_call_output", "call_id": "c1", "output": '{"success": true}'}
    assert json.loads(events[1]["item"]["output"]) == {"error": "timeout"}


async def test_websocket_callbacks_feed_the_event_stream():
    connection = _connected()
    connection._loop = asyncio.get_running_loop()
    connection._queue = asyncio.Queue()

    connection.on_message(None, json.dumps({"type": "response.output_audio.delta", "delta": "AAA="}))
    connection.on_message(None, "not json")
    connection.on_message(None, json.dumps({"type": "error", "error": {"message": "bad"}}))
    connection.on_close(None, 1000, "bye")

    events = [event async for event in connection.events()]

    assert [event.audio for event in events] == ["AAA="]
    assert connection.running is False


async def test_on_open_sends_session_update_and_resolves():
    connection = OpenAIRealtimeConnection("wss://example.test", [], {"type": "session.update"})
    connection._loop = asyncio.get_running_loop()
    connection._queue = asyncio.Queue()
    connection._opened = connection._loop.create_future()
    ws = MagicMock()

    connection.on_open(ws)
    await asyncio.wait_for(connection._opened, 1)

    ws.send.assert_called_once_with(json.dumps({"type": "session.update"}))
    assert connection.running


def test_chat_messages_from_history():
    history = [
        Turn.user_text("Cherche corp"),
        Turn(role=Role.MODEL, tool_calls=[ToolCall(id="c1", name="searchCompanies", args={"query": "corp"})]),
        Turn.tool_results([ToolResponse(id="c1", name="searchCompanies", result={"companies": []})]),
    ]

    messages = to_chat_messages(history, "sys")

    assert [m["role"] for m in messages] == ["system", "user", "assistant", "tool"]
    assert messages[2]["tool_calls"][0]["function"] == {"name": "searchCompanies", "arguments": '{"query": "corp"}'}
    assert messages[3]["tool_call_id"] == "c1"


def test_parse_chat_message():
    message = SimpleNamespace(
        content=None,
        tool_calls=[SimpleNamespace(id="c9", function=SimpleNamespace(name="navigateTo", arguments='{"page": "inbox"}'))],
    )

    reply = parse_chat_message(message)

    assert reply.text is None
    assert reply.tool_calls == [ToolCall(id="c9", name="navigateTo", args={"page": "inbox"})]


async def test_chat_backend_sends_tools():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="Salut", tool_calls=None))])
    )
    backend = OpenAIChatBackend(client=client, model="gpt-test")

    reply = await backend.generate([Turn.user_text("Bonjour")], ToolRegistry().list(), "sys")

    assert reply.text == "Salut"
    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == "gpt-test"
    assert kwargs["tool_choice"] == "auto"
    assert len(kwargs["tools"]) == 3
