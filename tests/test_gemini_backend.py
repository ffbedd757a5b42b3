import base64
from contextlib import AsyncExitStack
from unittest.mock import AsyncMock, MagicMock

import pytest
from google.genai import types

from crm_copilot.backends import gemini
from crm_copilot.backends.base import LiveSessionConfig
from crm_copilot.errors import ConfigurationError
from crm_copilot.models import Role, ToolCall, ToolResponse, Turn
from crm_copilot.tools.registry import ToolRegistry


def _response(*parts: types.Part) -> types.GenerateContentResponse:
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=list(parts)))]
    )


def test_function_declaration_carries_schema():
    declaration = gemini.to_function_declaration(ToolRegistry().get("navigateTo"))

    assert declaration.name == "navigateTo"
    assert declaration.parameters.type == types.Type.OBJECT
    assert declaration.parameters.required == ["page"]
    page = declaration.parameters.properties["page"]
    assert page.type == types.Type.STRING
    assert "kanban" in page.enum


def test_no_tools_means_no_tool_block():
    assert gemini.to_gemini_tools([]) == []
    assert len(gemini.to_gemini_tools(ToolRegistry().list())[0].function_declarations) == 3


def test_user_and_tool_turns_become_contents():
    user = gemini.to_content(Turn.user_text("Bonjour"))
    tool = gemini.to_content(Turn.tool_results([ToolResponse(id="c1", name="navigateTo", result={"success": True})]))

    assert user.role == "user"
    assert user.parts[0].text == "Bonjour"
    assert tool.role == "user"
    response = tool.parts[0].function_response
    assert (response.id, response.name, response.response) == ("c1", "navigateTo", {"result": {"success": True}})


def test_model_turn_without_native_content():
    content = gemini.to_content(
        Turn(role=Role.MODEL, tool_calls=[ToolCall(id="c1", name="searchCompanies", args={"query": "a"})])
    )

    assert content.role == "model"
    assert content.parts[0].function_call.name == "searchCompanies"


def test_native_content_is_replayed_verbatim():
    native = types.Content(role="model", parts=[types.Part(text="hi", thought_signature=b"sig")])

    assert gemini.to_content(Turn(role=Role.MODEL, text="hi", native=native)) is native


def test_parse_reply_skips_thoughts_and_collects_calls():
    response = _response(
        types.Part(text="let me think", thought=True),
        types.Part(text="Je regarde."),
        types.Part(function_call=types.FunctionCall(id="f1", name="navigateTo", args={"page": "kanban"})),
    )

    reply = gemini.parse_reply(response)

    assert reply.text == "Je regarde."
    assert reply.tool_calls == [ToolCall(id="f1", name="navigateTo", args={"page": "kanban"})]
    assert reply.native is response.candidates[0].content


def test_parse_reply_without_candidates():
    assert gemini.parse_reply(types.GenerateContentResponse(candidates=[])) is None


def test_function_call_without_id_gets_one():
    call = gemini.to_tool_call(types.FunctionCall(name="navigateTo", args={}))

    assert call.id


def test_parse_live_audio_and_tool_call():
    audio = types.LiveServerMessage(
        server_content=types.LiveServerContent(
            model_turn=types.Content(parts=[types.Part(inline_data=types.Blob(data=b"\x01\x00", mime_type="audio/pcm"))])
        )
    )
    tool = types.LiveServerMessage(
        tool_call=types.LiveServerToolCall(
            function_calls=[types.FunctionCall(id="t1", name="searchCompanies", args={"query": "corp"})]
        )
    )

    assert gemini.parse_live_message(audio).audio == base64.b64encode(b"\x01\x00").decode("ascii")
    assert gemini.parse_live_message(tool).tool_calls[0].id == "t1"
    assert gemini.parse_live_message(types.LiveServerMessage()) is None


def test_make_client_requires_key(monkeypatch):
    monkeypatch.setattr(gemini, "GEMINI_API_KEY", None)

    with pytest.raises(ConfigurationError):
        gemini.make_client()


async def test_text_backend_sends_history_and_tools():
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(return_value=_response(types.Part(text="Salut")))
    backend = gemini.GeminiTextBackend(client=client, model="test-model")

    reply = await backend.generate([Turn.user_text("Bonjour")], ToolRegistry().list(), "system")

    assert reply.text == "Salut"
    kwargs = client.aio.models.generate_content.await_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["contents"][0].parts[0].text == "Bonjour"
    assert kwargs["config"].system_instruction == "system"


class FakeLiveSession:
    def __init__(self, rounds):
        self.rounds = list(rounds)
        self.send_realtime_input = AsyncMock()
        self.send_tool_response = AsyncMock()

    async def receive(self):
        messages = self.rounds.pop(0) if self.rounds else []
        for message in messages:
            yield message


async def test_live_connection_round_trip():
    tool_message = types.LiveServerMessage(
        tool_call=types.LiveServerToolCall(function_calls=[types.FunctionCall(id="t1", name="navigateTo", args={})])
    )
    session = FakeLiveSession([[tool_message], [types.LiveServerMessage()]])
    connection = gemini.GeminiLiveConnection(session, AsyncExitStack())

    await connection.send_audio(base64.b64encode(b"\x00\x00").decode("ascii"))
    await connection.send_tool_results([ToolResponse(id="t1", name="navigateTo", result={"success": True})])
    events = [event async for event in connection.events()]

    blob = session.send_realtime_input.await_args.kwargs["audio"]
    assert blob.mime_type == "audio/pcm;rate=16000"
    assert blob.data == b"\x00\x00"
    function_responses = session.send_tool_response.await_args.kwargs["function_responses"]
    assert [r.id for r in function_responses] == ["t1"]
    assert [event.tool_calls[0].id for event in events] == ["t1"]

    await connection.close()
    await connection.close()


def test_live_config_uses_voice_and_tools():
    backend = gemini.GeminiLiveBackend(client=MagicMock())

    config = backend.build_config(LiveSessionConfig(tools=ToolRegistry().list(), system_instruction="sys", voice="Kore"))

    assert config.response_modalities == [types.Modality.AUDIO]
    assert config.speech_config.voice_config.prebuilt_voice_config.voice_name == "Kore"
    assert len(config.tools[0].function_declarations) == 3


async def test_briefing_backend_synthesize_returns_base64():
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(
        return_value=_response(types.Part(inline_data=types.Blob(data=b"\x10\x00", mime_type="audio/pcm")))
    )
    backend = gemini.GeminiBriefingBackend(client=client)

    audio = await backend.synthesize("Bonjour", "Fenrir")

    assert base64.b64decode(audio) == b"\x10\x00"
    config = client.aio.models.generate_content.await_args.kwargs["config"]
    assert config.speech_config.voice_config.prebuilt_voice_config.voice_name == "Fenrir"
