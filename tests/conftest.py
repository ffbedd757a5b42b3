import pytest

from crm_copilot.crm.service import InMemoryCompanyService
from crm_copilot.events import EventHub
from crm_copilot.models import Transcript
from crm_copilot.navigation import Navigator
from crm_copilot.notifications import ActionIndicator
from crm_copilot.session import ConversationSession
from crm_copilot.tools import ToolExecutor, ToolRegistry
from tests.fakes import FakeConnection, FakeMicrophone, FakeOutputDevice, FakeStreamingBackend


@pytest.fixture
def hub():
    return EventHub()


@pytest.fixture
def crm():
    return InMemoryCompanyService()


@pytest.fixture
def navigator(hub):
    return Navigator(hub)


@pytest.fixture
def transcript():
    return Transcript()


@pytest.fixture
def executor(hub, crm, navigator, transcript):
    return ToolExecutor(ToolRegistry(), crm, navigator, ActionIndicator(hub), transcript)


@pytest.fixture
def calls():
    """Shared log of device/connection lifecycle calls, in order."""
    return []


@pytest.fixture
def connection(calls):
    return FakeConnection(calls)


@pytest.fixture
def output_device(calls):
    return FakeOutputDevice(calls)


@pytest.fixture
def microphone(calls):
    return FakeMicrophone(calls)


@pytest.fixture
async def voice_session(hub, crm, navigator, connection, output_device, microphone):
    session = ConversationSession(
        crm,
        streaming_backend=FakeStreamingBackend(connection),
        hub=hub,
        navigator=navigator,
        output_device_factory=lambda: output_device,
        input_device_factory=lambda: microphone,
    )
    yield session
    await session.disconnect()
