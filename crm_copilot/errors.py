class CopilotError(Exception):
    """Base class for every error raised by the copilot."""


class ConfigurationError(CopilotError):
    """A credential is missing or the configuration names an unknown provider."""


class AudioDeviceError(CopilotError):
    """An audio device could not be opened."""


class MicrophonePermissionError(AudioDeviceError):
    """The microphone is unavailable or access to it was denied."""


class BackendBusyError(CopilotError):
    """The AI backend kept answering with overload or rate-limit errors."""

    def __init__(self, user_message: str, cause: Exception | None = None):
        super().__init__(user_message)
        self.user_message = user_message
        self.cause = cause


class BriefingError(CopilotError):
    """The activity briefing could not be produced."""

    def __init__(self, user_message: str):
        super().__init__(user_message)
        self.user_message = user_message
