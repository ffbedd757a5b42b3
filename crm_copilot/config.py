"""
Runtime configuration for the CRM copilot.

Every value is read from the environment once at import time (after
``load_dotenv``), so a ``.env`` file next to the working directory is enough
to configure a local run. Missing API keys are not an error here; they are
reported when a backend is actually built.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ================================================================
# Providers
# ================================================================

COPILOT_PROVIDER = os.environ.get("COPILOT_PROVIDER", "gemini").lower()

# Gemini (default provider)
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY")
GEMINI_LIVE_MODEL = os.environ.get(
    "GEMINI_LIVE_MODEL", "gemini-2.5-flash-native-audio-preview-12-2025"
)
GEMINI_TEXT_MODEL = os.environ.get("GEMINI_TEXT_MODEL", "gemini-3-flash-preview")
GEMINI_TTS_MODEL = os.environ.get("GEMINI_TTS_MODEL", "gemini-2.5-flash-preview-tts")
LIVE_VOICE = os.environ.get("COPILOT_LIVE_VOICE", "Kore")
BRIEFING_VOICE = os.environ.get("COPILOT_BRIEFING_VOICE", "Fenrir")

# OpenAI Realtime / Chat Completions
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
REALTIME_API_URL = os.environ.get("REALTIME_API_URL", "wss://api.openai.com/v1/realtime")
REALTIME_MODEL_DEFAULT = os.environ.get("REALTIME_MODEL_DEFAULT", "gpt-realtime-2025-08-28")
REALTIME_API_URL_TEMPLATE = f"{REALTIME_API_URL}?model={{model}}"
REALTIME_VOICE_CHOICE = os.environ.get("REALTIME_AGENT_VOICE", "shimmer")
OPENAI_CHAT_MODEL = os.environ.get("OPENAI_CHAT_MODEL", "gpt-4o")

# ================================================================
# Audio
# ================================================================

INPUT_SAMPLE_RATE = 16000
OUTPUT_SAMPLE_RATE = 24000
REALTIME_SAMPLE_RATE = 24000
CAPTURE_FRAME_SIZE = 4096
PLAYBACK_FRAME_SIZE = 1024
CHANNELS = 1

# Playback is considered finished once the clock is this close to the end of
# the scheduled queue.
SPEAKING_DRAIN_THRESHOLD = float(os.environ.get("COPILOT_SPEAKING_THRESHOLD", "0.1"))

# ================================================================
# Agent behaviour
# ================================================================

MAX_TOOL_ROUNDS = 5
ACTION_NOTIFICATION_SECONDS = 3.0
ASSISTANT_NAME = os.environ.get("COPILOT_ASSISTANT_NAME", "Lexia Copilot")
COMPANY_NAME = os.environ.get("COPILOT_COMPANY_NAME", "SAPRO")
ASSISTANT_LANGUAGE = os.environ.get("COPILOT_LANGUAGE", "French")

PROMPTS_DIR = Path(__file__).parent / "prompts"

# ================================================================
# Files
# ================================================================

COPILOT_HOME = Path(os.environ.get("COPILOT_HOME", Path.home() / ".crm-copilot"))
LOG_DIR = Path(os.environ.get("COPILOT_LOG_DIR", COPILOT_HOME / "output_logs"))
BRIEFING_CACHE_PATH = Path(
    os.environ.get("COPILOT_BRIEFING_CACHE", COPILOT_HOME / "briefing_cache.json")
)
BRIEFING_CACHE_TTL_SECONDS = 30 * 60
