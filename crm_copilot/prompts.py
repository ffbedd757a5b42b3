import logging

from crm_copilot.config import (
    ASSISTANT_LANGUAGE,
    ASSISTANT_NAME,
    COMPANY_NAME,
    PROMPTS_DIR,
)

SYSTEM_PROMPT_FILE = PROMPTS_DIR / "system_prompt.md"
FALLBACK_PROMPT = "You are a helpful CRM assistant. Current page: {LOCATION}"

logger = logging.getLogger("Prompts")


def load_system_prompt(location: str) -> str:
    """Render the system prompt for the page the user is currently on."""
    try:
        template = SYSTEM_PROMPT_FILE.read_text(encoding="utf-8").strip()
    except OSError as e:
        logger.error(f"Error loading prompt file: {e}")
        template = FALLBACK_PROMPT

    return template.format(
        ASSISTANT_NAME=ASSISTANT_NAME,
        COMPANY_NAME=COMPANY_NAME,
        LANGUAGE=ASSISTANT_LANGUAGE.upper(),
        LOCATION=location,
    )
