"""
Catch-up briefing: what happened in the CRM while the user was away.

Activities since the last login (or the last week) are summarized by the AI
into wins / urgent / general bullet lists. When nothing happened, the 15 most
recent activities are used as a context reminder instead. Summaries are cached
on disk for 30 minutes per activity set.
"""

import asyncio
import hashlib
import json
import logging
import math
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import numpy as np
from pydantic import BaseModel, Field, ValidationError, field_validator

from crm_copilot.audio.pcm import decode
from crm_copilot.backends.base import BriefingBackend
from crm_copilot.config import (
    ASSISTANT_LANGUAGE,
    BRIEFING_CACHE_PATH,
    BRIEFING_CACHE_TTL_SECONDS,
    BRIEFING_VOICE,
)
from crm_copilot.crm.service import CompanyService, annotate_activity, parse_date
from crm_copilot.errors import BackendBusyError, BriefingError
from crm_copilot.retry import (
    SPEECH_RETRY_POLICY,
    SUMMARY_RETRY_POLICY,
    RetryPolicy,
    call_with_retry,
    is_overload_error,
    is_rate_limit_error,
    is_retryable_error,
)

CONTEXT_ACTIVITY_LIMIT = 15
DEFAULT_LOOKBACK = timedelta(days=7)
RECENT_LOGIN = timedelta(days=1)

NO_DATA_MESSAGE = "Aucune donnée d'activité trouvée dans le CRM."
OVERLOADED_MESSAGE = "L'IA est temporairement surchargée (erreur 503)."
RATE_LIMITED_MESSAGE = "Limite de requêtes atteinte. Veuillez patienter une minute."
FAILED_MESSAGE = "Échec de la génération du briefing intelligent."


class BriefingSections(BaseModel):
    """The three bullet lists the AI is asked to return as JSON."""

    wins: list[str] = Field(default_factory=list)
    urgent: list[str] = Field(default_factory=list)
    general: list[str] = Field(default_factory=list)

    @field_validator("wins", "urgent", "general", mode="before")
    @classmethod
    def _as_strings(cls, value):
        if value is None:
            return []
        if isinstance(value, list):
            return [str(item) for item in value]
        return value


class Briefing(BriefingSections):
    context_mode: bool = False
    days_away: int = 0


def lookback_start(last_login: datetime | None, now: datetime) -> datetime:
    """A login older than a day wins over the default one-week window."""
    if last_login is not None and now - last_login > RECENT_LOGIN:
        return last_login
    return now - DEFAULT_LOOKBACK


def activity_hash(activities: list[dict[str, Any]]) -> str:
    key = "|".join(f"{a['id']}{a['date']}" for a in activities)
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def heuristic_briefing(activities: list[dict[str, Any]]) -> dict[str, list[str]]:
    """Briefing built without the AI, straight from the activity records."""
    return {
        "wins": [
            f"Rendez-vous avec {a['company_name']}: {a['title']}"
            for a in activities
            if a["type"] == "meeting"
        ][:2],
        "urgent": [
            f"Action sur compte prioritaire {a['company_name']}"
            for a in activities
            if a["company_importance"] == "high"
        ][:2],
        "general": [f"{a['title']} chez {a['company_name']}" for a in activities[:3]],
    }


def build_prompt(activities: list[dict[str, Any]], context_mode: bool, days_away: int) -> str:
    if context_mode:
        situation = (
            "There are no new activities. Below is the recent history, to be used as a "
            "strategic context reminder."
        )
    else:
        situation = f"Below is everything that happened in the CRM over the last {days_away} days."
    return f"""You are an expert CRM assistant. Analyse this REAL data from the CRM database and write a briefing.
{situation}

RAW DATA (activities): {json.dumps(activities, ensure_ascii=False)}

STRICT RULES:
1. Only mention facts present in the data. Invent nothing.
2. "wins": successes (new meetings, pipeline stages reached).
3. "urgent": high-priority accounts (importance: high) that need a follow-up.
4. "general": the overall mood of recent exchanges.
5. Answer with structured JSON. Language: {ASSISTANT_LANGUAGE}. Be punchy.
"""


def build_script(briefing: Briefing) -> str:
    """Narration read out by the speech synthesizer."""
    script = "Briefing de contexte. " if briefing.context_mode else "Résumé de votre absence. "
    if briefing.wins:
        script += "Points clés : " + ". ".join(briefing.wins) + ". "
    if briefing.urgent:
        script += "À surveiller : " + ". ".join(briefing.urgent) + ". "
    if briefing.general:
        script += "En résumé : " + ". ".join(briefing.general)
    return script.strip()


def describe_failure(exc: BaseException) -> str:
    text = str(exc).lower()
    if is_overload_error(exc) or "unavailable" in text:
        return OVERLOADED_MESSAGE
    if is_rate_limit_error(exc):
        return RATE_LIMITED_MESSAGE
    return FAILED_MESSAGE


class BriefingService:
    def __init__(
        self,
        crm: CompanyService,
        backend: BriefingBackend | None = None,
        *,
        cache_path: Path | None = BRIEFING_CACHE_PATH,
        cache_ttl: float = BRIEFING_CACHE_TTL_SECONDS,
        voice: str = BRIEFING_VOICE,
        summary_policy: RetryPolicy = SUMMARY_RETRY_POLICY,
        speech_policy: RetryPolicy = SPEECH_RETRY_POLICY,
        sleep=asyncio.sleep,
        clock=time.time,
        logger=None,
    ):
        self.crm = crm
        self.backend = backend
        self.cache_path = Path(cache_path) if cache_path else None
        self.cache_ttl = cache_ttl
        self.voice = voice
        self.summary_policy = summary_policy
        self.speech_policy = speech_policy
        self.sleep = sleep
        self.clock = clock
        self.logger = logger or logging.getLogger("BriefingService")

    async def generate(self, last_login: datetime | None = None, now: datetime | None = None) -> Briefing:
        now = now or datetime.now(timezone.utc)
        since = lookback_start(last_login, now)
        days_away = math.ceil(abs((now - since).total_seconds()) / 86400)

        activities = await self.crm.activities_since(since)
        context_mode = False
        if not activities:
            context_mode = True
            activities = await self._recent_activities()
        self.logger.info(f"Briefing over {len(activities)} activities (context mode: {context_mode})")

        if not activities:
            return Briefing(general=[NO_DATA_MESSAGE], context_mode=context_mode, days_away=days_away)

        digest = activity_hash(activities)
        cached = self._read_cache(digest)
        if cached is not None:
            self.logger.info("Using cached briefing")
            return Briefing(**cached, context_mode=context_mode, days_away=days_away)

        if self.backend is None:
            return Briefing(**heuristic_briefing(activities), context_mode=context_mode, days_away=days_away)

        prompt = build_prompt(activities, context_mode, days_away)
        try:
            text = await call_with_retry(
                lambda: self.backend.summarize(prompt),
                policy=self.summary_policy,
                is_retryable=is_retryable_error,
                sleep=self.sleep,
                label="Briefing summary",
            )
            if not text:
                raise ValueError("Empty AI response")
            sections = BriefingSections.model_validate_json(text).model_dump()
        except Exception as exc:
            self.logger.error(f"Briefing error: {exc}")
            message = describe_failure(exc)
            if is_retryable_error(exc):
                raise BackendBusyError(message, exc) from exc
            raise BriefingError(message) from exc

        self._write_cache(digest, sections)
        return Briefing(**sections, context_mode=context_mode, days_away=days_away)

    async def speak(self, briefing: Briefing) -> np.ndarray:
        """Synthesize the briefing; returns float samples at 24 kHz."""
        if self.backend is None:
            raise BriefingError("Speech synthesis is not configured.")
        script = build_script(briefing)
        try:
            audio = await call_with_retry(
                lambda: self.backend.synthesize(script, self.voice),
                policy=self.speech_policy,
                is_retryable=is_overload_error,
                sleep=self.sleep,
                label="Speech synthesis",
            )
        except Exception as exc:
            self.logger.error(f"TTS error: {exc}")
            raise BriefingError(describe_failure(exc)) from exc
        if not audio:
            raise BriefingError("No audio")
        return decode(audio)

    async def _recent_activities(self) -> list[dict[str, Any]]:
        companies = await self.crm.get_all()
        recent = [
            annotate_activity(company, activity)
            for company in companies
            for activity in company.activities
        ]
        recent.sort(key=lambda item: parse_date(item["date"]), reverse=True)
        return recent[:CONTEXT_ACTIVITY_LIMIT]

    # ------------------------------------------------------------------ #
    # Cache
    # ------------------------------------------------------------------ #

    def _read_cache(self, digest: str) -> dict[str, list[str]] | None:
        if self.cache_path is None or not self.cache_path.exists():
            return None
        try:
            cached = json.loads(self.cache_path.read_text(encoding="utf-8"))
            if cached.get("activity_hash") != digest:
                return None
            if self.clock() - float(cached.get("timestamp", 0)) >= self.cache_ttl:
                return None
            data = Briefing(**cached["data"])
        except (OSError, ValueError, KeyError, TypeError, ValidationError) as e:
            self.logger.warning(f"Ignoring unreadable briefing cache: {e}")
            return None
        return {"wins": data.wins, "urgent": data.urgent, "general": data.general}

    def _write_cache(self, digest: str, sections: dict[str, list[str]]) -> None:
        if self.cache_path is None:
            return
        payload = {"data": sections, "timestamp": self.clock(), "activity_hash": digest}
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            self.cache_path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            self.logger.warning(f"Could not write briefing cache: {e}")
