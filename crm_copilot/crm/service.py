"""
CRM data-access contract and the in-memory implementation used in demo mode.

The copilot never caches or locks CRM data; the service is expected to
serialize its own writes.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Protocol

from pydantic import ValidationError

from crm_copilot.crm.demo_data import demo_companies
from crm_copilot.crm.models import Activity, Company


class CompanyService(Protocol):
    async def search(self, query: str) -> dict[str, Any]:
        """Return ``{"companies": [...], "contacts": [...]}`` matching ``query``."""
        ...

    async def add_activity(self, company_id: str, activity: dict[str, Any]) -> Activity:
        ...

    async def get_all(self) -> list[Company]:
        ...

    async def activities_since(self, since: datetime) -> list[dict[str, Any]]:
        """Activities dated after ``since``, each annotated with its company."""
        ...


def parse_date(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def annotate_activity(company: Company, activity: Activity) -> dict[str, Any]:
    return {
        **activity.model_dump(mode="json"),
        "company_id": company.id,
        "company_name": company.name,
        "company_importance": company.importance,
    }


class InMemoryCompanyService:
    def __init__(self, companies: list[Company] | None = None, user: str = "Copilot", logger=None):
        self.logger = logger or logging.getLogger("InMemoryCompanyService")
        self.user = user
        seed = demo_companies() if companies is None else companies
        self._companies: dict[str, Company] = {company.id: company for company in seed}

    async def get_all(self) -> list[Company]:
        return list(self._companies.values())

    async def get(self, company_id: str) -> Company | None:
        return self._companies.get(company_id)

    async def search(self, query: str) -> dict[str, Any]:
        needle = (query or "").strip().lower()
        companies: list[dict[str, Any]] = []
        contacts: list[dict[str, Any]] = []
        if not needle:
            return {"companies": companies, "contacts": contacts}

        for company in self._companies.values():
            haystack = " ".join(filter(None, [company.name, company.type, company.website]))
            if needle in haystack.lower():
                companies.append({
                    "id": company.id,
                    "name": company.name,
                    "type": company.type,
                    "importance": company.importance,
                    "pipeline_stage": company.pipeline_stage,
                })
            for contact in company.contacts:
                haystack = " ".join([contact.name, contact.role or "", *contact.emails])
                if needle in haystack.lower():
                    contacts.append({
                        **contact.model_dump(mode="json"),
                        "company_id": company.id,
                        "company_name": company.name,
                    })

        self.logger.debug(f"Search '{query}': {len(companies)} companies, {len(contacts)} contacts")
        return {"companies": companies, "contacts": contacts}

    async def add_activity(self, company_id: str, activity: dict[str, Any]) -> Activity:
        company = self._companies.get(company_id)
        if company is None:
            raise LookupError(f"Company not found: {company_id}")

        now = datetime.now(timezone.utc).isoformat()
        try:
            record = Activity(
                id=uuid.uuid4().hex[:12],
                type=activity.get("type"),
                title=activity.get("title"),
                description=activity.get("description"),
                date=now,
                user=self.user,
            )
        except ValidationError as exc:
            fields = ", ".join(str(error["loc"][0]) for error in exc.errors())
            raise ValueError(f"Invalid activity ({fields})") from exc

        company.activities.insert(0, record)
        company.last_contact_date = now
        self.logger.info(f"Logged {record.type} '{record.title}' on {company.name}")
        return record

    async def activities_since(self, since: datetime) -> list[dict[str, Any]]:
        found = [
            annotate_activity(company, activity)
            for company in self._companies.values()
            for activity in company.activities
            if parse_date(activity.date) >= since
        ]
        return sorted(found, key=lambda item: parse_date(item["date"]), reverse=True)
