from datetime import datetime, timezone

import pytest

from crm_copilot.crm.service import InMemoryCompanyService, parse_date
from crm_copilot.prompts import load_system_prompt


async def test_search_is_case_insensitive(crm):
    result = await crm.search("GLOBAL")

    assert [c["id"] for c in result["companies"]] == ["2"]


async def test_empty_query_finds_nothing(crm):
    assert await crm.search("  ") == {"companies": [], "contacts": []}


async def test_add_activity_is_newest_first(crm):
    record = await crm.add_activity("2", {"type": "meeting", "title": "Kick-off"})

    company = await crm.get("2")
    assert company.activities[0] is record
    assert record.user == "Copilot"
    assert company.last_contact_date == record.date


async def test_add_activity_rejects_invalid_type(crm):
    with pytest.raises(ValueError, match="type"):
        await crm.add_activity("2", {"type": "fax", "title": "x"})


async def test_add_activity_unknown_company(crm):
    with pytest.raises(LookupError):
        await crm.add_activity("nope", {"type": "note", "title": "x"})


async def test_activities_since_are_annotated_and_sorted():
    crm = InMemoryCompanyService()

    found = await crm.activities_since(datetime(2023, 10, 21, tzinfo=timezone.utc))

    assert [a["id"] for a in found] == ["a4", "a3", "a2"]
    assert found[0]["company_name"] == "TechFlow Solutions"
    assert found[0]["company_importance"] == "high"


def test_parse_date_assumes_utc():
    assert parse_date("2023-10-20T09:00:00").tzinfo is not None
    assert parse_date("2023-10-20T09:00:00Z") == datetime(2023, 10, 20, 9, tzinfo=timezone.utc)


def test_system_prompt_mentions_location():
    prompt = load_system_prompt("/company/4")

    assert "/company/4" in prompt
    assert "{LOCATION}" not in prompt
