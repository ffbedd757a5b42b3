"""Seed data for demo mode, when no CRM backend is configured."""

from crm_copilot.crm.models import Activity, Company, Contact

_ACTIVITIES = [
    Activity(id="a1", type="email", direction="outbound", title="Introductory Email",
             description="Sent capabilities deck.", date="2023-10-20T09:00:00Z", user="John Doe"),
    Activity(id="a2", type="meeting", title="Discovery Call",
             description="Discussed seat requirements and budget.", date="2023-10-22T14:00:00Z", user="John Doe"),
    Activity(id="a3", type="note", title="Internal Review",
             description="Client seems hesitant about pricing.", date="2023-10-23T11:00:00Z", user="Jane Smith"),
    Activity(id="a4", type="email", direction="inbound", title="Re: Proposal",
             description="Asking for clarification on SLA.", date="2023-10-24T10:00:00Z", user="Alice Johnson"),
]


def demo_companies() -> list[Company]:
    return [
        Company(
            id="1",
            name="TechFlow Solutions",
            type="PME",
            importance="high",
            pipeline_stage="proposal",
            last_contact_date="2023-10-24T10:00:00Z",
            website="techflow.example.com",
            contacts=[Contact(id="c1", name="Alice Johnson", emails=["alice@techflow.com"],
                              role="CTO", is_main_contact=True)],
            activities=[activity.model_copy() for activity in _ACTIVITIES],
            created_at="2023-09-01T00:00:00Z",
            general_comment="Key account for Q4. Focus on upsell potential.",
        ),
        Company(
            id="2",
            name="Global Corp",
            type="GE/ETI",
            importance="medium",
            pipeline_stage="exchange",
            last_contact_date="2023-10-20T14:30:00Z",
            website="globalcorp.example.com",
            contacts=[Contact(id="c2", name="Bob Smith", emails=["bsmith@global.com"],
                              role="Procurement", is_main_contact=True)],
            activities=[_ACTIVITIES[0].model_copy()],
            created_at="2023-08-15T00:00:00Z",
        ),
        Company(
            id="3",
            name="City Council",
            type="Public Services",
            importance="low",
            pipeline_stage="entry_point",
            last_contact_date="2023-09-30T09:15:00Z",
            website="city.gov",
            created_at="2023-10-01T00:00:00Z",
        ),
        Company(
            id="4",
            name="InnovateX",
            type="PME",
            importance="high",
            pipeline_stage="client_success",
            last_contact_date="2023-10-25T16:45:00Z",
            created_at="2023-07-20T00:00:00Z",
        ),
        Company(
            id="5",
            name="Alpha Dynamics",
            type="GE/ETI",
            importance="medium",
            pipeline_stage="validation",
            last_contact_date="2023-10-22T11:20:00Z",
            created_at="2023-09-10T00:00:00Z",
        ),
    ]
