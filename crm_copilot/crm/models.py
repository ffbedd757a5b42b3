from typing import Literal

from pydantic import BaseModel, Field

ACTIVITY_TYPES = ("email", "meeting", "note", "call")
PIPELINE_STAGES = ("entry_point", "exchange", "proposal", "validation", "client_success")

ActivityType = Literal["email", "meeting", "note", "call"]
Importance = Literal["low", "medium", "high"]


class Contact(BaseModel):
    id: str
    name: str
    emails: list[str] = Field(default_factory=list)
    role: str | None = None
    is_main_contact: bool = False


class Activity(BaseModel):
    id: str
    type: ActivityType
    title: str
    description: str | None = None
    date: str
    user: str | None = None
    direction: Literal["inbound", "outbound"] | None = None


class Company(BaseModel):
    id: str
    name: str
    type: str
    importance: Importance = "medium"
    pipeline_stage: str = "entry_point"
    last_contact_date: str | None = None
    website: str | None = None
    contacts: list[Contact] = Field(default_factory=list)
    activities: list[Activity] = Field(default_factory=list)
    created_at: str | None = None
    general_comment: str | None = None
