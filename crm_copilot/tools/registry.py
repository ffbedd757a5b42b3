"""
Catalog of the actions the assistant may ask the CRM to perform.

Declarations are purely descriptive. They are rendered into each backend's
tool format and tell the executor which arguments a tool expects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from crm_copilot.crm.models import ACTIVITY_TYPES
from crm_copilot.navigation import PAGE_NAMES


@dataclass(frozen=True)
class ArgumentSpec:
    type: str = "string"
    required: bool = False
    enum: tuple[str, ...] | None = None
    description: str | None = None

    def to_json_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type}
        if self.enum:
            schema["enum"] = list(self.enum)
        if self.description:
            schema["description"] = self.description
        return schema


@dataclass(frozen=True)
class ToolDeclaration:
    name: str
    description: str
    arguments: dict[str, ArgumentSpec] = field(default_factory=dict)

    @property
    def required(self) -> list[str]:
        return [name for name, spec in self.arguments.items() if spec.required]

    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                name: spec.to_json_schema() for name, spec in self.arguments.items()
            },
            "required": self.required,
        }

    def missing_arguments(self, args: dict[str, Any]) -> list[str]:
        return [name for name in self.required if args.get(name) is None]


DEFAULT_TOOLS = (
    ToolDeclaration(
        name="navigateTo",
        description="Navigate to a specific page of the CRM.",
        arguments={
            "page": ArgumentSpec(required=True, enum=tuple(PAGE_NAMES)),
            "id": ArgumentSpec(description="Company id, required for company_detail."),
        },
    ),
    ToolDeclaration(
        name="searchCompanies",
        description="Search companies and their contacts by keyword.",
        arguments={"query": ArgumentSpec(required=True)},
    ),
    ToolDeclaration(
        name="logActivity",
        description="Record a client activity on a company.",
        arguments={
            "companyId": ArgumentSpec(required=True),
            "type": ArgumentSpec(required=True, enum=ACTIVITY_TYPES),
            "title": ArgumentSpec(required=True),
            "description": ArgumentSpec(),
        },
    ),
)


class ToolRegistry:
    def __init__(self, declarations: Iterable[ToolDeclaration] = DEFAULT_TOOLS):
        self._declarations = tuple(declarations)
        names = [declaration.name for declaration in self._declarations]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate tool names in {names}")

    def list(self) -> list[ToolDeclaration]:
        return list(self._declarations)

    def names(self) -> list[str]:
        return [declaration.name for declaration in self._declarations]

    def get(self, name: str) -> ToolDeclaration | None:
        for declaration in self._declarations:
            if declaration.name == name:
                return declaration
        return None

    def to_realtime_specs(self) -> list[dict[str, Any]]:
        """Tool specifications for the OpenAI Realtime API."""
        return [
            {
                "type": "function",
                "name": declaration.name,
                "description": declaration.description,
                "parameters": declaration.parameters_schema(),
            }
            for declaration in self._declarations
        ]

    def to_chat_specs(self) -> list[dict[str, Any]]:
        """Tool specifications for OpenAI Chat Completions function calling."""
        return [
            {
                "type": "function",
                "function": {
                    "name": declaration.name,
                    "description": declaration.description,
                    "parameters": declaration.parameters_schema(),
                },
            }
            for declaration in self._declarations
        ]
