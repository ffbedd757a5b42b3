import logging
from typing import Any

from crm_copilot.crm.service import CompanyService
from crm_copilot.models import Message, Role, ToolResult, Transcript, tool_error, tool_success
from crm_copilot.navigation import Navigator, resolve_route
from crm_copilot.notifications import ActionIndicator
from crm_copilot.tools.registry import ToolRegistry


class ToolExecutor:
    """
    Runs the CRM side effect behind a tool call.

    ``execute`` always returns a result; failures of the CRM service come back
    as ``{"error": message}`` so the model can react to them in conversation.
    Arguments are handed to the service as received, even when required keys
    are missing.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        crm: CompanyService,
        navigator: Navigator,
        indicator: ActionIndicator,
        transcript: Transcript,
        logger=None,
    ):
        self.registry = registry
        self.crm = crm
        self.navigator = navigator
        self.indicator = indicator
        self.transcript = transcript
        self.logger = logger or logging.getLogger("ToolExecutor")

        self._handlers = {
            "navigateTo": self._tool_navigate_to,
            "searchCompanies": self._tool_search_companies,
            "logActivity": self._tool_log_activity,
        }

    async def execute(self, name: str, args: dict[str, Any] | None) -> ToolResult:
        args = dict(args or {})
        declaration = self.registry.get(name)
        handler = self._handlers.get(name)

        if declaration is not None:
            missing = declaration.missing_arguments(args)
            if missing:
                self.logger.warning(f"Tool '{name}' called without {missing}")

        if declaration is None or handler is None:
            self.logger.error(f"Tool '{name}' is not implemented")
            result = tool_error(f"Unknown tool: {name}")
        else:
            try:
                result = await handler(args)
            except Exception as exc:
                self.logger.exception(f"Tool '{name}' failed")
                result = tool_error(str(exc) or "Tool error")

        self.transcript.append(Message(role=Role.TOOL, tool_name=name, tool_args=args))
        return result

    # ------------------------------------------------------------------ #
    # Tool implementations
    # ------------------------------------------------------------------ #

    async def _tool_navigate_to(self, args: dict[str, Any]) -> ToolResult:
        self.indicator.show("Navigation", "map-pin")
        path = resolve_route(args.get("page"), args.get("id"))
        if path:
            self.navigator.navigate(path)
        else:
            self.logger.info(f"Ignoring navigation to unknown page {args.get('page')!r}")
        return tool_success()

    async def _tool_search_companies(self, args: dict[str, Any]) -> ToolResult:
        query = args.get("query")
        self.indicator.show(f"Search: {query}", "search")
        return await self.crm.search(query)

    async def _tool_log_activity(self, args: dict[str, Any]) -> ToolResult:
        self.indicator.show("Activity logged", "activity")
        await self.crm.add_activity(args.get("companyId"), args)
        return tool_success()
