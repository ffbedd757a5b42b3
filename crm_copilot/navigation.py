import logging

from crm_copilot.events import EventHub, Topic

PAGE_ROUTES = {
    "dashboard": "/",
    "kanban": "/kanban",
    "directory": "/directory",
    "people_directory": "/annuaire",
    "inbox": "/inbox",
    "toolbox": "/toolbox",
    "settings": "/settings",
}
COMPANY_DETAIL_PAGE = "company_detail"
PAGE_NAMES = [*PAGE_ROUTES, COMPANY_DETAIL_PAGE]


def resolve_route(page: str | None, record_id: str | None = None) -> str | None:
    """Map a page name to its path; ``None`` for pages the app does not know."""
    if page == COMPANY_DETAIL_PAGE:
        # A missing id is passed through; the path is then /company/None.
        return f"/company/{record_id}"
    return PAGE_ROUTES.get(page or "")


class Navigator:
    """Holds the application's current location."""

    def __init__(self, hub: EventHub, location: str = "/", logger=None):
        self.hub = hub
        self.location = location
        self.history: list[str] = [location]
        self.logger = logger or logging.getLogger("Navigator")

    def navigate(self, path: str) -> None:
        self.logger.info(f"Navigating to {path}")
        self.location = path
        self.history.append(path)
        self.hub.publish(Topic.LOCATION_CHANGED, path)
