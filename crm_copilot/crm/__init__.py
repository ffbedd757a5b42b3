from crm_copilot.crm.models import Activity, Company, Contact
from crm_copilot.crm.service import CompanyService, InMemoryCompanyService

__all__ = [
    "Activity",
    "Company",
    "CompanyService",
    "Contact",
    "InMemoryCompanyService",
]
