"""Application settings."""

from clerkbook.settings.app import AppSettings, get_settings
from clerkbook.settings.plans import PlanCatalog, PlanCatalogError, load_plan_catalog


__all__ = [
    "AppSettings",
    "PlanCatalog",
    "PlanCatalogError",
    "get_settings",
    "load_plan_catalog",
]
