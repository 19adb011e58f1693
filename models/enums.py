"""
Shared enumerations used across the entire project.

Inheriting from str means the values serialize to JSON as plain strings
and work as FastAPI query/body fields.
"""

import enum


class JobKind(str, enum.Enum):
    SCHEDULED = "scheduled"    # cron occurrence for a stored website, result persisted
    ON_DEMAND = "on_demand"    # interactive request, result handed off through the cache


class Category(str, enum.Enum):
    PERFORMANCE = "performance"
    ACCESSIBILITY = "accessibility"
    BEST_PRACTICES = "best-practices"
    SEO = "seo"
    PWA = "pwa"


class FormFactor(str, enum.Enum):
    DESKTOP = "desktop"
    MOBILE = "mobile"


class InsightLevel(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class FailureDisposition(str, enum.Enum):
    RETRYING = "RETRYING"      # re-enqueued with backoff
    FAILED = "FAILED"          # attempts exhausted, moved to the dead-letter list


class ReportSortField(str, enum.Enum):
    CREATED_AT = "createdAt"
    PERFORMANCE = "performance"
    SEO = "seo"


class SortOrder(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"
