"""
Field validators shared by the request schemas.

Raising ValueError inside a pydantic validator turns into a 422 response
before the endpoint runs, the same way Field(ge=..., le=...) does.
"""

import re
from typing import Optional

from croniter import croniter

from analysis.errors import InvalidTargetError
from analysis.targets import check_target_url

# Exactly five whitespace-separated fields: minute hour day month weekday
CRON_PATTERN = re.compile(r"^(\S+\s+){4}\S+$")


def validate_target_url(url: str) -> str:
    url = url.strip()
    try:
        return check_target_url(url)
    except InvalidTargetError as e:
        raise ValueError(str(e)) from e


def validate_cron(cron: Optional[str]) -> Optional[str]:
    """Empty string and None both mean "not scheduled"."""
    if cron is None:
        return None
    cron = cron.strip()
    if not cron:
        return None
    if not CRON_PATTERN.match(cron) or not croniter.is_valid(cron):
        raise ValueError("Invalid cron expression format")
    return cron
