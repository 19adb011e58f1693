"""
Pydantic schemas for the /websites endpoints.

WebsiteCreate: request body for registering a website (optionally with a cron)
WebsiteUpdate: partial update; a field that is absent stays as it is,
               while "cron": null explicitly removes the schedule
WebsiteResponse: what we send back for a single website
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from api.schemas.validators import validate_cron, validate_target_url


class WebsiteCreate(BaseModel):
    url: str = Field(..., examples=["https://example.com"])
    name: Optional[str] = Field(default=None, max_length=255)
    cron: Optional[str] = Field(
        default=None,
        examples=["0 3 * * *"],
        description="Five-field cron expression; omit to audit on demand only",
    )

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return validate_target_url(value)

    @field_validator("cron")
    @classmethod
    def _check_cron(cls, value: Optional[str]) -> Optional[str]:
        return validate_cron(value)


class WebsiteUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    cron: Optional[str] = None

    @field_validator("cron")
    @classmethod
    def _check_cron(cls, value: Optional[str]) -> Optional[str]:
        return validate_cron(value)


class WebsiteResponse(BaseModel):
    id: str
    url: str
    name: Optional[str] = None
    cron: Optional[str] = None
    last_analyzed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    # from_attributes=True reads straight from the SQLAlchemy Website row
    model_config = {"from_attributes": True}
