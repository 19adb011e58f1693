"""
Pydantic schemas for the on-demand analysis endpoints.

AnalyzeRequest: body of POST /analyze
AnalyzeAccepted: the 202 response, carrying the id to poll with
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from api.schemas.validators import validate_target_url
from models.enums import Category, FormFactor


class AnalyzeRequest(BaseModel):
    url: str = Field(..., examples=["https://example.com"])
    categories: Optional[list[Category]] = Field(
        default=None,
        description="Categories to audit; defaults to SEO only for a fast answer",
    )
    form_factor: FormFactor = FormFactor.DESKTOP

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return validate_target_url(value)


class AnalyzeAccepted(BaseModel):
    jobId: str
