"""
Normalizing a raw audit-engine report into an AnalysisResult.

Example (abridged) raw input:
    {
        "finalUrl": "https://example.com/",
        "categories": {"performance": {"score": 0.82}, "seo": {"score": 0.95}},
        "audits": {
            "largest-contentful-paint": {"numericValue": 2810.5, ...},
            "render-blocking-resources": {
                "score": 0.41, "details": {"type": "opportunity", ...}, ...
            },
        },
    }

Opportunities are audits whose details are of type "opportunity" and score
below 0.9. Diagnostics are "table" audits scoring below 1 that are not
already opportunities. Both lists are sorted worst-first and capped at 10.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

MAX_LISTED_AUDITS = 10

# Category id in the engine's report → score field name
CATEGORY_FIELDS = {
    "performance": "performance",
    "accessibility": "accessibility",
    "best-practices": "best_practices",
    "seo": "seo",
    "pwa": "pwa",
}

# Audit id → metric name. All milliseconds except cumulative_layout_shift (unitless).
METRIC_AUDITS = {
    "first-contentful-paint": "first_contentful_paint",
    "largest-contentful-paint": "largest_contentful_paint",
    "total-blocking-time": "total_blocking_time",
    "cumulative-layout-shift": "cumulative_layout_shift",
    "speed-index": "speed_index",
    "interactive": "time_to_interactive",
}


@dataclass
class AnalysisResult:
    url: str
    performance: Optional[int]
    accessibility: Optional[int]
    best_practices: Optional[int]
    seo: Optional[int]
    pwa: Optional[int]
    metrics: dict[str, Optional[float]] = field(default_factory=dict)
    opportunities: list[dict] = field(default_factory=list)
    diagnostics: list[dict] = field(default_factory=list)
    raw_report: Optional[dict] = None

    def scores(self) -> dict[str, Optional[int]]:
        return {
            "performance": self.performance,
            "accessibility": self.accessibility,
            "best_practices": self.best_practices,
            "seo": self.seo,
            "pwa": self.pwa,
        }

    def to_public_dict(self) -> dict:
        """Everything except the raw engine output."""
        return {
            "url": self.url,
            **self.scores(),
            "metrics": self.metrics,
            "opportunities": self.opportunities,
            "diagnostics": self.diagnostics,
        }


def _score_percent(score: Any) -> Optional[int]:
    if not isinstance(score, (int, float)):
        return None
    return round(score * 100)


def _audit_summary(audit: dict) -> dict:
    return {
        "id": audit["id"],
        "title": audit.get("title", ""),
        "description": audit.get("description") or "",
        "score": _score_percent(audit.get("score")) or 0,
        "display_value": audit.get("displayValue"),
        "details": audit.get("details"),
    }


def _details_type(audit: dict) -> Optional[str]:
    details = audit.get("details") or {}
    return details.get("type")


def extract_result(raw: dict) -> AnalysisResult:
    """Build an AnalysisResult from the engine's JSON report."""
    categories = raw.get("categories") or {}
    audits = {
        audit_id: {"id": audit_id, **audit}
        for audit_id, audit in (raw.get("audits") or {}).items()
        if isinstance(audit, dict)
    }

    scores = {
        field_name: _score_percent((categories.get(category_id) or {}).get("score"))
        for category_id, field_name in CATEGORY_FIELDS.items()
    }

    metrics = {
        name: (audits.get(audit_id) or {}).get("numericValue")
        for audit_id, name in METRIC_AUDITS.items()
    }

    opportunities = sorted(
        (
            _audit_summary(a) for a in audits.values()
            if _details_type(a) == "opportunity"
            and isinstance(a.get("score"), (int, float))
            and a["score"] < 0.9
        ),
        key=lambda item: item["score"],
    )
    opportunity_ids = {item["id"] for item in opportunities}

    diagnostics = sorted(
        (
            _audit_summary(a) for a in audits.values()
            if _details_type(a) == "table"
            and isinstance(a.get("score"), (int, float))
            and a["score"] < 1
            and a["id"] not in opportunity_ids
        ),
        key=lambda item: item["score"],
    )

    return AnalysisResult(
        url=raw.get("finalUrl") or raw.get("finalDisplayedUrl") or raw.get("requestedUrl", ""),
        metrics=metrics,
        opportunities=opportunities[:MAX_LISTED_AUDITS],
        diagnostics=diagnostics[:MAX_LISTED_AUDITS],
        raw_report=raw,
        **scores,
    )
