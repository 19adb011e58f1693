"""
Human-readable insights derived from scores and metrics.

Insights are never stored. They are recomputed every time a report or an
on-demand result is read, so changing a threshold here applies to history too.
"""

from typing import Optional

from models.enums import InsightLevel

SCORE_GOOD = 90
SCORE_WARNING = 70
SCORE_CRITICAL = 50

LCP_GOOD_MS = 2500
LCP_CRITICAL_MS = 4000
CLS_GOOD = 0.1
CLS_CRITICAL = 0.25

_SCORE_MESSAGES = [
    ("seo", "SEO",
     "SEO score is {score}/100. Consider improving meta tags, structured data, and content optimization."),
    ("performance", "Performance",
     "Performance score is {score}/100. Page speed affects SEO rankings."),
    ("accessibility", "Accessibility",
     "Accessibility score is {score}/100. Better accessibility improves user experience and SEO."),
]


def _score_level(score: int) -> InsightLevel:
    if score < SCORE_CRITICAL:
        return InsightLevel.CRITICAL
    if score < SCORE_WARNING:
        return InsightLevel.WARNING
    return InsightLevel.INFO


def generate_insights(scores: dict[str, Optional[int]], metrics: Optional[dict] = None) -> list[dict]:
    insights = []

    for key, category, template in _SCORE_MESSAGES:
        score = scores.get(key)
        # 0 means the category was not run, same as None
        if score and score < SCORE_GOOD:
            insights.append({
                "category": category,
                "level": _score_level(score).value,
                "message": template.format(score=score),
            })

    metrics = metrics or {}

    lcp = metrics.get("largest_contentful_paint")
    if lcp and lcp > LCP_GOOD_MS:
        insights.append({
            "category": "Core Web Vitals",
            "level": (InsightLevel.CRITICAL if lcp > LCP_CRITICAL_MS else InsightLevel.WARNING).value,
            "message": f"LCP is {lcp / 1000:.1f}s. Should be under 2.5s for good user experience.",
        })

    cls = metrics.get("cumulative_layout_shift")
    if cls and cls > CLS_GOOD:
        insights.append({
            "category": "Core Web Vitals",
            "level": (InsightLevel.CRITICAL if cls > CLS_CRITICAL else InsightLevel.WARNING).value,
            "message": f"CLS is {cls:.3f}. Should be under 0.1 for visual stability.",
        })

    return insights
