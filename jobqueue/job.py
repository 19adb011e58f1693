"""
Job records held by the Redis job queue.

A Job is a lightweight DTO, the same idea as the old SchedulableJob: just the
fields the queue and worker need, independent of SQLAlchemy.

The payload is a tagged variant keyed by `kind`:
    scheduled  → ScheduledPayload(website_id, user_id, url)
    on_demand  → OnDemandPayload(url, categories, form_factor)

Anything else deserializes to UnknownPayload so a worker running older code
can warn and acknowledge the job instead of crashing on it.
"""

import time
import uuid
from dataclasses import dataclass, field, asdict
from typing import Optional, Union

from config.settings import settings
from models.enums import JobKind


def website_job_id(website_id: str) -> str:
    """Deterministic repeating-registration id for a website."""
    return f"website:{website_id}"


@dataclass(frozen=True)
class ScheduledPayload:
    website_id: str
    user_id: str
    url: str

    kind = JobKind.SCHEDULED


@dataclass(frozen=True)
class OnDemandPayload:
    url: str
    categories: Optional[list[str]] = None
    form_factor: str = "desktop"

    kind = JobKind.ON_DEMAND


@dataclass(frozen=True)
class UnknownPayload:
    kind_tag: str
    raw: dict

    kind = None


Payload = Union[ScheduledPayload, OnDemandPayload, UnknownPayload]


def payload_to_dict(payload: Payload) -> dict:
    if isinstance(payload, UnknownPayload):
        return {"kind": payload.kind_tag, **payload.raw}
    return {"kind": payload.kind.value, **asdict(payload)}


def payload_from_dict(data: dict) -> Payload:
    data = dict(data)
    tag = data.pop("kind", None)
    if tag == JobKind.SCHEDULED.value:
        return ScheduledPayload(
            website_id=data["website_id"], user_id=data["user_id"], url=data["url"]
        )
    if tag == JobKind.ON_DEMAND.value:
        return OnDemandPayload(
            url=data["url"],
            categories=data.get("categories"),
            form_factor=data.get("form_factor", "desktop"),
        )
    return UnknownPayload(kind_tag=str(tag), raw=data)


@dataclass
class BackoffPolicy:
    """Exponential backoff with a fixed base delay (seconds)."""
    type: str = "exponential"
    delay: float = field(default_factory=lambda: settings.JOB_BACKOFF_DELAY)

    def delay_for(self, attempts_made: int) -> float:
        """Delay before the next attempt, after `attempts_made` failures."""
        if self.type == "fixed":
            return self.delay
        return self.delay * (2 ** max(attempts_made - 1, 0))


@dataclass
class Job:
    id: str
    payload: Payload
    priority: int
    schedule: Optional[str] = None
    attempts_made: int = 0
    max_attempts: int = field(default_factory=lambda: settings.JOB_MAX_ATTEMPTS)
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)
    created_at: float = field(default_factory=time.time)
    failed_reason: Optional[str] = None

    @property
    def kind(self) -> Optional[JobKind]:
        return self.payload.kind

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payload": payload_to_dict(self.payload),
            "priority": self.priority,
            "schedule": self.schedule,
            "attempts_made": self.attempts_made,
            "max_attempts": self.max_attempts,
            "backoff": {"type": self.backoff.type, "delay": self.backoff.delay},
            "created_at": self.created_at,
            "failed_reason": self.failed_reason,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Job":
        backoff = data.get("backoff") or {}
        return cls(
            id=data["id"],
            payload=payload_from_dict(data["payload"]),
            priority=data["priority"],
            schedule=data.get("schedule"),
            attempts_made=data.get("attempts_made", 0),
            max_attempts=data.get("max_attempts", settings.JOB_MAX_ATTEMPTS),
            backoff=BackoffPolicy(
                type=backoff.get("type", "exponential"),
                delay=backoff.get("delay", settings.JOB_BACKOFF_DELAY),
            ),
            created_at=data.get("created_at", time.time()),
            failed_reason=data.get("failed_reason"),
        )

    def __repr__(self) -> str:
        kind = self.kind.value if self.kind else "unknown"
        return f"<Job {self.id} [{kind}] attempt {self.attempts_made}/{self.max_attempts}>"


def on_demand_job(url: str, categories: Optional[list[str]] = None,
                  form_factor: str = "desktop") -> Job:
    """Build a fresh on-demand job with a random id and elevated priority."""
    return Job(
        id=str(uuid.uuid4()),
        payload=OnDemandPayload(url=url, categories=categories, form_factor=form_factor),
        priority=settings.ON_DEMAND_PRIORITY,
    )


@dataclass
class RepeatingRegistration:
    """A cron-repeating job template. Each firing creates one occurrence Job."""
    id: str
    pattern: str
    payload: Payload
    next_run: float

    def occurrence_id(self, fire_time: float) -> str:
        return f"{self.id}:{int(fire_time * 1000)}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pattern": self.pattern,
            "payload": payload_to_dict(self.payload),
            "next_run": self.next_run,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RepeatingRegistration":
        return cls(
            id=data["id"],
            pattern=data["pattern"],
            payload=payload_from_dict(data["payload"]),
            next_run=data["next_run"],
        )
