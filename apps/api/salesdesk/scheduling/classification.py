"""Urgency buckets for dated CRM items.

Visit follow-ups and tasks are both classified by how many calendar days lie
between "today" and the item's date. They differ only in the near-term window:
follow-ups are appointment-like and become ``urgent`` within two days, tasks
are reminders and are ``upcoming`` within a week.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from enum import Enum
from typing import Any, TypeVar

from salesdesk.scheduling.fields import read_field, to_calendar_date


T = TypeVar("T")


class Bucket(str, Enum):
    COMPLETED = "completed"
    NONE = "none"
    OVERDUE = "overdue"
    TODAY = "today"
    URGENT = "urgent"
    UPCOMING = "upcoming"
    SCHEDULED = "scheduled"


COMPLETED_STATUS = "completed"
CLOSED_REQUIREMENT_STATUSES = frozenset({"fulfilled", "cancelled"})


@dataclass(frozen=True, slots=True)
class Classifier:
    name: str
    date_field: str
    near_bucket: Bucket
    window_days: int

    @property
    def buckets(self) -> tuple[Bucket, ...]:
        return (
            Bucket.COMPLETED,
            Bucket.NONE,
            Bucket.OVERDUE,
            Bucket.TODAY,
            self.near_bucket,
            Bucket.SCHEDULED,
        )

    def bucket_for(self, when: Any, status: Any, now: datetime | date, tz: tzinfo | None = None) -> Bucket:
        if status == COMPLETED_STATUS:
            return Bucket.COMPLETED
        diff = day_diff(when, now, tz)
        if diff is None:
            return Bucket.NONE
        if diff < 0:
            return Bucket.OVERDUE
        if diff == 0:
            return Bucket.TODAY
        if diff <= self.window_days:
            return self.near_bucket
        return Bucket.SCHEDULED

    def classify(self, item: Any, now: datetime | date, tz: tzinfo | None = None) -> Bucket:
        return self.bucket_for(read_field(item, self.date_field), read_field(item, "status"), now, tz)


FOLLOW_UP = Classifier(name="follow_up", date_field="next_follow_up", near_bucket=Bucket.URGENT, window_days=2)
TASK = Classifier(name="task", date_field="due_date", near_bucket=Bucket.UPCOMING, window_days=7)


def day_diff(when: Any, now: datetime | date, tz: tzinfo | None = None) -> int | None:
    """Whole calendar days from today to ``when``; None when ``when`` is missing or malformed."""
    target = to_calendar_date(when, tz)
    today = to_calendar_date(now, tz)
    if target is None or today is None:
        return None
    return (target - today).days


def classify(item: Any, now: datetime | date, classifier: Classifier = FOLLOW_UP, tz: tzinfo | None = None) -> Bucket:
    return classifier.classify(item, now, tz)


def classify_follow_up(item: Any, now: datetime | date, tz: tzinfo | None = None) -> Bucket:
    return FOLLOW_UP.classify(item, now, tz)


def classify_task(item: Any, now: datetime | date, tz: tzinfo | None = None) -> Bucket:
    return TASK.classify(item, now, tz)


def count_by_bucket(
    items: Iterable[Any],
    now: datetime | date,
    classifier: Classifier = FOLLOW_UP,
    tz: tzinfo | None = None,
) -> dict[Bucket, int]:
    counts = {bucket: 0 for bucket in classifier.buckets}
    for item in items:
        counts[classifier.classify(item, now, tz)] += 1
    return counts


def filter_by_bucket(
    items: Iterable[T],
    bucket: Bucket,
    now: datetime | date,
    classifier: Classifier = FOLLOW_UP,
    tz: tzinfo | None = None,
) -> list[T]:
    return [item for item in items if classifier.classify(item, now, tz) == bucket]


def follow_up_days(item: Any, now: datetime | date, classifier: Classifier = FOLLOW_UP, tz: tzinfo | None = None) -> int | None:
    """Distance in days used for badges such as "3d overdue" or "2d left"."""
    if read_field(item, "status") == COMPLETED_STATUS:
        return None
    diff = day_diff(read_field(item, classifier.date_field), now, tz)
    return abs(diff) if diff is not None else None


def effective_task_status(status: str, due_date: Any, now: datetime | date, tz: tzinfo | None = None) -> str:
    """Read-time projection of a stored task status.

    Stored status is only meaningful as pending/completed; a pending task whose
    due date is before today reads as overdue. Nothing is written back.
    """
    if status == COMPLETED_STATUS:
        return COMPLETED_STATUS
    diff = day_diff(due_date, now, tz)
    if diff is not None and diff < 0:
        return "overdue"
    return "pending"


def near_term_requirements(
    requirements: Iterable[T],
    now: datetime | date,
    tz: tzinfo | None = None,
    window_days: int = 30,
) -> list[T]:
    selected: list[T] = []
    for requirement in requirements:
        if read_field(requirement, "status") in CLOSED_REQUIREMENT_STATUSES:
            continue
        diff = day_diff(read_field(requirement, "required_period"), now, tz)
        if diff is not None and 0 < diff <= window_days:
            selected.append(requirement)
    return selected


def pending_follow_ups(follow_up_counts: Mapping[Bucket, int]) -> int:
    return (
        follow_up_counts.get(Bucket.OVERDUE, 0)
        + follow_up_counts.get(Bucket.TODAY, 0)
        + follow_up_counts.get(Bucket.URGENT, 0)
    )


def total_pending_activity(
    follow_up_counts: Mapping[Bucket, int],
    task_counts: Mapping[Bucket, int],
    near_term_requirement_count: int,
) -> int:
    """Single alert count across visits, tasks and requirements.

    The three sources are disjoint collections, so the sum needs no de-duplication.
    """
    return (
        pending_follow_ups(follow_up_counts)
        + task_counts.get(Bucket.TODAY, 0)
        + task_counts.get(Bucket.OVERDUE, 0)
        + task_counts.get(Bucket.UPCOMING, 0)
        + near_term_requirement_count
    )
