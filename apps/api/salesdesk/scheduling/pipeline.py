from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from salesdesk.scheduling.fields import read_field, to_amount


STAGES: tuple[str, ...] = (
    "cold_call",
    "lead",
    "prospect",
    "followup",
    "quotation",
    "negotiation",
    "won",
    "lost",
)
CLOSED_STAGES = frozenset({"won", "lost"})


@dataclass(frozen=True, slots=True)
class StageSummary:
    stage: str
    count: int
    total_value: Decimal


def total_value(opportunities: Iterable[Any], stage: str | None = None) -> Decimal:
    return sum(
        (
            to_amount(read_field(opportunity, "value"))
            for opportunity in opportunities
            if stage is None or read_field(opportunity, "stage") == stage
        ),
        Decimal("0"),
    )


def weighted_value(opportunities: Iterable[Any]) -> Decimal:
    return sum(
        (
            to_amount(read_field(opportunity, "value")) * to_amount(read_field(opportunity, "probability")) / 100
            for opportunity in opportunities
        ),
        Decimal("0"),
    )


def count_by_stage(opportunities: Iterable[Any], stage: str) -> int:
    return sum(1 for opportunity in opportunities if read_field(opportunity, "stage") == stage)


def open_count(opportunities: Iterable[Any]) -> int:
    return sum(1 for opportunity in opportunities if read_field(opportunity, "stage") not in CLOSED_STAGES)


def stage_summary(opportunities: Iterable[Any]) -> list[StageSummary]:
    rows = list(opportunities)
    return [
        StageSummary(stage=stage, count=count_by_stage(rows, stage), total_value=total_value(rows, stage))
        for stage in STAGES
    ]
