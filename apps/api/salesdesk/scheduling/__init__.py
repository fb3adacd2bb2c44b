from salesdesk.scheduling.classification import (
    FOLLOW_UP,
    TASK,
    Bucket,
    Classifier,
    classify,
    classify_follow_up,
    classify_task,
    count_by_bucket,
    day_diff,
    effective_task_status,
    filter_by_bucket,
    follow_up_days,
    near_term_requirements,
    pending_follow_ups,
    total_pending_activity,
)
from salesdesk.scheduling.pipeline import (
    STAGES,
    StageSummary,
    count_by_stage,
    open_count,
    stage_summary,
    total_value,
    weighted_value,
)

__all__ = [
    "Bucket",
    "Classifier",
    "FOLLOW_UP",
    "TASK",
    "classify",
    "classify_follow_up",
    "classify_task",
    "count_by_bucket",
    "day_diff",
    "effective_task_status",
    "filter_by_bucket",
    "follow_up_days",
    "near_term_requirements",
    "pending_follow_ups",
    "total_pending_activity",
    "STAGES",
    "StageSummary",
    "count_by_stage",
    "open_count",
    "stage_summary",
    "total_value",
    "weighted_value",
]
