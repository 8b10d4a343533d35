# Overview: Fleet-level statistics folded over many submission timelines.

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Mapping

from .progress_service import Timeline, list_timelines
from .submission_service import STATUS_APPROVED, STATUS_ORDER, STATUS_REJECTED, TERMINAL_STATUSES
from .timeline_service import STAGE_NAMES


def _mean(values: list[int]) -> int:
    if not values:
        return 0
    return int(round(sum(values) / len(values)))


def compute_stats(timelines: Iterable[Timeline]) -> dict:
    """
    Fold timelines into dashboard counters.

    - completed: approved (the only status that reaches 100%)
    - in_progress: still open (not approved/rejected) with 0 < progress < 100
    - not_started: progress 0
    - stuck: is_stuck
    - average_completion_ms: mean total_time_elapsed_ms over completed
      timelines; 0 when none have completed
    - average_stage_ms: per stage, mean time_elapsed_ms over timelines
      where that stage completed
    """
    total = 0
    completed = 0
    in_progress = 0
    not_started = 0
    stuck = 0
    rejected = 0
    by_status = {status: 0 for status in STATUS_ORDER}
    completion_times: list[int] = []
    stage_times: dict[str, list[int]] = {name: [] for name in STAGE_NAMES}

    for timeline in timelines:
        total += 1
        by_status[timeline.current_status] = by_status.get(timeline.current_status, 0) + 1

        if timeline.current_status == STATUS_APPROVED:
            completed += 1
            completion_times.append(timeline.total_time_elapsed_ms)
        elif timeline.progress_percentage <= 0:
            not_started += 1
        elif timeline.current_status not in TERMINAL_STATUSES:
            in_progress += 1

        if timeline.current_status == STATUS_REJECTED:
            rejected += 1
        if timeline.is_stuck:
            stuck += 1

        for stage in timeline.stages:
            if stage.is_completed:
                stage_times[stage.name].append(stage.time_elapsed_ms)

    return {
        "total": total,
        "in_progress": in_progress,
        "completed": completed,
        "stuck": stuck,
        "average_completion_ms": _mean(completion_times),
        "not_started": not_started,
        "rejected": rejected,
        "by_status": by_status,
        "average_stage_ms": {name: _mean(values) for name, values in stage_times.items()},
    }


def submission_stats(
    *,
    status: str | None = None,
    marketer_id: int | None = None,
    days: int | None = None,
    limit: int | None = None,
    now: datetime | None = None,
    sla_hours: Mapping[str, float] | None = None,
) -> dict:
    """
    submission.stats: statistics over every submission matching the filter.

    limit is None by default so fleet totals are never truncated.
    """
    timelines = list_timelines(
        status=status,
        marketer_id=marketer_id,
        days=days,
        limit=limit,
        now=now,
        sla_hours=sla_hours,
    )
    return compute_stats(timelines)
