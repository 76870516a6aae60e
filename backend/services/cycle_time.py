"""Cycle time matching and statistics."""

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import List, NamedTuple, Optional

from services.changelog import iter_histories
from services.issue_fields import issue_type_name, project_name

MS_PER_DAY = 1000 * 60 * 60 * 24


class CycleMatch(NamedTuple):
    start: Optional[datetime]
    start_found: bool
    end: Optional[datetime]
    end_found: bool

    @property
    def complete(self) -> bool:
        return self.start_found and self.end_found


@dataclass(frozen=True)
class CycleRecord:
    """One cycle-time row before it is written to a frame.

    ``quantile`` stays None until every issue of the query has been matched.
    """

    issue_key: str
    issue_type: str
    project: str
    start_status: str
    end_status: str
    started: datetime
    ended: datetime
    cycle_time: float
    quantile: Optional[float] = None


def parse_status_set(raw: Optional[str]) -> List[str]:
    """Split a status configuration string into status names.

    Accepts "In Progress, Review" as well as the dashboard's multi-value
    variable form "{In Progress,Review}". Never fails: an empty value gives
    ``[""]``.
    """
    stripped = (raw or "").strip("{}")
    return [status.strip() for status in stripped.split(",")]


def match_cycle(issue: dict, start_statuses: List[str], end_statuses: List[str],
                time_from: datetime, time_to: datetime) -> CycleMatch:
    """Find the earliest start transition and the latest end transition.

    Only status transitions whose history timestamp lies within
    ``[time_from, time_to]`` are considered. A transition counts as a start
    when its target status is in ``start_statuses`` and as an end when it is
    in ``end_statuses``; it can be both if the sets overlap.

    An issue that cycles several times inside the window still yields one
    pair, spanning from its first start to its last end.
    """
    starts = {status for status in start_statuses if status}
    ends = {status for status in end_statuses if status}

    start = end = None

    for created, items in iter_histories(issue):
        if created < time_from or created > time_to:
            continue

        for item in items:
            if item.get("field") != "status":
                continue

            to_status = item.get("toString")
            if to_status in starts and (start is None or created < start):
                start = created
            if to_status in ends and (end is None or created > end):
                end = created

    return CycleMatch(start, start is not None, end, end is not None)


def calculate_cycle_time(start: datetime, end: datetime) -> float:
    """Whole days between two instants, counting both the first and last day.

    The order of the arguments does not matter. Two transitions at the same
    instant give a cycle time of 1.
    """
    elapsed_ms = abs(end - start) // timedelta(milliseconds=1)
    return float(math.ceil(elapsed_ms / MS_PER_DAY) + 1)


def calculate_quantile(values: List[float], quantile: float) -> float:
    """Linear-interpolated percentile of ``values``; ``quantile`` is 0-100.

    Returns 0 for an empty list.
    """
    if not values:
        return 0.0

    ordered = sorted(values)
    pos = (quantile / 100.0) * (len(ordered) - 1)
    base = int(math.floor(pos))
    rest = pos - base

    if base + 1 < len(ordered):
        return ordered[base] + rest * (ordered[base + 1] - ordered[base])
    return ordered[base]


def collect_cycle_records(issues: list, start_status: str, end_status: str,
                          time_from: datetime, time_to: datetime) -> List[CycleRecord]:
    """Match every issue and build a record for each complete start/end pair."""
    start_statuses = parse_status_set(start_status)
    end_statuses = parse_status_set(end_status)

    records = []
    for issue in issues:
        match = match_cycle(issue, start_statuses, end_statuses, time_from, time_to)
        if not match.complete:
            continue

        fields = issue.get("fields")
        records.append(CycleRecord(
            issue_key=issue.get("key", ""),
            issue_type=issue_type_name(fields, default="Unknown"),
            project=project_name(fields),
            start_status=start_status,
            end_status=end_status,
            started=match.start,
            ended=match.end,
            cycle_time=calculate_cycle_time(match.start, match.end),
        ))

    return records


def apply_quantile(records: List[CycleRecord], quantile: float) -> List[CycleRecord]:
    """Return copies of ``records`` all carrying the query-wide quantile."""
    value = calculate_quantile([r.cycle_time for r in records], quantile)
    return [replace(record, quantile=value) for record in records]
