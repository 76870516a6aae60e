"""Query metrics service.

Turns dashboard queries into columnar frames. Each query names a JQL filter
and one of the supported metrics:

- ``jql``: one row per issue with its key, summary, status, type and project
- ``changelogRaw``: one row per changelog transition item
- ``cycletime``: one row per issue that entered a start status and an end
  status inside the query's time range, plus the requested quantile of all
  cycle times in the result

Queries in a batch are independent: every query gets its own issue set and
its own frame, and a failing query never affects the others.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, NamedTuple

from services.changelog import iter_change_events
from services.cycle_time import apply_quantile, collect_cycle_records
from services.errors import (
    JiraApiError,
    QueryDecodeError,
    QueryError,
    UnknownMetricError,
    UpstreamFetchError,
)
from services.issue_fields import issue_type_name, project_name, status_name, summary

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
JQL_TIME_FORMAT = "%Y-%m-%d %H:%M"
_EPOCH_MS_RE = re.compile(r"-?[0-9]+")


class Metric(str, Enum):
    JQL = "jql"
    CHANGELOG_RAW = "changelogRaw"
    CYCLE_TIME = "cycletime"

    @classmethod
    def parse(cls, value) -> "Metric":
        """Resolve a metric name, raising UnknownMetricError if unsupported."""
        try:
            return cls(value)
        except ValueError:
            raise UnknownMetricError(f"unknown metric: {value}") from None


# Options offered by the query editor's metric selector.
METRIC_TYPES = [
    {"value": Metric.CYCLE_TIME.value, "label": "cycle time"},
    {"value": Metric.CHANGELOG_RAW.value, "label": "change log - raw data"},
    {"value": Metric.JQL.value, "label": "JQL (Raw Issue Data)"},
    {"value": "none", "label": "None"},
]


class TimeRange(NamedTuple):
    start: datetime
    end: datetime


def _parse_time(value, name: str) -> datetime:
    """Parse a time bound given as epoch milliseconds or ISO-8601 text."""
    if isinstance(value, bool):
        raise QueryDecodeError(f"json unmarshal: invalid {name} time: {value!r}")
    if isinstance(value, str) and _EPOCH_MS_RE.fullmatch(value.strip()):
        value = int(value.strip())
    if isinstance(value, (int, float)):
        try:
            return EPOCH + timedelta(milliseconds=value)
        except (OverflowError, ValueError):
            raise QueryDecodeError(f"json unmarshal: {name} time out of range: {value!r}") from None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise QueryDecodeError(f"json unmarshal: invalid {name} time: {value!r}") from None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    raise QueryDecodeError(f"json unmarshal: invalid {name} time: {value!r}")


def _get_str(payload: dict, key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise QueryDecodeError(f"json unmarshal: {key} must be a string")
    return value


@dataclass
class QueryModel:
    ref_id: str
    jql_query: str
    metric: str
    start_status: str
    end_status: str
    quantile: float
    time_range: TimeRange

    @classmethod
    def from_dict(cls, payload: Any) -> "QueryModel":
        """Decode one query as sent by the dashboard.

        Raises QueryDecodeError on anything that cannot be interpreted. The
        metric is kept as text here; unknown values are rejected when the
        query is run.
        """
        if not isinstance(payload, dict):
            raise QueryDecodeError("json unmarshal: query must be an object")

        quantile = payload.get("quantile")
        if quantile is None:
            quantile = 0.0
        if isinstance(quantile, bool) or not isinstance(quantile, (int, float)):
            raise QueryDecodeError("json unmarshal: quantile must be a number")
        if not 0 <= quantile <= 100:
            raise QueryDecodeError(f"quantile must be between 0 and 100, got {quantile}")

        time_range = payload.get("timeRange")
        if not isinstance(time_range, dict):
            raise QueryDecodeError("json unmarshal: timeRange is required")
        start = _parse_time(time_range.get("from"), "from")
        end = _parse_time(time_range.get("to"), "to")
        if start > end:
            raise QueryDecodeError("timeRange.from must not be after timeRange.to")

        return cls(
            ref_id=_get_str(payload, "refId"),
            jql_query=_get_str(payload, "jqlQuery"),
            metric=_get_str(payload, "metric"),
            start_status=_get_str(payload, "startStatus"),
            end_status=_get_str(payload, "endStatus"),
            quantile=float(quantile),
            time_range=TimeRange(start, end),
        )


def narrow_jql(jql: str, since: datetime) -> str:
    """Restrict a JQL filter to issues updated since ``since``.

    Assumes an issue not updated inside the window has no transitions in it.
    The clause is appended, so the filter must not end with ORDER BY.
    Empty filters are returned unchanged.
    """
    if not jql:
        return jql
    since_utc = since.astimezone(timezone.utc).strftime(JQL_TIME_FORMAT)
    return f"{jql} AND updated >= '{since_utc}'"


@dataclass
class Field:
    name: str
    type: str
    values: list = field(default_factory=list)

    def to_dict(self) -> dict:
        if self.type == "time":
            values = [(v - EPOCH) // timedelta(milliseconds=1) for v in self.values]
        else:
            values = list(self.values)
        return {"name": self.name, "type": self.type, "values": values}


@dataclass
class Frame:
    """A columnar table: every field holds one value per row."""

    name: str
    fields: List[Field]

    @classmethod
    def with_columns(cls, *columns: tuple, name: str = "response") -> "Frame":
        return cls(name, [Field(col_name, col_type) for col_name, col_type in columns])

    def append_row(self, *values) -> None:
        if len(values) != len(self.fields):
            raise ValueError(f"expected {len(self.fields)} values, got {len(values)}")
        for frame_field, value in zip(self.fields, values):
            frame_field.values.append(value)

    @property
    def row_count(self) -> int:
        return len(self.fields[0].values) if self.fields else 0

    def column(self, name: str) -> list:
        for frame_field in self.fields:
            if frame_field.name == name:
                return frame_field.values
        raise KeyError(name)

    def to_dict(self) -> dict:
        return {"name": self.name, "fields": [f.to_dict() for f in self.fields]}


def build_jql_frame(issues: list, query: QueryModel) -> Frame:
    frame = Frame.with_columns(
        ("Key", "string"),
        ("Summary", "string"),
        ("Status", "string"),
        ("IssueType", "string"),
        ("Project", "string"),
    )
    for issue in issues:
        fields = issue.get("fields")
        frame.append_row(
            issue.get("key", ""),
            summary(fields),
            status_name(fields),
            issue_type_name(fields),
            project_name(fields),
        )
    return frame


def build_changelog_frame(issues: list, query: QueryModel) -> Frame:
    frame = Frame.with_columns(
        ("IssueKey", "string"),
        ("IssueType", "string"),
        ("Created", "time"),
        ("field", "string"),
        ("fromValue", "string"),
        ("toValue", "string"),
    )
    for event in iter_change_events(issues):
        frame.append_row(*event)
    return frame


def build_cycletime_frame(issues: list, query: QueryModel) -> Frame:
    """Cycle time per issue, every row carrying the quantile of the whole result."""
    records = collect_cycle_records(
        issues,
        query.start_status,
        query.end_status,
        query.time_range.start,
        query.time_range.end,
    )
    records = apply_quantile(records, query.quantile)

    frame = Frame.with_columns(
        ("IssueKey", "string"),
        ("IssueType", "string"),
        ("Project", "string"),
        ("StartStatus", "string"),
        ("EndStatus", "string"),
        ("EndStatusCreated", "time"),
        ("CycleTime", "number"),
        ("Quantile", "number"),
    )
    for record in records:
        frame.append_row(
            record.issue_key,
            record.issue_type,
            record.project,
            record.start_status,
            record.end_status,
            record.ended,
            record.cycle_time,
            record.quantile,
        )
    return frame


FRAME_BUILDERS: Dict[Metric, Callable[[list, QueryModel], Frame]] = {
    Metric.JQL: build_jql_frame,
    Metric.CHANGELOG_RAW: build_changelog_frame,
    Metric.CYCLE_TIME: build_cycletime_frame,
}


class QueryMetricsService:
    """Runs dashboard queries against Jira and builds their frames."""

    def __init__(self, client, max_workers: int = 6):
        self.client = client
        self.max_workers = max_workers

    def _fetch_issues(self, query: QueryModel) -> list:
        jql = narrow_jql(query.jql_query, query.time_range.start)
        try:
            return self.client.search_issues(jql)
        except JiraApiError as e:
            raise UpstreamFetchError(f"jira search failed: {e}") from e

    def run_query(self, query: QueryModel) -> Frame:
        """Fetch the query's issues and build its frame.

        The metric is checked before anything is fetched.
        """
        builder = FRAME_BUILDERS[Metric.parse(query.metric)]
        issues = self._fetch_issues(query)
        return builder(issues, query)

    def _run_payload(self, payload: Any) -> dict:
        try:
            query = QueryModel.from_dict(payload)
            frame = self.run_query(query)
        except QueryError as e:
            logger.warning(f"Query failed with status {e.status}: {e.message}")
            return {"error": e.message, "status": e.status}
        except Exception as e:
            logger.exception("Unexpected error while running query")
            return {"error": str(e), "status": 500}
        return {"frames": [frame.to_dict()]}

    def run_queries(self, payloads: list) -> Dict[str, dict]:
        """Run a batch of raw query payloads, keyed by their refId."""
        ref_ids = []
        for index, payload in enumerate(payloads):
            ref_id = payload.get("refId") if isinstance(payload, dict) else None
            ref_ids.append(str(ref_id) if ref_id else f"query-{index}")

        results = {}
        if not payloads:
            return results

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(payloads))) as executor:
            futures = {
                executor.submit(self._run_payload, payload): ref_id
                for ref_id, payload in zip(ref_ids, payloads)
            }
            for future in as_completed(futures):
                results[futures[future]] = future.result()

        # Keep the batch order in the response
        return {ref_id: results[ref_id] for ref_id in ref_ids}
