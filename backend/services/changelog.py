"""Changelog flattening for Jira issues."""

import logging
import re
from datetime import datetime
from typing import Iterator, NamedTuple, Optional

from services.issue_fields import issue_type_name

logger = logging.getLogger(__name__)

# Jira changelog timestamps: "2024-10-31T12:11:56.289-0400"
CHANGELOG_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"
_CHANGELOG_TIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}[+-]\d{4}$")


class ChangeEvent(NamedTuple):
    """One field transition recorded in an issue's changelog."""

    issue_key: str
    issue_type: str
    created: datetime
    field: str
    from_value: str
    to_value: str


def parse_timestamp(date_str: Optional[str]) -> Optional[datetime]:
    """Parse a changelog timestamp, or return None if it is not in Jira's format.

    Only the exact changelog format is accepted (millisecond precision and a
    numeric offset without a colon), so ``Z`` suffixes and date-only values
    are rejected.
    """
    if not isinstance(date_str, str) or not _CHANGELOG_TIME_RE.match(date_str):
        return None
    try:
        return datetime.strptime(date_str, CHANGELOG_TIME_FORMAT)
    except ValueError:
        return None


def get_histories(issue: dict) -> Optional[list]:
    """Return the raw changelog histories of an issue, or None without a changelog.

    The search API puts the changelog at the issue level when called with
    ``expand=changelog``; some payloads nest it under ``fields``.
    """
    fields = issue.get("fields") or {}
    changelog = issue.get("changelog") or fields.get("changelog")
    if not isinstance(changelog, dict):
        return None
    histories = changelog.get("histories")
    return histories if isinstance(histories, list) else []


def iter_histories(issue: dict) -> Iterator[tuple]:
    """Yield ``(created, items)`` for each history with a parseable timestamp.

    Histories are yielded in upstream order. Unparseable ones are skipped,
    and only items that are objects are passed on.
    """
    for history in get_histories(issue) or []:
        if not isinstance(history, dict):
            logger.debug(f"Skipping malformed changelog entry of {issue.get('key')}")
            continue
        created = parse_timestamp(history.get("created"))
        if created is None:
            logger.debug(
                f"Skipping changelog entry of {issue.get('key')} "
                f"with timestamp {history.get('created')!r}"
            )
            continue
        items = history.get("items")
        if not isinstance(items, list):
            items = []
        yield created, [item for item in items if isinstance(item, dict)]


def iter_change_events(issues: list) -> Iterator[ChangeEvent]:
    """Flatten every transition item of every issue into ChangeEvents.

    Issues without a changelog contribute nothing.
    """
    for issue in issues:
        if get_histories(issue) is None:
            continue

        issue_key = issue.get("key", "")
        issue_type = issue_type_name(issue.get("fields"), default="Unknown")

        for created, items in iter_histories(issue):
            for item in items:
                yield ChangeEvent(
                    issue_key=issue_key,
                    issue_type=issue_type,
                    created=created,
                    field=item.get("field") or "",
                    from_value=item.get("fromString") or "",
                    to_value=item.get("toString") or "",
                )
