"""Safe lookups into a Jira issue's ``fields`` map.

Jira returns fields as loosely-typed JSON: a field can be missing, null,
a string, or an object such as ``{"name": "Done"}``. Every lookup here goes
through ``get_text`` so a missing or ill-typed value always falls back to
the same default instead of raising.
"""

from typing import Optional


def get_text(fields: Optional[dict], *path: str,
             default: Optional[str] = "") -> Optional[str]:
    """Return the string at ``fields[path[0]][path[1]]...`` or ``default``."""
    value = fields
    for key in path:
        if not isinstance(value, dict):
            return default
        value = value.get(key)
    if isinstance(value, str):
        return value
    return default


def summary(fields: Optional[dict]) -> str:
    """Issue summary, or an empty string."""
    return get_text(fields, "summary")


def status_name(fields: Optional[dict]) -> str:
    """Name of the issue's current status."""
    return get_text(fields, "status", "name")


def issue_type_name(fields: Optional[dict], default: str = "") -> str:
    """Name of the issue type, or ``default`` when it is missing."""
    return get_text(fields, "issuetype", "name", default=default)


def project_name(fields: Optional[dict]) -> str:
    """Project key, falling back to the project's display name."""
    key = get_text(fields, "project", "key", default=None)
    if key is not None:
        return key
    return get_text(fields, "project", "name")
