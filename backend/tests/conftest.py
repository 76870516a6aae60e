"""Shared fixtures for the Jira metrics backend tests."""

import sys
import os
from datetime import datetime, timezone

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


def make_history(created, *items):
    """Build a changelog history entry from (field, from, to) tuples."""
    return {
        "id": created,
        "created": created,
        "items": [
            {"field": field, "fromString": from_value, "toString": to_value}
            for field, from_value, to_value in items
        ]
    }


@pytest.fixture
def mock_jira_credentials():
    """Mock Jira credentials for testing."""
    return {
        "server": "https://test.atlassian.net",
        "email": "test@example.com",
        "token": "test-token-123"
    }


@pytest.fixture
def jira_headers(mock_jira_credentials):
    """Request headers carrying the mock credentials."""
    return {
        "X-Jira-Server": mock_jira_credentials["server"],
        "X-Jira-Email": mock_jira_credentials["email"],
        "X-Jira-Token": mock_jira_credentials["token"]
    }


@pytest.fixture
def window():
    """Query time window covering January 2024."""
    return (
        datetime(2024, 1, 1, tzinfo=timezone.utc),
        datetime(2024, 1, 31, 23, 59, 59, tzinfo=timezone.utc)
    )


@pytest.fixture
def sample_issue_done():
    """Story that went To Do -> In Progress -> Code Review -> Done in January."""
    return {
        "key": "PROJ-200",
        "fields": {
            "summary": "Feature with status changes",
            "issuetype": {"name": "Story", "subtask": False},
            "status": {"name": "Done"},
            "project": {"key": "PROJ", "name": "Project"}
        },
        "changelog": {
            "histories": [
                make_history("2024-01-03T10:00:00.000+0000",
                             ("status", "To Do", "In Progress")),
                make_history("2024-01-05T14:00:00.000+0000",
                             ("status", "In Progress", "Code Review"),
                             ("assignee", None, "Jane Doe")),
                make_history("2024-01-08T09:30:00.000+0000",
                             ("status", "Code Review", "Done"))
            ]
        }
    }


@pytest.fixture
def sample_issue_rework():
    """Bug that was reopened: two start/end cycles inside the window."""
    return {
        "key": "PROJ-202",
        "fields": {
            "summary": "Issue with rework",
            "issuetype": {"name": "Bug", "subtask": False},
            "status": {"name": "Done"},
            "project": {"name": "Platform"}
        },
        "changelog": {
            "histories": [
                make_history("2024-01-10T09:00:00.000+0000",
                             ("status", "To Do", "In Progress")),
                make_history("2024-01-11T10:00:00.000+0000",
                             ("status", "In Progress", "Done")),
                make_history("2024-01-15T11:00:00.000+0000",
                             ("status", "Done", "In Progress")),
                make_history("2024-01-20T16:00:00.000+0000",
                             ("status", "In Progress", "Done"))
            ]
        }
    }


@pytest.fixture
def sample_issue_in_progress():
    """Issue that started but never finished."""
    return {
        "key": "PROJ-201",
        "fields": {
            "summary": "Quick fix",
            "issuetype": {"name": "Task", "subtask": False},
            "status": {"name": "In Progress"},
            "project": {"key": "PROJ"}
        },
        "changelog": {
            "histories": [
                make_history("2024-01-05T09:00:00.000+0000",
                             ("status", "To Do", "In Progress"))
            ]
        }
    }


@pytest.fixture
def sample_issue_no_changelog():
    """Issue fetched without a changelog."""
    return {
        "key": "PROJ-203",
        "fields": {
            "summary": "Untouched",
            "issuetype": {"name": "Task"},
            "status": {"name": "To Do"},
            "project": {"key": "PROJ"}
        },
        "changelog": None
    }


@pytest.fixture
def sample_issues(sample_issue_done, sample_issue_rework,
                  sample_issue_in_progress, sample_issue_no_changelog):
    """Collection of issues as returned by a JQL search."""
    return [
        sample_issue_done,
        sample_issue_rework,
        sample_issue_in_progress,
        sample_issue_no_changelog
    ]


@pytest.fixture
def cycletime_query():
    """Raw cycle time query payload for January 2024."""
    return {
        "refId": "A",
        "jqlQuery": "project = PROJ",
        "metric": "cycletime",
        "startStatus": "{In Progress}",
        "endStatus": "Done",
        "quantile": 50,
        "timeRange": {
            "from": "2024-01-01T00:00:00Z",
            "to": "2024-01-31T23:59:59Z"
        }
    }


@pytest.fixture
def app(tmp_path):
    """Create Flask test app without a datasource config file."""
    from app import create_app
    app = create_app(config_path=str(tmp_path / "datasource-config.json"))
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()
