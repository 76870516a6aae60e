"""Tests for JiraClient."""

import pytest
import requests
from unittest.mock import Mock, patch

from services.errors import JiraApiError
from services.jira_client import SEARCH_FIELDS, JiraClient


class TestJiraClientInit:
    """Test client initialization."""

    def test_init_strips_trailing_slash(self):
        """Server URL should have trailing slash removed."""
        client = JiraClient(
            server="https://jira.example.com/",
            email="user@example.com",
            token="my-secret-token"
        )
        assert client.server == "https://jira.example.com"

    def test_init_stores_credentials(self, mock_jira_credentials):
        client = JiraClient(**mock_jira_credentials)
        assert client.email == mock_jira_credentials["email"]
        assert client.token == mock_jira_credentials["token"]


class TestSearchIssues:
    """Test paginated JQL search."""

    @patch("services.jira_client.requests.request")
    def test_follows_next_page_token(self, mock_request, mock_jira_credentials):
        """Should keep fetching until no nextPageToken is returned."""
        mock_request.side_effect = [
            Mock(status_code=200, json=lambda: {
                "issues": [{"key": "P-1"}, {"key": "P-2"}],
                "nextPageToken": "page-2"
            }),
            Mock(status_code=200, json=lambda: {"issues": [{"key": "P-3"}]}),
        ]
        client = JiraClient(**mock_jira_credentials)

        issues = client.search_issues("project = P")

        assert [i["key"] for i in issues] == ["P-1", "P-2", "P-3"]
        assert mock_request.call_count == 2

        first_call = mock_request.call_args_list[0]
        assert first_call.args == ("POST", "https://test.atlassian.net/rest/api/3/search/jql")
        assert first_call.kwargs["json"] == {
            "jql": "project = P",
            "maxResults": 50,
            "fields": SEARCH_FIELDS,
            "expand": "changelog"
        }
        assert first_call.kwargs["auth"] == ("test@example.com", "test-token-123")
        assert mock_request.call_args_list[1].kwargs["json"]["nextPageToken"] == "page-2"

    @patch("services.jira_client.requests.request")
    def test_non_200_raises(self, mock_request, mock_jira_credentials):
        mock_request.return_value = Mock(status_code=400)
        client = JiraClient(**mock_jira_credentials)

        with pytest.raises(JiraApiError, match="400"):
            client.search_issues("not valid jql")

    @patch("services.jira_client.requests.request")
    def test_connection_error_raises(self, mock_request, mock_jira_credentials):
        mock_request.side_effect = requests.exceptions.Timeout()
        client = JiraClient(**mock_jira_credentials)

        with pytest.raises(JiraApiError, match="Failed to connect"):
            client.search_issues("project = P")

    @patch("services.jira_client.requests.request")
    def test_no_retries(self, mock_request, mock_jira_credentials):
        mock_request.return_value = Mock(status_code=503)
        client = JiraClient(**mock_jira_credentials)

        with pytest.raises(JiraApiError):
            client.search_issues("project = P")
        assert mock_request.call_count == 1


class TestMyself:
    """Test the connectivity check."""

    @patch("services.jira_client.requests.request")
    def test_returns_user(self, mock_request, mock_jira_credentials):
        mock_request.return_value = Mock(status_code=200, json=lambda: {"accountId": "123"})
        client = JiraClient(**mock_jira_credentials)

        assert client.myself() == {"accountId": "123"}
        assert mock_request.call_args.args == ("GET", "https://test.atlassian.net/rest/api/3/myself")

    @patch("services.jira_client.requests.request")
    def test_unauthorized(self, mock_request, mock_jira_credentials):
        mock_request.return_value = Mock(status_code=401)
        client = JiraClient(**mock_jira_credentials)

        with pytest.raises(JiraApiError, match="401"):
            client.myself()
