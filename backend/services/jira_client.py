"""Jira Cloud REST client used by the query endpoints."""

import logging
from typing import Optional

import requests

from services.errors import JiraApiError

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ["key", "summary", "issuetype", "status", "project"]


class JiraClient:
    """Minimal authenticated client for the Jira search and user APIs."""

    def __init__(self, server: str, email: str, token: str, timeout: int = 30):
        self.server = server.rstrip("/")
        self.email = email
        self.token = token
        self.timeout = timeout

    def _request(self, method: str, endpoint: str, params: Optional[dict] = None,
                 json_body: Optional[dict] = None) -> requests.Response:
        """Make authenticated request to Jira API."""
        try:
            response = requests.request(
                method,
                f"{self.server}{endpoint}",
                auth=(self.email, self.token),
                headers={"Accept": "application/json"},
                params=params,
                json=json_body,
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise JiraApiError(f"Failed to connect to Jira: {e}") from e

        if response.status_code != 200:
            raise JiraApiError(f"Jira API returned status: {response.status_code}")

        return response

    def search_issues(self, jql: str, max_results: int = 50) -> list:
        """Run a JQL search and return every matching issue with its changelog.

        Follows ``nextPageToken`` until Jira stops returning one.
        """
        all_issues = []
        next_page_token = None

        while True:
            body = {
                "jql": jql,
                "maxResults": max_results,
                "fields": SEARCH_FIELDS,
                "expand": "changelog",
            }
            if next_page_token:
                body["nextPageToken"] = next_page_token

            response = self._request("POST", "/rest/api/3/search/jql", json_body=body)
            try:
                data = response.json()
            except ValueError as e:
                raise JiraApiError(f"Invalid JSON from Jira search: {e}") from e

            all_issues.extend(data.get("issues", []))

            next_page_token = data.get("nextPageToken")
            if not next_page_token:
                break

        logger.info(f"JQL search returned {len(all_issues)} issues")
        return all_issues

    def myself(self) -> dict:
        """Fetch the authenticated user, used as a connectivity check."""
        return self._request("GET", "/rest/api/3/myself").json()
