"""Errors raised by the Jira client and the query metrics engine."""


class JiraApiError(Exception):
    """Jira returned a non-success response or could not be reached."""


class SettingsError(Exception):
    """Datasource settings could not be loaded."""


class QueryError(Exception):
    """A single query failed; carries the HTTP-style status for the response."""

    status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class QueryDecodeError(QueryError):
    status = 400


class UnknownMetricError(QueryError):
    status = 400


class UpstreamFetchError(QueryError):
    status = 500
