"""Datasource health check endpoint."""

from flask import Blueprint, current_app, request, jsonify
from services.errors import JiraApiError
from services.jira_client import JiraClient
from services.settings import settings_from_request

bp = Blueprint("health", __name__, url_prefix="/api/health")


def health_result(ok, message):
    """Build the health check response body."""
    return jsonify({"status": "OK" if ok else "ERROR", "message": message})


@bp.route("/datasource", methods=["GET"])
def check_datasource():
    """Check that the configured Jira instance is reachable with the token.

    Always answers 200; the outcome is in the ``status`` field.
    """
    if current_app.config.get("DATASOURCE_SETTINGS_ERROR"):
        return health_result(False, "Unable to load settings")

    settings = settings_from_request(
        request.headers, current_app.config.get("DATASOURCE_SETTINGS")
    )

    if not settings.token:
        return health_result(False, "API Token is missing")

    client = JiraClient(settings.url, settings.username, settings.token)
    try:
        client.myself()
    except JiraApiError as e:
        current_app.logger.warning(f"Health check failed: {e}")
        return health_result(False, f"Jira connection failed: {e}")

    return health_result(True, "Data source is working")
