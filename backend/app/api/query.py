"""Query API endpoints."""

from flask import Blueprint, current_app, request, jsonify
from services.jira_client import JiraClient
from services.query_metrics import METRIC_TYPES, QueryMetricsService
from services.settings import settings_from_request

bp = Blueprint("query", __name__, url_prefix="/api/query")


def get_jira_settings():
    """Resolve Jira settings from request headers and configured defaults."""
    settings = settings_from_request(
        request.headers, current_app.config.get("DATASOURCE_SETTINGS")
    )
    if not settings.complete:
        return None
    return settings


@bp.route("", methods=["POST"])
def run_queries():
    """Run a batch of metric queries.

    Expects JSON body with:
        - queries: list of query objects, each with refId, jqlQuery, metric,
          startStatus, endStatus, quantile and timeRange {from, to}

    Returns a result per refId: either {"frames": [...]} or
    {"error": "...", "status": code}. A failing query does not fail the batch.
    """
    data = request.get_json(silent=True)

    if not data:
        return jsonify({"error": "Missing request body"}), 400

    queries = data.get("queries") if isinstance(data, dict) else None
    if not isinstance(queries, list):
        return jsonify({"error": "Missing required field: queries"}), 400

    settings = get_jira_settings()
    if not settings:
        return jsonify({"error": "Missing Jira credentials"}), 401

    client = JiraClient(settings.url, settings.username, settings.token)
    service = QueryMetricsService(client)
    results = service.run_queries(queries)

    return jsonify({"results": results})


@bp.route("/metric-types", methods=["GET"])
def get_metric_types():
    """List the metrics a query can ask for."""
    return jsonify({"data": METRIC_TYPES})
