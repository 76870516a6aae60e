"""Flask application factory."""

import json
import os
from flask import Flask
from flask_cors import CORS

from services.errors import SettingsError
from services.settings import DatasourceSettings, load_settings

DATASOURCE_CONFIG_PATH = os.path.join(
    os.path.dirname(__file__), "..", "config", "datasource-config.json"
)


def load_datasource_config(app, config_path=DATASOURCE_CONFIG_PATH):
    """Load default Jira connection settings from the config file.

    The file mirrors the datasource's instance settings:
    ``{"jsonData": {"url": ..., "username": ...}, "secureJsonData": {"token": ...}}``.
    Request headers override whatever is configured here.
    """
    settings = DatasourceSettings()
    app.config["DATASOURCE_SETTINGS_ERROR"] = None

    if os.path.exists(config_path):
        try:
            with open(config_path, "r") as f:
                config = json.load(f)
            if not isinstance(config, dict):
                raise SettingsError("Datasource config must be an object")
            settings = load_settings(
                config.get("jsonData"),
                config.get("secureJsonData"),
            )
            app.logger.info(f"Loaded datasource settings for {settings.url or 'no server'}")
        except (json.JSONDecodeError, IOError, SettingsError) as e:
            app.logger.warning(f"Failed to load datasource config: {e}")
            app.config["DATASOURCE_SETTINGS_ERROR"] = str(e)
    else:
        app.logger.info("No datasource-config.json found, credentials must come from headers")

    app.config["DATASOURCE_SETTINGS"] = settings


def create_app(config_path=DATASOURCE_CONFIG_PATH):
    """Create and configure the Flask application."""
    app = Flask(__name__)

    # Enable CORS for frontend
    CORS(app, resources={
        r"/api/*": {
            "origins": ["http://localhost:3000", "http://127.0.0.1:3000"],
            "methods": ["GET", "POST", "OPTIONS"],
            "allow_headers": [
                "Content-Type",
                "X-Jira-Token", "X-Jira-Email", "X-Jira-Server"
            ]
        }
    })

    # Register blueprints
    from app.api import health, query
    app.register_blueprint(health.bp)
    app.register_blueprint(query.bp)

    load_datasource_config(app, config_path)

    # Liveness endpoint
    @app.route("/health")
    def liveness():
        return {"status": "ok"}

    return app
