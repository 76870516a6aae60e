"""Datasource settings: where to reach Jira and with which credentials."""

import json
from dataclasses import dataclass
from typing import Mapping, Optional

from services.errors import SettingsError


@dataclass
class DatasourceSettings:
    url: str = ""
    username: str = ""
    token: str = ""

    @property
    def complete(self) -> bool:
        return all([self.url, self.username, self.token])


def load_settings(json_data, secure_json_data: Optional[Mapping] = None) -> DatasourceSettings:
    """Build settings from public JSON data and decrypted secrets.

    ``json_data`` may be a dict or its raw JSON text (``url``, ``username``);
    the API token only ever comes from ``secure_json_data``.
    """
    if isinstance(json_data, (str, bytes)):
        try:
            json_data = json.loads(json_data) if json_data else {}
        except json.JSONDecodeError as e:
            raise SettingsError(f"Invalid datasource JSON: {e}") from e
    if json_data is None:
        json_data = {}
    if not isinstance(json_data, dict):
        raise SettingsError("Datasource JSON must be an object")

    secrets = secure_json_data or {}
    return DatasourceSettings(
        url=str(json_data.get("url") or "").rstrip("/"),
        username=str(json_data.get("username") or ""),
        token=str(secrets.get("token") or ""),
    )


def settings_from_request(headers: Mapping, defaults: Optional[DatasourceSettings] = None) -> DatasourceSettings:
    """Overlay the X-Jira-* request headers on the configured defaults."""
    defaults = defaults or DatasourceSettings()
    return DatasourceSettings(
        url=(headers.get("X-Jira-Server") or defaults.url).rstrip("/"),
        username=headers.get("X-Jira-Email") or defaults.username,
        token=headers.get("X-Jira-Token") or defaults.token,
    )
