"""
Calls to InsForge resource APIs with the user's access token (Bearer). No refresh: an expired token
just surfaces whatever the resource server answers.
"""
import logging
from typing import Any
from urllib.parse import quote

import httpx

from insforge_client.errors import Unauthenticated, UpstreamUnavailable

logger = logging.getLogger(__name__)

ORGANIZATIONS_PATH = "/organizations/v1"


def fetch_resource(http: httpx.Client, path: str, access_token: str | None) -> httpx.Response:
    """GET {INSFORGE_URL}{path} as the user. Any upstream status is returned as-is for the caller to pass through."""
    if not access_token:
        raise Unauthenticated()
    try:
        return http.get(path, headers={"Authorization": f"Bearer {access_token}"})
    except httpx.RequestError as e:
        logger.error("Resource call %s failed: %s", path, type(e).__name__)
        raise UpstreamUnavailable("Failed to fetch resource") from e


def _get_json(http: httpx.Client, path: str, access_token: str) -> dict[str, Any] | None:
    """Best effort: parsed JSON object on 2xx, else None (logged)."""
    try:
        r = fetch_resource(http, path, access_token)
    except UpstreamUnavailable:
        return None
    if not r.is_success:
        logger.info("Resource call %s returned %s", path, r.status_code)
        return None
    try:
        data = r.json()
    except ValueError:
        logger.info("Resource call %s returned non-JSON body", path)
        return None
    return data if isinstance(data, dict) else None


def _path_id(item: dict[str, Any]) -> str | None:
    """Upstream id as a single escaped path segment; None when missing."""
    value = item.get("id")
    if value is None or value == "":
        return None
    return quote(str(value), safe="")


def list_organizations(http: httpx.Client, access_token: str) -> list[dict[str, Any]]:
    """
    Organizations, each with its projects, each project with its access API key when available.
    For the home page: every failure is absorbed and just leaves that part out.
    """
    data = _get_json(http, ORGANIZATIONS_PATH, access_token)
    if data is None:
        return []
    organizations = [org for org in data.get("organizations") or [] if isinstance(org, dict)]
    for org in organizations:
        org["projects"] = []
        org_id = _path_id(org)
        if org_id is None:
            continue
        projects_data = _get_json(http, f"{ORGANIZATIONS_PATH}/{org_id}/projects", access_token)
        projects = (projects_data or {}).get("projects") or []
        org["projects"] = [p for p in projects if isinstance(p, dict)]
        for project in org["projects"]:
            project_id = _path_id(project)
            if project_id is None:
                continue
            key_data = _get_json(http, f"/projects/v1/{project_id}/access-api-key", access_token)
            if key_data and key_data.get("access_api_key"):
                project["access_api_key"] = key_data["access_api_key"]
    return organizations
