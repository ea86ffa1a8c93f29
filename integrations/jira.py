"""JIRA REST API client for user validation and issue search."""

from __future__ import annotations

import logging

import httpx
from django.conf import settings

from rpg.events import extract_description

logger = logging.getLogger("integrations.jira")

DONE_JQL = 'assignee = currentUser() AND status = "Done" ORDER BY resolved DESC'
ASSIGNEE_DONE_JQL = 'assignee = "{assignee}" AND status = "Done" ORDER BY resolved DESC'

SEARCH_FIELDS = [
    "summary",
    "description",
    "status",
    "assignee",
    "reporter",
    "created",
    "resolutiondate",
    "issuetype",
    "priority",
    "project",
    "components",
    "labels",
    "comment",
    "timeoriginalestimate",
    "timespent",
]


class JiraAPIError(Exception):
    """Raised when the JIRA API returns a non-2xx response."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"JIRA API error {status_code}: {detail}")


def _auth() -> tuple[str, str]:
    return (settings.JIRA_API_EMAIL, settings.JIRA_API_TOKEN)


def _url(path: str) -> str:
    return f"{settings.JIRA_BASE_URL.rstrip('/')}{path}"


def _get(path: str, params: dict) -> httpx.Response:
    try:
        return httpx.get(
            _url(path),
            params=params,
            auth=_auth(),
            headers={"Accept": "application/json"},
            timeout=settings.HTTP_TIMEOUT,
        )
    except httpx.HTTPError as exc:
        raise JiraAPIError(0, str(exc)) from exc


def browse_url(issue_key: str) -> str:
    """Return the web link for *issue_key*."""
    return _url(f"/browse/{issue_key}")


def search_users(query: str) -> list[dict]:
    """Search JIRA users by username, name, or email.

    Args:
        query: The text to search for.

    Returns:
        The list of user dicts returned by ``/rest/api/2/user/search``.

    Raises:
        JiraAPIError: On a non-200 response.
    """
    response = _get("/rest/api/2/user/search", {"query": query, "username": query})
    if response.status_code != 200:
        raise JiraAPIError(response.status_code, response.text)
    return response.json()


def find_user(username: str) -> dict | None:
    """Return the JIRA user whose name, key, or email equals *username*."""
    lowered = username.lower()
    for user in search_users(username):
        candidates = (user.get("name"), user.get("key"), user.get("emailAddress"), user.get("accountId"))
        if any(c and c.lower() == lowered for c in candidates):
            return user
    return None


def search_issues(jql: str, max_results: int = 10) -> list[dict]:
    """Run a JQL search and return the raw issue dicts.

    Raises:
        JiraAPIError: On a non-200 response.
    """
    response = _get(
        "/rest/api/2/search",
        {
            "jql": jql,
            "maxResults": max_results,
            "fields": ",".join(SEARCH_FIELDS),
        },
    )
    if response.status_code != 200:
        raise JiraAPIError(response.status_code, response.text)
    return response.json().get("issues", [])


def fetch_done_issues(limit: int = 5, assignee: str | None = None) -> list[dict]:
    """Return the most recently resolved issues, transformed.

    Without *assignee* the search covers the API user itself.
    """
    jql = DONE_JQL
    if assignee:
        escaped = assignee.replace("\\", "\\\\").replace('"', '\\"')
        jql = ASSIGNEE_DONE_JQL.format(assignee=escaped)
    return [transform_issue(issue) for issue in search_issues(jql, max_results=limit)]


def _display(user) -> str:
    if isinstance(user, dict):
        return user.get("displayName") or user.get("name") or "Unknown"
    return "Unknown"


def transform_issue(issue: dict) -> dict:
    """Flatten a JIRA issue into the fields the story recall needs."""
    fields = issue.get("fields") or {}
    comments = (fields.get("comment") or {}).get("comments") or []
    time_spent = fields.get("timespent")
    return {
        "key": issue.get("key", ""),
        "summary": fields.get("summary") or "",
        "description": extract_description(fields.get("description")),
        "status": (fields.get("status") or {}).get("name", ""),
        "assignee": _display(fields.get("assignee")),
        "reporter": _display(fields.get("reporter")),
        "created": fields.get("created"),
        "resolved": fields.get("resolutiondate"),
        "issue_type": (fields.get("issuetype") or {}).get("name", "Task"),
        "priority": (fields.get("priority") or {}).get("name", "Medium"),
        "project": (fields.get("project") or {}).get("key", ""),
        "components": [c.get("name") for c in fields.get("components") or [] if c.get("name")],
        "labels": list(fields.get("labels") or []),
        "comments": [
            {"author": _display(c.get("author")), "body": extract_description(c.get("body"))}
            for c in comments[-3:]
        ],
        "hours_spent": round(time_spent / 3600, 1) if time_spent else None,
        "url": browse_url(issue.get("key", "")),
    }
