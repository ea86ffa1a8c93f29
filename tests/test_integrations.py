"""Tests for the JIRA, model-service, and Slack API clients."""

from unittest.mock import MagicMock, patch

import httpx
import pytest
from slack_sdk.errors import SlackApiError

from integrations.jira import (
    JiraAPIError,
    browse_url,
    fetch_done_issues,
    find_user,
    search_issues,
    transform_issue,
)
from integrations.ollama import ModelServiceError, generate, list_models
from integrations.slack import channel_error_message, post_blocks, validate_channel

ISSUE = {
    "key": "ISSUE-7",
    "fields": {
        "summary": "Add dark mode",
        "description": {"type": "doc", "content": [{"type": "paragraph", "content": [{"type": "text", "text": "Night owls rejoice"}]}]},
        "status": {"name": "Done"},
        "assignee": {"displayName": "Alice Smith"},
        "reporter": {"name": "bob"},
        "issuetype": {"name": "Story"},
        "priority": {"name": "Low"},
        "project": {"key": "ISSUE"},
        "components": [{"name": "UI"}],
        "labels": ["frontend"],
        "timespent": 5400,
        "comment": {"comments": [{"author": {"displayName": f"C{n}"}, "body": f"note {n}"} for n in range(5)]},
    },
}


# ---------------------------------------------------------------------------
# JIRA
# ---------------------------------------------------------------------------

class TestJira:
    def test_browse_url(self):
        assert browse_url("ISSUE-7") == "https://example.atlassian.net/browse/ISSUE-7"

    def test_transform_issue(self):
        issue = transform_issue(ISSUE)
        assert issue["key"] == "ISSUE-7"
        assert issue["description"] == "Night owls rejoice"
        assert issue["assignee"] == "Alice Smith"
        assert issue["reporter"] == "bob"
        assert issue["components"] == ["UI"]
        assert issue["hours_spent"] == 1.5
        assert [c["author"] for c in issue["comments"]] == ["C2", "C3", "C4"]
        assert issue["url"].endswith("/browse/ISSUE-7")

    def test_find_user_exact_match(self):
        users = [{"name": "alice2", "emailAddress": "a2@example.com"}, {"name": "Alice", "accountId": "acc-alice"}]
        with patch("integrations.jira.httpx.get", return_value=httpx.Response(200, json=users)) as get:
            assert find_user("alice") == users[1]
        assert get.call_args.args[0] == "https://example.atlassian.net/rest/api/2/user/search"

    def test_find_user_no_match(self):
        with patch("integrations.jira.httpx.get", return_value=httpx.Response(200, json=[{"name": "alicia"}])):
            assert find_user("alice") is None

    def test_search_error_status(self):
        with patch("integrations.jira.httpx.get", return_value=httpx.Response(401, text="nope")):
            with pytest.raises(JiraAPIError) as exc:
                search_issues("project = ISSUE")
        assert exc.value.status_code == 401

    def test_transport_error(self):
        with patch("integrations.jira.httpx.get", side_effect=httpx.ConnectError("refused")):
            with pytest.raises(JiraAPIError) as exc:
                search_issues("project = ISSUE")
        assert exc.value.status_code == 0

    def test_fetch_done_issues_for_assignee(self):
        response = httpx.Response(200, json={"issues": [ISSUE]})
        with patch("integrations.jira.httpx.get", return_value=response) as get:
            issues = fetch_done_issues(3, assignee='al"ice')
        params = get.call_args.kwargs["params"]
        assert params["jql"] == 'assignee = "al\\"ice" AND status = "Done" ORDER BY resolved DESC'
        assert params["maxResults"] == 3
        assert [i["key"] for i in issues] == ["ISSUE-7"]

    def test_fetch_done_issues_for_api_user(self):
        with patch("integrations.jira.httpx.get", return_value=httpx.Response(200, json={"issues": []})) as get:
            assert fetch_done_issues() == []
        assert "currentUser()" in get.call_args.kwargs["params"]["jql"]


# ---------------------------------------------------------------------------
# Model service
# ---------------------------------------------------------------------------

class TestOllama:
    def test_generate(self, settings):
        settings.OLLAMA_API_KEY = "secret"
        response = httpx.Response(200, json={"response": "  ⚔️ A tale!  "})
        with patch("integrations.ollama.httpx.post", return_value=response) as post:
            assert generate("prompt", model="bard") == "⚔️ A tale!"
        kwargs = post.call_args.kwargs
        assert post.call_args.args[0] == "http://ollama.test/api/generate"
        assert kwargs["json"]["model"] == "bard"
        assert kwargs["json"]["stream"] is False
        assert kwargs["json"]["options"]["temperature"] == 0.8
        assert kwargs["headers"]["X-API-Key"] == "secret"

    def test_generate_error_status(self):
        with patch("integrations.ollama.httpx.post", return_value=httpx.Response(500, text="oom")):
            with pytest.raises(ModelServiceError) as exc:
                generate("prompt")
        assert exc.value.status_code == 500

    def test_generate_empty(self):
        with patch("integrations.ollama.httpx.post", return_value=httpx.Response(200, json={"response": "  "})):
            with pytest.raises(ModelServiceError):
                generate("prompt")

    def test_generate_transport_error(self):
        with patch("integrations.ollama.httpx.post", side_effect=httpx.ReadTimeout("slow")):
            with pytest.raises(ModelServiceError) as exc:
                generate("prompt")
        assert exc.value.status_code == 0

    def test_list_models(self):
        body = {"models": [{"name": "bard:latest"}, {"name": "mistral:7b"}]}
        with patch("integrations.ollama.httpx.get", return_value=httpx.Response(200, json=body)):
            assert list_models() == ["bard:latest", "mistral:7b"]


# ---------------------------------------------------------------------------
# Slack
# ---------------------------------------------------------------------------

class TestSlack:
    def test_post_blocks_returns_ts(self, slack_client):
        assert post_blocks("C1", "hi", [{"type": "divider"}]) == "1700000000.000100"
        slack_client.chat_postMessage.assert_called_once_with(channel="C1", text="hi", blocks=[{"type": "divider"}])

    def test_validate_channel_ok(self):
        client = MagicMock()
        client.conversations_info.return_value = {"channel": {"id": "C1", "name": "quests", "is_private": True}}
        client.conversations_members.return_value = {"members": ["U_BOT", "U_ALICE"]}
        client.auth_test.return_value = {"user_id": "U_BOT"}
        check = validate_channel("C1", client=client)
        assert check.is_valid
        assert check.bot_is_member
        assert check.name == "quests"
        assert check.is_private

    def test_validate_channel_bot_missing(self):
        client = MagicMock()
        client.conversations_info.return_value = {"channel": {"id": "C1", "name": "quests"}}
        client.conversations_members.return_value = {"members": ["U_ALICE"]}
        client.auth_test.return_value = {"user_id": "U_BOT"}
        check = validate_channel("C1", client=client)
        assert check.is_valid
        assert not check.bot_is_member

    def test_validate_channel_not_found(self):
        client = MagicMock()
        client.conversations_info.side_effect = SlackApiError("failed", {"ok": False, "error": "channel_not_found"})
        check = validate_channel("C404", client=client)
        assert not check.is_valid
        assert check.error == "channel_not_found"
        assert check.message == channel_error_message("channel_not_found")

    def test_unknown_error_message(self):
        assert channel_error_message("ratelimited") == "Channel validation failed: ratelimited"
