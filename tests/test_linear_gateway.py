from __future__ import annotations

import pytest
import requests

from gitlin.linear_gateway import LinearApiError, LinearGateway
from gitlin.models import IssueDraft


class FakeResponse:
    def __init__(self, payload: object, *, status_code: int = 200, text: str = "") -> None:
        self._payload = payload
        self.status_code = status_code
        self.text = text

    def json(self) -> object:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    def __init__(self, responses: list[object]) -> None:
        self.responses = list(responses)
        self.posts: list[dict[str, object]] = []

    def post(self, url: str, **kwargs: object) -> FakeResponse:
        self.posts.append({"url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        assert isinstance(response, FakeResponse)
        return response


def _gateway(session: FakeSession) -> LinearGateway:
    return LinearGateway(
        api_key="lin_api_key",
        team_id="team-1",
        api_url="https://linear.test/graphql",
        timeout_seconds=7,
        session=session,  # type: ignore[arg-type]
    )


def _page(root: str, nodes: list[dict[str, object]], *, cursor: str | None = None) -> FakeResponse:
    return FakeResponse(
        {
            "data": {
                root: {
                    "pageInfo": {"hasNextPage": cursor is not None, "endCursor": cursor},
                    "nodes": nodes,
                }
            }
        }
    )


def test_query_by_substring_paginates_and_sends_auth() -> None:
    issue = {"id": "i1", "identifier": "ENG-1", "url": "u", "title": "t", "description": "d"}
    session = FakeSession(
        [
            _page("issues", [issue], cursor="next"),
            _page("issues", [dict(issue, id="i2", identifier="ENG-2", description=None)]),
        ]
    )

    issues = _gateway(session).query_by_substring("gitlin:pr:o/r/pull/1")

    assert [item.identifier for item in issues] == ["ENG-1", "ENG-2"]
    assert issues[1].description == ""
    first, second = session.posts
    assert first["url"] == "https://linear.test/graphql"
    assert first["headers"] == {
        "Authorization": "lin_api_key",
        "Content-Type": "application/json",
    }
    assert first["timeout"] == 7
    assert first["json"]["variables"] == {"text": "gitlin:pr:o/r/pull/1", "cursor": None}
    assert second["json"]["variables"]["cursor"] == "next"


def test_list_labels_and_users() -> None:
    session = FakeSession(
        [
            _page("issueLabels", [{"id": "l1", "name": "bug"}]),
            _page(
                "users",
                [{"id": "u1", "email": "a@x.io", "name": "Ada", "displayName": None}],
            ),
        ]
    )
    gateway = _gateway(session)

    labels = gateway.list_labels()
    users = gateway.list_users()

    assert [(label.id, label.name) for label in labels] == [("l1", "bug")]
    assert users[0].email == "a@x.io"
    assert users[0].display_name is None


def test_create_label_returns_id_and_rejects_refusal() -> None:
    session = FakeSession(
        [
            FakeResponse(
                {"data": {"issueLabelCreate": {"success": True, "issueLabel": {"id": "l9"}}}}
            ),
            FakeResponse({"data": {"issueLabelCreate": {"success": False}}}),
        ]
    )
    gateway = _gateway(session)

    assert gateway.create_label("gitlin-created", "#7C3AED", "team-1") == "l9"
    assert session.posts[0]["json"]["variables"] == {
        "input": {"name": "gitlin-created", "color": "#7C3AED", "teamId": "team-1"}
    }
    with pytest.raises(LinearApiError, match="refused"):
        gateway.create_label("gitlin-created", "#7C3AED", "team-1")


def test_create_issue_only_sends_optional_fields_when_set() -> None:
    created = {
        "id": "i1",
        "identifier": "ENG-5",
        "url": "https://linear.app/x/ENG-5",
        "title": "Fix",
        "description": "body",
    }
    session = FakeSession(
        [
            FakeResponse({"data": {"issueCreate": {"success": True, "issue": created}}}),
            FakeResponse({"data": {"issueCreate": {"success": False, "issue": None}}}),
        ]
    )
    gateway = _gateway(session)

    payload = gateway.create_issue(
        IssueDraft(
            team_id="team-1",
            title="Fix",
            description="body",
            priority=1,
            label_ids=("l1", "l2"),
            assignee_id="u1",
        )
    )
    refused = gateway.create_issue(
        IssueDraft(team_id="team-1", title="Fix", description="body", priority=2)
    )

    assert payload.success is True
    assert payload.issue is not None
    assert payload.issue.identifier == "ENG-5"
    assert session.posts[0]["json"]["variables"]["input"] == {
        "teamId": "team-1",
        "title": "Fix",
        "description": "body",
        "priority": 1,
        "labelIds": ["l1", "l2"],
        "assigneeId": "u1",
    }
    assert refused.success is False
    assert refused.issue is None
    assert "labelIds" not in session.posts[1]["json"]["variables"]["input"]
    assert "assigneeId" not in session.posts[1]["json"]["variables"]["input"]


def test_get_team_name() -> None:
    session = FakeSession(
        [
            FakeResponse({"data": {"team": {"id": "team-1", "name": "Core", "key": "ENG"}}}),
            FakeResponse({"data": {"team": None}}),
        ]
    )
    gateway = _gateway(session)

    assert gateway.get_team_name("team-1") == "Core"
    with pytest.raises(LinearApiError, match="team not found"):
        gateway.get_team_name("missing")


@pytest.mark.parametrize(
    ("response", "match"),
    [
        (requests.ConnectionError("refused"), "Linear request failed"),
        (FakeResponse({}, status_code=401, text="unauthorized"), "returned 401: unauthorized"),
        (FakeResponse(ValueError("bad json")), "invalid JSON"),
        (FakeResponse([]), "must be a JSON object"),
        (FakeResponse({"errors": [{"message": "nope"}]}), "GraphQL errors"),
        (FakeResponse({"data": None}), "missing data"),
        (FakeResponse({"data": {"issueLabels": None}}), "missing issueLabels"),
    ],
)
def test_transport_failures_raise_linear_api_error(response: object, match: str) -> None:
    with pytest.raises(LinearApiError, match=match):
        _gateway(FakeSession([response])).list_labels()
