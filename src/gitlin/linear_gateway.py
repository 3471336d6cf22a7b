from __future__ import annotations

import logging
from typing import cast

import requests

from gitlin.errors import TransportError
from gitlin.models import (
    IssueCreatePayload,
    IssueDraft,
    TrackerIssue,
    TrackerLabel,
    TrackerUser,
)
from gitlin.observability import log_event


LOGGER = logging.getLogger("gitlin.linear_gateway")
_PAGE_SIZE = 100

_ISSUE_FIELDS = "id identifier url title description"

_ISSUES_BY_DESCRIPTION_QUERY = f"""
query($text: String!, $cursor: String) {{
  issues(first: {_PAGE_SIZE}, after: $cursor, filter: {{ description: {{ contains: $text }} }}) {{
    pageInfo {{ hasNextPage endCursor }}
    nodes {{ {_ISSUE_FIELDS} }}
  }}
}}
""".strip()

_LABELS_QUERY = f"""
query($cursor: String) {{
  issueLabels(first: {_PAGE_SIZE}, after: $cursor) {{
    pageInfo {{ hasNextPage endCursor }}
    nodes {{ id name }}
  }}
}}
""".strip()

_USERS_QUERY = f"""
query($cursor: String) {{
  users(first: {_PAGE_SIZE}, after: $cursor) {{
    pageInfo {{ hasNextPage endCursor }}
    nodes {{ id email name displayName }}
  }}
}}
""".strip()

_CREATE_LABEL_MUTATION = """
mutation($input: IssueLabelCreateInput!) {
  issueLabelCreate(input: $input) {
    success
    issueLabel { id name }
  }
}
""".strip()

_CREATE_ISSUE_MUTATION = f"""
mutation($input: IssueCreateInput!) {{
  issueCreate(input: $input) {{
    success
    issue {{ {_ISSUE_FIELDS} }}
  }}
}}
""".strip()

_TEAM_QUERY = """
query($id: String!) {
  team(id: $id) { id name key }
}
""".strip()


class LinearApiError(TransportError):
    """Linear GraphQL request failed or returned an unexpected response."""


class LinearGateway:
    def __init__(
        self,
        *,
        api_key: str,
        team_id: str,
        api_url: str = "https://api.linear.app/graphql",
        timeout_seconds: int = 30,
        session: requests.Session | None = None,
    ) -> None:
        self._api_key = api_key
        self.team_id = team_id
        self._api_url = api_url
        self._timeout_seconds = timeout_seconds
        self._session = session if session is not None else requests.Session()

    def query_by_substring(self, text: str) -> list[TrackerIssue]:
        nodes = self._paginate(
            _ISSUES_BY_DESCRIPTION_QUERY, root="issues", variables={"text": text}
        )
        issues = [_parse_issue(node) for node in nodes]
        log_event(LOGGER, "linear_read", endpoint="issues_by_description", count=len(issues))
        return issues

    def list_labels(self) -> list[TrackerLabel]:
        labels = [
            TrackerLabel(id=_require_str(node, "id"), name=_require_str(node, "name"))
            for node in self._paginate(_LABELS_QUERY, root="issueLabels")
        ]
        log_event(LOGGER, "linear_read", endpoint="issue_labels", count=len(labels))
        return labels

    def create_label(self, name: str, color: str, team_id: str) -> str:
        data = self._graphql(
            _CREATE_LABEL_MUTATION,
            {"input": {"name": name, "color": color, "teamId": team_id}},
        )
        payload = _as_object_dict(data.get("issueLabelCreate"))
        if payload is None or payload.get("success") is not True:
            raise LinearApiError(f"Linear refused to create label {name!r}")
        label = _as_object_dict(payload.get("issueLabel"))
        if label is None:
            raise LinearApiError(f"Linear label create response missing label for {name!r}")
        label_id = _require_str(label, "id")
        log_event(LOGGER, "linear_label_created", name=name, label_id=label_id)
        return label_id

    def list_users(self) -> list[TrackerUser]:
        users = [
            TrackerUser(
                id=_require_str(node, "id"),
                email=_optional_str(node.get("email")),
                name=_optional_str(node.get("name")),
                display_name=_optional_str(node.get("displayName")),
            )
            for node in self._paginate(_USERS_QUERY, root="users")
        ]
        log_event(LOGGER, "linear_read", endpoint="users", count=len(users))
        return users

    def create_issue(self, draft: IssueDraft) -> IssueCreatePayload:
        issue_input: dict[str, object] = {
            "teamId": draft.team_id,
            "title": draft.title,
            "description": draft.description,
            "priority": draft.priority,
        }
        if draft.label_ids:
            issue_input["labelIds"] = list(draft.label_ids)
        if draft.assignee_id is not None:
            issue_input["assigneeId"] = draft.assignee_id

        data = self._graphql(_CREATE_ISSUE_MUTATION, {"input": issue_input})
        payload = _as_object_dict(data.get("issueCreate"))
        if payload is None:
            raise LinearApiError("Linear issue create response missing issueCreate")
        issue_obj = _as_object_dict(payload.get("issue"))
        return IssueCreatePayload(
            success=payload.get("success") is True,
            issue=_parse_issue(issue_obj) if issue_obj is not None else None,
        )

    def get_team_name(self, team_id: str) -> str:
        data = self._graphql(_TEAM_QUERY, {"id": team_id})
        team = _as_object_dict(data.get("team"))
        if team is None:
            raise LinearApiError(f"Linear team not found: {team_id}")
        return _require_str(team, "name")

    def _paginate(
        self,
        query: str,
        *,
        root: str,
        variables: dict[str, object] | None = None,
    ) -> list[dict[str, object]]:
        nodes: list[dict[str, object]] = []
        cursor: str | None = None
        while True:
            page_variables: dict[str, object] = dict(variables or {})
            page_variables["cursor"] = cursor
            data = self._graphql(query, page_variables)
            connection = _as_object_dict(data.get(root))
            if connection is None:
                raise LinearApiError(f"Linear response missing {root}")
            raw_nodes = connection.get("nodes")
            if not isinstance(raw_nodes, list):
                raise LinearApiError(f"Linear response {root}.nodes must be a list")
            for raw in raw_nodes:
                node = _as_object_dict(raw)
                if node is not None:
                    nodes.append(node)
            page_info = _as_object_dict(connection.get("pageInfo"))
            if page_info is None or page_info.get("hasNextPage") is not True:
                return nodes
            cursor = _optional_str(page_info.get("endCursor"))
            if cursor is None:
                return nodes

    def _graphql(self, query: str, variables: dict[str, object]) -> dict[str, object]:
        # Linear expects the raw personal API key, not a Bearer token.
        headers = {"Authorization": self._api_key, "Content-Type": "application/json"}
        try:
            response = self._session.post(
                self._api_url,
                json={"query": query, "variables": variables},
                headers=headers,
                timeout=self._timeout_seconds,
            )
        except requests.RequestException as exc:
            log_event(LOGGER, "linear_request_failed", error_type=type(exc).__name__)
            raise LinearApiError(f"Linear request failed: {exc}") from exc

        if response.status_code != 200:
            log_event(LOGGER, "linear_request_failed", status_code=response.status_code)
            raise LinearApiError(
                f"Linear API returned {response.status_code}: {response.text[:500]}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise LinearApiError(f"Linear returned invalid JSON: {exc}") from exc

        payload_obj = _as_object_dict(payload)
        if payload_obj is None:
            raise LinearApiError("Linear response must be a JSON object")
        if payload_obj.get("errors"):
            raise LinearApiError(f"Linear GraphQL errors: {payload_obj['errors']}")
        data = _as_object_dict(payload_obj.get("data"))
        if data is None:
            raise LinearApiError("Linear GraphQL response missing data")
        return data


def _parse_issue(node: dict[str, object]) -> TrackerIssue:
    return TrackerIssue(
        id=_require_str(node, "id"),
        identifier=_require_str(node, "identifier"),
        url=_optional_str(node.get("url")) or "",
        title=_optional_str(node.get("title")) or "",
        description=_optional_str(node.get("description")) or "",
    )


def _as_object_dict(value: object) -> dict[str, object] | None:
    if not isinstance(value, dict):
        return None
    if not all(isinstance(key, str) for key in value.keys()):
        return None
    return cast(dict[str, object], value)


def _require_str(node: dict[str, object], key: str) -> str:
    value = node.get(key)
    if not isinstance(value, str) or not value:
        raise LinearApiError(f"Linear response missing string field: {key}")
    return value


def _optional_str(value: object) -> str | None:
    if isinstance(value, str):
        return value
    return None
