from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import cast
from urllib.parse import urlencode

from gitlin.errors import TransportError
from gitlin.models import (
    PullRequestIssueComment,
    PullRequestReviewComment,
    PullRequestSnapshot,
    ReactionKind,
)
from gitlin.observability import log_event
from gitlin.shell import run


LOGGER = logging.getLogger("gitlin.github_gateway")
_PAGE_SIZE = 100

_REVIEW_THREADS_QUERY = """
query($owner: String!, $repo: String!, $pr: Int!, $cursor: String) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $pr) {
      reviewThreads(first: 100, after: $cursor) {
        pageInfo { hasNextPage endCursor }
        nodes {
          isResolved
          comments(first: 1) {
            nodes { databaseId }
          }
        }
      }
    }
  }
}
""".strip()


class GitHubApiError(TransportError):
    """GitHub API call failed or returned an unexpected response."""


@dataclass(frozen=True)
class GitHubGateway:
    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def get_pull_request(self, pr_number: int) -> PullRequestSnapshot:
        path = f"/repos/{self.owner}/{self.name}/pulls/{pr_number}"
        payload_obj = _as_object_dict(self._api_json("GET", path))
        if payload_obj is None:
            raise GitHubApiError("Unexpected GitHub response: expected object for pull request")
        snapshot = PullRequestSnapshot(
            number=_as_int(payload_obj.get("number"), field="number"),
            title=_as_string(payload_obj.get("title")),
            body=_as_string(payload_obj.get("body")),
        )
        log_event(LOGGER, "github_read", endpoint="pull_request", pr_number=snapshot.number)
        return snapshot

    def list_issue_comments(self, issue_number: int) -> list[PullRequestIssueComment]:
        comments: list[PullRequestIssueComment] = []
        page = 1
        while True:
            query = urlencode({"per_page": _PAGE_SIZE, "page": page})
            path = f"/repos/{self.owner}/{self.name}/issues/{issue_number}/comments?{query}"
            payload = self._api_json("GET", path)
            if not isinstance(payload, list):
                raise GitHubApiError("Unexpected GitHub response: expected list of issue comments")

            for item in payload:
                item_obj = _as_object_dict(item)
                if item_obj is None:
                    continue
                comments.append(
                    PullRequestIssueComment(
                        comment_id=_as_int(item_obj.get("id"), field="id"),
                        body=_as_string(item_obj.get("body")),
                    )
                )
            if len(payload) < _PAGE_SIZE:
                break
            page += 1
        log_event(
            LOGGER,
            "github_read",
            endpoint="issue_comments",
            issue_number=issue_number,
            count=len(comments),
        )
        return comments

    def list_pull_request_review_comments(self, pr_number: int) -> list[PullRequestReviewComment]:
        comments: list[PullRequestReviewComment] = []
        page = 1
        while True:
            query = urlencode({"per_page": _PAGE_SIZE, "page": page})
            path = f"/repos/{self.owner}/{self.name}/pulls/{pr_number}/comments?{query}"
            payload = self._api_json("GET", path)
            if not isinstance(payload, list):
                raise GitHubApiError("Unexpected GitHub response: expected list of review comments")

            for item in payload:
                item_obj = _as_object_dict(item)
                if item_obj is None:
                    continue
                line = _as_optional_int(item_obj.get("line"))
                if line is None:
                    # Outdated comments lose `line`; keep the original anchor for context.
                    line = _as_optional_int(item_obj.get("original_line"))
                comments.append(
                    PullRequestReviewComment(
                        comment_id=_as_int(item_obj.get("id"), field="id"),
                        body=_as_string(item_obj.get("body")),
                        path=_as_string(item_obj.get("path")),
                        line=line,
                        in_reply_to_id=_as_optional_int(item_obj.get("in_reply_to_id")),
                    )
                )
            if len(payload) < _PAGE_SIZE:
                break
            page += 1
        log_event(
            LOGGER,
            "github_read",
            endpoint="pull_request_review_comments",
            pr_number=pr_number,
            count=len(comments),
        )
        return comments

    def list_review_thread_resolutions(self, pr_number: int) -> dict[int, bool]:
        """Map each review thread's root comment id to whether the thread is resolved.

        Replies are not listed; GitHub points every reply at its root through
        `in_reply_to_id`, so one comment per thread is enough.
        """
        resolutions: dict[int, bool] = {}
        cursor: str | None = None
        thread_count = 0
        while True:
            variables: dict[str, object] = {
                "owner": self.owner,
                "repo": self.name,
                "pr": pr_number,
            }
            if cursor is not None:
                variables["cursor"] = cursor
            data = self._graphql(_REVIEW_THREADS_QUERY, variables)

            repository = _as_object_dict(data.get("repository"))
            pull_request = _as_object_dict(repository.get("pullRequest")) if repository else None
            threads = _as_object_dict(pull_request.get("reviewThreads")) if pull_request else None
            if threads is None:
                raise GitHubApiError("Unexpected GitHub response: missing reviewThreads")

            nodes = threads.get("nodes")
            for node in nodes if isinstance(nodes, list) else []:
                node_obj = _as_object_dict(node)
                if node_obj is None:
                    continue
                thread_count += 1
                is_resolved = node_obj.get("isResolved") is True
                comments_obj = _as_object_dict(node_obj.get("comments"))
                comment_nodes = comments_obj.get("nodes") if comments_obj else None
                for comment in comment_nodes if isinstance(comment_nodes, list) else []:
                    comment_obj = _as_object_dict(comment)
                    if comment_obj is None:
                        continue
                    database_id = _as_optional_int(comment_obj.get("databaseId"))
                    if database_id is not None:
                        resolutions[database_id] = is_resolved

            page_info = _as_object_dict(threads.get("pageInfo"))
            if page_info is None or page_info.get("hasNextPage") is not True:
                break
            cursor = _as_optional_str(page_info.get("endCursor"))
            if cursor is None:
                break

        log_event(
            LOGGER,
            "github_read",
            endpoint="review_threads",
            pr_number=pr_number,
            thread_count=thread_count,
            resolved_count=sum(1 for value in resolutions.values() if value),
        )
        return resolutions

    def post_issue_comment(self, issue_number: int, body: str) -> None:
        path = f"/repos/{self.owner}/{self.name}/issues/{issue_number}/comments"
        try:
            self._api_json("POST", path, payload={"body": body})
        except Exception as exc:  # noqa: BLE001
            log_event(
                LOGGER,
                "github_issue_comment_failed",
                repo_full_name=self.full_name,
                issue_number=issue_number,
                error_type=type(exc).__name__,
            )
            raise
        log_event(LOGGER, "github_issue_comment_posted", issue_number=issue_number)

    def add_issue_comment_reaction(self, comment_id: int, content: ReactionKind) -> None:
        path = f"/repos/{self.owner}/{self.name}/issues/comments/{comment_id}/reactions"
        self._api_json("POST", path, payload={"content": content})
        log_event(LOGGER, "github_reaction_added", comment_id=comment_id, content=content)

    def _graphql(self, query: str, variables: dict[str, object]) -> dict[str, object]:
        cmd = ["gh", "api", "graphql", "-f", f"query={query}"]
        for key in sorted(variables):
            value = variables[key]
            flag = "-F" if isinstance(value, int) and not isinstance(value, bool) else "-f"
            cmd.extend([flag, f"{key}={value}"])
        raw = run(cmd)
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise GitHubApiError(f"GitHub GraphQL returned invalid JSON: {exc}") from exc
        payload_obj = _as_object_dict(payload)
        if payload_obj is None:
            raise GitHubApiError("Unexpected GitHub GraphQL response: expected object")
        if payload_obj.get("errors"):
            raise GitHubApiError(f"GitHub GraphQL errors: {payload_obj['errors']}")
        data = _as_object_dict(payload_obj.get("data"))
        if data is None:
            raise GitHubApiError("GitHub GraphQL response missing data")
        return data

    def _api_json(self, method: str, path: str, payload: dict[str, object] | None = None) -> object:
        method_upper = method.upper()
        if method_upper == "GET":
            raw = run(["gh", "api", "--method", method_upper, "--include", path], check=False)
            try:
                status_code, _headers, body = _parse_http_response(raw)
                if status_code < 200 or status_code >= 300:
                    message = body.strip() or "<empty>"
                    raise RuntimeError(
                        f"GitHub API request failed with status {status_code}: {message}"
                    )
                return json.loads(body)
            except Exception as exc:
                log_event(
                    LOGGER,
                    "github_get_failed",
                    path=path,
                    error_type=type(exc).__name__,
                    error=str(exc),
                    raw_preview=_preview_for_log(raw),
                )
                raise GitHubApiError(f"GitHub GET failed for path {path}: {exc}") from exc

        cmd = ["gh", "api", "--method", method_upper, path]
        stdin_payload: str | None = None
        if payload is not None:
            cmd.extend(["--input", "-"])
            stdin_payload = json.dumps(payload)
        raw = run(cmd, input_text=stdin_payload)
        if not raw.strip():
            return {}
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise GitHubApiError(f"GitHub {method_upper} returned invalid JSON: {exc}") from exc


def _parse_http_response(raw: str) -> tuple[int, dict[str, str], str]:
    normalized = raw.replace("\r\n", "\n")
    lines = normalized.split("\n")

    status_line_index = -1
    for index, line in enumerate(lines):
        if line.startswith("HTTP/"):
            status_line_index = index

    if status_line_index < 0:
        raise RuntimeError("Unexpected GitHub response: missing HTTP status line")

    status_line = lines[status_line_index]
    status_parts = status_line.split(" ", 2)
    if len(status_parts) < 2:
        raise RuntimeError(f"Unexpected GitHub response status line: {status_line!r}")

    try:
        status_code = int(status_parts[1])
    except ValueError as exc:
        raise RuntimeError(f"Unexpected GitHub response status line: {status_line!r}") from exc

    headers: dict[str, str] = {}
    body_start = len(lines)
    for index in range(status_line_index + 1, len(lines)):
        line = lines[index]
        if line == "":
            body_start = index + 1
            break
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        headers[key.strip().lower()] = value.strip()

    body = "\n".join(lines[body_start:])
    return status_code, headers, body


def _preview_for_log(text: str, *, limit: int = 240) -> str:
    compact = text.replace("\n", "\\n").strip()
    if not compact:
        return "<empty>"
    if len(compact) <= limit:
        return compact
    return f"{compact[:limit]}..."


def _as_object_dict(value: object) -> dict[str, object] | None:
    if not isinstance(value, dict):
        return None
    if not all(isinstance(key, str) for key in value.keys()):
        return None
    return cast(dict[str, object], value)


def _as_string(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _as_optional_str(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return str(value)


def _as_int(value: object, *, field: str) -> int:
    if isinstance(value, bool):
        raise GitHubApiError(f"Unexpected GitHub response type for {field}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError as exc:
            raise GitHubApiError(f"Unexpected GitHub response value for {field}: {value}") from exc
    raise GitHubApiError(f"Unexpected GitHub response type for {field}")


def _as_optional_int(value: object) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise GitHubApiError("Unexpected GitHub response type for optional int field")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError as exc:
            raise GitHubApiError(
                f"Unexpected GitHub response value for optional int field: {value}"
            ) from exc
    raise GitHubApiError("Unexpected GitHub response type for optional int field")
