from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


ThreadKind = Literal["pull", "issue"]
CommentOrigin = Literal["general", "located"]
Priority = Literal["urgent", "high", "medium", "low"]
Effort = Literal["small", "medium", "large"]
ReactionKind = Literal["+1", "-1", "laugh", "confused", "heart", "hooray", "rocket", "eyes"]


@dataclass(frozen=True)
class ThreadRef:
    owner: str
    repo: str
    number: int
    kind: ThreadKind = "pull"

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def html_url(self) -> str:
        segment = "pull" if self.kind == "pull" else "issues"
        return f"https://github.com/{self.owner}/{self.repo}/{segment}/{self.number}"


@dataclass(frozen=True)
class Comment:
    comment_id: int
    body: str
    origin: CommentOrigin
    path: str | None = None
    line: int | None = None


@dataclass(frozen=True)
class PullRequestSnapshot:
    number: int
    title: str
    body: str


@dataclass(frozen=True)
class PullRequestReviewComment:
    comment_id: int
    body: str
    path: str
    line: int | None
    in_reply_to_id: int | None


@dataclass(frozen=True)
class PullRequestIssueComment:
    comment_id: int
    body: str


@dataclass(frozen=True)
class CandidateItem:
    index: int
    title: str
    description: str
    priority: str
    effort: str | None = None
    labels: tuple[str, ...] = ()
    assignee: str | None = None
    dependencies: tuple[int, ...] = ()


@dataclass(frozen=True)
class TrackedItem:
    external_id: str
    url: str
    title: str


@dataclass(frozen=True)
class SyncResult:
    success: bool
    issues: tuple[TrackedItem, ...]
    errors: tuple[str, ...]


@dataclass(frozen=True)
class TrackerIssue:
    id: str
    identifier: str
    url: str
    title: str
    description: str


@dataclass(frozen=True)
class TrackerLabel:
    id: str
    name: str


@dataclass(frozen=True)
class TrackerUser:
    id: str
    email: str | None
    name: str | None
    display_name: str | None


@dataclass(frozen=True)
class IssueDraft:
    team_id: str
    title: str
    description: str
    priority: int
    label_ids: tuple[str, ...] = ()
    assignee_id: str | None = None


@dataclass(frozen=True)
class IssueCreatePayload:
    success: bool
    issue: TrackerIssue | None
