from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
import logging
from typing import Final

from gitlin.assignee_resolver import AssigneeResolver
from gitlin.errors import ItemCreationError
from gitlin.label_resolver import LabelResolver
from gitlin.linear_gateway import LinearGateway
from gitlin.markers import render_thread_markers
from gitlin.models import (
    CandidateItem,
    Comment,
    IssueDraft,
    SyncResult,
    ThreadRef,
    TrackedItem,
)
from gitlin.observability import log_event


LOGGER = logging.getLogger("gitlin.issue_sync")

PRIORITY_URGENT: Final[int] = 0
PRIORITY_HIGH: Final[int] = 1
PRIORITY_MEDIUM: Final[int] = 2
PRIORITY_LOW: Final[int] = 3
# Linear reserves this ordinal for "no priority"; extracted items never use it.
NO_PRIORITY: Final[int] = 4

_PRIORITY_ORDINALS: Final[dict[str, int]] = {
    "urgent": PRIORITY_URGENT,
    "high": PRIORITY_HIGH,
    "medium": PRIORITY_MEDIUM,
    "low": PRIORITY_LOW,
}


def priority_ordinal(priority: str | None) -> int:
    if priority is None:
        return PRIORITY_MEDIUM
    return _PRIORITY_ORDINALS.get(priority.strip().lower(), PRIORITY_MEDIUM)


def build_issue_description(
    item: CandidateItem,
    *,
    thread: ThreadRef | None,
    comment_ids: Iterable[int],
    created_ids: Mapping[int, str],
) -> str:
    """Render the persisted description for one candidate item.

    Markers cover every comment merged into this run, not just the ones this
    item came from, since a single item may summarize several comments.
    Dependency indices without a created issue (failed, forward, or out of
    range) are left out of the note.
    """
    parts = [item.description.strip()]

    if thread is not None:
        label = "Related PR" if thread.kind == "pull" else "Related issue"
        parts.append(f"\n\n---\n\n**{label}:** {thread.html_url}")
        if thread.kind == "pull":
            parts.append("\n" + render_thread_markers(thread, comment_ids))

    if item.effort:
        parts.append(f"\n**Estimated Effort:** {item.effort}")

    resolved = [created_ids[index] for index in item.dependencies if index in created_ids]
    if resolved:
        parts.append(f"\n\n**Depends on:** {', '.join(dict.fromkeys(resolved))}")

    return "".join(parts)


class IssueCreator:
    def __init__(
        self,
        tracker: LinearGateway,
        *,
        team_id: str,
        labels: LabelResolver,
        assignees: AssigneeResolver,
    ) -> None:
        self._tracker = tracker
        self._team_id = team_id
        self._labels = labels
        self._assignees = assignees

    def create_batch(
        self,
        items: Sequence[CandidateItem],
        thread: ThreadRef | None,
        comments: Sequence[Comment],
    ) -> SyncResult:
        comment_ids = tuple(comment.comment_id for comment in comments)
        # batch index -> Linear identifier, only for issues created in this run.
        created_ids: dict[int, str] = {}
        issues: list[TrackedItem] = []
        errors: list[str] = []

        for item in items:
            try:
                tracked = self._create_one(
                    item,
                    thread=thread,
                    comment_ids=comment_ids,
                    created_ids=created_ids,
                )
            except Exception as exc:  # noqa: BLE001
                message = f'Failed to create issue "{item.title}": {exc}'
                errors.append(message)
                log_event(
                    LOGGER,
                    "linear_issue_create_failed",
                    index=item.index,
                    title=item.title,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                continue
            issues.append(tracked)
            created_ids[item.index] = tracked.external_id

        result = SyncResult(success=not errors, issues=tuple(issues), errors=tuple(errors))
        log_event(
            LOGGER,
            "issue_batch_finished",
            item_count=len(items),
            created_count=len(result.issues),
            error_count=len(result.errors),
        )
        return result

    def _create_one(
        self,
        item: CandidateItem,
        *,
        thread: ThreadRef | None,
        comment_ids: Sequence[int],
        created_ids: Mapping[int, str],
    ) -> TrackedItem:
        description = build_issue_description(
            item, thread=thread, comment_ids=comment_ids, created_ids=created_ids
        )
        draft = IssueDraft(
            team_id=self._team_id,
            title=item.title,
            description=description,
            priority=priority_ordinal(item.priority),
            label_ids=self._labels.resolve(item.labels),
            assignee_id=self._assignees.resolve(item.assignee),
        )
        payload = self._tracker.create_issue(draft)
        if not payload.success or payload.issue is None:
            raise ItemCreationError("Linear did not report a created issue")

        created = payload.issue
        log_event(
            LOGGER,
            "linear_issue_created",
            identifier=created.identifier,
            priority=draft.priority,
            label_count=len(draft.label_ids),
            assigned=draft.assignee_id is not None,
        )
        return TrackedItem(
            external_id=created.identifier,
            url=created.url,
            title=created.title or item.title,
        )
