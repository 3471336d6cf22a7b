from __future__ import annotations

from collections.abc import Iterable
import logging

from gitlin.errors import TransportError
from gitlin.linear_gateway import LinearGateway
from gitlin.markers import extract_comment_ids, has_thread_marker, thread_marker_text
from gitlin.models import Comment, ThreadRef
from gitlin.observability import FailureObserver, log_event, report_absorbed_failure


LOGGER = logging.getLogger("gitlin.dedup")


class DedupTracker:
    """Finds comments that earlier runs already turned into Linear issues.

    The only record of earlier runs is the set of markers embedded in the
    descriptions of issues gitlin created. A failed lookup reports nothing as
    processed, so new discussion may be duplicated but is never dropped.
    """

    def __init__(
        self,
        tracker: LinearGateway,
        *,
        on_failure: FailureObserver | None = None,
    ) -> None:
        self._tracker = tracker
        self._on_failure = on_failure

    def already_processed(self, thread: ThreadRef) -> frozenset[int]:
        marker = thread_marker_text(thread)
        try:
            existing = self._tracker.query_by_substring(marker)
        except TransportError as exc:
            report_absorbed_failure(
                LOGGER,
                "dedup_lookup",
                exc,
                observer=self._on_failure,
                repo_full_name=thread.full_name,
                pr_number=thread.number,
            )
            return frozenset()

        processed: set[int] = set()
        matched_issue_count = 0
        for issue in existing:
            if not has_thread_marker(issue.description, thread):
                continue
            matched_issue_count += 1
            processed.update(extract_comment_ids(issue.description))

        log_event(
            LOGGER,
            "dedup_lookup_finished",
            repo_full_name=thread.full_name,
            pr_number=thread.number,
            matched_issue_count=matched_issue_count,
            processed_comment_count=len(processed),
        )
        return frozenset(processed)

    def is_fully_processed(self, thread: ThreadRef, comments: Iterable[Comment]) -> bool:
        processed = self.already_processed(thread)
        return all(comment.comment_id in processed for comment in comments)


def filter_new(comments: Iterable[Comment], processed: frozenset[int]) -> list[Comment]:
    return [comment for comment in comments if comment.comment_id not in processed]
