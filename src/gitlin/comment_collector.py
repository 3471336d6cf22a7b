from __future__ import annotations

from collections.abc import Iterable
import logging

from gitlin.github_gateway import GitHubGateway
from gitlin.markers import has_status_marker
from gitlin.models import Comment, ThreadRef
from gitlin.observability import log_event, log_warning


LOGGER = logging.getLogger("gitlin.comment_collector")
COMMENT_SEPARATOR = "\n\n---\n\n"


class CommentCollector:
    """Gathers unresolved discussion from a pull request.

    General comments and inline review comments come from two separate
    retrievals. Review comments are kept only while their owning review thread
    is unresolved, and general comments containing the trigger phrase are the
    invocation itself, so they are dropped.
    """

    def __init__(self, github: GitHubGateway, *, trigger_phrase: str) -> None:
        self._github = github
        self._trigger_phrase = trigger_phrase

    def collect(self, thread: ThreadRef) -> list[Comment]:
        issue_comments = self._github.list_issue_comments(thread.number)
        review_comments = self._github.list_pull_request_review_comments(thread.number)
        resolutions = self._github.list_review_thread_resolutions(thread.number)

        collected: list[Comment] = []
        general_ids: set[int] = set()
        located_ids: set[int] = set()
        skipped_trigger = 0
        skipped_resolved = 0

        for issue_comment in issue_comments:
            if not issue_comment.body.strip() or has_status_marker(issue_comment.body):
                continue
            if self._trigger_phrase in issue_comment.body:
                skipped_trigger += 1
                continue
            if issue_comment.comment_id in general_ids:
                continue
            general_ids.add(issue_comment.comment_id)
            collected.append(
                Comment(
                    comment_id=issue_comment.comment_id,
                    body=issue_comment.body,
                    origin="general",
                )
            )

        for review_comment in review_comments:
            if not review_comment.body.strip():
                continue
            # Replies inherit resolution from the root comment of their thread.
            root_id = review_comment.in_reply_to_id or review_comment.comment_id
            if resolutions.get(root_id, resolutions.get(review_comment.comment_id, False)):
                skipped_resolved += 1
                continue
            if review_comment.comment_id in located_ids:
                continue
            located_ids.add(review_comment.comment_id)
            if review_comment.comment_id in general_ids:
                # Both kinds share one marker namespace, so ids must stay unique per pass.
                log_warning(
                    LOGGER,
                    "comment_id_collision_skipped",
                    repo_full_name=thread.full_name,
                    pr_number=thread.number,
                    comment_id=review_comment.comment_id,
                )
                continue
            collected.append(
                Comment(
                    comment_id=review_comment.comment_id,
                    body=review_comment.body,
                    origin="located",
                    path=review_comment.path or None,
                    line=review_comment.line,
                )
            )

        log_event(
            LOGGER,
            "comments_collected",
            repo_full_name=thread.full_name,
            pr_number=thread.number,
            issue_comment_count=len(issue_comments),
            review_comment_count=len(review_comments),
            collected_count=len(collected),
            skipped_trigger_count=skipped_trigger,
            skipped_resolved_count=skipped_resolved,
        )
        return collected


def render_comment(comment: Comment) -> str:
    if comment.origin != "located":
        return comment.body
    location = comment.path or "<unknown>"
    if comment.line is not None:
        location = f"{location}:{comment.line}"
    return f"[{location}] {comment.body}"


def merge_comment_text(comments: Iterable[Comment]) -> str:
    return COMMENT_SEPARATOR.join(render_comment(comment) for comment in comments)
