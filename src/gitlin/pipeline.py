from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Literal

from gitlin.comment_collector import CommentCollector, merge_comment_text
from gitlin.dedup import DedupTracker, filter_new
from gitlin.extraction_adapter import ExtractionAdapter, ExtractionRequest
from gitlin.github_gateway import GitHubGateway
from gitlin.issue_sync import IssueCreator
from gitlin.label_resolver import LabelCache
from gitlin.markers import append_status_marker
from gitlin.models import Comment, PullRequestSnapshot, ReactionKind, SyncResult, ThreadRef
from gitlin.observability import FailureObserver, log_event, report_absorbed_failure


LOGGER = logging.getLogger("gitlin.pipeline")

OutcomeKind = Literal["no_comments", "nothing_new", "no_items", "synced"]


@dataclass(frozen=True)
class SyncOutcome:
    kind: OutcomeKind
    message: str
    result: SyncResult | None = None
    collected_count: int = 0
    new_comment_count: int = 0

    @property
    def success(self) -> bool:
        return self.result is None or self.result.success


class SyncPipeline:
    """Runs one trigger end to end: collect, dedup, extract, create.

    Every step is sequential. Extraction is skipped whenever there is no new
    discussion, so repeated triggers on an unchanged thread cost one lookup.
    """

    def __init__(
        self,
        *,
        github: GitHubGateway,
        collector: CommentCollector,
        dedup: DedupTracker,
        extractor: ExtractionAdapter,
        labels: LabelCache,
        creator: IssueCreator,
    ) -> None:
        self._github = github
        self._collector = collector
        self._dedup = dedup
        self._extractor = extractor
        self._labels = labels
        self._creator = creator

    def sync_pull_request(self, thread: ThreadRef) -> SyncOutcome:
        log_event(
            LOGGER,
            "sync_started",
            repo_full_name=thread.full_name,
            pr_number=thread.number,
        )
        comments = self._collector.collect(thread)
        if not comments:
            return self._finish(
                thread,
                SyncOutcome(kind="no_comments", message="No unresolved comments found on this PR."),
            )

        processed = self._dedup.already_processed(thread)
        new_comments = filter_new(comments, processed)
        log_event(
            LOGGER,
            "comments_deduped",
            pr_number=thread.number,
            collected_count=len(comments),
            new_count=len(new_comments),
        )
        if not new_comments:
            return self._finish(
                thread,
                SyncOutcome(
                    kind="nothing_new",
                    message=(
                        f"All {len(comments)} comments have already been processed. "
                        "No new issues to create."
                    ),
                    collected_count=len(comments),
                ),
            )

        pull_request = self._github.get_pull_request(thread.number)
        outcome = self._extract_and_create(
            thread,
            discussion_text=merge_comment_text(new_comments),
            comments=new_comments,
            pull_request=pull_request,
        )
        return self._finish(
            thread,
            SyncOutcome(
                kind=outcome.kind,
                message=outcome.message,
                result=outcome.result,
                collected_count=len(comments),
                new_comment_count=len(new_comments),
            ),
        )

    def sync_issue_comment(self, thread: ThreadRef, comment_body: str) -> SyncOutcome:
        """Issue threads have no review comments; the trigger comment is the discussion."""
        log_event(
            LOGGER,
            "sync_started",
            repo_full_name=thread.full_name,
            issue_number=thread.number,
        )
        if not comment_body.strip():
            return self._finish(
                thread, SyncOutcome(kind="no_comments", message="The comment is empty.")
            )
        outcome = self._extract_and_create(
            thread, discussion_text=comment_body, comments=[], pull_request=None
        )
        return self._finish(thread, outcome)

    def _extract_and_create(
        self,
        thread: ThreadRef,
        *,
        discussion_text: str,
        comments: list[Comment],
        pull_request: PullRequestSnapshot | None,
    ) -> SyncOutcome:
        items = self._extractor.extract(
            ExtractionRequest(
                thread=thread,
                discussion_text=discussion_text,
                available_labels=self._labels.names(),
                pull_request=pull_request,
            )
        )
        if not items:
            return SyncOutcome(
                kind="no_items", message="No actionable items found in the comments."
            )
        result = self._creator.create_batch(items, thread, comments)
        return SyncOutcome(kind="synced", message=format_sync_result(result), result=result)

    def _finish(self, thread: ThreadRef, outcome: SyncOutcome) -> SyncOutcome:
        log_event(
            LOGGER,
            "sync_finished",
            repo_full_name=thread.full_name,
            thread_number=thread.number,
            outcome=outcome.kind,
            success=outcome.success,
            created_count=len(outcome.result.issues) if outcome.result else 0,
            error_count=len(outcome.result.errors) if outcome.result else 0,
        )
        return outcome


def format_sync_result(result: SyncResult) -> str:
    count = len(result.issues)
    lines = [f"✅ Created {count} Linear issue{'' if count == 1 else 's'}:", ""]
    for issue in result.issues:
        lines.append(f"- [{issue.external_id}]({issue.url}) {issue.title}")
    if result.errors:
        lines.extend(["", "⚠️ Errors:"])
        lines.extend(f"- {error}" for error in result.errors)
    return "\n".join(lines)


def format_failure(exc: BaseException) -> str:
    return f"❌ Failed to create Linear issues: {exc}"


class StatusReporter:
    """Reactions and replies on the triggering thread.

    Reactions are best-effort and never raise. Replies propagate errors to the
    caller and carry the status marker so later collections skip them.
    """

    def __init__(
        self,
        github: GitHubGateway,
        *,
        react: bool = True,
        on_failure: FailureObserver | None = None,
    ) -> None:
        self._github = github
        self._react = react
        self._on_failure = on_failure

    def react(self, comment_id: int | None, content: ReactionKind) -> None:
        if comment_id is None or not self._react:
            return
        try:
            self._github.add_issue_comment_reaction(comment_id, content)
        except Exception as exc:  # noqa: BLE001
            report_absorbed_failure(
                LOGGER,
                "reaction",
                exc,
                observer=self._on_failure,
                comment_id=comment_id,
                content=content,
            )

    def reply(self, thread: ThreadRef, message: str) -> None:
        self._github.post_issue_comment(thread.number, append_status_marker(message))
