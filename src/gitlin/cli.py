from __future__ import annotations

import argparse
from dataclasses import dataclass
import logging
import os
from pathlib import Path
from typing import Mapping

from gitlin.assignee_resolver import AssigneeResolver
from gitlin.codex_extractor import CodexExtractionAdapter
from gitlin.comment_collector import CommentCollector
from gitlin.config import AppConfig, linear_api_key, load_config, resolve_config_path
from gitlin.dedup import DedupTracker
from gitlin.github_gateway import GitHubGateway
from gitlin.issue_sync import IssueCreator
from gitlin.label_resolver import LabelCache, LabelResolver
from gitlin.linear_gateway import LinearGateway
from gitlin.models import ThreadRef
from gitlin.observability import FailureObserver, configure_logging, log_event, log_warning
from gitlin.pipeline import StatusReporter, SyncPipeline, format_failure


LOGGER = logging.getLogger("gitlin.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gitlin")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser(
        "sync", help="Turn review discussion on a pull request or issue into Linear issues"
    )
    sync_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to gitlin.toml (defaults to ./gitlin.toml when present)",
    )
    sync_parser.add_argument(
        "--repo", type=str, help="owner/name (defaults to $GITHUB_REPOSITORY)"
    )
    target = sync_parser.add_mutually_exclusive_group()
    target.add_argument("--pr", type=int, help="Pull request number (defaults to $PR_NUMBER)")
    target.add_argument("--issue", type=int, help="Issue number (defaults to $ISSUE_NUMBER)")
    sync_parser.add_argument(
        "--comment-id",
        type=int,
        help="Triggering comment id used for reactions (defaults to $COMMENT_ID)",
    )
    sync_parser.add_argument(
        "--comment-body",
        type=str,
        help="Triggering comment body, used as the discussion in issue mode "
        "(defaults to $COMMENT_BODY)",
    )
    sync_parser.add_argument(
        "--no-reply",
        action="store_true",
        help="Do not post a status reply on the thread",
    )
    _add_verbose_argument(sync_parser)

    verify_parser = subparsers.add_parser("verify", help="Check Linear credentials and team")
    verify_parser.add_argument("--config", type=Path, default=None)
    _add_verbose_argument(verify_parser)

    return parser


def _add_verbose_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        nargs="?",
        const="high",
        default=None,
        choices=["low", "high"],
        help="Enable runtime logging to stderr (-v is high; -v low keeps only key events)",
    )


def main() -> None:
    args = build_parser().parse_args()
    config = load_config(resolve_config_path(getattr(args, "config", None)))
    configure_logging(getattr(args, "verbose", None), log_dir=config.log_dir)

    if args.command == "sync":
        exit_code = _cmd_sync(config, args)
    elif args.command == "verify":
        exit_code = _cmd_verify(config)
    else:
        raise RuntimeError(f"Unknown command: {args.command}")

    if exit_code != 0:
        raise SystemExit(exit_code)


@dataclass(frozen=True)
class SyncRequest:
    thread: ThreadRef
    comment_id: int | None
    comment_body: str
    post_reply: bool


def _cmd_sync(
    config: AppConfig,
    args: argparse.Namespace,
    *,
    environ: Mapping[str, str] | None = None,
) -> int:
    env = os.environ if environ is None else environ
    request = _resolve_sync_request(config, args, env)
    absorbed: list[str] = []

    def on_failure(operation: str, exc: BaseException) -> None:
        absorbed.append(f"{operation}: {exc}")

    github = GitHubGateway(request.thread.owner, request.thread.repo)
    pipeline = _build_pipeline(
        config, github, api_key=linear_api_key(config.linear, environ=env), on_failure=on_failure
    )
    reporter = StatusReporter(github, react=config.github.react, on_failure=on_failure)
    exit_code = _run_sync(pipeline, reporter, request)
    if absorbed:
        log_warning(LOGGER, "absorbed_failures", count=len(absorbed), failures=absorbed)
    return exit_code


def _run_sync(pipeline: SyncPipeline, reporter: StatusReporter, request: SyncRequest) -> int:
    thread = request.thread
    reporter.react(request.comment_id, "eyes")
    try:
        if thread.kind == "pull":
            outcome = pipeline.sync_pull_request(thread)
        else:
            outcome = pipeline.sync_issue_comment(thread, request.comment_body)
    except Exception as exc:  # noqa: BLE001
        log_warning(
            LOGGER,
            "sync_failed",
            repo_full_name=thread.full_name,
            thread_number=thread.number,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        reporter.react(request.comment_id, "confused")
        if request.post_reply:
            reporter.reply(thread, format_failure(exc))
        return 1

    reporter.react(request.comment_id, "rocket")
    if request.post_reply:
        reporter.reply(thread, outcome.message)
    print(outcome.message)
    return 0 if outcome.success else 1


def _cmd_verify(config: AppConfig, *, environ: Mapping[str, str] | None = None) -> int:
    linear = LinearGateway(
        api_key=linear_api_key(config.linear, environ=environ),
        team_id=config.linear.team_id,
        api_url=config.linear.api_url,
        timeout_seconds=config.linear.request_timeout_seconds,
    )
    team_name = linear.get_team_name(config.linear.team_id)
    log_event(LOGGER, "verify_finished", team_id=config.linear.team_id)
    print(f"Linear team: {team_name} ({config.linear.team_id})")
    return 0


def _build_pipeline(
    config: AppConfig,
    github: GitHubGateway,
    *,
    api_key: str,
    on_failure: FailureObserver | None,
) -> SyncPipeline:
    linear = LinearGateway(
        api_key=api_key,
        team_id=config.linear.team_id,
        api_url=config.linear.api_url,
        timeout_seconds=config.linear.request_timeout_seconds,
    )
    # One cache per run; the resolver and the prompt share it.
    labels = LabelCache(linear)
    creator = IssueCreator(
        linear,
        team_id=config.linear.team_id,
        labels=LabelResolver(
            linear,
            labels,
            team_id=config.linear.team_id,
            provenance_label=config.linear.provenance_label,
            provenance_color=config.linear.provenance_label_color,
            label_mapping=config.linear.label_mapping_dict(),
            on_failure=on_failure,
        ),
        assignees=AssigneeResolver(linear, on_failure=on_failure),
    )
    return SyncPipeline(
        github=github,
        collector=CommentCollector(github, trigger_phrase=config.github.trigger_phrase),
        dedup=DedupTracker(linear, on_failure=on_failure),
        extractor=CodexExtractionAdapter(config.codex),
        labels=labels,
        creator=creator,
    )


def _resolve_sync_request(
    config: AppConfig, args: argparse.Namespace, environ: Mapping[str, str]
) -> SyncRequest:
    owner, name = _parse_repo(args.repo or environ.get("GITHUB_REPOSITORY", ""))

    if args.pr is not None:
        thread = ThreadRef(owner=owner, repo=name, number=args.pr, kind="pull")
    elif args.issue is not None:
        thread = ThreadRef(owner=owner, repo=name, number=args.issue, kind="issue")
    elif environ.get("PR_NUMBER", "").strip():
        thread = ThreadRef(
            owner=owner, repo=name, number=_env_int(environ, "PR_NUMBER"), kind="pull"
        )
    elif environ.get("ISSUE_NUMBER", "").strip():
        thread = ThreadRef(
            owner=owner, repo=name, number=_env_int(environ, "ISSUE_NUMBER"), kind="issue"
        )
    else:
        raise RuntimeError("--pr or --issue is required (or set PR_NUMBER / ISSUE_NUMBER)")

    comment_id = args.comment_id
    if comment_id is None and environ.get("COMMENT_ID", "").strip():
        comment_id = _env_int(environ, "COMMENT_ID")
    comment_body = args.comment_body
    if comment_body is None:
        comment_body = environ.get("COMMENT_BODY", "")

    return SyncRequest(
        thread=thread,
        comment_id=comment_id,
        comment_body=comment_body,
        post_reply=config.github.post_reply and not bool(args.no_reply),
    )


def _parse_repo(raw: str) -> tuple[str, str]:
    owner, sep, name = raw.strip().partition("/")
    if not sep or not owner or not name or "/" in name:
        raise RuntimeError(
            f"Repository must be given as owner/name (--repo or GITHUB_REPOSITORY), got {raw!r}"
        )
    return owner, name


def _env_int(environ: Mapping[str, str], key: str) -> int:
    raw = environ.get(key, "").strip()
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{key} must be an integer, got {raw!r}") from exc
    if value < 1:
        raise RuntimeError(f"{key} must be positive, got {raw!r}")
    return value
