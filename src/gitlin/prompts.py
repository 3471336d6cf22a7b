from __future__ import annotations

from gitlin.extraction_adapter import ExtractionRequest


def _context_lines(request: ExtractionRequest) -> str:
    thread = request.thread
    lines = [f"Repository: {thread.full_name}"]
    if thread.kind == "pull":
        lines.append(f"Pull Request: #{thread.number}")
    else:
        lines.append(f"Issue: #{thread.number}")
    pull_request = request.pull_request
    if pull_request is not None:
        if pull_request.title:
            lines.append(f"PR Title: {pull_request.title}")
        if pull_request.body.strip():
            lines.append(f"PR Description:\n{pull_request.body.strip()}")
    return "\n".join(lines)


def _label_lines(available_labels: tuple[str, ...]) -> str:
    if not available_labels:
        return ""
    return (
        "\n\nAvailable Linear labels:\n"
        f"{', '.join(available_labels)}\n"
        "Use these labels when applicable. You may suggest labels not in this list "
        "if they are more appropriate."
    )


def build_extraction_prompt(request: ExtractionRequest) -> str:
    return f"""
You are an engineering project manager. Analyze the GitHub discussion below and
extract the actionable items that should become Linear issues.

{_context_lines(request)}

Discussion to analyze:
{request.discussion_text}{_label_lines(request.available_labels)}

Task:
For each actionable item provide:
1. title: concise and starting with a verb (e.g. "Add error boundaries to IDE panels").
2. description: why it needs doing, what should be done, and any technical constraints.
3. priority (be conservative, most items are medium or low):
   - "urgent": production down, actively exploited vulnerability, data loss risk, or blocking all work.
   - "high": direct user impact, critical non-blocking bugs, features explicitly marked high priority.
   - "medium": default for bugs without user impact, refactoring, technical debt, performance.
   - "low": nice-to-have enhancements, future ideas, cosmetic changes.
4. effort: "small" (< 1 day), "medium" (1-3 days), or "large" (> 3 days); null when unclear.
5. labels: relevant tags such as ["security", "refactor", "bug", "enhancement", "technical-debt"].
6. assignee: an email or name only when the discussion names one, otherwise null.
7. dependencies: 0-based indices of earlier items in your list that must be completed first.

Rules:
- Only extract items that are clearly actionable, not vague ideas.
- Combine related sub-tasks into one item unless they are truly independent.
- Treat "follow-up", "TODO", and "should" as actionable.
- Ignore items already completed or in progress.
- Order items so every dependency index points to an earlier item.
- Priority hints: "Security" is high, "Enhancement" is low, "consider" or "might want to" is low,
  bug fixes, refactors, and added tests are medium.

Response format:
- Return JSON only, matching the provided schema: {{"items": [...]}}.
- Return {{"items": []}} when there are no actionable items.
""".strip()
