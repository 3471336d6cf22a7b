from __future__ import annotations

from pathlib import Path
import json
import logging
import tempfile

from gitlin.config import CodexConfig
from gitlin.errors import ExtractionValidationError
from gitlin.extraction_adapter import (
    EFFORTS,
    PRIORITIES,
    ExtractionAdapter,
    ExtractionRequest,
    parse_candidate_items,
)
from gitlin.models import CandidateItem
from gitlin.observability import log_event
from gitlin.prompts import build_extraction_prompt
from gitlin.shell import run


_ITEM_SCHEMA: dict[str, object] = {
    "type": "object",
    "additionalProperties": False,
    "required": [
        "title",
        "description",
        "priority",
        "effort",
        "labels",
        "assignee",
        "dependencies",
    ],
    "properties": {
        "title": {"type": "string", "minLength": 1},
        "description": {"type": "string", "minLength": 1},
        "priority": {"type": "string", "enum": list(PRIORITIES)},
        "effort": {"type": ["string", "null"], "enum": [*EFFORTS, None]},
        "labels": {"type": "array", "items": {"type": "string"}},
        "assignee": {"type": ["string", "null"]},
        "dependencies": {"type": "array", "items": {"type": "integer"}},
    },
}

_EXTRACTION_OUTPUT_SCHEMA: dict[str, object] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["items"],
    "properties": {"items": {"type": "array", "items": _ITEM_SCHEMA}},
}


LOGGER = logging.getLogger("gitlin.codex_extractor")


class CodexExtractionAdapter(ExtractionAdapter):
    def __init__(self, config: CodexConfig, *, cwd: Path | None = None) -> None:
        self._config = config
        self._cwd = cwd

    def extract(self, request: ExtractionRequest) -> tuple[CandidateItem, ...]:
        if not self._config.enabled:
            raise RuntimeError("Codex is disabled in config")

        log_event(
            LOGGER,
            "extraction_started",
            repo_full_name=request.thread.full_name,
            thread_number=request.thread.number,
            text_length=len(request.discussion_text),
            label_count=len(request.available_labels),
        )
        prompt = build_extraction_prompt(request)

        with tempfile.TemporaryDirectory(prefix="gitlin_codex_") as tmp:
            tmp_path = Path(tmp)
            schema_path = tmp_path / "schema.json"
            output_path = tmp_path / "last_message.txt"
            schema_path.write_text(json.dumps(_EXTRACTION_OUTPUT_SCHEMA), encoding="utf-8")

            cmd = [
                "codex",
                "exec",
                "--json",
                "--skip-git-repo-check",
                "--output-schema",
                str(schema_path),
                "--output-last-message",
                str(output_path),
                "-",
            ]
            self._append_common_options(cmd)

            run(cmd, cwd=self._cwd, input_text=prompt)

            if not output_path.exists():
                raise ExtractionValidationError("Codex did not write a final message")
            raw = output_path.read_text(encoding="utf-8").strip()

        items = parse_candidate_items(_parse_json_payload(raw))
        log_event(
            LOGGER,
            "extraction_finished",
            repo_full_name=request.thread.full_name,
            thread_number=request.thread.number,
            item_count=len(items),
        )
        return items

    def _append_common_options(self, cmd: list[str]) -> None:
        if self._config.model:
            cmd.extend(["--model", self._config.model])
        if self._config.sandbox:
            cmd.extend(["--sandbox", self._config.sandbox])
        if self._config.profile:
            cmd.extend(["--profile", self._config.profile])
        if self._config.extra_args:
            cmd.extend(self._config.extra_args)


def _parse_json_payload(raw: str) -> object:
    text = raw.strip()
    if text.startswith("```"):
        lines = text.splitlines()
        if lines and lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].startswith("```"):
            lines = lines[:-1]
        text = "\n".join(lines).strip()
    if not text:
        raise ExtractionValidationError("Codex returned an empty response")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ExtractionValidationError(f"Codex response is not valid JSON: {exc}") from exc
