from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import cast

from gitlin.errors import ExtractionValidationError
from gitlin.models import CandidateItem, PullRequestSnapshot, ThreadRef


PRIORITIES: tuple[str, ...] = ("urgent", "high", "medium", "low")
EFFORTS: tuple[str, ...] = ("small", "medium", "large")


@dataclass(frozen=True)
class ExtractionRequest:
    thread: ThreadRef
    discussion_text: str
    available_labels: tuple[str, ...]
    pull_request: PullRequestSnapshot | None = None


class ExtractionAdapter(ABC):
    @abstractmethod
    def extract(self, request: ExtractionRequest) -> tuple[CandidateItem, ...]:
        """Turn merged discussion text into an ordered batch of candidate items.

        Raises ExtractionValidationError when the producer output does not match
        the candidate item shape; nothing is coerced or partially accepted.
        """


def parse_candidate_items(payload: object) -> tuple[CandidateItem, ...]:
    """Validate raw extraction output.

    Accepts a list of item objects, a single item object, or an object with an
    ``items`` list (the shape the structured-output schema asks for).
    """
    if isinstance(payload, dict) and "items" in payload:
        raw_items = payload["items"]
        if not isinstance(raw_items, list):
            raise ExtractionValidationError("items must be a list")
    elif isinstance(payload, list):
        raw_items = payload
    elif isinstance(payload, dict):
        raw_items = [payload]
    else:
        raise ExtractionValidationError("Extraction output must be a JSON object or array")

    return tuple(_parse_item(index, raw) for index, raw in enumerate(raw_items))


def _parse_item(index: int, raw: object) -> CandidateItem:
    if not isinstance(raw, dict) or not all(isinstance(key, str) for key in raw):
        raise ExtractionValidationError(f"items[{index}] must be an object")
    item = cast(dict[str, object], raw)

    title = _require_text(item, "title", index=index)
    description = _require_text(item, "description", index=index)
    priority = item.get("priority")
    if priority not in PRIORITIES:
        raise ExtractionValidationError(
            f"items[{index}].priority must be one of: {', '.join(PRIORITIES)}"
        )
    effort = item.get("effort")
    if effort is not None and effort not in EFFORTS:
        raise ExtractionValidationError(
            f"items[{index}].effort must be one of: {', '.join(EFFORTS)}"
        )
    assignee = item.get("assignee")
    if assignee is not None and not isinstance(assignee, str):
        raise ExtractionValidationError(f"items[{index}].assignee must be a string")

    return CandidateItem(
        index=index,
        title=title,
        description=description,
        priority=cast(str, priority),
        effort=cast(str | None, effort),
        labels=_optional_str_list(item, "labels", index=index),
        assignee=assignee,
        dependencies=_optional_int_list(item, "dependencies", index=index),
    )


def _require_text(item: dict[str, object], key: str, *, index: int) -> str:
    value = item.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ExtractionValidationError(f"items[{index}].{key} must be a non-empty string")
    return value


def _optional_str_list(item: dict[str, object], key: str, *, index: int) -> tuple[str, ...]:
    value = item.get(key)
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(entry, str) for entry in value):
        raise ExtractionValidationError(f"items[{index}].{key} must be a list of strings")
    return tuple(value)


def _optional_int_list(item: dict[str, object], key: str, *, index: int) -> tuple[int, ...]:
    value = item.get(key)
    if value is None:
        return ()
    if not isinstance(value, list) or not all(
        isinstance(entry, int) and not isinstance(entry, bool) for entry in value
    ):
        raise ExtractionValidationError(f"items[{index}].{key} must be a list of integers")
    return tuple(value)
