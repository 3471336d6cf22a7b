from __future__ import annotations

from collections.abc import Iterable, Mapping
import logging

from gitlin.errors import TransportError
from gitlin.linear_gateway import LinearGateway
from gitlin.observability import (
    FailureObserver,
    log_event,
    log_warning,
    report_absorbed_failure,
)


LOGGER = logging.getLogger("gitlin.label_resolver")


class LabelCache:
    """Lowercase label name to Linear label id, loaded once per run on first use."""

    def __init__(self, tracker: LinearGateway) -> None:
        self._tracker = tracker
        self._ids_by_name: dict[str, str] | None = None
        self._display_names: list[str] = []

    def get(self, name: str) -> str | None:
        return self._loaded().get(name.strip().lower())

    def put(self, name: str, label_id: str) -> None:
        key = name.strip().lower()
        loaded = self._loaded()
        if key not in loaded:
            self._display_names.append(name)
        loaded[key] = label_id

    def names(self) -> tuple[str, ...]:
        self._loaded()
        return tuple(self._display_names)

    def _loaded(self) -> dict[str, str]:
        if self._ids_by_name is None:
            labels = self._tracker.list_labels()
            ids_by_name: dict[str, str] = {}
            for label in labels:
                key = label.name.lower()
                if key in ids_by_name:
                    continue
                ids_by_name[key] = label.id
                self._display_names.append(label.name)
            self._ids_by_name = ids_by_name
            log_event(LOGGER, "label_cache_loaded", label_count=len(ids_by_name))
        return self._ids_by_name


class LabelResolver:
    def __init__(
        self,
        tracker: LinearGateway,
        cache: LabelCache,
        *,
        team_id: str,
        provenance_label: str,
        provenance_color: str,
        label_mapping: Mapping[str, Iterable[str]] | None = None,
        on_failure: FailureObserver | None = None,
    ) -> None:
        self._tracker = tracker
        self._cache = cache
        self._team_id = team_id
        self._provenance_label = provenance_label
        self._provenance_color = provenance_color
        self._label_mapping = {
            key.strip().lower(): tuple(values) for key, values in (label_mapping or {}).items()
        }
        self._on_failure = on_failure
        self._provenance_create_attempted = False

    def expand(self, requested: Iterable[str]) -> list[str]:
        """Apply the label mapping, add the provenance label, and dedupe case-insensitively."""
        expanded: list[str] = []
        for name in requested:
            expanded.append(name)
            expanded.extend(self._label_mapping.get(name.strip().lower(), ()))
        expanded.append(self._provenance_label)

        seen: set[str] = set()
        unique: list[str] = []
        for name in expanded:
            key = name.strip().lower()
            if not key or key in seen:
                continue
            seen.add(key)
            unique.append(name.strip())
        return unique

    def resolve(self, requested: Iterable[str]) -> tuple[str, ...]:
        label_ids: list[str] = []
        for name in self.expand(requested):
            label_id = self._cache.get(name)
            if label_id is None and self._is_provenance(name):
                label_id = self._create_provenance_label()
            if label_id is None:
                log_warning(LOGGER, "label_not_found", label=name)
                continue
            if label_id not in label_ids:
                label_ids.append(label_id)
        return tuple(label_ids)

    def _is_provenance(self, name: str) -> bool:
        return name.strip().lower() == self._provenance_label.strip().lower()

    def _create_provenance_label(self) -> str | None:
        if self._provenance_create_attempted:
            return None
        self._provenance_create_attempted = True
        try:
            label_id = self._tracker.create_label(
                self._provenance_label, self._provenance_color, self._team_id
            )
        except TransportError as exc:
            report_absorbed_failure(
                LOGGER,
                "provenance_label_create",
                exc,
                observer=self._on_failure,
                label=self._provenance_label,
            )
            return None
        self._cache.put(self._provenance_label, label_id)
        return label_id
