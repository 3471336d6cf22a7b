from __future__ import annotations

import logging

from gitlin.errors import TransportError
from gitlin.linear_gateway import LinearGateway
from gitlin.models import TrackerUser
from gitlin.observability import FailureObserver, log_warning, report_absorbed_failure


LOGGER = logging.getLogger("gitlin.assignee_resolver")
UNASSIGNED = "unassigned"


class AssigneeResolver:
    def __init__(
        self,
        tracker: LinearGateway,
        *,
        on_failure: FailureObserver | None = None,
    ) -> None:
        self._tracker = tracker
        self._on_failure = on_failure
        self._users: list[TrackerUser] | None = None
        self._directory_failed = False

    def resolve(self, hint: str | None) -> str | None:
        normalized = (hint or "").strip().lower()
        if not normalized or normalized == UNASSIGNED:
            return None

        users = self._directory()
        if users is None:
            return None
        for user in users:
            candidates = (user.email, user.display_name, user.name)
            if any(value is not None and value.lower() == normalized for value in candidates):
                return user.id

        log_warning(LOGGER, "assignee_not_found", assignee=hint)
        return None

    def _directory(self) -> list[TrackerUser] | None:
        if self._directory_failed:
            return None
        if self._users is None:
            try:
                self._users = self._tracker.list_users()
            except TransportError as exc:
                self._directory_failed = True
                report_absorbed_failure(
                    LOGGER, "assignee_directory", exc, observer=self._on_failure
                )
                return None
        return self._users
