from __future__ import annotations

import pytest

from gitlin.assignee_resolver import AssigneeResolver
from gitlin.linear_gateway import LinearApiError
from gitlin.models import TrackerUser
from gitlin.observability import configure_logging


class FakeLinear:
    def __init__(self, users: list[TrackerUser] | None = None, *, fail: bool = False) -> None:
        self.users = users or []
        self.fail = fail
        self.list_calls = 0

    def list_users(self) -> list[TrackerUser]:
        self.list_calls += 1
        if self.fail:
            raise LinearApiError("Linear request failed: timeout")
        return list(self.users)


USERS = [
    TrackerUser(id="u1", email="ada@example.com", name="Ada Lovelace", display_name="ada"),
    TrackerUser(id="u2", email="grace@example.com", name="Grace Hopper", display_name="grace"),
    TrackerUser(id="u3", email=None, name="ada", display_name=None),
]


@pytest.mark.parametrize("hint", [None, "", "   ", "unassigned", "Unassigned"])
def test_empty_or_unassigned_hints_skip_directory(hint: str | None) -> None:
    linear = FakeLinear(USERS)

    assert AssigneeResolver(linear).resolve(hint) is None
    assert linear.list_calls == 0


def test_matches_email_name_and_display_name_case_insensitively() -> None:
    linear = FakeLinear(USERS)
    resolver = AssigneeResolver(linear)

    assert resolver.resolve("GRACE@example.com") == "u2"
    assert resolver.resolve("grace hopper") == "u2"
    assert resolver.resolve("Grace") == "u2"
    # "ada" is u1's display name and u3's name; directory order wins.
    assert resolver.resolve("ada") == "u1"
    assert linear.list_calls == 1


def test_no_match_returns_none_with_warning(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(verbose=False)

    assert AssigneeResolver(FakeLinear(USERS)).resolve("nobody@example.com") is None
    assert "event=assignee_not_found" in capsys.readouterr().err


def test_directory_failure_is_absorbed_once(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(verbose=False)
    failures: list[str] = []
    linear = FakeLinear(USERS, fail=True)
    resolver = AssigneeResolver(linear, on_failure=lambda op, exc: failures.append(op))

    assert resolver.resolve("ada") is None
    assert resolver.resolve("grace") is None
    assert linear.list_calls == 1
    assert failures == ["assignee_directory"]
    assert "operation=assignee_directory" in capsys.readouterr().err
