"""Tests for the job transition table."""

import pytest

from servicehub.jobs.models import ActorRole, JobStatus
from servicehub.jobs.transitions import (
    INITIAL_STATUS,
    TERMINAL_STATUSES,
    VALID_JOB_TRANSITIONS,
    TransitionOption,
    allowed,
    available_transitions,
    is_terminal,
)

S = JobStatus
V = ActorRole.VENDOR
C = ActorRole.CUSTOMER

EXPECTED = {
    (S.PENDING, V): {S.REVIEWING, S.ACCEPTED, S.REJECTED},
    (S.PENDING, C): {S.CANCELLED},
    (S.REVIEWING, V): {S.QUOTED, S.ACCEPTED, S.REJECTED},
    (S.REVIEWING, C): {S.CANCELLED},
    (S.QUOTED, V): {S.ACCEPTED, S.REJECTED},
    (S.QUOTED, C): {S.CONFIRMED, S.CANCELLED},
    (S.ACCEPTED, V): set(),
    (S.ACCEPTED, C): {S.CONFIRMED, S.CANCELLED},
    (S.CONFIRMED, V): {S.IN_PROGRESS},
    (S.CONFIRMED, C): {S.CANCELLED},
    (S.IN_PROGRESS, V): {S.COMPLETED},
    (S.IN_PROGRESS, C): set(),
    (S.COMPLETED, V): set(),
    (S.COMPLETED, C): {S.DELIVERED, S.DISPUTED},
    (S.DELIVERED, V): set(),
    (S.DELIVERED, C): {S.CLOSED},
    (S.DISPUTED, V): {S.CLOSED},
    (S.DISPUTED, C): {S.CLOSED},
    (S.CANCELLED, V): set(),
    (S.CANCELLED, C): set(),
    (S.REJECTED, V): set(),
    (S.REJECTED, C): set(),
    (S.CLOSED, V): set(),
    (S.CLOSED, C): set(),
}


class TestTransitionTable:
    """The table covers every (status, role) pair exactly."""

    def test_every_pair_has_a_row(self):
        assert set(VALID_JOB_TRANSITIONS) == set(JobStatus)
        for row in VALID_JOB_TRANSITIONS.values():
            assert set(row) == set(ActorRole)

    @pytest.mark.parametrize("status,role", sorted(EXPECTED, key=lambda k: (k[0].value, k[1].value)))
    def test_row_contents(self, status, role):
        assert set(allowed(status, role)) == EXPECTED[(status, role)]

    def test_accepts_raw_strings(self):
        assert allowed("pending", "vendor") == allowed(S.PENDING, V)

    def test_initial_status_is_pending(self):
        assert INITIAL_STATUS == S.PENDING

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            VALID_JOB_TRANSITIONS[S.PENDING] = {}
        with pytest.raises(TypeError):
            VALID_JOB_TRANSITIONS[S.PENDING][V] = frozenset()
        with pytest.raises(AttributeError):
            VALID_JOB_TRANSITIONS[S.PENDING][V].add(S.CLOSED)

    def test_no_self_loops(self):
        for status, row in VALID_JOB_TRANSITIONS.items():
            for targets in row.values():
                assert status not in targets

    def test_pending_is_never_a_target(self):
        for row in VALID_JOB_TRANSITIONS.values():
            for targets in row.values():
                assert S.PENDING not in targets


class TestTerminalStatuses:
    def test_terminal_set(self):
        assert TERMINAL_STATUSES == {S.CANCELLED, S.REJECTED, S.CLOSED}

    @pytest.mark.parametrize("status", [S.CANCELLED, S.REJECTED, S.CLOSED])
    def test_is_terminal(self, status):
        assert is_terminal(status)
        assert not allowed(status, V)
        assert not allowed(status, C)

    def test_disputed_is_not_terminal(self):
        assert not is_terminal(S.DISPUTED)

    def test_every_non_terminal_status_has_an_exit(self):
        for status in JobStatus:
            if status in TERMINAL_STATUSES:
                continue
            assert allowed(status, V) or allowed(status, C)


class TestAvailableTransitions:
    """Labelled options for the caller."""

    def test_vendor_on_pending(self):
        options = available_transitions(S.PENDING, V)
        assert [o.status for o in options] == [S.REVIEWING, S.ACCEPTED, S.REJECTED]
        assert options[1].label == "Accept Job"

    def test_customer_on_completed(self):
        options = available_transitions(S.COMPLETED, C)
        labels = {o.status: o.label for o in options}
        assert labels == {S.DELIVERED: "Confirm Work Done", S.DISPUTED: "Report Issue"}

    def test_empty_row_gives_no_options(self):
        assert available_transitions(S.IN_PROGRESS, C) == []
        assert available_transitions(S.CLOSED, V) == []

    def test_options_match_table(self):
        for status in JobStatus:
            for role in ActorRole:
                statuses = {o.status for o in available_transitions(status, role)}
                assert statuses == set(allowed(status, role))

    def test_option_to_dict(self):
        option = TransitionOption(S.IN_PROGRESS, "Start Work", "Mark the work as started")
        assert option.to_dict() == {
            "status": "in_progress",
            "label": "Start Work",
            "description": "Mark the work as started",
        }
