"""Tests for the precondition table — one rule per operation, linear phase order."""

import pytest

from ballot.engine.errors import NotAdministrator, NotAVoter, PhaseMismatch
from ballot.engine.rules import (
    OPERATION_RULES,
    TRANSITION_OPERATIONS,
    Role,
    check_preconditions,
    is_terminal,
    next_status,
    require_phase,
)
from ballot.models.workflow import Voter, WorkflowStatus


class TestOperationTable:
    def test_transitions_follow_linear_order(self) -> None:
        """Each transition moves from its required phase to the next one."""
        for name in TRANSITION_OPERATIONS:
            rule = OPERATION_RULES[name]
            assert rule.target_status == next_status(rule.required_status), name

    def test_every_non_terminal_phase_has_one_transition(self) -> None:
        sources = [OPERATION_RULES[n].required_status for n in TRANSITION_OPERATIONS]
        non_terminal = [s for s in WorkflowStatus if not is_terminal(s)]
        assert sorted(sources, key=lambda s: s.ordinal) == non_terminal

    def test_voter_operations(self) -> None:
        voter_ops = {n for n, r in OPERATION_RULES.items() if r.role == Role.VOTER}
        assert voter_ops == {"submit_proposal", "cast_vote"}

    def test_only_tallied_is_terminal(self) -> None:
        assert [s for s in WorkflowStatus if is_terminal(s)] == [WorkflowStatus.VOTES_TALLIED]
        assert next_status(WorkflowStatus.VOTES_TALLIED) is None

    def test_ordinals(self) -> None:
        assert [s.ordinal for s in WorkflowStatus] == [0, 1, 2, 3, 4, 5]


class TestGuards:
    def test_phase_mismatch_carries_operation(self) -> None:
        with pytest.raises(PhaseMismatch) as exc:
            require_phase("tally_votes", WorkflowStatus.REGISTERING_VOTERS)
        assert exc.value.operation == "tally_votes"
        assert exc.value.required_status == WorkflowStatus.VOTING_SESSION_ENDED
        assert str(exc.value) == "Current status is not voting session ended"

    def test_admin_guard(self) -> None:
        with pytest.raises(NotAdministrator):
            check_preconditions(
                "register_voter", "someone", "admin", {}, WorkflowStatus.REGISTERING_VOTERS
            )

    def test_voter_guard_ignores_unregistered_entries(self) -> None:
        voters = {"v1": Voter(is_registered=False)}
        with pytest.raises(NotAVoter):
            check_preconditions(
                "cast_vote", "v1", "admin", voters, WorkflowStatus.VOTING_SESSION_STARTED
            )

    def test_guards_pass(self) -> None:
        voters = {"v1": Voter(is_registered=True)}
        rule = check_preconditions(
            "cast_vote", "v1", "admin", voters, WorkflowStatus.VOTING_SESSION_STARTED
        )
        assert rule is OPERATION_RULES["cast_vote"]
