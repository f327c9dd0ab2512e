"""Precondition table — who may call what, and in which phase.

Every mutating operation is listed exactly once in OPERATION_RULES.
The guards below are the only place role and phase checks happen, so
the table stays the single source of truth for access control.

Check order is fixed: role first, then phase. Operation-specific
checks (duplicates, empty input, unknown ids) run after both guards.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from ballot.engine.errors import NotAdministrator, NotAVoter, PhaseMismatch
from ballot.models.workflow import Voter, WorkflowStatus


class Role(str, enum.Enum):
    """Capability required to invoke an operation."""
    ADMINISTRATOR = "administrator"
    VOTER = "voter"


@dataclass(frozen=True)
class OperationRule:
    """Preconditions for one operation.

    target_status is set only for phase transitions.
    """
    role: Role
    required_status: WorkflowStatus
    mismatch_reason: str
    target_status: Optional[WorkflowStatus] = None


OPERATION_RULES: dict[str, OperationRule] = {
    "register_voter": OperationRule(
        role=Role.ADMINISTRATOR,
        required_status=WorkflowStatus.REGISTERING_VOTERS,
        mismatch_reason="Voters registration is not open yet",
    ),
    "start_proposals_registration": OperationRule(
        role=Role.ADMINISTRATOR,
        required_status=WorkflowStatus.REGISTERING_VOTERS,
        mismatch_reason="Registering proposals can't be started now",
        target_status=WorkflowStatus.PROPOSALS_REGISTRATION_STARTED,
    ),
    "submit_proposal": OperationRule(
        role=Role.VOTER,
        required_status=WorkflowStatus.PROPOSALS_REGISTRATION_STARTED,
        mismatch_reason="Proposals are not allowed yet",
    ),
    "end_proposals_registration": OperationRule(
        role=Role.ADMINISTRATOR,
        required_status=WorkflowStatus.PROPOSALS_REGISTRATION_STARTED,
        mismatch_reason="Registering proposals haven't started yet",
        target_status=WorkflowStatus.PROPOSALS_REGISTRATION_ENDED,
    ),
    "start_voting_session": OperationRule(
        role=Role.ADMINISTRATOR,
        required_status=WorkflowStatus.PROPOSALS_REGISTRATION_ENDED,
        mismatch_reason="Registering proposals phase is not finished",
        target_status=WorkflowStatus.VOTING_SESSION_STARTED,
    ),
    "cast_vote": OperationRule(
        role=Role.VOTER,
        required_status=WorkflowStatus.VOTING_SESSION_STARTED,
        mismatch_reason="Voting session hasn't started yet",
    ),
    "end_voting_session": OperationRule(
        role=Role.ADMINISTRATOR,
        required_status=WorkflowStatus.VOTING_SESSION_STARTED,
        mismatch_reason="Voting session hasn't started yet",
        target_status=WorkflowStatus.VOTING_SESSION_ENDED,
    ),
    "tally_votes": OperationRule(
        role=Role.ADMINISTRATOR,
        required_status=WorkflowStatus.VOTING_SESSION_ENDED,
        mismatch_reason="Current status is not voting session ended",
        target_status=WorkflowStatus.VOTES_TALLIED,
    ),
}

TRANSITION_OPERATIONS: tuple[str, ...] = tuple(
    name for name, rule in OPERATION_RULES.items()
    if rule.target_status is not None
)


def next_status(status: WorkflowStatus) -> Optional[WorkflowStatus]:
    """Return the single phase reachable from status, or None if terminal."""
    order = list(WorkflowStatus)
    idx = order.index(status)
    if idx + 1 >= len(order):
        return None
    return order[idx + 1]


def is_terminal(status: WorkflowStatus) -> bool:
    return next_status(status) is None


def require_administrator(administrator: str, caller: str) -> None:
    if caller != administrator:
        raise NotAdministrator()


def require_registered_voter(voters: dict[str, Voter], caller: str) -> None:
    voter = voters.get(caller)
    if voter is None or not voter.is_registered:
        raise NotAVoter()


def require_phase(operation: str, status: WorkflowStatus) -> None:
    rule = OPERATION_RULES[operation]
    if status != rule.required_status:
        raise PhaseMismatch(operation, rule.required_status, rule.mismatch_reason)


def check_preconditions(
    operation: str,
    caller: str,
    administrator: str,
    voters: dict[str, Voter],
    status: WorkflowStatus,
) -> OperationRule:
    """Run the role guard then the phase guard for an operation.

    Returns the operation's rule on success.

    Raises:
        NotAdministrator, NotAVoter, PhaseMismatch.
    """
    rule = OPERATION_RULES[operation]
    if rule.role == Role.ADMINISTRATOR:
        require_administrator(administrator, caller)
    else:
        require_registered_voter(voters, caller)
    require_phase(operation, status)
    return rule
