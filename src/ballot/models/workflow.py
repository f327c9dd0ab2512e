"""Ballot workflow data models — phases, voters, proposals, notifications.

Workflow lifecycle (linear, one-way, no skipping):
    REGISTERING_VOTERS → PROPOSALS_REGISTRATION_STARTED
    → PROPOSALS_REGISTRATION_ENDED → VOTING_SESSION_STARTED
    → VOTING_SESSION_ENDED → VOTES_TALLIED

VOTES_TALLIED is terminal. Voter and proposal records are frozen; the
engine replaces them rather than mutating in place, so a record handed
out by a read accessor can never change under the caller.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Union


class WorkflowStatus(str, enum.Enum):
    """The six phases of a ballot, in workflow order."""
    REGISTERING_VOTERS = "registering_voters"
    PROPOSALS_REGISTRATION_STARTED = "proposals_registration_started"
    PROPOSALS_REGISTRATION_ENDED = "proposals_registration_ended"
    VOTING_SESSION_STARTED = "voting_session_started"
    VOTING_SESSION_ENDED = "voting_session_ended"
    VOTES_TALLIED = "votes_tallied"

    @property
    def ordinal(self) -> int:
        """Position in the workflow (0 = REGISTERING_VOTERS)."""
        return list(WorkflowStatus).index(self)


@dataclass(frozen=True)
class Voter:
    """A voter record.

    The default instance is the zero record returned for identities
    that were never registered.
    """
    is_registered: bool = False
    has_voted: bool = False
    voted_proposal_id: int = 0


@dataclass(frozen=True)
class Proposal:
    """A proposal. The id is its index in the proposal list."""
    description: str
    vote_count: int = 0


@dataclass(frozen=True)
class TallyResult:
    """Outcome of a tally. Computed once, never recomputed."""
    winning_proposal_id: int
    vote_count: int
    total_votes: int


# ----------------------------------------------------------------------
# Notifications — one per successful state change
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class VoterRegistered:
    voter: str

    name = "VoterRegistered"

    def payload(self) -> dict[str, Any]:
        return {"voter": self.voter}


@dataclass(frozen=True)
class WorkflowStatusChange:
    previous_status: WorkflowStatus
    new_status: WorkflowStatus

    name = "WorkflowStatusChange"

    def payload(self) -> dict[str, Any]:
        return {
            "previous_status": self.previous_status.value,
            "new_status": self.new_status.value,
        }


@dataclass(frozen=True)
class ProposalRegistered:
    proposal_id: int

    name = "ProposalRegistered"

    def payload(self) -> dict[str, Any]:
        return {"proposal_id": self.proposal_id}


@dataclass(frozen=True)
class Voted:
    voter: str
    proposal_id: int

    name = "Voted"

    def payload(self) -> dict[str, Any]:
        return {"voter": self.voter, "proposal_id": self.proposal_id}


Notification = Union[VoterRegistered, WorkflowStatusChange, ProposalRegistered, Voted]
