"""Workflow engine — the single owner of all ballot state.

The engine holds the administrator identity, the current phase, the
voter registry, the append-only proposal list, the tally result and the
append-only notification list. State changes only through the
operations below.

Every operation is all-or-nothing: all preconditions are checked before
the first mutation, so a rejected call leaves state and notifications
exactly as they were. Each successful mutating call appends exactly one
notification and returns it.

Caller identity is supplied by the host and passed as the first
argument. The engine never authenticates it, it only compares it
against stored roles. The administrator is not implicitly a voter.

The engine is not thread-safe. Hosts with concurrent callers must
serialize operations (see BallotService).
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Optional

from ballot.engine.errors import (
    AlreadyRegistered,
    AlreadyVoted,
    EmptyProposal,
    UnknownProposal,
    WorkflowError,
)
from ballot.engine.rules import (
    OperationRule,
    check_preconditions,
    require_registered_voter,
)
from ballot.engine.tally import select_winner
from ballot.models.workflow import (
    Notification,
    Proposal,
    ProposalRegistered,
    TallyResult,
    Voted,
    Voter,
    VoterRegistered,
    WorkflowStatus,
    WorkflowStatusChange,
)

logger = logging.getLogger(__name__)

DEFAULT_SENTINEL_DESCRIPTION = "GENESIS"


class WorkflowEngine:
    """Single-organizer ballot state machine.

    Usage:
        engine = WorkflowEngine(administrator="admin")
        engine.register_voter("admin", "alice")
        engine.start_proposals_registration("admin")
        engine.submit_proposal("alice", "Build a park")     # id 1
        engine.end_proposals_registration("admin")
        engine.start_voting_session("admin")
        engine.cast_vote("alice", 1)
        engine.end_voting_session("admin")
        engine.tally_votes("admin")
        engine.winning_proposal_id                          # 1
    """

    def __init__(
        self,
        administrator: str,
        sentinel_description: str = DEFAULT_SENTINEL_DESCRIPTION,
    ) -> None:
        if not administrator:
            raise ValueError("Administrator identity must not be empty")
        if not sentinel_description or not sentinel_description.strip():
            raise ValueError("Sentinel description must not be empty")
        self._administrator = administrator
        self._sentinel_description = sentinel_description
        self._status = WorkflowStatus.REGISTERING_VOTERS
        self._voters: dict[str, Voter] = {}
        self._proposals: list[Proposal] = []
        self._tally: Optional[TallyResult] = None
        self._notifications: list[Notification] = []

    # ------------------------------------------------------------------
    # Voter registration
    # ------------------------------------------------------------------

    def register_voter(self, caller: str, voter: str) -> VoterRegistered:
        """Register an eligible voter. Administrator only, RegisteringVoters only."""
        self._guard("register_voter", caller)
        if self._voters.get(voter, Voter()).is_registered:
            raise self._reject("register_voter", caller, AlreadyRegistered())

        self._voters[voter] = Voter(is_registered=True)
        return self._emit(VoterRegistered(voter=voter))

    # ------------------------------------------------------------------
    # Proposals
    # ------------------------------------------------------------------

    def start_proposals_registration(self, caller: str) -> WorkflowStatusChange:
        """Open proposal submission and create the sentinel proposal (id 0)."""
        rule = self._guard("start_proposals_registration", caller)
        self._proposals.append(Proposal(description=self._sentinel_description))
        return self._advance(rule)

    def submit_proposal(self, caller: str, description: str) -> ProposalRegistered:
        """Append a proposal. Any registered voter, any number of times."""
        self._guard("submit_proposal", caller)
        if not isinstance(description, str) or not description.strip():
            raise self._reject("submit_proposal", caller, EmptyProposal())

        self._proposals.append(Proposal(description=description))
        return self._emit(ProposalRegistered(proposal_id=len(self._proposals) - 1))

    def end_proposals_registration(self, caller: str) -> WorkflowStatusChange:
        rule = self._guard("end_proposals_registration", caller)
        return self._advance(rule)

    # ------------------------------------------------------------------
    # Voting
    # ------------------------------------------------------------------

    def start_voting_session(self, caller: str) -> WorkflowStatusChange:
        rule = self._guard("start_voting_session", caller)
        return self._advance(rule)

    def cast_vote(self, caller: str, proposal_id: int) -> Voted:
        """Record the caller's single vote.

        Sets has_voted and voted_proposal_id and increments exactly one
        proposal's vote count by one. A vote can never be changed.
        """
        self._guard("cast_vote", caller)
        if self._voters[caller].has_voted:
            raise self._reject("cast_vote", caller, AlreadyVoted())
        if not self._proposal_exists(proposal_id):
            raise self._reject("cast_vote", caller, UnknownProposal())

        proposal = self._proposals[proposal_id]
        self._proposals[proposal_id] = replace(
            proposal, vote_count=proposal.vote_count + 1
        )
        self._voters[caller] = replace(
            self._voters[caller], has_voted=True, voted_proposal_id=proposal_id
        )
        return self._emit(Voted(voter=caller, proposal_id=proposal_id))

    def end_voting_session(self, caller: str) -> WorkflowStatusChange:
        rule = self._guard("end_voting_session", caller)
        return self._advance(rule)

    # ------------------------------------------------------------------
    # Tally
    # ------------------------------------------------------------------

    def tally_votes(self, caller: str) -> WorkflowStatusChange:
        """Select and store the winner, then move to the terminal phase."""
        rule = self._guard("tally_votes", caller)
        self._tally = select_winner(self._proposals)
        return self._advance(rule)

    @property
    def winning_proposal_id(self) -> Optional[int]:
        """Winning proposal id, or None until votes are tallied."""
        if self._tally is None:
            return None
        return self._tally.winning_proposal_id

    @property
    def tally_result(self) -> Optional[TallyResult]:
        return self._tally

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    def get_voter(self, caller: str, voter: str) -> Voter:
        """Return a voter record. Unknown identities yield the zero record."""
        self._guard_voter("get_voter", caller)
        return self._voters.get(voter, Voter())

    def get_proposal(self, caller: str, proposal_id: int) -> Proposal:
        """Return a proposal record.

        Raises:
            NotAVoter: Caller is not registered.
            UnknownProposal: No proposal has this id.
        """
        self._guard_voter("get_proposal", caller)
        if not self._proposal_exists(proposal_id):
            raise self._reject("get_proposal", caller, UnknownProposal())
        return self._proposals[proposal_id]

    @property
    def administrator(self) -> str:
        return self._administrator

    @property
    def status(self) -> WorkflowStatus:
        return self._status

    @property
    def sentinel_description(self) -> str:
        return self._sentinel_description

    @property
    def notifications(self) -> list[Notification]:
        """Notifications emitted so far, oldest first (copy)."""
        return list(self._notifications)

    @property
    def proposal_count(self) -> int:
        return len(self._proposals)

    @property
    def voter_count(self) -> int:
        return sum(1 for v in self._voters.values() if v.is_registered)

    @property
    def votes_cast(self) -> int:
        return sum(1 for v in self._voters.values() if v.has_voted)

    def is_administrator(self, identity: str) -> bool:
        return identity == self._administrator

    def is_registered_voter(self, identity: str) -> bool:
        return self._voters.get(identity, Voter()).is_registered

    def voters(self) -> dict[str, Voter]:
        """All registered voters by identity (copy). Not caller-gated."""
        return dict(self._voters)

    def proposals(self) -> list[Proposal]:
        """All proposals in id order (copy). Not caller-gated."""
        return list(self._proposals)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize persistent state (notifications are not included)."""
        return {
            "administrator": self._administrator,
            "sentinel_description": self._sentinel_description,
            "status": self._status.value,
            "voters": {
                identity: {
                    "is_registered": v.is_registered,
                    "has_voted": v.has_voted,
                    "voted_proposal_id": v.voted_proposal_id,
                }
                for identity, v in self._voters.items()
            },
            "proposals": [
                {"description": p.description, "vote_count": p.vote_count}
                for p in self._proposals
            ],
            "winning_proposal_id": self.winning_proposal_id,
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        notifications: Optional[list[Notification]] = None,
    ) -> WorkflowEngine:
        """Restore an engine from a snapshot produced by to_dict().

        Raises:
            ValueError: If the snapshot is malformed or inconsistent.
        """
        try:
            engine = cls(
                administrator=data["administrator"],
                sentinel_description=data.get(
                    "sentinel_description", DEFAULT_SENTINEL_DESCRIPTION
                ),
            )
            status = WorkflowStatus(data["status"])
            voters = {
                identity: Voter(
                    is_registered=bool(v["is_registered"]),
                    has_voted=bool(v["has_voted"]),
                    voted_proposal_id=int(v["voted_proposal_id"]),
                )
                for identity, v in data.get("voters", {}).items()
            }
            proposals = [
                Proposal(description=p["description"], vote_count=int(p["vote_count"]))
                for p in data.get("proposals", [])
            ]
            winning_id = data.get("winning_proposal_id")
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Malformed engine snapshot: {e}") from e

        errors = snapshot_errors(status, voters, proposals, winning_id)
        if errors:
            raise ValueError("Inconsistent engine snapshot: " + "; ".join(errors))

        engine._status = status
        engine._voters = voters
        engine._proposals = proposals
        if winning_id is not None:
            engine._tally = TallyResult(
                winning_proposal_id=int(winning_id),
                vote_count=proposals[winning_id].vote_count,
                total_votes=sum(p.vote_count for p in proposals),
            )
        engine._notifications = list(notifications or [])
        return engine

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _guard(self, operation: str, caller: str) -> OperationRule:
        try:
            return check_preconditions(
                operation, caller, self._administrator, self._voters, self._status
            )
        except WorkflowError as e:
            raise self._reject(operation, caller, e)

    def _guard_voter(self, operation: str, caller: str) -> None:
        try:
            require_registered_voter(self._voters, caller)
        except WorkflowError as e:
            raise self._reject(operation, caller, e)

    def _reject(self, operation: str, caller: str, error: WorkflowError) -> WorkflowError:
        logger.info(
            "Rejected %s from %r in %s: %s",
            operation, caller, self._status.value, error.reason,
        )
        return error

    def _advance(self, rule: OperationRule) -> WorkflowStatusChange:
        assert rule.target_status is not None
        previous = self._status
        self._status = rule.target_status
        return self._emit(
            WorkflowStatusChange(previous_status=previous, new_status=self._status)
        )

    def _emit(self, notification: Notification) -> Notification:
        self._notifications.append(notification)
        logger.debug("%s %s", notification.name, notification.payload())
        return notification

    def _proposal_exists(self, proposal_id: Any) -> bool:
        return (
            isinstance(proposal_id, int)
            and not isinstance(proposal_id, bool)
            and 0 <= proposal_id < len(self._proposals)
        )


def snapshot_errors(
    status: WorkflowStatus,
    voters: dict[str, Voter],
    proposals: list[Proposal],
    winning_id: Any,
) -> list[str]:
    errors: list[str] = []
    opened = status.ordinal >= WorkflowStatus.PROPOSALS_REGISTRATION_STARTED.ordinal
    voting_opened = status.ordinal >= WorkflowStatus.VOTING_SESSION_STARTED.ordinal

    if opened and not proposals:
        errors.append(f"status {status.value} requires the sentinel proposal")
    if not opened and proposals:
        errors.append(f"status {status.value} cannot have proposals")

    for identity, v in voters.items():
        if not v.is_registered:
            errors.append(f"voter {identity} is stored but not registered")
        if not v.has_voted and v.voted_proposal_id != 0:
            errors.append(
                f"voter {identity} has not voted but holds proposal {v.voted_proposal_id}"
            )
        if v.has_voted:
            if not voting_opened:
                errors.append(f"voter {identity} voted before voting opened")
            if not 0 <= v.voted_proposal_id < len(proposals):
                errors.append(
                    f"voter {identity} voted for unknown proposal {v.voted_proposal_id}"
                )

    # Each proposal's count must equal the voters who chose it.
    chosen: dict[int, int] = {}
    for v in voters.values():
        if v.has_voted:
            chosen[v.voted_proposal_id] = chosen.get(v.voted_proposal_id, 0) + 1
    for proposal_id, p in enumerate(proposals):
        if not isinstance(p.description, str) or not p.description.strip():
            errors.append(f"proposal {proposal_id} has an empty description")
        if p.vote_count != chosen.get(proposal_id, 0):
            errors.append(
                f"proposal {proposal_id} has {p.vote_count} votes but "
                f"{chosen.get(proposal_id, 0)} voters chose it"
            )

    if status == WorkflowStatus.VOTES_TALLIED:
        if not isinstance(winning_id, int) or not 0 <= winning_id < len(proposals):
            errors.append(f"invalid winning proposal id {winning_id!r}")
    elif winning_id is not None:
        errors.append(f"winning proposal id set before tally (status {status.value})")
    return errors
