"""Core data models for the ballot workflow."""

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

__all__ = [
    "Notification",
    "Proposal",
    "ProposalRegistered",
    "TallyResult",
    "Voted",
    "Voter",
    "VoterRegistered",
    "WorkflowStatus",
    "WorkflowStatusChange",
]
