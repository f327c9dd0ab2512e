"""Ballot workflow engine — phase rules, tally, and the state owner."""

from ballot.engine.errors import (
    AlreadyRegistered,
    AlreadyVoted,
    EmptyProposal,
    NotAdministrator,
    NotAVoter,
    PhaseMismatch,
    UnknownProposal,
    WorkflowError,
)
from ballot.engine.tally import select_winner
from ballot.engine.workflow import WorkflowEngine

__all__ = [
    "AlreadyRegistered",
    "AlreadyVoted",
    "EmptyProposal",
    "NotAdministrator",
    "NotAVoter",
    "PhaseMismatch",
    "UnknownProposal",
    "WorkflowError",
    "WorkflowEngine",
    "select_winner",
]
