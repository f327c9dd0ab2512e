"""Workflow rejections.

Every precondition failure aborts the whole operation with no state
change. Each error carries a stable ``reason`` string that hosts can
surface verbatim to whoever invoked the operation.
"""

from __future__ import annotations

from ballot.models.workflow import WorkflowStatus


class WorkflowError(Exception):
    """Base class for all workflow rejections."""

    reason = "Operation rejected"

    def __init__(self, reason: str | None = None) -> None:
        if reason is not None:
            self.reason = reason
        super().__init__(self.reason)


class NotAdministrator(WorkflowError):
    """Caller is not the ballot administrator."""
    reason = "Caller is not the administrator"


class NotAVoter(WorkflowError):
    """Caller is not a registered voter."""
    reason = "You're not a voter"


class AlreadyRegistered(WorkflowError):
    reason = "Already registered"


class AlreadyVoted(WorkflowError):
    reason = "You have already voted"


class EmptyProposal(WorkflowError):
    reason = "Proposal description must not be empty"


class UnknownProposal(WorkflowError):
    reason = "Proposal not found"


class PhaseMismatch(WorkflowError):
    """Operation attempted outside its required phase."""

    def __init__(
        self,
        operation: str,
        required_status: WorkflowStatus,
        reason: str,
    ) -> None:
        self.operation = operation
        self.required_status = required_status
        super().__init__(reason)
