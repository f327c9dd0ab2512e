"""Ballot service — host facade for the workflow engine.

This is the primary interface for programmatic access to a ballot.
It wraps one WorkflowEngine with:
- Serialization (one lock-guarded critical section per operation)
- Audit trail (one event-log record per successful state change)
- Persistence (state snapshot after every successful state change)
- Typed results (engine rejections become failed ServiceResults)

Audit-trail events are never silently dropped: if the event cannot be
appended, the in-memory engine is rolled back to its pre-call state and
the operation fails. A snapshot write failing after the event is
durable does not roll back; the service flags itself as degraded and
the event log stays authoritative.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

from ballot.audit import check_invariants, replay, verify_log
from ballot.engine.errors import PhaseMismatch, WorkflowError
from ballot.engine.workflow import WorkflowEngine
from ballot.models.workflow import (
    Notification,
    ProposalRegistered,
    Voted,
    VoterRegistered,
    WorkflowStatusChange,
)
from ballot.persistence.event_log import EventKind, EventLog, EventRecord
from ballot.persistence.state_store import StateStore
from ballot.policy.resolver import PolicyResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class BallotService:
    """Single-ballot host.

    Usage:
        service = BallotService(PolicyResolver.default())
        service.create_ballot("admin")
        service.register_voter("admin", "alice")
        service.start_proposals_registration("admin")
        service.submit_proposal("alice", "Build a park")
        ...
        service.tally_votes("admin")
        service.winning_proposal_id().data["winning_proposal_id"]

    Persistence (optional):
        service = BallotService.from_data_dir(resolver, data_dir)
        # State is persisted on each mutation and loaded on construction.
    """

    def __init__(
        self,
        resolver: Optional[PolicyResolver] = None,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
    ) -> None:
        self._resolver = resolver or PolicyResolver.default()
        self._event_log = event_log if event_log is not None else EventLog()
        self._state_store = state_store
        self._lock = threading.Lock()
        self._engine: Optional[WorkflowEngine] = None
        self._ballot_id: Optional[str] = None
        # Initialize counter from persisted log to avoid ID collision on restart
        self._event_counter = self._event_log.count
        self._persistence_degraded = False
        self._load()

    @classmethod
    def from_data_dir(cls, resolver: PolicyResolver, data_dir: Path) -> BallotService:
        """Create a service with durable persistence under data_dir."""
        data_dir.mkdir(parents=True, exist_ok=True)
        return cls(
            resolver,
            event_log=EventLog(storage_path=resolver.events_path(data_dir)),
            state_store=StateStore(resolver.state_path(data_dir)),
        )

    # ------------------------------------------------------------------
    # Ballot lifecycle
    # ------------------------------------------------------------------

    def create_ballot(self, administrator: str) -> ServiceResult:
        """Create the ballot with a fixed administrator."""
        with self._lock:
            if self._engine is not None:
                return ServiceResult(
                    success=False,
                    errors=[f"Ballot already exists: {self._ballot_id}"],
                )
            try:
                engine = WorkflowEngine(
                    administrator=administrator,
                    sentinel_description=self._resolver.sentinel_description,
                )
            except ValueError as e:
                return ServiceResult(success=False, errors=[str(e)])

            ballot_id = f"ballot_{uuid.uuid4().hex[:12]}"
            err = self._append_event(
                EventKind.BALLOT_CREATED,
                administrator,
                {
                    "ballot_id": ballot_id,
                    "administrator": administrator,
                    "sentinel_description": engine.sentinel_description,
                },
                ballot_id,
            )
            if err:
                return ServiceResult(success=False, errors=[err])

            self._engine = engine
            self._ballot_id = ballot_id
            logger.info("Created ballot %s administered by %r", ballot_id, administrator)
            warning = self._safe_persist_post_audit()
            return self._ok(
                {"ballot_id": ballot_id, "administrator": administrator}, warning
            )

    @property
    def ballot_id(self) -> Optional[str]:
        return self._ballot_id

    @property
    def engine(self) -> Optional[WorkflowEngine]:
        return self._engine

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    @property
    def persistence_degraded(self) -> bool:
        return self._persistence_degraded

    # ------------------------------------------------------------------
    # Mutating operations
    # ------------------------------------------------------------------

    def register_voter(self, caller: str, voter: str) -> ServiceResult:
        return self._execute("register_voter", caller, voter)

    def start_proposals_registration(self, caller: str) -> ServiceResult:
        return self._execute("start_proposals_registration", caller)

    def submit_proposal(self, caller: str, description: str) -> ServiceResult:
        return self._execute("submit_proposal", caller, description)

    def end_proposals_registration(self, caller: str) -> ServiceResult:
        return self._execute("end_proposals_registration", caller)

    def start_voting_session(self, caller: str) -> ServiceResult:
        return self._execute("start_voting_session", caller)

    def cast_vote(self, caller: str, proposal_id: int) -> ServiceResult:
        return self._execute("cast_vote", caller, proposal_id)

    def end_voting_session(self, caller: str) -> ServiceResult:
        return self._execute("end_voting_session", caller)

    def tally_votes(self, caller: str) -> ServiceResult:
        return self._execute("tally_votes", caller)

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get_voter(self, caller: str, voter: str) -> ServiceResult:
        with self._lock:
            if self._engine is None:
                return self._no_ballot()
            try:
                record = self._engine.get_voter(caller, voter)
            except WorkflowError as e:
                return self._rejected(e)
            return ServiceResult(success=True, data={"voter": voter, **asdict(record)})

    def get_proposal(self, caller: str, proposal_id: int) -> ServiceResult:
        with self._lock:
            if self._engine is None:
                return self._no_ballot()
            try:
                record = self._engine.get_proposal(caller, proposal_id)
            except WorkflowError as e:
                return self._rejected(e)
            return ServiceResult(
                success=True, data={"proposal_id": proposal_id, **asdict(record)}
            )

    def winning_proposal_id(self) -> ServiceResult:
        """Open to anyone. The id is None until votes are tallied."""
        with self._lock:
            if self._engine is None:
                return self._no_ballot()
            data: dict[str, Any] = {
                "winning_proposal_id": self._engine.winning_proposal_id,
            }
            tally = self._engine.tally_result
            if tally is not None:
                data["vote_count"] = tally.vote_count
                data["total_votes"] = tally.total_votes
            return ServiceResult(success=True, data=data)

    def status(self) -> dict[str, Any]:
        """Return a ballot summary. Open to anyone."""
        with self._lock:
            summary: dict[str, Any] = {
                "ballot_id": self._ballot_id,
                "events": self._event_log.count,
                "persistence_degraded": self._persistence_degraded,
            }
            engine = self._engine
            if engine is None:
                summary["status"] = None
                return summary
            summary.update({
                "administrator": engine.administrator,
                "status": engine.status.value,
                "status_ordinal": engine.status.ordinal,
                "voters": engine.voter_count,
                "proposals": engine.proposal_count,
                "votes_cast": engine.votes_cast,
                "winning_proposal_id": engine.winning_proposal_id,
            })
            return summary

    def verify(self) -> list[str]:
        """Check invariants, replaying the event log when there is one."""
        with self._lock:
            if self._engine is None:
                return []
            if self._event_log.count == 0:
                return check_invariants(self._engine)
            return verify_log(self._event_log, self._engine)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _execute(self, operation: str, caller: str, *args: Any) -> ServiceResult:
        """Run one engine operation inside the critical section.

        Ordering:
        1. Snapshot the engine (for rollback).
        2. Apply the operation (the engine validates before mutating).
        3. Durable event append; on failure restore the snapshot.
        4. State snapshot write (failure only degrades).
        """
        with self._lock:
            if self._engine is None:
                return self._no_ballot()

            before = self._engine.to_dict()
            before_notifications = self._engine.notifications

            try:
                notification = getattr(self._engine, operation)(caller, *args)
            except WorkflowError as e:
                return self._rejected(e)

            kind, payload = self._event_for(notification)
            err = self._append_event(kind, caller, payload, self._ballot_id)
            if err:
                self._engine = WorkflowEngine.from_dict(
                    before, notifications=before_notifications
                )
                logger.error("Rolled back %s: %s", operation, err)
                return ServiceResult(success=False, errors=[err])

            warning = self._safe_persist_post_audit()
            data = {
                "event": notification.name,
                **payload,
                "status": self._engine.status.value,
            }
            if isinstance(notification, WorkflowStatusChange):
                data["winning_proposal_id"] = self._engine.winning_proposal_id
            return self._ok(data, warning)

    def _event_for(self, notification: Notification) -> tuple[EventKind, dict[str, Any]]:
        payload = notification.payload()
        if isinstance(notification, VoterRegistered):
            return EventKind.VOTER_REGISTERED, payload
        if isinstance(notification, WorkflowStatusChange):
            return EventKind.WORKFLOW_STATUS_CHANGE, payload
        if isinstance(notification, ProposalRegistered):
            # Description is recorded so the log alone can rebuild the ballot.
            assert self._engine is not None
            proposal = self._engine.proposals()[notification.proposal_id]
            return EventKind.PROPOSAL_REGISTERED, {
                **payload,
                "description": proposal.description,
            }
        if isinstance(notification, Voted):
            return EventKind.VOTED, payload
        raise TypeError(f"Unknown notification: {notification!r}")

    def _append_event(
        self,
        kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        ballot_id: Optional[str],
    ) -> Optional[str]:
        """Append an audit event. Returns error string or None."""
        try:
            event = EventRecord.create(
                event_id=self._next_event_id(ballot_id),
                event_kind=kind,
                actor_id=actor_id,
                payload=payload,
            )
            self._event_log.append(event)
        except (ValueError, OSError) as e:
            self._event_counter -= 1
            return f"Event log failure: {e}"
        return None

    def _next_event_id(self, ballot_id: Optional[str]) -> str:
        self._event_counter += 1
        return f"{ballot_id}:{self._event_counter:06d}"

    def _safe_persist_post_audit(self) -> Optional[str]:
        """Persist state after the audit event has been committed.

        MUST NOT rollback in-memory state: the audit trail is already
        durable. On failure, sets _persistence_degraded and returns a
        warning string (not a hard error).
        """
        if self._state_store is None or self._engine is None:
            return None
        try:
            self._state_store.save(self._engine, self._ballot_id or "")
            return None
        except OSError as e:
            self._persistence_degraded = True
            logger.warning("State snapshot write failed: %s", e)
            return (
                f"Persistence degraded: {e}; state committed in audit trail "
                f"but StateStore is stale"
            )

    def _load(self) -> None:
        """Restore state. The event log wins over a stale snapshot.

        A ballot restored from its snapshot alone gets a BALLOT_RESTORED
        checkpoint before anything else is appended, so the log always
        replays from its first event.

        Raises:
            ValueError: If the event log is corrupt, or it is empty and
                the snapshot is corrupt or cannot be checkpointed.
        """
        if self._event_log.count > 0:
            self._ballot_id, self._engine = replay(self._event_log.events())
            if self._state_store is not None and not self._snapshot_matches():
                logger.warning("State snapshot missing or stale; rewriting from event log")
                self._safe_persist_post_audit()
            return

        if self._state_store is None:
            return
        stored = self._state_store.load()
        if stored is None:
            return
        ballot_id, engine = stored
        err = self._append_event(
            EventKind.BALLOT_RESTORED,
            engine.administrator,
            {"ballot_id": ballot_id, "engine": engine.to_dict()},
            ballot_id,
        )
        if err:
            raise ValueError(f"Cannot checkpoint restored ballot {ballot_id}: {err}")
        self._ballot_id, self._engine = ballot_id, engine
        logger.warning("Ballot %s restored from snapshot without event log", ballot_id)

    def _snapshot_matches(self) -> bool:
        assert self._state_store is not None and self._engine is not None
        try:
            stored = self._state_store.load()
        except ValueError as e:
            logger.warning("Ignoring unreadable state snapshot: %s", e)
            return False
        return stored is not None and stored[1].to_dict() == self._engine.to_dict()

    @staticmethod
    def _ok(data: dict[str, Any], warning: Optional[str]) -> ServiceResult:
        if warning:
            data = {**data, "warning": warning}
        return ServiceResult(success=True, data=data)

    @staticmethod
    def _rejected(error: WorkflowError) -> ServiceResult:
        data: dict[str, Any] = {"error_code": type(error).__name__}
        if isinstance(error, PhaseMismatch):
            data["operation"] = error.operation
            data["required_status"] = error.required_status.value
        return ServiceResult(success=False, errors=[error.reason], data=data)

    @staticmethod
    def _no_ballot() -> ServiceResult:
        return ServiceResult(success=False, errors=["No ballot created yet"])
