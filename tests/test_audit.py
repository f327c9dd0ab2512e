"""Tests for audit — event-log replay and invariant checks."""

from datetime import datetime, timezone

import pytest

from ballot.audit import check_invariants, replay, verify_log
from ballot.engine.workflow import WorkflowEngine
from ballot.persistence.event_log import EventKind, EventLog, EventRecord
from ballot.service import BallotService


def _tallied_service() -> BallotService:
    service = BallotService()
    service.create_ballot("admin")
    for v in ("alice", "bob"):
        service.register_voter("admin", v)
    service.start_proposals_registration("admin")
    service.submit_proposal("alice", "Build a park")
    service.submit_proposal("bob", "Fix the road")
    service.end_proposals_registration("admin")
    service.start_voting_session("admin")
    service.cast_vote("alice", 2)
    service.cast_vote("bob", 2)
    service.end_voting_session("admin")
    service.tally_votes("admin")
    return service


def _with_extra(log: EventLog, kind: EventKind, actor: str, payload: dict) -> EventLog:
    forged = EventLog()
    for e in log.events():
        forged.append(e)
    forged.append(EventRecord.create(
        event_id="forged:000001",
        event_kind=kind,
        actor_id=actor,
        payload=payload,
        timestamp_utc=datetime(2026, 3, 1, tzinfo=timezone.utc),
    ))
    return forged


class TestReplay:
    def test_replay_reproduces_live_state(self) -> None:
        service = _tallied_service()
        ballot_id, engine = replay(service.event_log.events())
        assert ballot_id == service.ballot_id
        assert engine.to_dict() == service.engine.to_dict()
        assert engine.notifications == service.engine.notifications
        assert engine.winning_proposal_id == 2

    def test_empty_log_rejected(self) -> None:
        with pytest.raises(ValueError, match="empty"):
            replay([])

    def test_log_must_start_with_ballot_created(self) -> None:
        events = _tallied_service().event_log.events()
        with pytest.raises(ValueError, match="First event"):
            replay(events[1:])

    def test_replay_from_restored_checkpoint(self) -> None:
        service = _tallied_service()
        checkpoint = EventRecord.create(
            event_id="restored:000001",
            event_kind=EventKind.BALLOT_RESTORED,
            actor_id="admin",
            payload={"ballot_id": "b1", "engine": service.engine.to_dict()},
        )
        ballot_id, engine = replay([checkpoint])
        assert ballot_id == "b1"
        assert engine.to_dict() == service.engine.to_dict()

    def test_checkpoint_after_start_rejected(self) -> None:
        service = _tallied_service()
        log = _with_extra(
            service.event_log,
            EventKind.BALLOT_RESTORED,
            "admin",
            {"ballot_id": service.ballot_id, "engine": service.engine.to_dict()},
        )
        with pytest.raises(ValueError, match="after the ballot started"):
            replay(log.events())

    def test_double_vote_in_log_rejected(self) -> None:
        service = BallotService()
        service.create_ballot("admin")
        service.register_voter("admin", "alice")
        service.start_proposals_registration("admin")
        service.end_proposals_registration("admin")
        service.start_voting_session("admin")
        service.cast_vote("alice", 0)

        forged = _with_extra(
            service.event_log, EventKind.VOTED, "alice", {"voter": "alice", "proposal_id": 0}
        )
        with pytest.raises(ValueError, match="already voted"):
            replay(forged.events())

    def test_vote_recorded_for_someone_else_rejected(self) -> None:
        service = BallotService()
        service.create_ballot("admin")
        service.register_voter("admin", "alice")
        service.register_voter("admin", "bob")
        service.start_proposals_registration("admin")
        service.end_proposals_registration("admin")
        service.start_voting_session("admin")

        forged = _with_extra(
            service.event_log, EventKind.VOTED, "alice", {"voter": "bob", "proposal_id": 0}
        )
        with pytest.raises(ValueError, match="invoked by"):
            replay(forged.events())

    def test_skipped_phase_in_log_rejected(self) -> None:
        service = BallotService()
        service.create_ballot("admin")
        forged = _with_extra(
            service.event_log,
            EventKind.WORKFLOW_STATUS_CHANGE,
            "admin",
            {"previous_status": "registering_voters", "new_status": "voting_session_started"},
        )
        with pytest.raises(ValueError):
            replay(forged.events())

    def test_transition_by_non_admin_in_log_rejected(self) -> None:
        service = BallotService()
        service.create_ballot("admin")
        forged = _with_extra(
            service.event_log,
            EventKind.WORKFLOW_STATUS_CHANGE,
            "mallory",
            {
                "previous_status": "registering_voters",
                "new_status": "proposals_registration_started",
            },
        )
        with pytest.raises(ValueError, match="not the administrator"):
            replay(forged.events())


class TestCheckInvariants:
    def test_healthy_engine(self) -> None:
        assert check_invariants(_tallied_service().engine) == []

    def test_fresh_engine(self) -> None:
        assert check_invariants(WorkflowEngine("admin")) == []

    def test_tampered_winner_detected(self) -> None:
        engine = _tallied_service().engine
        data = engine.to_dict()
        data["winning_proposal_id"] = 1
        tampered = WorkflowEngine.from_dict(data)
        errors = check_invariants(tampered)
        assert any("recomputed winner" in e for e in errors)


class TestVerifyLog:
    def test_matching_snapshot(self) -> None:
        service = _tallied_service()
        assert verify_log(service.event_log, service.engine) == []

    def test_mismatched_snapshot(self) -> None:
        service = _tallied_service()
        other = WorkflowEngine("admin")
        errors = verify_log(service.event_log, other)
        assert "state snapshot does not match event log replay" in errors

    def test_unreplayable_log_reported(self) -> None:
        assert verify_log(EventLog()) == ["Cannot replay an empty event log"]
