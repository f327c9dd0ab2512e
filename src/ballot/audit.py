"""Audit — rebuild a ballot from its event log and check invariants.

Replay drives a fresh engine through its own operations, one recorded
event at a time, using the recorded actor as the caller. A log that
could not have been produced by a legitimate sequence of calls
(a skipped phase, a double vote, a vote by a non-voter) fails replay.

Invariants checked on a live engine:
1. The sentinel proposal exists exactly when proposals have opened.
2. Each proposal's vote count equals the voters who chose it.
3. Voters only vote once voting has opened, for an existing proposal.
4. A winner exists only when tallied, and equals a fresh tally.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from ballot.engine.errors import WorkflowError
from ballot.engine.rules import OPERATION_RULES, TRANSITION_OPERATIONS
from ballot.engine.tally import select_winner
from ballot.engine.workflow import WorkflowEngine, snapshot_errors
from ballot.models.workflow import WorkflowStatus
from ballot.persistence.event_log import EventKind, EventLog, EventRecord

logger = logging.getLogger(__name__)

# new_status -> transition operation name
_TRANSITION_BY_TARGET: dict[WorkflowStatus, str] = {
    OPERATION_RULES[name].target_status: name  # type: ignore[misc]
    for name in TRANSITION_OPERATIONS
}


def replay(events: Iterable[EventRecord]) -> tuple[str, WorkflowEngine]:
    """Rebuild (ballot_id, engine) from an ordered event sequence.

    The first event is either BALLOT_CREATED or a BALLOT_RESTORED
    checkpoint, whose snapshot becomes the starting engine.

    Raises:
        ValueError: If the log is empty, starts with any other event,
            or contains an event the engine rejects.
    """
    iterator = iter(events)
    first = next(iterator, None)
    if first is None:
        raise ValueError("Cannot replay an empty event log")

    try:
        ballot_id = first.payload["ballot_id"]
        if first.event_kind == EventKind.BALLOT_CREATED:
            engine = WorkflowEngine(
                administrator=first.payload["administrator"],
                sentinel_description=first.payload["sentinel_description"],
            )
        elif first.event_kind == EventKind.BALLOT_RESTORED:
            engine = WorkflowEngine.from_dict(first.payload["engine"])
        else:
            raise ValueError(
                f"First event must be {EventKind.BALLOT_CREATED.value} or "
                f"{EventKind.BALLOT_RESTORED.value}, got {first.event_kind.value}"
            )
    except KeyError as e:
        raise ValueError(f"Event {first.event_id}: missing payload field {e}") from e

    for event in iterator:
        try:
            _apply(engine, event)
        except WorkflowError as e:
            raise ValueError(
                f"Event {event.event_id} ({event.event_kind.value}) "
                f"rejected on replay: {e.reason}"
            ) from e
        except KeyError as e:
            raise ValueError(
                f"Event {event.event_id}: missing payload field {e}"
            ) from e

    return ballot_id, engine


def _apply(engine: WorkflowEngine, event: EventRecord) -> None:
    kind = event.event_kind
    payload = event.payload
    caller = event.actor_id

    if kind == EventKind.VOTER_REGISTERED:
        engine.register_voter(caller, payload["voter"])

    elif kind == EventKind.WORKFLOW_STATUS_CHANGE:
        previous = WorkflowStatus(payload["previous_status"])
        target = WorkflowStatus(payload["new_status"])
        if previous != engine.status:
            raise ValueError(
                f"Event {event.event_id}: recorded previous status "
                f"{previous.value} but engine is in {engine.status.value}"
            )
        operation = _TRANSITION_BY_TARGET.get(target)
        if operation is None:
            raise ValueError(f"Event {event.event_id}: no transition reaches {target.value}")
        getattr(engine, operation)(caller)

    elif kind == EventKind.PROPOSAL_REGISTERED:
        notification = engine.submit_proposal(caller, payload["description"])
        if notification.proposal_id != payload["proposal_id"]:
            raise ValueError(
                f"Event {event.event_id}: recorded proposal id "
                f"{payload['proposal_id']} but replay assigned {notification.proposal_id}"
            )

    elif kind == EventKind.VOTED:
        if payload["voter"] != caller:
            raise ValueError(
                f"Event {event.event_id}: vote recorded for {payload['voter']} "
                f"but invoked by {caller}"
            )
        engine.cast_vote(caller, payload["proposal_id"])

    elif kind in (EventKind.BALLOT_CREATED, EventKind.BALLOT_RESTORED):
        raise ValueError(f"Event {event.event_id}: {kind.value} after the ballot started")


def check_invariants(engine: WorkflowEngine) -> list[str]:
    """Check workflow invariants on an engine. Empty list = healthy."""
    errors = snapshot_errors(
        engine.status,
        engine.voters(),
        engine.proposals(),
        engine.winning_proposal_id,
    )

    if engine.status == WorkflowStatus.VOTES_TALLIED and not errors:
        expected = select_winner(engine.proposals())
        if expected.winning_proposal_id != engine.winning_proposal_id:
            errors.append(
                f"stored winner {engine.winning_proposal_id} differs from "
                f"recomputed winner {expected.winning_proposal_id}"
            )

    proposals = engine.proposals()
    if proposals and proposals[0].description != engine.sentinel_description:
        errors.append("proposal 0 is not the sentinel proposal")
    return errors


def verify_log(
    event_log: EventLog,
    engine: Optional[WorkflowEngine] = None,
) -> list[str]:
    """Replay an event log and check the result.

    If an engine is given (e.g. loaded from a state snapshot), the
    replayed state must match it exactly. Returns errors (empty = OK).
    """
    try:
        _, replayed = replay(event_log.events())
    except ValueError as e:
        return [str(e)]

    errors = check_invariants(replayed)
    if engine is not None and replayed.to_dict() != engine.to_dict():
        errors.append("state snapshot does not match event log replay")
    if errors:
        logger.warning("Event log verification failed: %s", "; ".join(errors))
    return errors
