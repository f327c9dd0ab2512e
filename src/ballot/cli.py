"""Ballot CLI — command-line host for a single ballot.

Usage:
    python -m ballot.cli init --admin alice
    python -m ballot.cli --as alice register-voter bob
    python -m ballot.cli --as alice start-proposals
    python -m ballot.cli --as bob submit-proposal "Build a park"
    python -m ballot.cli --as alice end-proposals
    python -m ballot.cli --as alice start-voting
    python -m ballot.cli --as bob vote 1
    python -m ballot.cli --as alice end-voting
    python -m ballot.cli --as alice tally
    python -m ballot.cli winner
    python -m ballot.cli check-invariants

Defaults can be supplied through the environment or a .env file:
    BALLOT_CONFIG_DIR   policy directory (default: ./config)
    BALLOT_DATA_DIR     event log and snapshot directory (default: ./data)
    BALLOT_CALLER       identity used when --as is omitted
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from ballot.policy.resolver import PolicyResolver
from ballot.service import BallotService, ServiceResult

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = Path("config")
DEFAULT_DATA = Path("data")


def _make_service(args: argparse.Namespace) -> BallotService:
    """Create a BallotService with durable persistence."""
    resolver = PolicyResolver.from_config_dir(args.config)
    return BallotService.from_data_dir(resolver, args.data)


def _caller(args: argparse.Namespace) -> str:
    caller = args.caller
    if not caller:
        raise SystemExit("error: no caller identity (use --as or set BALLOT_CALLER)")
    return caller


def _report(result: ServiceResult, message: str = "") -> int:
    if result.success:
        if message:
            print(message)
        warning = result.data.get("warning")
        if warning:
            print(f"Warning: {warning}", file=sys.stderr)
        return 0
    print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_init(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.create_ballot(args.admin)
    return _report(result, f"Ballot created: {result.data.get('ballot_id')}")


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_register_voter(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.register_voter(_caller(args), args.voter)
    return _report(result, f"Registered voter: {args.voter}")


def cmd_submit_proposal(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.submit_proposal(_caller(args), args.description)
    return _report(result, f"Registered proposal: {result.data.get('proposal_id')}")


def cmd_vote(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.cast_vote(_caller(args), args.proposal_id)
    return _report(result, f"Voted for proposal: {args.proposal_id}")


def _report_transition(result: ServiceResult) -> int:
    return _report(
        result,
        f"Status: {result.data.get('previous_status')} → {result.data.get('new_status')}",
    )


def cmd_start_proposals(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report_transition(service.start_proposals_registration(_caller(args)))


def cmd_end_proposals(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report_transition(service.end_proposals_registration(_caller(args)))


def cmd_start_voting(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report_transition(service.start_voting_session(_caller(args)))


def cmd_end_voting(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report_transition(service.end_voting_session(_caller(args)))


def cmd_tally(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report_transition(service.tally_votes(_caller(args)))


def cmd_voter(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.get_voter(_caller(args), args.voter)
    if result.success:
        print(json.dumps(result.data, indent=2))
    return _report(result)


def cmd_proposal(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.get_proposal(_caller(args), args.proposal_id)
    if result.success:
        print(json.dumps(result.data, indent=2, ensure_ascii=False))
    return _report(result)


def cmd_winner(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.winning_proposal_id()
    if not result.success:
        return _report(result)
    winner = result.data["winning_proposal_id"]
    if winner is None:
        print("Votes have not been tallied yet")
    else:
        print(f"Winning proposal: {winner}")
    return 0


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Replay the event log and check ballot invariants."""
    service = _make_service(args)
    errors = service.verify()
    if errors:
        print(f"FAIL ({len(errors)} errors)", file=sys.stderr)
        for err in errors:
            print(f"- {err}", file=sys.stderr)
        return 1
    print("OK")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ballot",
        description="Single-organizer ballot workflow",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(os.getenv("BALLOT_CONFIG_DIR", str(DEFAULT_CONFIG))),
        help="Path to config directory (default: config/)",
    )
    parser.add_argument(
        "--data",
        type=Path,
        default=Path(os.getenv("BALLOT_DATA_DIR", str(DEFAULT_DATA))),
        help="Path to data directory (default: data/)",
    )
    parser.add_argument(
        "--as",
        dest="caller",
        default=os.getenv("BALLOT_CALLER"),
        help="Identity invoking the command",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    p_init = sub.add_parser("init", help="Create the ballot")
    p_init.add_argument("--admin", required=True, help="Administrator identity")

    sub.add_parser("status", help="Show ballot status")

    p_reg = sub.add_parser("register-voter", help="Register a voter (administrator)")
    p_reg.add_argument("voter", help="Voter identity")

    sub.add_parser("start-proposals", help="Open proposal registration (administrator)")

    p_prop = sub.add_parser("submit-proposal", help="Submit a proposal (voter)")
    p_prop.add_argument("description", help="Proposal description")

    sub.add_parser("end-proposals", help="Close proposal registration (administrator)")
    sub.add_parser("start-voting", help="Open the voting session (administrator)")

    p_vote = sub.add_parser("vote", help="Cast a vote (voter)")
    p_vote.add_argument("proposal_id", type=int, help="Proposal ID")

    sub.add_parser("end-voting", help="Close the voting session (administrator)")
    sub.add_parser("tally", help="Tally votes (administrator)")

    p_voter = sub.add_parser("voter", help="Show a voter record (voter)")
    p_voter.add_argument("voter", help="Voter identity")

    p_show = sub.add_parser("proposal", help="Show a proposal (voter)")
    p_show.add_argument("proposal_id", type=int, help="Proposal ID")

    sub.add_parser("winner", help="Show the winning proposal")
    sub.add_parser("check-invariants", help="Replay the event log and check invariants")

    return parser


COMMANDS = {
    "init": cmd_init,
    "status": cmd_status,
    "register-voter": cmd_register_voter,
    "start-proposals": cmd_start_proposals,
    "submit-proposal": cmd_submit_proposal,
    "end-proposals": cmd_end_proposals,
    "start-voting": cmd_start_voting,
    "vote": cmd_vote,
    "end-voting": cmd_end_voting,
    "tally": cmd_tally,
    "voter": cmd_voter,
    "proposal": cmd_proposal,
    "winner": cmd_winner,
    "check-invariants": cmd_check_invariants,
}


def main(argv: list[str] | None = None) -> int:
    load_dotenv(find_dotenv(usecwd=True))
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    handler = COMMANDS.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except ValueError as e:
        # Corrupt policy, event log or snapshot
        logger.error("%s", e)
        print(f"Failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
