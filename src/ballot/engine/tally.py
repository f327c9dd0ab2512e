"""Tally — deterministic winner selection.

Scans proposals in ascending id order and keeps the incumbent unless a
strictly greater vote count is found. Ties therefore go to the lower
id, and a ballot with no votes at all elects the sentinel (id 0).
"""

from __future__ import annotations

from typing import Sequence

from ballot.models.workflow import Proposal, TallyResult


def select_winner(proposals: Sequence[Proposal]) -> TallyResult:
    """Select the winning proposal.

    Raises:
        ValueError: If there are no candidates.
    """
    if not proposals:
        raise ValueError("Cannot tally an empty proposal list")

    winning_id = 0
    highest = proposals[0].vote_count
    for proposal_id, proposal in enumerate(proposals):
        if proposal.vote_count > highest:
            highest = proposal.vote_count
            winning_id = proposal_id

    return TallyResult(
        winning_proposal_id=winning_id,
        vote_count=highest,
        total_votes=sum(p.vote_count for p in proposals),
    )
