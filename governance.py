"""
DAO governance: proposal voting and closing
"""

import time
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)

VOTER_LEVEL = "PRO"


class VoteRejected(ValueError):
    pass


def _now_ms(now: Optional[int]) -> int:
    return now if now is not None else int(time.time() * 1000)


def can_vote(proposal: Dict[str, Any], user: Dict[str, Any], now: Optional[int] = None) -> bool:
    try:
        _check_vote(proposal, user, now)
    except VoteRejected:
        return False
    return True


def _check_vote(proposal: Dict[str, Any], user: Dict[str, Any], now: Optional[int]) -> None:
    if proposal.get("status") != "ACTIVE":
        raise VoteRejected("Proposal is not open for voting")
    if _now_ms(now) >= proposal["ends_at"]:
        raise VoteRejected("Voting period has ended")
    if user.get("verification_level") != VOTER_LEVEL:
        raise VoteRejected("Only PRO-verified users can vote")
    if user["id"] in (proposal.get("voters") or {}):
        raise VoteRejected("User has already voted")


def cast_vote(proposal: Dict[str, Any], user: Dict[str, Any], choice: str, now: Optional[int] = None) -> Dict[str, Any]:
    if choice not in ("FOR", "AGAINST"):
        raise VoteRejected(f"Unknown vote choice: {choice}")
    _check_vote(proposal, user, now)

    voters = dict(proposal.get("voters") or {})
    voters[user["id"]] = choice
    updates = {
        "voters": voters,
        "votes_for": proposal.get("votes_for", 0) + (choice == "FOR"),
        "votes_against": proposal.get("votes_against", 0) + (choice == "AGAINST"),
    }
    logger.info("vote_cast", proposal_id=proposal.get("id"), user_id=user["id"], choice=choice)
    return updates


def close_proposal(proposal: Dict[str, Any], now: Optional[int] = None) -> Optional[Dict[str, Any]]:
    """Updates that settle an expired ACTIVE proposal, or None."""
    if proposal.get("status") != "ACTIVE" or _now_ms(now) < proposal["ends_at"]:
        return None
    passed = proposal.get("votes_for", 0) > proposal.get("votes_against", 0)
    status = "PASSED" if passed else "REJECTED"
    logger.info("proposal_closed", proposal_id=proposal.get("id"), status=status)
    return {"status": status}
