"""
Outcome Calculator: pure threshold evaluation for a vote set.

Rules:
- simple_majority: yes > half of the votes cast (abstain counts as cast)
- super_majority: yes / required voters >= 66% (non-voters count against)
- unanimous: no == 0 and yes > 0 (abstentions tolerated)

No policy ever passes with zero registered voters or zero votes cast.
Everything here is deterministic and side-effect free.
"""

from collections.abc import Iterable
from dataclasses import asdict, dataclass
from fractions import Fraction

from ..models import SuccessPolicy, VoteValue
from ..store.base import parse_success_policy, parse_vote_value

SUPER_MAJORITY_THRESHOLD = Fraction(66, 100)


@dataclass
class VoteCounts:
    yes: int = 0
    no: int = 0
    abstain: int = 0

    @property
    def total(self) -> int:
        return self.yes + self.no + self.abstain


@dataclass
class Outcome:
    """Verdict plus the numbers behind it."""
    passed: bool
    yes_count: int
    no_count: int
    abstain_count: int
    total_votes: int
    percentage: float
    reason: str
    policy: SuccessPolicy
    required_voter_count: int
    missing_votes: int

    def to_dict(self) -> dict:
        data = asdict(self)
        data["policy"] = self.policy.value
        return data


@dataclass
class Deadlock:
    """Whether the policy can still be met if every remaining voter votes yes."""
    is_deadlocked: bool
    reason: str
    remaining_votes: int


def count_votes(values: Iterable[VoteValue | str]) -> VoteCounts:
    counts = VoteCounts()
    for value in values:
        vote = parse_vote_value(value)
        if vote == VoteValue.YES:
            counts.yes += 1
        elif vote == VoteValue.NO:
            counts.no += 1
        else:
            counts.abstain += 1
    return counts


def _percent(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return round(numerator / denominator * 100, 2)


def evaluate(
    values: Iterable[VoteValue | str],
    policy: SuccessPolicy | str,
    required_voter_count: int,
) -> Outcome:
    """Evaluate a vote set against a success policy."""
    policy = parse_success_policy(policy)
    counts = count_votes(values)
    total = counts.total
    required = max(required_voter_count, 0)

    if policy == SuccessPolicy.SIMPLE_MAJORITY:
        percentage = _percent(counts.yes, total)
        passed = counts.yes * 2 > total
        reason = (
            f"Simple majority achieved with {percentage:.2f}% yes votes"
            if passed else
            f"Simple majority not achieved. Need >50%, got {percentage:.2f}%"
        )
    elif policy == SuccessPolicy.SUPER_MAJORITY:
        percentage = _percent(counts.yes, required)
        passed = required > 0 and Fraction(counts.yes, required) >= SUPER_MAJORITY_THRESHOLD
        reason = (
            f"Supermajority achieved with {percentage:.2f}% of required voters"
            if passed else
            f"Supermajority not achieved. Need >=66% of required voters, got {percentage:.2f}%"
        )
    else:
        percentage = _percent(counts.yes, total)
        passed = counts.no == 0 and counts.yes > 0
        if counts.no:
            reason = f"Unanimity not achieved. {counts.no} vote(s) against"
        elif not counts.yes:
            reason = "Unanimity not achieved. No yes votes cast"
        else:
            reason = (
                f"Unanimity achieved with {counts.yes} yes vote(s) "
                f"and {counts.abstain} abstention(s)"
            )

    # No vacuous passes
    if required == 0:
        passed = False
        reason = "No required voters defined for this decision"
    elif total == 0:
        passed = False
        reason = "No votes have been cast"

    return Outcome(
        passed=passed,
        yes_count=counts.yes,
        no_count=counts.no,
        abstain_count=counts.abstain,
        total_votes=total,
        percentage=percentage,
        reason=reason,
        policy=policy,
        required_voter_count=required,
        missing_votes=max(required - total, 0),
    )


def check_deadlock(
    values: Iterable[VoteValue | str],
    policy: SuccessPolicy | str,
    required_voter_count: int,
) -> Deadlock:
    """Report whether passing has become mathematically impossible.

    Informational only; decisions are never closed early on this basis.
    """
    policy = parse_success_policy(policy)
    counts = count_votes(values)
    remaining = max(required_voter_count - counts.total, 0)

    if required_voter_count <= 0:
        return Deadlock(True, "No required voters defined for this decision", 0)

    if policy == SuccessPolicy.SIMPLE_MAJORITY:
        max_yes = counts.yes + remaining
        if max_yes * 2 <= counts.total + remaining:
            return Deadlock(
                True,
                "Cannot reach simple majority even if all remaining votes are yes",
                remaining,
            )
    elif policy == SuccessPolicy.SUPER_MAJORITY:
        max_yes = counts.yes + remaining
        if Fraction(max_yes, required_voter_count) < SUPER_MAJORITY_THRESHOLD:
            return Deadlock(
                True,
                "Cannot reach supermajority (66%) even if all remaining votes are yes",
                remaining,
            )
    elif counts.no > 0:
        return Deadlock(True, "Unanimity impossible due to existing no vote(s)", remaining)

    return Deadlock(False, "", remaining)
