"""
Fuzzy name matching against reference records.

Scores a free-text name against a candidate list and reports the best
candidate with a confidence tier:

- ``exact``: normalized strings are equal (score 1.0)
- ``fuzzy``: one contains the other (0.8) or similarity >= 0.6
- ``none``: nothing scored high enough

The similarity metric is a pluggable strategy; the tier rules above hold
whichever strategy is used.
"""

import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

T = TypeVar("T")

EXACT = "exact"
FUZZY = "fuzzy"
NONE = "none"

EXACT_SCORE = 1.0
CONTAINS_SCORE = 0.8
FUZZY_THRESHOLD = 0.6

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize(text: str | None) -> str:
    """Lowercase and strip everything but ASCII letters and digits."""
    return _NON_ALNUM.sub("", (text or "").lower())


class MatchStrategy(Protocol):
    """Similarity in [0, 1] between two normalized, non-equal, non-nested strings."""

    name: str

    def similarity(self, a: str, b: str) -> float: ...


class CharacterJaccardStrategy:
    """Jaccard index over the sets of characters in each string."""

    name = "character_jaccard"

    def similarity(self, a: str, b: str) -> float:
        a_chars, b_chars = set(a), set(b)
        union = a_chars | b_chars
        if not union:
            return 0.0
        return len(a_chars & b_chars) / len(union)


DEFAULT_STRATEGY: MatchStrategy = CharacterJaccardStrategy()


def score(text: str, target: str, strategy: MatchStrategy = DEFAULT_STRATEGY) -> float:
    """Score ``text`` against ``target`` on the 0..1 scale."""
    a, b = normalize(text), normalize(target)
    if not a or not b:
        return 0.0
    if a == b:
        return EXACT_SCORE
    if a in b or b in a:
        return CONTAINS_SCORE
    # Strategies never reach the exact tier; only equal strings do
    return min(strategy.similarity(a, b), CONTAINS_SCORE)


def tier_for(value: float) -> str:
    if value >= EXACT_SCORE:
        return EXACT
    if value >= FUZZY_THRESHOLD:
        return FUZZY
    return NONE


@dataclass
class MatchResult(Generic[T]):
    """Best candidate for a name, or none."""

    candidate: T | None
    score: float
    tier: str

    @property
    def matched(self) -> bool:
        return self.tier != NONE

    def to_dict(self, describe: Callable[[T], dict[str, Any]] | None = None) -> dict[str, Any]:
        data: dict[str, Any] = {"score": round(self.score, 4), "confidence": self.tier}
        if self.candidate is not None and describe is not None:
            data["match"] = describe(self.candidate)
        return data


def match_candidate(
    text: str,
    candidates: Iterable[T],
    key: Callable[[T], str | Sequence[str] | None] = lambda c: getattr(c, "name", None),
    strategy: MatchStrategy = DEFAULT_STRATEGY,
) -> MatchResult[T]:
    """
    Pick the best-scoring candidate for ``text``.

    Args:
        text: Free-text name to match
        candidates: Reference records, in priority order
        key: Returns the name (or several names) to score for a candidate
        strategy: Similarity metric for the non-exact, non-substring case

    Returns:
        MatchResult; ties keep the first candidate encountered and a ``none``
        tier carries no candidate
    """
    best: T | None = None
    best_score = 0.0

    for candidate in candidates:
        names = key(candidate)
        if names is None:
            continue
        if isinstance(names, str):
            names = [names]
        candidate_score = max((score(text, n, strategy) for n in names if n), default=0.0)
        if candidate_score > best_score:
            best, best_score = candidate, candidate_score

    tier = tier_for(best_score)
    if tier == NONE:
        return MatchResult(candidate=None, score=best_score, tier=NONE)
    return MatchResult(candidate=best, score=best_score, tier=tier)


def supplier_alias_match(supplier_name: str, member_name: str, aliases: Sequence[str] | None) -> bool:
    """Alias rule for contractor invoices (case-insensitive containment either way)."""
    supplier = supplier_name.lower()
    for alias in aliases or []:
        alias_lower = alias.lower()
        if alias_lower and (alias_lower in supplier or supplier in alias_lower):
            return True
    return bool(member_name) and member_name.lower() in supplier


def match_team_member(
    supplier_name: str | None,
    team_members: Sequence[T],
    strategy: MatchStrategy = DEFAULT_STRATEGY,
) -> MatchResult[T]:
    """
    Resolve a contractor invoice's supplier name to a team member.

    Alias containment wins outright; otherwise the fuzzy matcher runs over each
    member's name and aliases.
    """
    if not supplier_name or not supplier_name.strip():
        return MatchResult(candidate=None, score=0.0, tier=NONE)

    for member in team_members:
        if supplier_alias_match(supplier_name, member.name, member.supplier_names):
            names = [member.name, *(member.supplier_names or [])]
            best = max(CONTAINS_SCORE, *(score(supplier_name, n, strategy) for n in names))
            return MatchResult(candidate=member, score=best, tier=tier_for(best))

    return match_candidate(
        supplier_name,
        team_members,
        key=lambda m: [m.name, *(m.supplier_names or [])],
        strategy=strategy,
    )
