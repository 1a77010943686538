"""
Tests for fuzzy name matching and the supplier alias rule.
"""

from types import SimpleNamespace

import pytest

from src.matching.fuzzy import (
    CONTAINS_SCORE,
    EXACT,
    FUZZY,
    NONE,
    CharacterJaccardStrategy,
    match_candidate,
    match_team_member,
    normalize,
    score,
)


def _named(name, aliases=None):
    return SimpleNamespace(name=name, supplier_names=aliases or [])


class TestScore:
    """Scoring tiers for normalized names."""

    def test_normalize(self):
        assert normalize("  GitHub, Inc. ") == "githubinc"
        assert normalize(None) == ""

    def test_exact_after_normalization(self):
        assert score("github", "GitHub") == 1.0

    def test_containment(self):
        assert score("Slack", "Slack Technologies") == CONTAINS_SCORE

    def test_empty_scores_zero(self):
        assert score("", "Slack") == 0.0

    def test_strategy_capped_below_exact(self):
        """Test an anagram scores at most the containment tier, never exact."""
        assert score("abc", "cba") == CONTAINS_SCORE

    def test_character_jaccard(self):
        assert CharacterJaccardStrategy().similarity("ab", "bc") == pytest.approx(1 / 3)


class TestMatchCandidate:
    """Best-candidate selection over reference lists."""

    @pytest.fixture
    def items(self):
        return [_named("Slack"), _named("Zoom"), _named("GitHub")]

    def test_fuzzy_match(self, items):
        result = match_candidate("Slack Technologies", items)
        assert result.candidate.name == "Slack"
        assert result.tier == FUZZY
        assert result.score == CONTAINS_SCORE

    def test_exact_match(self, items):
        result = match_candidate("github", items)
        assert result.candidate.name == "GitHub"
        assert result.tier == EXACT

    def test_no_match_carries_no_candidate(self, items):
        result = match_candidate("XYZ", items)
        assert result.tier == NONE
        assert result.candidate is None
        assert not result.matched

    def test_tie_keeps_first(self):
        """Test equal scores keep the first candidate encountered."""
        first, second = _named("Acme"), _named("acme")
        assert match_candidate("ACME", [first, second]).candidate is first

    def test_to_dict(self, items):
        result = match_candidate("Zoom", items)
        data = result.to_dict(lambda c: {"name": c.name})
        assert data == {"score": 1.0, "confidence": EXACT, "match": {"name": "Zoom"}}


class TestMatchTeamMember:
    """Contractor supplier names resolved to team members."""

    @pytest.fixture
    def members(self):
        return [_named("Alice Smith"), _named("Bob Jones", ["Jones Design Ltd"])]

    def test_alias_containment(self, members):
        result = match_team_member("JONES DESIGN LTD", members)
        assert result.candidate.name == "Bob Jones"
        assert result.tier == EXACT

    def test_member_name_in_supplier(self, members):
        """Test a supplier string containing the member name matches."""
        result = match_team_member("Alice Smith Consulting", members)
        assert result.candidate.name == "Alice Smith"
        assert result.tier == FUZZY

    def test_blank_supplier(self, members):
        assert match_team_member("  ", members).tier == NONE
        assert match_team_member(None, members).candidate is None
