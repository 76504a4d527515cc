"""
Tests for the percentile engine and ordered rule tables.
"""

import random

import pytest

from signal_scoring.percentile import has_sufficient_history, ordinal, percentile_rank
from signal_scoring.rules import Rule, RuleTable, always


# ============================================================
# PERCENTILE
# ============================================================


class TestPercentileRank:
    """Test empirical percentile ranking."""

    def test_empty_history_is_fiftieth(self):
        assert percentile_rank(42.0, []) == 50.0

    def test_counts_values_strictly_below(self):
        assert percentile_rank(85, range(100)) == 85.0

    def test_equal_values_are_not_below(self):
        assert percentile_rank(5, [5, 5, 5, 5]) == 0.0

    def test_above_all_is_hundred(self):
        assert percentile_rank(1_000, [1, 2, 3]) == 100.0

    def test_below_all_is_zero(self):
        assert percentile_rank(-1, [1, 2, 3]) == 0.0

    def test_order_independent(self):
        values = list(range(50))
        shuffled = values[:]
        random.Random(7).shuffle(shuffled)
        assert percentile_rank(20.5, values) == percentile_rank(20.5, shuffled)

    def test_range_and_monotonicity(self):
        rng = random.Random(11)
        history = [rng.uniform(-1_000, 1_000) for _ in range(200)]
        probes = sorted(rng.uniform(-1_500, 1_500) for _ in range(100))

        ranks = [percentile_rank(p, history) for p in probes]

        assert all(0.0 <= r <= 100.0 for r in ranks)
        assert ranks == sorted(ranks)


class TestSufficientHistory:

    def test_threshold_is_inclusive(self):
        assert has_sufficient_history(26, 26)
        assert not has_sufficient_history(25, 26)

    @pytest.mark.parametrize(
        "value,expected",
        [(85, "85th"), (21, "21st"), (2, "2nd"), (3, "3rd"), (11, "11th"), (12.6, "13th")],
    )
    def test_ordinal(self, value, expected):
        assert ordinal(value) == expected


# ============================================================
# RULE TABLES
# ============================================================


def _table():
    return RuleTable(
        "sample",
        [
            Rule("big", lambda x: x > 100, "RED"),
            Rule("medium", lambda x: x > 10, lambda x: f"YELLOW {x}"),
            Rule("default", always, "GREEN"),
        ],
    )


class TestRuleTable:
    """Test first-match-wins evaluation."""

    def test_first_matching_rule_wins(self):
        assert _table().evaluate(500) == ("big", "RED")

    def test_callable_outcome_receives_context(self):
        assert _table().evaluate(50) == ("medium", "YELLOW 50")

    def test_catch_all(self):
        assert _table().evaluate(1) == ("default", "GREEN")

    def test_rule_names_preserve_order(self):
        assert _table().rule_names == ["big", "medium", "default"]

    def test_lookup_by_name(self):
        table = _table()
        assert table.rule("medium").matches(11)
        with pytest.raises(KeyError):
            table.rule("missing")

    def test_no_match_raises(self):
        table = RuleTable("strict", [Rule("only", lambda x: x > 0, "ok")])
        assert table.first_match(-1) is None
        with pytest.raises(LookupError):
            table.evaluate(-1)

    def test_rejects_empty_table(self):
        with pytest.raises(ValueError):
            RuleTable("empty", [])

    def test_rejects_duplicate_names(self):
        with pytest.raises(ValueError):
            RuleTable("dup", [Rule("a", always, 1), Rule("a", always, 2)])
