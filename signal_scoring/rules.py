"""
Signal Scoring - Ordered Rule Tables.

============================================================
PURPOSE
============================================================
Every scorer and the posture synthesizer is an ordered list
of (condition, outcome) pairs where the FIRST matching rule
wins. RuleTable makes that list a first-class value so it
can be inspected and tested independently of the scorer.

============================================================
USAGE
============================================================
    table = RuleTable("open_interest", [
        Rule("crash", lambda ctx: ctx["change_pct"] < -10, red),
        Rule("default", always, green),
    ])
    rule, outcome = table.first_match(ctx)

An outcome may be a plain value or a callable taking the
context; callables let reasons embed the context's numbers.

============================================================
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, Sequence, Tuple, TypeVar


logger = logging.getLogger(__name__)


C = TypeVar("C")
T = TypeVar("T")


def always(_context: Any) -> bool:
    """Predicate for a table's catch-all rule."""
    return True


@dataclass(frozen=True)
class Rule(Generic[C, T]):
    """One named (condition, outcome) pair."""

    name: str
    predicate: Callable[[C], bool]
    outcome: Any

    def matches(self, context: C) -> bool:
        return bool(self.predicate(context))

    def resolve(self, context: C) -> T:
        if callable(self.outcome):
            return self.outcome(context)
        return self.outcome


class RuleTable(Generic[C, T]):
    """
    Ordered, first-match-wins rule list.

    A table without a catch-all raises LookupError when
    nothing matches; every table in this package ends in one.
    """

    def __init__(self, name: str, rules: Sequence[Rule]) -> None:
        if not rules:
            raise ValueError(f"Rule table {name} has no rules")
        names = [rule.name for rule in rules]
        if len(set(names)) != len(names):
            raise ValueError(f"Rule table {name} has duplicate rule names: {names}")
        self.name = name
        self._rules: Tuple[Rule, ...] = tuple(rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self):
        return iter(self._rules)

    def __repr__(self) -> str:
        return f"RuleTable({self.name!r}, {list(self.rule_names)})"

    @property
    def rule_names(self) -> List[str]:
        return [rule.name for rule in self._rules]

    def rule(self, name: str) -> Rule:
        for rule in self._rules:
            if rule.name == name:
                return rule
        raise KeyError(name)

    def first_match(self, context: C) -> Optional[Rule]:
        """Return the first rule whose predicate holds, or None."""
        for rule in self._rules:
            if rule.matches(context):
                return rule
        return None

    def evaluate(self, context: C) -> Tuple[str, T]:
        """
        Evaluate the table against a context.

        Returns:
            (rule_name, resolved_outcome)

        Raises:
            LookupError: If no rule matches
        """
        rule = self.first_match(context)
        if rule is None:
            raise LookupError(f"No rule in {self.name} matched")
        logger.debug(f"{self.name}: matched rule {rule.name}")
        return rule.name, rule.resolve(context)
