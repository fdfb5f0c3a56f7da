"""RuleEvaluator — decides whether an answer set must disqualify, and why.

The evaluator walks the funnel's ``disqualification_rules`` in declaration
order and returns the reason of the first rule that matches:

  - **answer_equals**: the answer's ``value`` equals the rule's ``value``
  - **date_older_than**: the answered ISO date lies more than ``days``
    calendar days before the evaluation time

A rule whose question was never answered does not match; the form cannot
disqualify on data it never collected down that path.

Returns ``None`` when nothing matches.  ``None`` means "not disqualified
yet", never "qualified".
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Mapping, Sequence

from lead_funnel.models.session import Answer, DisqualificationReason
from lead_funnel.models.step import (
    AnswerEqualsRule,
    DateOlderThanRule,
    DisqualificationRule,
)

logger = logging.getLogger(__name__)


def parse_answer_date(value: str) -> date:
    """Parse an ISO ``YYYY-MM-DD`` answer.  Raises ``ValueError`` if malformed."""
    text = value.strip()
    parsed = datetime.strptime(text, "%Y-%m-%d").date()
    # strptime tolerates unpadded fields such as 2026-1-5
    if parsed.isoformat() != text:
        raise ValueError(f"not a YYYY-MM-DD date: {value!r}")
    return parsed


def days_between(earlier: date, now: datetime) -> int:
    """Whole calendar days from *earlier* to the date of *now* (no rounding)."""
    return (now.date() - earlier).days


class RuleEvaluator:
    """Evaluates an ordered list of disqualification rules.

    Args:
        rules: rules in priority order (first match wins)
    """

    def __init__(self, rules: Sequence[DisqualificationRule]) -> None:
        self._rules = tuple(rules)

    @property
    def rules(self) -> tuple[DisqualificationRule, ...]:
        return self._rules

    def evaluate(
        self, answers: Mapping[str, Answer], now: datetime
    ) -> DisqualificationReason | None:
        """Return the reason of the first matching rule, or None.

        Args:
            answers: recorded answers keyed by question_key
            now: evaluation time (date rules measure age against it)
        """
        for rule in self._rules:
            answer = answers.get(rule.question_key)
            if answer is None:
                continue
            if self._matches(rule, answer.value, now):
                return rule.reason
        return None

    def disqualifies(self, question_key: str, value: str, now: datetime) -> bool:
        """True if any rule bound to *question_key* matches *value* on its own.

        Used by the Step Graph for procedurally validated steps, where the
        transition depends on the value rather than on a declared edge.
        """
        return any(
            self._matches(rule, value, now)
            for rule in self._rules
            if rule.question_key == question_key
        )

    def rules_for(self, question_key: str) -> list[DisqualificationRule]:
        return [r for r in self._rules if r.question_key == question_key]

    # ------------------------------------------------------------------
    # Rule matching
    # ------------------------------------------------------------------

    @staticmethod
    def _matches(rule: DisqualificationRule, value: str, now: datetime) -> bool:
        if isinstance(rule, AnswerEqualsRule):
            return value == rule.value

        if isinstance(rule, DateOlderThanRule):
            try:
                answered = parse_answer_date(value)
            except ValueError:
                # Malformed dates never reach the answer set through the
                # graph; if one does, it cannot prove the claim is old.
                logger.warning(
                    "Unparseable date %r for %s; rule skipped", value, rule.question_key,
                )
                return False
            return days_between(answered, now) > rule.days

        logger.warning("Unknown rule kind: %s", getattr(rule, "kind", rule))
        return False
