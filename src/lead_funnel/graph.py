"""StepGraph — the pure transition function of a funnel.

``next_step(step_id, question_key, value, now=...)`` maps an answer at the
current step to one of three directives:

    GoTo(step)          continue at another step
    ProceedToContact    continue at the contact-collection step
    Disqualify          end the session (reason comes from the evaluator)

Choice steps resolve through their declared option edges.  Date steps are
validated procedurally: the entered date is checked against the funnel's
date rules using the ``now`` passed in at transition time, so the rolling
cutoff is never frozen at load time.

The graph is built once per funnel and validated on construction; an
unrecognised answer at runtime is an ``InvalidTransition``, never a silent
"proceed to next step".
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime
from typing import Any

from lead_funnel.errors import FunnelConfigError, InvalidTransition
from lead_funnel.evaluator import RuleEvaluator, parse_answer_date
from lead_funnel.models.directive import Directive, Disqualify, GoTo, ProceedToContact
from lead_funnel.models.funnel import FunnelDefinition
from lead_funnel.models.session import OptionView, StepView
from lead_funnel.models.step import (
    AnswerEqualsRule,
    BaseStep,
    ChoiceStep,
    ContactStep,
    DateOlderThanRule,
    DateStep,
)
from lead_funnel.constants import CONTACT_FIELDS

logger = logging.getLogger(__name__)


class StepGraph:
    """Immutable step graph for one funnel.

    Args:
        funnel: the parsed funnel definition

    Raises:
        FunnelConfigError: if the definition is structurally unsound
    """

    def __init__(self, funnel: FunnelDefinition) -> None:
        self._funnel = funnel
        self._steps: dict[str, BaseStep] = {s.id: s for s in funnel.steps}
        self._evaluator = RuleEvaluator(funnel.disqualification_rules)
        self._contact_step_id = self._validate()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def funnel(self) -> FunnelDefinition:
        return self._funnel

    @property
    def funnel_id(self) -> str:
        return self._funnel.id

    @property
    def evaluator(self) -> RuleEvaluator:
        return self._evaluator

    @property
    def first_step_id(self) -> str:
        return self._funnel.first_step

    @property
    def contact_step_id(self) -> str:
        return self._contact_step_id

    @property
    def steps(self) -> list[BaseStep]:
        return list(self._steps.values())

    def get_step(self, step_id: str) -> BaseStep:
        """Look up a step by id.  Raises ``KeyError`` if unknown."""
        return self._steps[step_id]

    # ------------------------------------------------------------------
    # Transition function
    # ------------------------------------------------------------------

    def next_step(
        self,
        step_id: str,
        question_key: str,
        value: str,
        *,
        now: datetime,
    ) -> Directive:
        """Resolve the directive for answering *question_key* with *value* at *step_id*.

        Raises:
            InvalidTransition: unknown step, wrong question for the step,
                an answer value with no edge, a malformed or future date,
                or an attempt to answer the contact step here.
        """
        step = self._steps.get(step_id)
        if step is None:
            raise InvalidTransition(f"Unknown step: {step_id}", step_id=step_id)

        if question_key != step.question_key:
            raise InvalidTransition(
                f"Step '{step_id}' expects an answer for '{step.question_key}', "
                f"got '{question_key}'",
                step_id=step_id,
            )

        if isinstance(step, ChoiceStep):
            opt = step.option_for(value)
            if opt is None:
                raise InvalidTransition(
                    f"Answer {value!r} is not accepted at step '{step_id}'",
                    step_id=step_id,
                )
            return opt.then

        if isinstance(step, DateStep):
            try:
                answered = parse_answer_date(value)
            except ValueError:
                raise InvalidTransition(
                    f"Answer {value!r} at step '{step_id}' is not an ISO date",
                    step_id=step_id,
                ) from None
            if answered > now.date():
                raise InvalidTransition(
                    f"Date {value} at step '{step_id}' is in the future",
                    step_id=step_id,
                )
            if self._evaluator.disqualifies(question_key, value, now):
                return Disqualify()
            return step.then

        if isinstance(step, ContactStep):
            raise InvalidTransition(
                f"Step '{step_id}' collects contact details; use submit_contact",
                step_id=step_id,
            )

        raise InvalidTransition(f"Unsupported step kind at '{step_id}'", step_id=step_id)

    def resolve_target(self, directive: Directive) -> str | None:
        """Step id a directive moves to, or None for Disqualify."""
        if isinstance(directive, GoTo):
            return directive.step
        if isinstance(directive, ProceedToContact):
            return self._contact_step_id
        return None

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def step_view(self, step_id: str) -> StepView:
        """Flatten a step into the UI-facing ``StepView``."""
        step = self._steps[step_id]
        view: dict[str, Any] = {
            "step_id": step.id,
            "question_key": step.question_key,
            "question": step.question,
            "kind": step.kind,
        }
        if isinstance(step, ChoiceStep):
            view["options"] = [OptionView(value=o.value, label=o.label) for o in step.options]
        elif isinstance(step, ContactStep):
            view["fields"] = list(CONTACT_FIELDS)
        return StepView(**view)

    def to_graph_dict(self) -> dict[str, list[dict]]:
        """Nodes/edges view of the graph (cytoscape-style ``{"data": ...}`` items).

        Adds two virtual nodes, ``__disqualified`` and ``__qualified``, so
        terminal outcomes are visible.
        """
        nodes: list[dict] = []
        edges: list[dict] = []

        for step in self._steps.values():
            data = {
                "id": step.id,
                "label": step.question,
                "type": step.kind,
                "question_key": step.question_key,
            }
            if isinstance(step, ChoiceStep):
                data["options"] = [{"value": o.value, "label": o.label} for o in step.options]
            nodes.append({"data": data})

        for step in self._steps.values():
            if isinstance(step, ChoiceStep):
                for opt in step.options:
                    edges.append({"data": {
                        "source": step.id,
                        "target": self._edge_target(opt.then),
                        "label": opt.label,
                    }})
            elif isinstance(step, DateStep):
                edges.append({"data": {
                    "source": step.id,
                    "target": self._edge_target(step.then),
                    "label": "valid date",
                }})
                for rule in self._evaluator.rules_for(step.question_key):
                    edges.append({"data": {
                        "source": step.id,
                        "target": "__disqualified",
                        "label": rule.reason.value,
                    }})
            elif isinstance(step, ContactStep):
                edges.append({"data": {
                    "source": step.id, "target": "__qualified", "label": "valid contact",
                }})

        nodes.append({"data": {"id": "__disqualified", "label": "Disqualified", "type": "terminal"}})
        nodes.append({"data": {"id": "__qualified", "label": "Qualified", "type": "terminal"}})
        return {"nodes": nodes, "edges": edges}

    def _edge_target(self, directive: Directive) -> str:
        target = self.resolve_target(directive)
        return target if target is not None else "__disqualified"

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(self) -> str:
        """Check the graph is sound and return the contact step id."""
        fid = self._funnel.id

        contact_ids = [s.id for s in self._steps.values() if isinstance(s, ContactStep)]
        if len(contact_ids) != 1:
            raise FunnelConfigError(
                f"funnel '{fid}' must have exactly one contact step, found {len(contact_ids)}"
            )
        contact_id = contact_ids[0]

        if self._funnel.first_step not in self._steps:
            raise FunnelConfigError(
                f"funnel '{fid}': first_step '{self._funnel.first_step}' does not exist"
            )

        equals_rules = {
            (r.question_key, r.value)
            for r in self._funnel.disqualification_rules
            if isinstance(r, AnswerEqualsRule)
        }
        date_rule_keys = {
            r.question_key
            for r in self._funnel.disqualification_rules
            if isinstance(r, DateOlderThanRule)
        }

        for step in self._steps.values():
            for target in self._targets(step, contact_id):
                if target not in self._steps:
                    raise FunnelConfigError(
                        f"funnel '{fid}': step '{step.id}' points to unknown step '{target}'"
                    )
            if isinstance(step, ChoiceStep):
                for opt in step.options:
                    if isinstance(opt.then, Disqualify) and (step.question_key, opt.value) not in equals_rules:
                        raise FunnelConfigError(
                            f"funnel '{fid}': disqualify edge {step.question_key}={opt.value!r} "
                            f"has no matching answer_equals rule"
                        )
            elif isinstance(step, DateStep):
                if step.question_key not in date_rule_keys:
                    raise FunnelConfigError(
                        f"funnel '{fid}': date step '{step.id}' has no date_older_than rule"
                    )

        # A rule may only match an answer whose edge disqualifies
        disqualify_edges = {
            (step.question_key, opt.value)
            for step in self._steps.values() if isinstance(step, ChoiceStep)
            for opt in step.options if isinstance(opt.then, Disqualify)
        }
        date_keys = {s.question_key for s in self._steps.values() if isinstance(s, DateStep)}
        for rule in self._funnel.disqualification_rules:
            if isinstance(rule, AnswerEqualsRule):
                if (rule.question_key, rule.value) not in disqualify_edges:
                    raise FunnelConfigError(
                        f"funnel '{fid}': answer_equals rule {rule.question_key}={rule.value!r} "
                        f"does not match a disqualify edge"
                    )
            elif rule.question_key not in date_keys:
                raise FunnelConfigError(
                    f"funnel '{fid}': date_older_than rule on '{rule.question_key}' "
                    f"does not match a date step"
                )

        # Every step must be reachable from first_step
        seen: set[str] = set()
        queue = deque([self._funnel.first_step])
        while queue:
            sid = queue.popleft()
            if sid in seen:
                continue
            seen.add(sid)
            queue.extend(self._targets(self._steps[sid], contact_id))
        unreachable = set(self._steps) - seen
        if unreachable:
            raise FunnelConfigError(
                f"funnel '{fid}': unreachable steps {sorted(unreachable)}"
            )

        logger.debug("Funnel %s validated: %d steps", fid, len(self._steps))
        return contact_id

    @staticmethod
    def _targets(step: BaseStep, contact_id: str) -> list[str]:
        """Step ids reachable in one transition from *step*."""
        directives: list[Directive] = []
        if isinstance(step, ChoiceStep):
            directives = [o.then for o in step.options]
        elif isinstance(step, DateStep):
            directives = [step.then]
        out: list[str] = []
        for d in directives:
            if isinstance(d, GoTo):
                out.append(d.step)
            elif isinstance(d, ProceedToContact):
                out.append(contact_id)
        return out
