"""Step and rule models for funnel definitions.

Each step kind maps to one UI component and one way of resolving its answer:

    - choice: pick one option; each option carries its own directive
    - date: enter a calendar date, validated procedurally against the
      funnel's date rules at transition time
    - contact: terminal contact-collection step, answered through
      ``FormSession.submit_contact`` rather than ``submit_answer``

Disqualification rules are declared alongside the steps and evaluated in
declaration order by :class:`~lead_funnel.evaluator.RuleEvaluator`.
"""

from __future__ import annotations

from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .directive import Directive
from .session import DisqualificationReason


# --- Base step type ---

class BaseStep(BaseModel):
    """Fields shared by all step kinds."""

    model_config = ConfigDict(frozen=True)

    id: str
    question_key: str
    question: str


class ChoiceOption(BaseModel):
    """A selectable answer with its machine value, display label and directive."""

    model_config = ConfigDict(frozen=True)

    value: str
    label: str
    then: Directive


# --- Step kinds ---

class ChoiceStep(BaseStep):
    """Pick one option; each option carries its own directive."""

    kind: Literal["choice"] = "choice"
    options: List[ChoiceOption]

    @model_validator(mode="after")
    def _chk(self):
        if not self.options:
            raise ValueError(f"choice step '{self.id}' has no options")
        values = [o.value for o in self.options]
        if len(values) != len(set(values)):
            raise ValueError(f"choice step '{self.id}' has duplicate option values")
        return self

    def option_for(self, value: str) -> ChoiceOption | None:
        """Return the option whose value matches, or None."""
        for opt in self.options:
            if opt.value == value:
                return opt
        return None


class DateStep(BaseStep):
    """ISO date entry; ``then`` applies when no date rule disqualifies."""

    kind: Literal["date"] = "date"
    then: Directive


class ContactStep(BaseStep):
    """Terminal contact-collection step."""

    kind: Literal["contact"] = "contact"
    question_key: str = "contact"


Step = Annotated[Union[ChoiceStep, DateStep, ContactStep], Field(discriminator="kind")]

# --- Disqualification rules ---

class AnswerEqualsRule(BaseModel):
    """Disqualify when the answer to ``question_key`` equals ``value``."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["answer_equals"] = "answer_equals"
    reason: DisqualificationReason
    question_key: str
    value: str


class DateOlderThanRule(BaseModel):
    """Disqualify when the date answered for ``question_key`` is more than
    ``days`` calendar days before evaluation time."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["date_older_than"] = "date_older_than"
    reason: DisqualificationReason
    question_key: str
    days: int = Field(gt=0)


DisqualificationRule = Annotated[
    Union[AnswerEqualsRule, DateOlderThanRule], Field(discriminator="kind")
]
