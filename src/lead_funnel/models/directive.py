"""Directive models — what the Step Graph tells the session to do next.

After an answer is accepted at a step, exactly one directive applies:
  - GoTo: move the step pointer to another step by id
  - ProceedToContact: move to the funnel's contact-collection step
  - Disqualify: end the session; the reason comes from the Rule Evaluator

The discriminated ``Directive`` union uses the ``directive`` field as its
discriminator so Pydantic can deserialise YAML dicts directly into the
correct type.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class GoTo(BaseModel):
    """Continue at another step."""

    model_config = ConfigDict(frozen=True)

    directive: Literal["goto"] = "goto"
    step: str


class ProceedToContact(BaseModel):
    """Continue at the contact-collection step."""

    model_config = ConfigDict(frozen=True)

    directive: Literal["contact"] = "contact"


class Disqualify(BaseModel):
    """End the session as disqualified."""

    model_config = ConfigDict(frozen=True)

    directive: Literal["disqualify"] = "disqualify"


Directive = Annotated[Union[GoTo, ProceedToContact, Disqualify], Field(discriminator="directive")]
