"""Funnel definition model — one YAML file per funnel variant.

A funnel bundles the tags that identify where a lead came from, the step
graph, and the ordered disqualification rules.  Structural checks that need
the whole graph (reachability, dangling targets, rule coverage) live in
:class:`~lead_funnel.graph.StepGraph`; this model only checks what a single
document can get wrong on its own.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from .step import DisqualificationRule, Step


class FunnelDefinition(BaseModel):
    """A complete, immutable funnel: tags + steps + rules."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    # Lead tags (copied into every LeadRecord)
    source_site: str
    funnel_type: str
    lead_type: str
    ad_category: Optional[str] = None

    first_step: str
    steps: List[Step]
    # Evaluated in order; first match wins
    disqualification_rules: List[DisqualificationRule]

    @model_validator(mode="after")
    def _chk(self):
        ids = [s.id for s in self.steps]
        if len(ids) != len(set(ids)):
            raise ValueError(f"funnel '{self.id}' has duplicate step ids")
        return self
