"""Funnel reference endpoints — read-only views of the loaded funnels.

No authentication: the data is what the public form renders anyway.
"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from lead_funnel.funnel import FunnelStore
from lead_funnel.models.funnel import FunnelDefinition

from lead_funnel_server.dependencies import get_store

router = APIRouter(prefix="/funnels", tags=["funnels"])


class FunnelSummary(BaseModel):
    id: str
    name: str
    source_site: str
    funnel_type: str
    lead_type: str
    ad_category: str | None = None
    first_step: str
    step_count: int


@router.get("")
async def list_funnels(store: FunnelStore = Depends(get_store)) -> list[FunnelSummary]:
    return [
        FunnelSummary(
            id=f.id,
            name=f.name,
            source_site=f.source_site,
            funnel_type=f.funnel_type,
            lead_type=f.lead_type,
            ad_category=f.ad_category,
            first_step=f.first_step,
            step_count=len(f.steps),
        )
        for f in store.list_funnels()
    ]


@router.get("/{funnel_id}")
async def get_funnel(
    funnel_id: str, store: FunnelStore = Depends(get_store),
) -> FunnelDefinition:
    """Full funnel definition (steps and rules).  404 if unknown."""
    return store.get_funnel(funnel_id)


@router.get("/{funnel_id}/graph")
async def get_funnel_graph(
    funnel_id: str, store: FunnelStore = Depends(get_store),
) -> dict[str, Any]:
    """Nodes/edges view for graph visualisation."""
    return store.get_graph(funnel_id).to_graph_dict()
