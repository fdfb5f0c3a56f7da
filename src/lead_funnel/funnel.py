"""FunnelStore — loads every funnel YAML file into validated step graphs.

The store is loaded once at startup and is read-only afterwards.  Each
``*.yaml`` file under the funnel directory describes one funnel variant:

    id: commercial_mva
    name: Commercial vehicle accident
    source_site: workvehicleaccident.com
    funnel_type: CommercialMVA
    lead_type: WorkVehicleAccident
    first_step: vehicle_type
    steps: [...]
    disqualification_rules: [...]

A file may instead declare ``extends: <funnel id>`` and override only the
keys it lists (typically the lead tags); steps and rules are inherited.

Usage::

    store = FunnelStore()           # defaults to the packaged funnels/
    store.load()
    graph = store.get_graph("commercial_mva")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from lead_funnel.constants import DEFAULT_FUNNEL_DIR
from lead_funnel.errors import FunnelConfigError
from lead_funnel.graph import StepGraph
from lead_funnel.models.funnel import FunnelDefinition

logger = logging.getLogger(__name__)


def load_yaml(path: Path | str) -> Any:
    """Load a single YAML file and return the parsed contents."""
    if isinstance(path, str):
        path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing YAML file: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


class FunnelStore:
    """Loads all funnel YAML from a directory and provides lookup by funnel id."""

    def __init__(self, funnel_dir: str | Path | None = None) -> None:
        self._base = Path(funnel_dir) if funnel_dir is not None else DEFAULT_FUNNEL_DIR
        # Populated by load()
        self.funnels: dict[str, FunnelDefinition] = {}
        self._graphs: dict[str, StepGraph] = {}

    @property
    def funnel_dir(self) -> Path:
        return self._base

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Parse, resolve and validate every funnel file.

        Raises:
            FileNotFoundError: the funnel directory does not exist
            FunnelConfigError: a file is malformed, an ``extends`` chain is
                broken or cyclic, or a step graph fails validation
        """
        if not self._base.is_dir():
            raise FileNotFoundError(f"Funnel directory not found: {self._base}")

        raw_by_id: dict[str, dict[str, Any]] = {}
        for path in sorted(self._base.glob("*.yaml")):
            raw = load_yaml(path)
            if not isinstance(raw, dict) or "id" not in raw:
                raise FunnelConfigError(f"{path.name}: expected a mapping with an 'id' key")
            fid = raw["id"]
            if fid in raw_by_id:
                raise FunnelConfigError(f"{path.name}: duplicate funnel id '{fid}'")
            raw_by_id[fid] = raw

        funnels: dict[str, FunnelDefinition] = {}
        graphs: dict[str, StepGraph] = {}
        for fid in raw_by_id:
            resolved = self._resolve(fid, raw_by_id, chain=())
            try:
                funnel = FunnelDefinition.model_validate(resolved)
            except ValidationError as exc:
                raise FunnelConfigError(f"funnel '{fid}': {exc}") from exc
            funnels[fid] = funnel
            graphs[fid] = StepGraph(funnel)

        self.funnels = funnels
        self._graphs = graphs
        logger.info(
            "FunnelStore loaded %d funnels from %s: %s",
            len(funnels), self._base, ", ".join(sorted(funnels)),
        )

    def _resolve(
        self,
        fid: str,
        raw_by_id: dict[str, dict[str, Any]],
        chain: tuple[str, ...],
    ) -> dict[str, Any]:
        """Merge a funnel over the funnel it extends (recursively)."""
        if fid in chain:
            raise FunnelConfigError(
                f"funnel 'extends' cycle: {' -> '.join((*chain, fid))}"
            )
        raw = raw_by_id.get(fid)
        if raw is None:
            raise FunnelConfigError(
                f"funnel '{chain[-1]}' extends unknown funnel '{fid}'"
            )
        parent_id = raw.get("extends")
        own = {k: v for k, v in raw.items() if k != "extends"}
        if parent_id is None:
            return own
        parent = self._resolve(parent_id, raw_by_id, (*chain, fid))
        # Child tags win; an explicit null clears an inherited optional tag
        return {**parent, **own}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_graph(self, funnel_id: str) -> StepGraph:
        """Step graph for *funnel_id*.  Raises ``KeyError`` if unknown."""
        try:
            return self._graphs[funnel_id]
        except KeyError:
            raise KeyError(f"Unknown funnel: {funnel_id}") from None

    def get_funnel(self, funnel_id: str) -> FunnelDefinition:
        return self.get_graph(funnel_id).funnel

    def list_funnels(self) -> list[FunnelDefinition]:
        return [self.funnels[k] for k in sorted(self.funnels)]
