"""Pydantic settings of extraction runs, polling and the k-shortest-paths service."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator

from ..core.constants import WEIGHT, query_column_name
from .strategy import ExtractionStrategy


class PollingConfig(BaseModel):
    """Backoff schedule of submit/poll services (seconds)."""

    model_config = {"frozen": True}

    initial_interval: float = Field(1.0, gt=0)
    slow_interval: float = Field(10.0, gt=0)
    fast_phase: float = Field(60.0, gt=0)
    timeout: float = Field(999999999.0, gt=0)


class ExtractionConfig(BaseModel):
    """One extraction run: how to slice, which layers, where the query nodes are."""

    model_config = {"frozen": True}

    strategy: ExtractionStrategy = ExtractionStrategy.GLOBAL
    layer_ids: list[int]
    query_columns: dict[int, str] = Field(default_factory=dict)
    check_enabled: bool = True
    name: str = "Extracted network"

    @field_validator("layer_ids")
    @classmethod
    def _distinct_layers(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError("at least one layer id is required")
        if len(set(value)) != len(value):
            raise ValueError(f"duplicated layer ids in {value}")
        return value

    def query_column(self, layer_id: int) -> str:
        """Query column of a layer, ``Query_<k>`` unless configured."""
        return self.query_columns.get(layer_id, query_column_name(layer_id))


class WeightType(str, Enum):
    PROBABILITIES = "probabilities"
    ADDITIVE = "additive"
    UNWEIGHTED = "unweighted"


class ShortestPathsConfig(BaseModel):
    """Parameters of :class:`~layernet.extraction.shortest_paths.KShortestPathsService`."""

    model_config = {"frozen": True}

    k: int = Field(50, ge=1)
    edge_penalty: float = Field(1.0, ge=0)
    weight_type: WeightType = WeightType.PROBABILITIES
    weight_column: str = WEIGHT
    directed: bool = False
    allow_sources_targets_in_paths: bool = True
    include_tied_paths: bool = False
