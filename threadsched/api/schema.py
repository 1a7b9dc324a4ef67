# threadsched/api/schema.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class StatusResponse(BaseModel):
    scheduler_name: str
    strategy: str
    request_scope: str
    dry_run: bool
    running: bool
    cycles: int
    last_cycle_at: Optional[float]
    pending_last_cycle: int
    decisions_logged: int
    uptime_s: float


class DecisionModel(BaseModel):
    pod_id: str
    namespace: str
    outcome: str
    node_name: Optional[str]
    reason: Optional[str]
    bound: bool
    error: Optional[str]
    issues: List[str]
    at: float


class NodeScoreModel(BaseModel):
    node: str
    admissible: bool
    limit_ratio: Optional[float]  # None для недопустимых нод
    pod_count: int
    capacity_m: int
    projected_request_m: int
    projected_limit_m: int
    reason: Optional[str]


class PreviewRequest(BaseModel):
    """Либо существующий pending pod (pod_id), либо гипотетический pod в namespace."""
    pod_id: Optional[str] = None
    namespace: Optional[str] = None
    cpu_limit_m: int = Field(0, ge=0)
    cpu_request_m: int = Field(0, ge=0)


class PreviewResponse(BaseModel):
    pod_id: str
    namespace: str
    outcome: str
    node_name: Optional[str]
    reason: Optional[str]
    issues: List[str]
    scores: List[NodeScoreModel]
