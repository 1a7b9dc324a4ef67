# threadsched/api/server.py
from __future__ import annotations

import logging
import math
import time
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query

from ..config import SchedulerConfig
from ..model.entities import ClusterSnapshot
from ..sched.accessor import hypothetical_pod
from ..sched.decision import decide, rank_scores
from ..sched.loop import DecisionLog, DecisionRecord, SchedulingLoop, SnapshotSource
from ..sched.result import Decision, NodeScore
from ..types import PodId
from .schema import (
    DecisionModel, NodeScoreModel, PreviewRequest, PreviewResponse, StatusResponse,
)

app = FastAPI(title="kube-threadsched")

log = logging.getLogger("uvicorn")


# --- STATE ---

class SchedulerState:
    """То, что API знает о процессе: конфиг, цикл (если запущен), журнал решений."""

    def __init__(self) -> None:
        self.config = SchedulerConfig()
        self.loop: Optional[SchedulingLoop] = None
        self.source: Optional[SnapshotSource] = None
        self.decision_log = DecisionLog(self.config.decision_log_size)
        self.started_at = time.time()

    def attach(self, loop: SchedulingLoop) -> None:
        self.loop = loop
        self.config = loop.config
        self.source = loop.source
        self.decision_log = loop.decision_log

    def use_source(self, source: SnapshotSource, config: Optional[SchedulerConfig] = None) -> None:
        """Только предпросмотр, без цикла."""
        self.source = source
        if config is not None:
            self.config = config

    def use_snapshot(self, snapshot: ClusterSnapshot, config: Optional[SchedulerConfig] = None) -> None:
        """Предпросмотр по зафиксированному снапшоту (файл, тесты)."""
        self.use_source(lambda namespace: snapshot, config)


STATE = SchedulerState()


# --- Helpers ---

def _score_model(s: NodeScore) -> NodeScoreModel:
    return NodeScoreModel(
        node=str(s.node_name),
        admissible=s.admissible,
        limit_ratio=s.limit_ratio if s.admissible and math.isfinite(s.limit_ratio) else None,
        pod_count=s.pod_count,
        capacity_m=int(s.capacity_m),
        projected_request_m=int(s.projected_request_m),
        projected_limit_m=int(s.projected_limit_m),
        reason=s.reason,
    )


def _decision_model(r: DecisionRecord) -> DecisionModel:
    return DecisionModel(
        pod_id=r.pod_id,
        namespace=r.namespace,
        outcome=r.outcome.value,
        node_name=r.node_name,
        reason=r.reason,
        bound=r.bound,
        error=r.error,
        issues=list(r.issues),
        at=r.at,
    )


def to_preview_response(pod_id: str, namespace: str, decision: Decision) -> PreviewResponse:
    return PreviewResponse(
        pod_id=pod_id,
        namespace=namespace,
        outcome=decision.outcome.value,
        node_name=decision.node_name,
        reason=decision.reason,
        issues=list(decision.issues),
        scores=[_score_model(s) for s in rank_scores(decision.scores)],
    )


# --- Endpoints ---

@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


@app.get("/status", response_model=StatusResponse)
def status() -> StatusResponse:
    cfg = STATE.config
    loop = STATE.loop
    return StatusResponse(
        scheduler_name=cfg.scheduler_name,
        strategy=cfg.strategy,
        request_scope=cfg.request_scope,
        dry_run=cfg.dry_run,
        running=loop is not None,
        cycles=loop.cycles if loop else 0,
        last_cycle_at=loop.last_cycle_at if loop else None,
        pending_last_cycle=loop.last_pending if loop else 0,
        decisions_logged=len(STATE.decision_log),
        uptime_s=time.time() - STATE.started_at,
    )


@app.get("/decisions", response_model=List[DecisionModel])
def decisions(limit: int = Query(50, ge=1, le=1000)) -> List[DecisionModel]:
    return [_decision_model(r) for r in STATE.decision_log.recent(limit)]


@app.post("/preview", response_model=PreviewResponse)
def preview(req: PreviewRequest) -> PreviewResponse:
    """Какую ноду выбрал бы планировщик сейчас. В кластер ничего не пишет."""
    if STATE.source is None:
        raise HTTPException(status_code=503, detail="Snapshot source is not configured")

    if req.pod_id:
        snapshot = STATE.source(None)
        pod = snapshot.pods.get(PodId(req.pod_id))
        if pod is None:
            raise HTTPException(status_code=404, detail=f"Pod {req.pod_id} not found")
    elif req.namespace:
        pod = hypothetical_pod(req.namespace, req.cpu_limit_m, req.cpu_request_m)
        whole_cluster = STATE.config.request_scope == "cluster" or STATE.config.strategy == "threads-label"
        snapshot = STATE.source(None if whole_cluster else req.namespace)
    else:
        raise HTTPException(status_code=400, detail="Either pod_id or namespace is required")

    try:
        decision = decide(snapshot, pod, STATE.config.request_scope, STATE.config.strategy)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    log.info(f"Preview for {pod.id}: {decision.outcome.value} {decision.node_name or ''}")
    return to_preview_response(str(pod.id), str(pod.namespace), decision)
