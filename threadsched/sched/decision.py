# threadsched/sched/decision.py
from __future__ import annotations

import logging
from typing import Iterable, Tuple

from ..model.entities import ClusterSnapshot, PodInfo
from .accessor import build_inputs
from .basic import select_node_by_threads_label
from .result import Decision, NodeScore, Outcome
from .scoring import score_nodes

log = logging.getLogger(__name__)

STRATEGIES = ("spread", "threads-label")


def select_node(scores: Iterable[NodeScore], issues: Tuple[str, ...] = ()) -> Decision:
    """
    Победитель среди допустимых нод:
      1) минимальный limit_ratio;
      2) при равенстве минимальный pod_count;
      3) дальше лексикографически меньшее имя ноды.
    Допустимых нод нет -> Outcome.NO_ELIGIBLE_NODE.
    """
    scores = tuple(scores)
    admissible = [s for s in scores if s.admissible]
    if not admissible:
        if not scores:
            reason = "no nodes in snapshot"
        else:
            reasons = sorted({s.reason or "inadmissible" for s in scores})
            reason = f"no admissible node among {len(scores)} ({', '.join(reasons)})"
        return Decision(outcome=Outcome.NO_ELIGIBLE_NODE, scores=scores, reason=reason, issues=issues)

    best = min(admissible, key=lambda s: s.sort_key)
    return Decision(outcome=Outcome.SELECTED, node_name=best.node_name, scores=scores, issues=issues)


def decide(
    snapshot: ClusterSnapshot,
    pod: PodInfo,
    request_scope: str = "namespace",
    strategy: str = "spread",
) -> Decision:
    """Одно решение для одного pod'а по одному снапшоту. Без I/O."""
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown strategy: {strategy}")
    if strategy == "threads-label":
        return select_node_by_threads_label(snapshot)

    inputs = build_inputs(snapshot, pod)
    scores = score_nodes(inputs.candidate, inputs.capacities, inputs.aggregates, request_scope)
    decision = select_node(scores, inputs.issues)

    if decision.eligible:
        log.debug(f"{pod.id}: best node {decision.node_name} ratio={decision.best_ratio:.4f}")
    return decision


def rank_scores(scores: Iterable[NodeScore]) -> Tuple[NodeScore, ...]:
    """Порядок для отображения: допустимые по ключу выбора, затем остальные по имени."""
    scores = tuple(scores)
    admissible = sorted((s for s in scores if s.admissible), key=lambda s: s.sort_key)
    rest = sorted((s for s in scores if not s.admissible), key=lambda s: str(s.node_name))
    return tuple(admissible) + tuple(rest)
