# threadsched/sched/basic.py
from __future__ import annotations

from collections import Counter

from ..model.entities import ClusterSnapshot
from .accessor import data_issues
from .result import Decision, Outcome

THREADS_LABEL = "threads"


def select_node_by_threads_label(snapshot: ClusterSnapshot) -> Decision:
    """
    Простая стратегия: у ноды есть метка `threads` (число потоков),
    свободно = threads - число pod'ов на ноде (все namespace).
    Берём ноду с максимальным свободным остатком > 0; при равенстве берём
    первую по имени. Ноды без числовой метки пропускаются.
    """
    on_node = Counter(p.node_name for p in snapshot.pods.values() if p.is_bound)

    best_name = None
    best_available = 0
    for name in sorted(snapshot.nodes):
        raw = snapshot.nodes[name].labels.get(THREADS_LABEL)
        if raw is None:
            continue
        try:
            total = int(raw)
        except ValueError:
            continue
        available = total - on_node.get(name, 0)
        if available > best_available:
            best_available = available
            best_name = name

    if best_name is None:
        return Decision(
            outcome=Outcome.NO_ELIGIBLE_NODE,
            reason="no node with available threads found",
            issues=data_issues(snapshot),
        )
    return Decision(outcome=Outcome.SELECTED, node_name=best_name, issues=data_issues(snapshot))
