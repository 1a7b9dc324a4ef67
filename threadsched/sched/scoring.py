# threadsched/sched/scoring.py
from __future__ import annotations

import math
from typing import List, Mapping

from ..types import NodeName, CpuMillis
from .result import (
    CandidatePod, NodeAggregate, NodeCapacity, NodeScore,
    REASON_INSUFFICIENT_CPU, REASON_ZERO_CAPACITY,
)

REQUEST_SCOPES = ("namespace", "cluster")


def score_node(
    candidate: CandidatePod,
    capacity: NodeCapacity,
    aggregate: NodeAggregate,
    request_scope: str = "namespace",
) -> NodeScore:
    """
    Оценка одной ноды для pod'а-кандидата.

      - допуск: capacity > 0 и (requests на ноде + requests кандидата) <= capacity;
      - limit_ratio = (limits namespace на ноде + limits кандидата) / capacity,
        чем меньше, тем лучше; для недопустимых нод -> inf;
      - pod_count: число pod'ов namespace на ноде, без кандидата.
    """
    if request_scope not in REQUEST_SCOPES:
        raise ValueError(f"Unknown request scope: {request_scope}")
    if request_scope == "cluster":
        prior_requests = int(aggregate.cluster_request_sum_m)
    else:
        prior_requests = int(aggregate.namespace_request_sum_m)

    cap = int(capacity.cpu_capacity_m)
    projected_request = prior_requests + int(candidate.cpu_request_sum_m)
    projected_limit = int(aggregate.namespace_limit_sum_m) + int(candidate.cpu_limit_sum_m)

    reason = None
    if cap <= 0:
        reason = REASON_ZERO_CAPACITY
    elif projected_request > cap:
        reason = REASON_INSUFFICIENT_CPU

    if reason is not None:
        return NodeScore(
            node_name=capacity.node_name,
            admissible=False,
            limit_ratio=math.inf,
            pod_count=aggregate.namespace_pod_count,
            capacity_m=CpuMillis(cap),
            projected_request_m=CpuMillis(projected_request),
            projected_limit_m=CpuMillis(projected_limit),
            reason=reason,
        )

    return NodeScore(
        node_name=capacity.node_name,
        admissible=True,
        limit_ratio=float(projected_limit) / float(cap),
        pod_count=aggregate.namespace_pod_count,
        capacity_m=CpuMillis(cap),
        projected_request_m=CpuMillis(projected_request),
        projected_limit_m=CpuMillis(projected_limit),
    )


def score_nodes(
    candidate: CandidatePod,
    capacities: Mapping[NodeName, NodeCapacity],
    aggregates: Mapping[NodeName, NodeAggregate],
    request_scope: str = "namespace",
) -> List[NodeScore]:
    """NodeScore на каждую ноду из capacities, по имени ноды."""
    scores: List[NodeScore] = []
    for name in sorted(capacities):
        aggregate = aggregates.get(name) or NodeAggregate(node_name=name)
        scores.append(score_node(candidate, capacities[name], aggregate, request_scope))
    return scores
